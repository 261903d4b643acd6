import logging
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
import redis as _redis

logger = logging.getLogger(__name__)

db = SQLAlchemy()
migrate = Migrate()

# Initialized lazily in create_app; None means "not configured"
redis_client: _redis.Redis = None  # type: ignore


def init_redis(app):
    global redis_client
    redis_url = app.config.get("REDIS_URL", "")
    if not redis_url:
        logger.warning("REDIS_URL not set, token cache is process-local (dev mode)")
        redis_client = None
        return

    try:
        redis_client = _redis.from_url(redis_url, decode_responses=True)
        redis_client.ping()
    except Exception as e:
        logger.warning("Redis connection failed (%s), token cache is process-local", e)
        redis_client = None
