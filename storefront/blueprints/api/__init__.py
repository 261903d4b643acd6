import logging
from flask import Blueprint
from werkzeug.exceptions import HTTPException
from storefront.errors import StorefrontError

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.errorhandler(StorefrontError)
def handle_storefront_error(e):
    if e.status_code >= 500:
        logger.error("%s: %s", e.kind, e.message)
    return e.to_dict(), e.status_code


@api_bp.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return {"success": False, "kind": "HTTPError", "message": e.description}, e.code
    logger.exception("Unhandled error in API request")
    # Never echo internal error text to the client
    return {"success": False, "kind": "InternalError", "message": "Internal server error"}, 500


from storefront.blueprints.api import catalog, cart, payment, orders, checkout  # noqa: F401, E402
