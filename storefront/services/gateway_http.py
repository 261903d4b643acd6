"""Thin httpx wrappers for payment gateway calls.

All calls carry the configured timeout. Only idempotent reads get a retry,
and only for transport failures (connect/read errors, timeouts). Mutating
calls are sent exactly once.
"""
import logging
import httpx
from flask import current_app
from storefront.errors import GatewayRejected

logger = logging.getLogger(__name__)

READ_RETRIES = 1


def _timeout():
    return current_app.config["GATEWAY_TIMEOUT"]


def _json(resp):
    try:
        return resp.json()
    except ValueError:
        return {}


def post(url, retry=False, **kwargs):
    """POST and return ``(response, body)``. Set ``retry`` only for reads."""
    return _send(httpx.post, url, retry, **kwargs)


def get(url, **kwargs):
    """GET with the read retry budget."""
    return _send(httpx.get, url, True, **kwargs)


def _send(method, url, retry, **kwargs):
    attempts = 1 + (READ_RETRIES if retry else 0)
    for attempt in range(1, attempts + 1):
        try:
            resp = method(url, timeout=_timeout(), **kwargs)
        except httpx.TransportError as e:
            if attempt < attempts:
                logger.warning("Gateway call %s failed (%s), retrying", url, e)
                continue
            logger.error("Gateway call %s failed: %s", url, e)
            raise GatewayRejected(
                "Payment gateway is unreachable", code="NETWORK_ERROR"
            ) from e
        return resp, _json(resp)
