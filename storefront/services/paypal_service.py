"""PayPal Orders v2 adapter (create intent → shopper approves → capture)."""
import logging
import time
from flask import current_app
from storefront import extensions
from storefront.extensions import db
from storefront.errors import (
    GatewayConfigError,
    GatewayRejected,
    PaymentRejected,
    ValidationError,
)
from storefront.models.payment import PaymentRecord
from storefront.services import gateway_http

logger = logging.getLogger(__name__)

PROVIDER = "paypal"
LIVE_API = "https://api-m.paypal.com"
SANDBOX_API = "https://api-m.sandbox.paypal.com"

TOKEN_CACHE_KEY = "paypal:access_token"
TOKEN_EXPIRY_MARGIN = 60  # seconds

COMPLETED = "COMPLETED"

# Used when redis is not configured
_local_token = {"value": None, "expires_at": 0.0}


def api_base():
    if current_app.config.get("PAYPAL_ENV") == "live":
        return LIVE_API
    return SANDBOX_API


def _credentials():
    client_id = current_app.config.get("PAYPAL_CLIENT_ID")
    client_secret = current_app.config.get("PAYPAL_CLIENT_SECRET")
    if not client_id or not client_secret:
        logger.error("PayPal credentials not configured")
        raise GatewayConfigError("PayPal credentials not configured")
    return client_id, client_secret


def clear_token_cache():
    _local_token["value"] = None
    _local_token["expires_at"] = 0.0
    if extensions.redis_client:
        extensions.redis_client.delete(TOKEN_CACHE_KEY)


def _cached_token():
    if extensions.redis_client:
        return extensions.redis_client.get(TOKEN_CACHE_KEY)
    if _local_token["value"] and _local_token["expires_at"] > time.monotonic():
        return _local_token["value"]
    return None


def _store_token(token, expires_in):
    ttl = max(int(expires_in) - TOKEN_EXPIRY_MARGIN, 0)
    if not ttl:
        return
    if extensions.redis_client:
        extensions.redis_client.setex(TOKEN_CACHE_KEY, ttl, token)
    else:
        _local_token["value"] = token
        _local_token["expires_at"] = time.monotonic() + ttl


def get_access_token():
    """Client-credentials token, reused until shortly before it expires."""
    client_id, client_secret = _credentials()
    token = _cached_token()
    if token:
        return token

    resp, data = gateway_http.post(
        f"{api_base()}/v1/oauth2/token",
        auth=(client_id, client_secret),
        data={"grant_type": "client_credentials"},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    if not resp.is_success or not data.get("access_token"):
        logger.error("PayPal token exchange failed: %s", data.get("error"))
        raise GatewayRejected(
            "Failed to get PayPal access token: "
            + (data.get("error_description") or resp.reason_phrase or "unknown"),
            code=data.get("error") or f"HTTP_{resp.status_code}",
        )

    token = data["access_token"]
    _store_token(token, data.get("expires_in", 0))
    return token


def _auth_headers():
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {get_access_token()}",
    }


def get_record(intent_id):
    return PaymentRecord.query.filter_by(provider=PROVIDER, reference=intent_id).first()


def create_intent(amount, currency="USD", order_info=None):
    """Create a CAPTURE-intent PayPal order. Returns ``{"id", "status"}``."""
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        raise ValidationError("Invalid amount")
    order_info = order_info or {}
    app_url = current_app.config["APP_URL"].rstrip("/")

    body = {
        "intent": "CAPTURE",
        "purchase_units": [
            {
                "amount": {"currency_code": currency, "value": f"{amount:.2f}"},
                "description": order_info.get("goodsName") or "상품 구매",
                "custom_id": order_info.get("userId") or "",
            }
        ],
        "application_context": {
            "brand_name": current_app.config["PAYPAL_BRAND_NAME"],
            "landing_page": "NO_PREFERENCE",
            "user_action": "PAY_NOW",
            "return_url": f"{app_url}/payment/complete",
            "cancel_url": f"{app_url}/payment",
        },
    }

    resp, data = gateway_http.post(
        f"{api_base()}/v2/checkout/orders", json=body, headers=_auth_headers()
    )
    if not resp.is_success or not data.get("id"):
        logger.error("PayPal order creation failed: %s", data)
        raise GatewayRejected(
            "PayPal order creation failed",
            code=data.get("name") or f"HTTP_{resp.status_code}",
            details=data,
        )

    db.session.add(
        PaymentRecord(
            provider=PROVIDER,
            reference=data["id"],
            amount=amount,
            currency=currency,
            status="CREATED",
        )
    )
    db.session.commit()
    logger.info("PayPal order %s created for %s %s", data["id"], amount, currency)
    return {"id": data["id"], "status": data.get("status")}


def capture(intent_id):
    """Capture an approved PayPal order.

    PayPal de-duplicates on ``PayPal-Request-Id``, so a retried capture for
    the same intent never charges twice. Locally, a CAPTURED record short
    circuits to the stored result.
    """
    if not intent_id:
        raise ValidationError("Missing PayPal order id")

    record = get_record(intent_id)
    if record is not None and record.is_settled:
        logger.info("PayPal order %s already captured, returning stored result", intent_id)
        return record.result

    headers = {**_auth_headers(), "PayPal-Request-Id": f"capture-{intent_id}"}
    resp, data = gateway_http.post(
        f"{api_base()}/v2/checkout/orders/{intent_id}/capture", headers=headers
    )

    if resp.status_code == 422 and _issue(data) == "ORDER_ALREADY_CAPTURED":
        logger.info("PayPal order %s was captured earlier, fetching it", intent_id)
        resp, data = gateway_http.get(
            f"{api_base()}/v2/checkout/orders/{intent_id}", headers=_auth_headers()
        )

    if not resp.is_success:
        logger.error("PayPal capture failed for %s: %s", intent_id, data)
        if record is not None:
            record.status = "FAILED"
            record.result = data
            db.session.commit()
        raise GatewayRejected(
            "PayPal capture failed",
            code=_issue(data) or data.get("name") or f"HTTP_{resp.status_code}",
            details=data,
        )

    status = data.get("status")
    if status != COMPLETED:
        logger.error("PayPal order %s captured with status %s", intent_id, status)
        raise PaymentRejected(f"Payment status: {status}", code=status, details=data)

    result = _capture_result(intent_id, data)
    if (
        record is not None
        and result["amount"] is not None
        and float(result["amount"]) != float(record.amount)
    ):
        logger.error(
            "PayPal captured %s for %s but the intent was for %s",
            result["amount"], intent_id, record.amount,
        )
        record.status = "FAILED"
        record.result = data
        db.session.commit()
        raise PaymentRejected(
            "Captured amount does not match the order amount",
            code="AMOUNT_MISMATCH",
            details=data,
        )
    if record is None:
        record = PaymentRecord(
            provider=PROVIDER,
            reference=intent_id,
            amount=float(result["amount"] or 0),
            currency=result["currency"] or "USD",
        )
        db.session.add(record)
    record.status = "CAPTURED"
    record.payment_id = result["transactionId"]
    record.result = result
    db.session.commit()
    logger.info("PayPal order %s captured (%s)", intent_id, result["transactionId"])
    return result


def _issue(data):
    details = data.get("details") or []
    return details[0].get("issue") if details else None


def _capture_result(intent_id, data):
    capture_info = {}
    units = data.get("purchase_units") or []
    if units:
        captures = (units[0].get("payments") or {}).get("captures") or []
        if captures:
            capture_info = captures[0]
    amount = capture_info.get("amount") or {}
    return {
        "intentId": intent_id,
        "transactionId": capture_info.get("id") or intent_id,
        "status": data.get("status"),
        "amount": amount.get("value"),
        "currency": amount.get("currency_code"),
    }
