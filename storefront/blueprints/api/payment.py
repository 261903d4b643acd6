"""Payment gateway endpoints (EasyPay + PayPal)."""
import logging
from flask import redirect, render_template, request, url_for
from storefront.blueprints.api import api_bp
from storefront.errors import ValidationError
from storefront.services import easypay_service, paypal_service
from storefront.services.easypay_service import PaymentCallback

logger = logging.getLogger(__name__)


def _json():
    return request.get_json(silent=True) or {}


# ---------------------------------------------------------------------------
# EasyPay
# ---------------------------------------------------------------------------

@api_bp.route("/payment/register", methods=["POST"])
def register_payment():
    """Step 1: register the trade and hand back the hosted page URL."""
    data = _json()
    device_type = easypay_service.detect_device_type(request.headers.get("User-Agent"))
    result = easypay_service.register(
        data.get("amount"), data.get("orderInfo"), device_type=device_type
    )
    return {
        "success": True,
        "authPageUrl": result["authPageUrl"],
        "shopOrderNo": result["shopOrderNo"],
        "message": "Payment registration successful",
    }


@api_bp.route("/payment/approve", methods=["POST"])
def approve_payment():
    """Server-side verification after the shopper paid."""
    data = _json()
    payment = easypay_service.verify(
        data.get("shopOrderNo"), data.get("amount"), data.get("authorizationId")
    )
    return {"success": True, "data": payment, "message": "Payment approved successfully"}


@api_bp.route("/payment/approve", methods=["GET"])
def query_payment():
    shop_order_no = request.args.get("shopOrderNo")
    if not shop_order_no:
        raise ValidationError("Missing shop order number")
    return {"success": True, "data": easypay_service.query_status(shop_order_no)}


@api_bp.route("/payment/callback", methods=["POST"])
def payment_callback():
    """EasyPay posts the payment result here (JSON or form-encoded).

    The response is a bridge page that hands the result to the checkout
    window. Verification happens there, never here.
    """
    try:
        if request.is_json:
            payload = request.get_json(silent=True) or {}
        else:
            payload = request.form
        callback = PaymentCallback.from_payload(payload)
        logger.info(
            "Payment callback for %s: %s %s",
            callback.shop_order_no, callback.res_cd, callback.res_msg,
        )
        return render_template("payment/bridge.html", callback=callback.to_wire())
    except Exception:
        logger.exception("Payment callback error")
        return render_template("payment/bridge.html", callback=None, error=True), 500


@api_bp.route("/payment/callback", methods=["GET"])
def payment_return():
    """Return URL when EasyPay redirects the browser instead of posting."""
    callback = PaymentCallback.from_payload(request.args)
    return redirect(url_for("public.payment_callback", **callback.to_wire()))


# ---------------------------------------------------------------------------
# PayPal
# ---------------------------------------------------------------------------

@api_bp.route("/payment/paypal/create-order", methods=["POST"])
def paypal_create_order():
    data = _json()
    order = paypal_service.create_intent(
        data.get("amount"), data.get("currency") or "USD", data.get("orderInfo")
    )
    return {"success": True, "orderId": order["id"], "status": order["status"]}


@api_bp.route("/payment/paypal/capture-order", methods=["POST"])
def paypal_capture_order():
    data = _json()
    result = paypal_service.capture(data.get("orderId"))
    return {
        "success": True,
        "message": "Payment completed",
        "transactionId": result["transactionId"],
        "data": result,
    }
