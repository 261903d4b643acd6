"""Browser landing pages for the payment return legs."""
from flask import render_template, request
from storefront.blueprints.public import public_bp
from storefront.services.easypay_service import PaymentCallback


@public_bp.route("/payment/callback")
def payment_callback():
    """EasyPay redirect target; the page script completes the checkout."""
    callback = PaymentCallback.from_payload(request.args)
    return render_template(
        "payment/callback.html",
        provider="easypay",
        payload={"callback": callback.to_wire()},
    )


@public_bp.route("/payment/complete")
def payment_complete():
    """PayPal return URL; PayPal passes its order id as ``token``."""
    return render_template(
        "payment/callback.html",
        provider="paypal",
        payload={"orderId": request.args.get("token")},
    )
