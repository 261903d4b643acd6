"""EasyPay WebPay adapter (register → hosted page → callback → verify).

Flow:
    1. ``register`` reserves a shop order number and asks EasyPay for a
       hosted payment page URL.
    2. The shopper pays in a popup/redirect; EasyPay POSTs the result to our
       callback URL. The callback is only a signal (see ``PaymentCallback``).
    3. ``verify`` confirms the payment server-to-server. It is idempotent:
       once a shop order number is APPROVED the stored result is returned.
"""
import enum
import logging
import random
import re
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional
from flask import current_app
from sqlalchemy.exc import IntegrityError
from storefront.extensions import db
from storefront.errors import (
    GatewayConfigError,
    GatewayRejected,
    PaymentRejected,
    PersistenceError,
    ValidationError,
)
from storefront.models.payment import PaymentRecord
from storefront.services import gateway_http

logger = logging.getLogger(__name__)

PROVIDER = "easypay"

SUCCESS_CODE = "0000"
# WebPay trades are auto-approved after the shopper pays; the approval call
# then answers R102 and the trade must be looked up instead.
AUTO_APPROVED_CODE = "R102"

PAY_METHOD_CREDIT_CARD = "11"
CURRENCY_KRW = "00"
CLIENT_TYPE_WEB = "00"

HEADERS = {"Content-Type": "application/json", "Charset": "UTF-8"}

MOBILE_UA = re.compile(r"mobile|android|iphone|ipad|phone", re.IGNORECASE)


class ApprovalStep(enum.Enum):
    APPROVAL = "approval"
    QUERY = "query"
    APPROVED = "approved"
    REJECTED = "rejected"


def next_step(step, res_cd):
    """Transition of the verify state machine for a gateway result code."""
    if step not in (ApprovalStep.APPROVAL, ApprovalStep.QUERY):
        raise ValueError(f"{step} is terminal")
    if res_cd == SUCCESS_CODE:
        return ApprovalStep.APPROVED
    if step is ApprovalStep.APPROVAL and res_cd == AUTO_APPROVED_CODE:
        return ApprovalStep.QUERY
    return ApprovalStep.REJECTED


@dataclass
class PaymentCallback:
    """Result EasyPay posts back to the return URL.

    Nothing in here is proof of payment; ``is_success`` only tells us whether
    it is worth calling ``verify``.
    """

    res_cd: Optional[str] = None
    res_msg: Optional[str] = None
    shop_order_no: Optional[str] = None
    ord_no: Optional[str] = None
    amount: Optional[str] = None
    auth_date: Optional[str] = None
    auth_time: Optional[str] = None
    pay_method_type: Optional[str] = None
    authorization_id: Optional[str] = None

    WIRE_NAMES = {
        "res_cd": "resCd",
        "res_msg": "resMsg",
        "shop_order_no": "shopOrderNo",
        "ord_no": "ordNo",
        "amount": "amount",
        "auth_date": "authDate",
        "auth_time": "authTime",
        "pay_method_type": "payMethodType",
        "authorization_id": "authorizationId",
    }

    @classmethod
    def from_payload(cls, payload):
        """Build from a JSON dict or form MultiDict (wire names)."""
        values = {}
        for attr, wire in cls.WIRE_NAMES.items():
            value = payload.get(wire)
            values[attr] = None if value in (None, "") else str(value)
        return cls(**values)

    @property
    def is_success(self):
        return self.res_cd == SUCCESS_CODE

    def to_wire(self):
        """Wire-named fields, dropping empty ones (used for query strings)."""
        return {
            self.WIRE_NAMES[attr]: value
            for attr, value in asdict(self).items()
            if value is not None
        }


def detect_device_type(user_agent):
    return "mobile" if MOBILE_UA.search(user_agent or "") else "pc"


def generate_shop_order_no(now=None):
    """YYYYMMDD + random 9-digit number."""
    now = now or datetime.now()
    return f"{now:%Y%m%d}{random.randint(0, 999_999_999):09d}"


def _url(path):
    return current_app.config["EASYPAY_API_URL"].rstrip("/") + path


def _mall_id():
    mall_id = current_app.config.get("EASYPAY_MALL_ID")
    if not mall_id:
        logger.error("EasyPay merchant ID not configured")
        raise GatewayConfigError("Payment system configuration error")
    return mall_id


def _api_key():
    api_key = current_app.config.get("EASYPAY_API_KEY")
    if not api_key:
        logger.error("EasyPay API key not configured")
        raise GatewayConfigError("Payment system configuration error")
    return api_key


def _validate_amount(amount):
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        raise ValidationError("Invalid amount")


def get_record(shop_order_no, lock=False):
    query = PaymentRecord.query.filter_by(provider=PROVIDER, reference=shop_order_no)
    if lock:
        query = query.with_for_update()
    return query.first()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def _reserve_shop_order_no(amount):
    """Insert a REGISTERED record under a fresh shop order number.

    The unique (provider, reference) constraint catches collisions of the
    random suffix; a colliding number is simply regenerated.
    """
    attempts = current_app.config["SHOP_ORDER_NO_ATTEMPTS"]
    for _ in range(attempts):
        record = PaymentRecord(
            provider=PROVIDER,
            reference=generate_shop_order_no(),
            amount=amount,
            currency="KRW",
            status="REGISTERED",
        )
        db.session.add(record)
        try:
            db.session.commit()
            return record
        except IntegrityError:
            db.session.rollback()
            logger.warning("Shop order number %s collided, regenerating", record.reference)
    raise PersistenceError("Could not allocate a unique shop order number")


def register(amount, order_info=None, device_type="pc"):
    """Register a WebPay trade. Returns ``{"shopOrderNo", "authPageUrl"}``."""
    _validate_amount(amount)
    mall_id = _mall_id()

    record = _reserve_shop_order_no(amount)
    app_url = current_app.config["APP_URL"].rstrip("/")
    order_info = dict(order_info or {})
    order_info.setdefault("goodsName", "상품")

    body = {
        "mallId": mall_id,
        "shopOrderNo": record.reference,
        "amount": amount,
        "payMethodTypeCode": PAY_METHOD_CREDIT_CARD,
        "currency": CURRENCY_KRW,
        # EasyPay POSTs the result here, not GET with query params
        "returnUrl": f"{app_url}/api/payment/callback",
        "deviceTypeCode": device_type,
        "clientTypeCode": CLIENT_TYPE_WEB,
        "orderInfo": order_info,
    }

    logger.info("Registering EasyPay trade %s for %s", record.reference, amount)
    try:
        resp, data = gateway_http.post(_url("/api/ep9/trades/webpay"), json=body, headers=HEADERS)
    except GatewayRejected:
        _mark_failed(record, None)
        raise

    if not resp.is_success or data.get("resCd") != SUCCESS_CODE or not data.get("authPageUrl"):
        logger.error("EasyPay WebPay registration failed: %s", data)
        _mark_failed(record, data)
        raise GatewayRejected(
            data.get("resMsg") or "Failed to register payment",
            code=data.get("resCd") or f"HTTP_{resp.status_code}",
            details=data,
        )

    record.result = {"authPageUrl": data["authPageUrl"]}
    db.session.commit()
    return {"shopOrderNo": record.reference, "authPageUrl": data["authPageUrl"]}


def _mark_failed(record, data):
    record.status = "FAILED"
    record.result = data
    db.session.commit()


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

def verify(shop_order_no, amount, authorization_id):
    """Confirm a paid trade with EasyPay.

    Returns ``{"shopOrderNo", "paymentId", "amount", "authDate", "authTime",
    "method", "methodName"}``. Raises PaymentRejected when EasyPay does not
    confirm the trade or confirms a different amount.
    """
    if not shop_order_no:
        raise ValidationError("Missing shop order number")
    _validate_amount(amount)
    if not authorization_id:
        raise ValidationError("Missing authorization ID")
    mall_id = _mall_id()
    api_key = _api_key()

    record = get_record(shop_order_no, lock=True)
    if record is None:
        record = _adopt_record(shop_order_no, amount)
    if float(record.amount) != float(amount):
        raise ValidationError("Amount does not match the registered amount")
    if record.is_settled:
        logger.info("Trade %s already approved, returning stored result", shop_order_no)
        return record.result

    step = ApprovalStep.APPROVAL
    data = {}
    while step in (ApprovalStep.APPROVAL, ApprovalStep.QUERY):
        if step is ApprovalStep.APPROVAL:
            code, data = _request_approval(mall_id, api_key, shop_order_no, authorization_id)
        else:
            code, data = _request_query(mall_id, api_key, shop_order_no)
        step = next_step(step, code)

    if step is ApprovalStep.APPROVED:
        result = _approval_result(shop_order_no, data)
        if result["amount"] is not None and float(result["amount"]) != float(amount):
            logger.error(
                "EasyPay approved %s for %s but %s was expected",
                result["amount"], shop_order_no, amount,
            )
            _mark_failed(record, data)
            raise PaymentRejected(
                "Approved amount does not match the order amount",
                code="AMOUNT_MISMATCH",
                details=data,
            )
        record.status = "APPROVED"
        record.payment_id = result["paymentId"]
        record.auth_date = result["authDate"]
        record.method = result["method"]
        record.result = result
        db.session.commit()
        logger.info("Trade %s approved (payment %s)", shop_order_no, result["paymentId"])
        return result

    logger.error("EasyPay approval failed for %s: %s", shop_order_no, data)
    _mark_failed(record, data)
    raise PaymentRejected(
        data.get("resMsg") or "Payment approval failed",
        code=data.get("resCd"),
        details=data,
    )


def _adopt_record(shop_order_no, amount):
    """Ledger row for a trade registered elsewhere (another deployment, or
    before the ledger existed). A concurrent verify may insert it first."""
    record = PaymentRecord(
        provider=PROVIDER, reference=shop_order_no, amount=amount, currency="KRW"
    )
    db.session.add(record)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info("Trade %s was recorded by a concurrent verify", shop_order_no)
    record = get_record(shop_order_no, lock=True)
    if record is None:
        raise PersistenceError("Could not record the payment")
    return record


def _result_code(resp, data):
    code = data.get("resCd")
    if not resp.is_success and code == SUCCESS_CODE:
        return f"HTTP_{resp.status_code}"
    return code or f"HTTP_{resp.status_code}"


def _request_approval(mall_id, api_key, shop_order_no, authorization_id):
    now = datetime.now()
    approval_req_date = f"{now:%Y%m%d}"
    body = {
        "mallId": mall_id,
        "shopOrderNo": shop_order_no,
        "shopTransactionId": generate_shop_order_no(now),
        "approvalReqDate": approval_req_date,
        "authorizationId": authorization_id,
    }
    logger.info("Requesting EasyPay approval for %s", shop_order_no)
    resp, data = gateway_http.post(
        _url("/api/ep9/trades/approval"),
        json=body,
        headers={**HEADERS, "Authorization": api_key},
    )
    code = _result_code(resp, data)
    logger.info("EasyPay approval for %s answered %s", shop_order_no, code)
    return code, data


def _request_query(mall_id, api_key, shop_order_no):
    logger.info("Querying EasyPay trade status for %s", shop_order_no)
    resp, data = gateway_http.post(
        _url("/api/trades/query"),
        retry=True,
        json={"mallId": mall_id, "shopOrderNo": shop_order_no},
        headers={**HEADERS, "Authorization": api_key},
    )
    code = _result_code(resp, data)
    logger.info("EasyPay query for %s answered %s", shop_order_no, code)
    return code, data


def _approval_result(shop_order_no, data):
    return {
        "shopOrderNo": data.get("shopOrderNo") or shop_order_no,
        "paymentId": data.get("paymentId") or data.get("ordNo"),
        "amount": data.get("amount"),
        "authDate": data.get("authDate"),
        "authTime": data.get("authTime"),
        "method": data.get("payMethodType"),
        "methodName": data.get("payMethodTypeName"),
    }


def query_status(shop_order_no):
    """Raw trade status from EasyPay (read-only)."""
    if not shop_order_no:
        raise ValidationError("Missing shop order number")
    mall_id = _mall_id()
    headers = dict(HEADERS)
    api_key = current_app.config.get("EASYPAY_API_KEY")
    if api_key:
        headers["Authorization"] = api_key

    resp, data = gateway_http.post(
        _url("/api/trades/query"),
        retry=True,
        json={"mallId": mall_id, "shopOrderNo": shop_order_no},
        headers=headers,
    )
    if not resp.is_success or data.get("resCd") != SUCCESS_CODE:
        raise GatewayRejected(
            data.get("resMsg") or "Failed to query payment status",
            code=data.get("resCd") or f"HTTP_{resp.status_code}",
            details=data,
        )
    return data
