from config import RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET, CURRENCY
from utils.errors import ExternalFailure
import razorpay
import hmac
import hashlib
import logging

logger = logging.getLogger(__name__)


def to_subunits(amount: float) -> int:
    """Decimal rupees to paise, the unit Razorpay expects"""
    return int(round(amount * 100))


class RazorpayGateway:
    def __init__(self, key_id: str = RAZORPAY_KEY_ID, key_secret: str = RAZORPAY_KEY_SECRET):
        self.key_id = key_id
        self.key_secret = key_secret
        self._client = None

    @property
    def client(self) -> razorpay.Client:
        if self._client is None:
            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    def initiate(self, amount: float, receipt: str, description: str, currency: str = CURRENCY) -> dict:
        """Create a gateway order; the buyer completes it in the checkout widget"""
        try:
            return self.client.order.create({
                "amount": to_subunits(amount),
                "currency": currency,
                "receipt": receipt,
                "payment_capture": 1,
                "notes": {
                    "order_id": receipt,
                    "description": description,
                }
            })
        except Exception as e:
            logger.error(f"Razorpay order creation failed for {receipt}: {str(e)}")
            raise ExternalFailure("Payment gateway is unavailable, please try again")

    def verify_signature(self, razorpay_order_id: str, razorpay_payment_id: str, signature: str) -> bool:
        generated_signature = hmac.new(
            self.key_secret.encode(),
            f"{razorpay_order_id}|{razorpay_payment_id}".encode(),
            hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(generated_signature, signature or "")
