import hashlib
import hmac
from datetime import datetime
from typing import Dict
from urllib.parse import urlencode

from restobook.config import settings
from restobook.models.schemas import PaymentOrder

SUCCESS_CODE = "00"


class PaymentGateway:
    """Builds signed redirect URLs for the VNPay-style gateway and checks its callbacks."""

    def __init__(self, base_url: str = None, tmn_code: str = None,
                 hash_secret: str = None, return_url: str = None):
        self.base_url = base_url or settings.PAYMENT_URL
        self.tmn_code = tmn_code if tmn_code is not None else settings.PAYMENT_TMN_CODE
        self.hash_secret = hash_secret if hash_secret is not None else settings.PAYMENT_HASH_SECRET
        self.return_url = return_url or settings.PAYMENT_RETURN_URL

    def _sign(self, params: Dict[str, str]) -> str:
        query = urlencode(sorted(params.items()))
        return hmac.new(self.hash_secret.encode(), query.encode(), hashlib.sha512).hexdigest()

    def create_payment_redirect(self, order: PaymentOrder, client_ip: str = "127.0.0.1") -> str:
        params = {
            "vnp_Version": "2.1.0",
            "vnp_Command": "pay",
            "vnp_TmnCode": self.tmn_code,
            # Gateway amounts are in hundredths
            "vnp_Amount": str(order.amount * 100),
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": order.order_id,
            "vnp_OrderInfo": f"Booking {order.booking_id}",
            "vnp_OrderType": "other",
            "vnp_Locale": "vn",
            "vnp_ReturnUrl": self.return_url,
            "vnp_IpAddr": client_ip,
            "vnp_CreateDate": datetime.now().strftime("%Y%m%d%H%M%S"),
        }
        signature = self._sign(params)
        return f"{self.base_url}?{urlencode(sorted(params.items()))}&vnp_SecureHash={signature}"

    def verify_callback(self, params: Dict[str, str]) -> bool:
        # Without a secret nothing can be verified
        if not self.hash_secret:
            return False
        received = params.get("vnp_SecureHash", "")
        if not received:
            return False
        signed = {
            k: v for k, v in params.items()
            if k.startswith("vnp_") and k not in ("vnp_SecureHash", "vnp_SecureHashType")
        }
        return hmac.compare_digest(self._sign(signed), received)


payment_gateway = PaymentGateway()
