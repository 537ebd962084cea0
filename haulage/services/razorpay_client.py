import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass

import requests

from haulage.core.config import settings
from haulage.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass
class RazorpayConfig:
    host: str               # api.razorpay.com
    key_id: str             # basic-auth user
    key_secret: str         # basic-auth password and HMAC key for checkout signatures
    timeout: float = 15.0
    sandbox: bool = False


class RazorpayError(UpstreamUnavailable):
    pass


def expected_signature(key_secret: str, order_id: str, payment_id: str) -> str:
    msg = f"{order_id}|{payment_id}"
    return hmac.new(key_secret.encode("utf-8"), msg.encode("utf-8"), hashlib.sha256).hexdigest()


def signature_matches(key_secret: str, order_id: str, payment_id: str, signature: str) -> bool:
    if not (key_secret and order_id and payment_id and signature):
        return False
    return hmac.compare_digest(expected_signature(key_secret, order_id, payment_id), signature)


class RazorpayClient:
    def __init__(self, cfg: RazorpayConfig, session: requests.Session | None = None):
        self.cfg = cfg
        self._http = session or requests.Session()

    @property
    def key_id(self) -> str:
        return self.cfg.key_id

    @property
    def key_secret(self) -> str:
        return self.cfg.key_secret

    def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"https://{self.cfg.host}/v1{path}"
        try:
            r = self._http.request(
                method=method.upper(),
                url=url,
                json=payload or {},
                auth=(self.cfg.key_id, self.cfg.key_secret),
                timeout=self.cfg.timeout,
            )
        except requests.Timeout as e:
            raise RazorpayError("Payment gateway timed out") from e
        except requests.RequestException as e:
            raise RazorpayError(f"Payment gateway unreachable: {e}") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 400:
            err = (data.get("error") or {}).get("description") if isinstance(data, dict) else None
            raise RazorpayError(f"Razorpay {r.status_code}: {err or data}")
        return data

    def create_order(self, *, amount_minor: int, currency: str, receipt: str) -> dict:
        if amount_minor <= 0:
            raise ValueError("order amount must be > 0")
        if self.cfg.sandbox:
            logger.info("sandbox order for receipt %s", receipt)
            return {"id": f"order_sandbox_{uuid.uuid4().hex[:14]}", "amount": amount_minor, "currency": currency}
        return self.request("POST", "/orders", {"amount": amount_minor, "currency": currency, "receipt": receipt})

    def refund(self, *, payment_id: str, amount_minor: int) -> dict:
        if self.cfg.sandbox:
            logger.info("sandbox refund for payment %s", payment_id)
            return {"id": f"rfnd_sandbox_{uuid.uuid4().hex[:14]}", "payment_id": payment_id, "amount": amount_minor}
        return self.request("POST", f"/payments/{payment_id}/refund", {"amount": amount_minor})


def razorpay_client() -> RazorpayClient:
    return RazorpayClient(RazorpayConfig(
        host=settings.RAZORPAY_HOST,
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        timeout=settings.RAZORPAY_TIMEOUT_SECONDS,
        sandbox=settings.RAZORPAY_SANDBOX,
    ))
