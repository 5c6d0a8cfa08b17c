"""HMAC request signing for long-polling devices."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Optional

from autojs_control.core.clock import Clock, utcnow
from autojs_control.domain.common.exceptions import InvalidSignatureError, StaleTimestampError

logger = logging.getLogger(__name__)

DEFAULT_SIGNATURE_WINDOW = 300


def _hmac_hex(key: str, message: str) -> str:
    return hmac.new(key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


class DeviceAuthService:
    """Signs and verifies ``HMAC-SHA256(certificate, "f1:f2:...:certificate")``.

    Heartbeats sign ``deviceCode, timestamp``; execution reports sign
    ``deviceCode, instructionId, timestamp``.
    """

    def __init__(self, secret_key: str, *, window: int = DEFAULT_SIGNATURE_WINDOW, clock: Clock = utcnow) -> None:
        self._secret_key = secret_key
        self._window = window
        self._clock = clock

    @staticmethod
    def sign(certificate: str, *fields: object) -> str:
        message = ":".join([str(value) for value in fields] + [certificate])
        return _hmac_hex(certificate, message)

    def check_timestamp(self, device_code: str, timestamp: int) -> None:
        now = int(self._clock().timestamp())
        if abs(now - int(timestamp)) > self._window:
            logger.warning(
                "设备请求时间戳过期 deviceCode=%s timestamp=%s serverTime=%s",
                device_code,
                timestamp,
                now,
            )
            raise StaleTimestampError("Timestamp expired")

    def verify_signature(self, device_code: str, signature: str, certificate: str, *fields: object) -> None:
        expected = self.sign(certificate, *fields)
        if not hmac.compare_digest(expected, signature or ""):
            logger.warning(
                "设备签名验证失败 deviceCode=%s providedSignature=%s...",
                device_code,
                (signature or "")[:10],
            )
            raise InvalidSignatureError("Invalid signature")

    def verify(self, device_code: str, signature: str, timestamp: int, certificate: str, *fields: object) -> None:
        """Full check: timestamp window first, then the signature.

        ``fields`` are the values signed between ``deviceCode`` and
        ``timestamp`` (the instruction id for reports).
        """
        self.check_timestamp(device_code, timestamp)
        self.verify_signature(device_code, signature, certificate, device_code, *fields, timestamp)

    def generate_certificate(self, device_code: str, certificate_request: str, *, issued_at: Optional[int] = None) -> str:
        issued_at = issued_at if issued_at is not None else int(self._clock().timestamp())
        device_secret = _hmac_hex(self._secret_key, f"{device_code}:device:secret")
        certificate = _hmac_hex(self._secret_key, f"{device_code}:{certificate_request}:{device_secret}:{issued_at}")
        logger.info("设备证书生成成功 deviceCode=%s", device_code)
        return certificate


__all__ = ["DEFAULT_SIGNATURE_WINDOW", "DeviceAuthService"]
