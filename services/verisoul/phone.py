"""Phone number verification."""

from __future__ import annotations

from .base import ResilientClient
from .endpoints import Operation
from .responses import VerifyPhoneResponse


class PhoneClient(ResilientClient):
    def verify_phone(self, phone_number: str) -> VerifyPhoneResponse:
        payload = self.request(Operation.VERIFY_PHONE, body={"phone_number": phone_number})
        return VerifyPhoneResponse.model_validate(payload)
