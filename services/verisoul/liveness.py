"""Face match and ID check liveness flows."""

from __future__ import annotations

from typing import Any, Dict, Optional

from .base import ResilientClient
from .endpoints import Operation
from .responses import (
    EnrollAccountResponse,
    LivenessSessionResponse,
    VerifyFaceResponse,
    VerifyIdentityResponse,
    VerifyIdResponse,
)


class LivenessClient(ResilientClient):
    """Operations shared by the face match and ID check flows."""

    session_params: Dict[str, Any] = {}

    def session(self, referring_session_id: Optional[str] = None) -> LivenessSessionResponse:
        """Start a liveness session, optionally tied to a referring web session."""

        params: Dict[str, Any] = dict(self.session_params)
        if referring_session_id is not None:
            params["referring_session_id"] = referring_session_id
        payload = self.request(Operation.LIVENESS_SESSION, params)
        return LivenessSessionResponse.model_validate(payload)

    def enroll(self, session_id: str, account_id: str) -> EnrollAccountResponse:
        payload = self.request(Operation.ENROLL, body={"session_id": session_id, "account_id": account_id})
        return EnrollAccountResponse.model_validate(payload)


class FaceMatchClient(LivenessClient):
    def verify(self, session_id: str) -> VerifyFaceResponse:
        payload = self.request(Operation.VERIFY_FACE, body={"session_id": session_id})
        return VerifyFaceResponse.model_validate(payload)

    def verify_identity(self, session_id: str, account_id: str) -> VerifyIdentityResponse:
        payload = self.request(
            Operation.VERIFY_IDENTITY, body={"session_id": session_id, "account_id": account_id}
        )
        return VerifyIdentityResponse.model_validate(payload)


class IDCheckClient(LivenessClient):
    session_params = {"id": "true"}

    def verify(self, session_id: str) -> VerifyIdResponse:
        payload = self.request(Operation.VERIFY_ID, body={"session_id": session_id})
        return VerifyIdResponse.model_validate(payload)
