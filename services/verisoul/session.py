"""Session evaluation endpoints."""

from __future__ import annotations

from typing import Any, Mapping, Union

from .base import ResilientClient
from .endpoints import Operation
from .responses import AuthenticateSessionResponse, SessionResponse, UserAccount


class SessionClient(ResilientClient):
    def authenticate(
        self,
        account: Union[UserAccount, Mapping[str, Any]],
        session_id: str,
        *,
        accounts_linked: bool = False,
    ) -> AuthenticateSessionResponse:
        """Evaluate ``session_id`` for a known account."""

        if isinstance(account, UserAccount):
            account_payload = account.model_dump(exclude_none=True)
        else:
            account_payload = dict(account)
        payload = self.request(
            Operation.SESSION_AUTHENTICATE,
            {"accounts_linked": accounts_linked},
            {"account": account_payload, "session_id": session_id},
        )
        return AuthenticateSessionResponse.model_validate(payload)

    def unauthenticated(self, session_id: str, *, accounts_linked: bool = False) -> SessionResponse:
        payload = self.request(
            Operation.SESSION_UNAUTHENTICATED,
            {"accounts_linked": accounts_linked},
            {"session_id": session_id},
        )
        return SessionResponse.model_validate(payload)

    def get_session(self, session_id: str) -> SessionResponse:
        payload = self.request(Operation.SESSION_GET, {"session_id": session_id})
        return SessionResponse.model_validate(payload)
