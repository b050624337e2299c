"""Account lookup and maintenance endpoints."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from .base import ResilientClient
from .endpoints import Operation
from .responses import (
    AccountResponse,
    AccountSessionsResponse,
    DeleteAccountResponse,
    LinkedAccountsResponse,
)


class AccountClient(ResilientClient):
    def get_account(self, account_id: str) -> AccountResponse:
        payload = self.request(Operation.ACCOUNT_GET, {"account_id": account_id})
        return AccountResponse.model_validate(payload)

    def get_account_sessions(self, account_id: str) -> AccountSessionsResponse:
        payload = self.request(Operation.ACCOUNT_SESSIONS, {"account_id": account_id})
        return AccountSessionsResponse.model_validate(payload)

    def get_linked_accounts(self, account_id: str) -> LinkedAccountsResponse:
        payload = self.request(Operation.ACCOUNT_LINKED, {"account_id": account_id})
        return LinkedAccountsResponse.model_validate(payload)

    def update_account(self, account_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        return self.request(Operation.ACCOUNT_UPDATE, {"account_id": account_id}, data)

    def delete_account(self, account_id: str) -> DeleteAccountResponse:
        payload = self.request(Operation.ACCOUNT_DELETE, {"account_id": account_id})
        return DeleteAccountResponse.model_validate(payload)
