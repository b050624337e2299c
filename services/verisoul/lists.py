"""Account list management endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from .base import ResilientClient
from .endpoints import Operation
from .responses import AccountList, ListOperationResponse


class ListClient(ResilientClient):
    def create_list(self, name: str, description: str) -> ListOperationResponse:
        payload = self.request(Operation.LIST_CREATE, {"list_name": name}, {"list_description": description})
        return ListOperationResponse.model_validate(payload)

    def get_all_lists(self) -> List[AccountList]:
        payload = self.request(Operation.LIST_GET_ALL)
        entries = payload.get("lists")
        if entries is None:
            # Older responses return the lists as the top-level object values.
            entries = [value for value in payload.values() if isinstance(value, Mapping)]
        return [AccountList.model_validate(entry) for entry in entries]

    def get_list(self, list_name: str) -> AccountList:
        payload = self.request(Operation.LIST_GET, {"list_name": list_name})
        return AccountList.model_validate(payload)

    def add_account_to_list(
        self, list_name: str, account_id: str, data: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        return self.request(Operation.LIST_ADD_ACCOUNT, {"list_name": list_name, "account_id": account_id}, data)

    def delete_list(self, list_name: str) -> ListOperationResponse:
        payload = self.request(Operation.LIST_DELETE, {"list_name": list_name})
        return ListOperationResponse.model_validate(payload)

    def remove_account_from_list(self, list_name: str, account_id: str) -> Dict[str, Any]:
        return self.request(Operation.LIST_REMOVE_ACCOUNT, {"list_name": list_name, "account_id": account_id})
