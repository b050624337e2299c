"""Verisoul endpoint table and path construction."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional
from urllib.parse import quote

from services.errors import MissingParameterError, UnknownOperationError

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class Environment(str, Enum):
    SANDBOX = "sandbox"
    PRODUCTION = "production"

    @property
    def base_url(self) -> str:
        if self is Environment.PRODUCTION:
            return "https://api.verisoul.ai"
        return "https://api.sandbox.verisoul.ai"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class Operation(str, Enum):
    ACCOUNT_GET = "account_get"
    ACCOUNT_UPDATE = "account_update"
    ACCOUNT_DELETE = "account_delete"
    ACCOUNT_SESSIONS = "account_sessions"
    ACCOUNT_LINKED = "account_linked"
    SESSION_AUTHENTICATE = "session_authenticate"
    SESSION_UNAUTHENTICATED = "session_unauthenticated"
    SESSION_GET = "session_get"
    LIVENESS_SESSION = "liveness_session"
    ENROLL = "enroll"
    VERIFY_FACE = "verify_face"
    VERIFY_IDENTITY = "verify_identity"
    VERIFY_ID = "verify_id"
    VERIFY_PHONE = "verify_phone"
    LIST_CREATE = "list_create"
    LIST_GET = "list_get"
    LIST_DELETE = "list_delete"
    LIST_GET_ALL = "list_get_all"
    LIST_ADD_ACCOUNT = "list_add_account"
    LIST_REMOVE_ACCOUNT = "list_remove_account"


@dataclass(frozen=True)
class EndpointDescriptor:
    path_template: str
    method: HttpMethod
    required_params: FrozenSet[str]

    @classmethod
    def define(cls, method: HttpMethod, path_template: str) -> "EndpointDescriptor":
        return cls(
            path_template=path_template,
            method=method,
            required_params=frozenset(_PLACEHOLDER.findall(path_template)),
        )


DEFAULT_ENDPOINTS: Mapping[Operation, EndpointDescriptor] = {
    Operation.ACCOUNT_GET: EndpointDescriptor.define(HttpMethod.GET, "/account/{account_id}"),
    Operation.ACCOUNT_UPDATE: EndpointDescriptor.define(HttpMethod.PUT, "/account/{account_id}"),
    Operation.ACCOUNT_DELETE: EndpointDescriptor.define(HttpMethod.DELETE, "/account/{account_id}"),
    Operation.ACCOUNT_SESSIONS: EndpointDescriptor.define(HttpMethod.GET, "/account/{account_id}/sessions"),
    Operation.ACCOUNT_LINKED: EndpointDescriptor.define(HttpMethod.GET, "/account/{account_id}/accounts-linked"),
    Operation.SESSION_AUTHENTICATE: EndpointDescriptor.define(HttpMethod.POST, "/session/authenticate"),
    Operation.SESSION_UNAUTHENTICATED: EndpointDescriptor.define(HttpMethod.POST, "/session/unauthenticated"),
    Operation.SESSION_GET: EndpointDescriptor.define(HttpMethod.GET, "/session/{session_id}"),
    Operation.LIVENESS_SESSION: EndpointDescriptor.define(HttpMethod.GET, "/liveness/session"),
    Operation.ENROLL: EndpointDescriptor.define(HttpMethod.POST, "/liveness/enroll"),
    Operation.VERIFY_FACE: EndpointDescriptor.define(HttpMethod.POST, "/liveness/verify-face"),
    Operation.VERIFY_IDENTITY: EndpointDescriptor.define(HttpMethod.POST, "/liveness/verify-identity"),
    Operation.VERIFY_ID: EndpointDescriptor.define(HttpMethod.POST, "/liveness/verify-id"),
    Operation.VERIFY_PHONE: EndpointDescriptor.define(HttpMethod.POST, "/phone"),
    Operation.LIST_CREATE: EndpointDescriptor.define(HttpMethod.POST, "/list/{list_name}"),
    Operation.LIST_GET: EndpointDescriptor.define(HttpMethod.GET, "/list/{list_name}"),
    Operation.LIST_DELETE: EndpointDescriptor.define(HttpMethod.DELETE, "/list/{list_name}"),
    Operation.LIST_GET_ALL: EndpointDescriptor.define(HttpMethod.GET, "/list"),
    Operation.LIST_ADD_ACCOUNT: EndpointDescriptor.define(HttpMethod.POST, "/list/{list_name}/account/{account_id}"),
    Operation.LIST_REMOVE_ACCOUNT: EndpointDescriptor.define(
        HttpMethod.DELETE, "/list/{list_name}/account/{account_id}"
    ),
}


class EndpointRegistry:
    """Resolve logical operations to HTTP method and path. No I/O."""

    def __init__(self, endpoints: Optional[Mapping[Operation, EndpointDescriptor]] = None) -> None:
        self._endpoints: Dict[Operation, EndpointDescriptor] = dict(endpoints or DEFAULT_ENDPOINTS)

    def __contains__(self, operation: object) -> bool:
        try:
            return Operation(operation) in self._endpoints
        except ValueError:
            return False

    def resolve(self, operation: Operation | str) -> EndpointDescriptor:
        try:
            return self._endpoints[Operation(operation)]
        except (KeyError, ValueError) as exc:
            raise UnknownOperationError(
                f"No endpoint registered for operation {operation!r}",
                context={"operation": str(operation)},
            ) from exc

    def build_path(self, descriptor: EndpointDescriptor, params: Optional[Mapping[str, Any]] = None) -> str:
        """Substitute every ``{param}`` placeholder with a URL-quoted value."""

        params = params or {}

        def _substitute(match: re.Match) -> str:
            name = match.group(1)
            value = params.get(name)
            if value is None or value == "":
                raise MissingParameterError(name, template=descriptor.path_template)
            return quote(str(value), safe="")

        return _PLACEHOLDER.sub(_substitute, descriptor.path_template)

    def query_params(self, descriptor: EndpointDescriptor, params: Optional[Mapping[str, Any]] = None) -> Dict[str, str]:
        """Return the parameters not consumed by the path template."""

        query: Dict[str, str] = {}
        for key, value in (params or {}).items():
            if key in descriptor.required_params or value is None:
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            query[key] = str(value)
        return query

    def method(self, descriptor: EndpointDescriptor) -> HttpMethod:
        return descriptor.method


__all__ = [
    "DEFAULT_ENDPOINTS",
    "EndpointDescriptor",
    "EndpointRegistry",
    "Environment",
    "HttpMethod",
    "Operation",
]
