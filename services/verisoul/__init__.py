"""Typed clients for the Verisoul identity and fraud-risk API."""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

import httpx

from services.metrics import MetricRegistry
from services.state_store import KeyValueStore, MemoryKeyValueStore
from services.telemetry import ResiliencePolicy, Telemetry

from .account import AccountClient
from .base import CLIENT_VERSION, ResilientClient
from .endpoints import (
    DEFAULT_ENDPOINTS,
    EndpointDescriptor,
    EndpointRegistry,
    Environment,
    HttpMethod,
    Operation,
)
from .liveness import FaceMatchClient, IDCheckClient, LivenessClient
from .lists import ListClient
from .phone import PhoneClient
from .responses import (
    AccountList,
    AccountResponse,
    AccountSessionsResponse,
    AuthenticateSessionResponse,
    DeleteAccountResponse,
    EnrollAccountResponse,
    LinkedAccountsResponse,
    ListOperationResponse,
    LivenessSessionResponse,
    PhoneDetails,
    SessionResponse,
    UserAccount,
    VerifyFaceResponse,
    VerifyIdentityResponse,
    VerifyIdResponse,
    VerifyPhoneResponse,
)
from .session import SessionClient


class VerisoulApi:
    """Every typed client wired to one HTTP pool, breaker store and registry.

    All clients share the breaker named after the environment, so failures
    seen by one client open the circuit for the others.
    """

    def __init__(
        self,
        api_key: str,
        environment: Environment | str = Environment.SANDBOX,
        *,
        policy: Optional[ResiliencePolicy] = None,
        store: Optional[KeyValueStore] = None,
        transport: Optional[httpx.BaseTransport] = None,
        metrics: Optional[MetricRegistry] = None,
        telemetry: Optional[Telemetry] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.environment = Environment(environment)
        self.policy = policy or ResiliencePolicy()
        self.store = store or MemoryKeyValueStore(clock=clock)
        self.metrics = metrics or MetricRegistry()
        self.telemetry = telemetry or Telemetry(policy=self.policy)
        self._http = httpx.Client(
            base_url=self.environment.base_url,
            timeout=httpx.Timeout(self.policy.request_timeout, connect=self.policy.connect_timeout),
            transport=transport,
        )
        shared: dict[str, Any] = {
            "policy": self.policy,
            "store": self.store,
            "http_client": self._http,
            "metrics": self.metrics,
            "telemetry": self.telemetry,
            "sleep": sleep,
            "clock": clock,
        }
        self.sessions = SessionClient(api_key, self.environment, **shared)
        self.accounts = AccountClient(api_key, self.environment, **shared)
        self.lists = ListClient(api_key, self.environment, **shared)
        self.phone = PhoneClient(api_key, self.environment, **shared)
        self.face_match = FaceMatchClient(api_key, self.environment, **shared)
        self.id_check = IDCheckClient(api_key, self.environment, **shared)

    @property
    def breaker(self):
        return self.sessions.breaker

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "VerisoulApi":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "AccountClient",
    "AccountList",
    "AccountResponse",
    "AccountSessionsResponse",
    "AuthenticateSessionResponse",
    "CLIENT_VERSION",
    "DEFAULT_ENDPOINTS",
    "DeleteAccountResponse",
    "EndpointDescriptor",
    "EndpointRegistry",
    "EnrollAccountResponse",
    "Environment",
    "FaceMatchClient",
    "HttpMethod",
    "IDCheckClient",
    "LinkedAccountsResponse",
    "ListClient",
    "ListOperationResponse",
    "LivenessClient",
    "LivenessSessionResponse",
    "Operation",
    "PhoneClient",
    "PhoneDetails",
    "ResilientClient",
    "SessionClient",
    "SessionResponse",
    "UserAccount",
    "VerifyFaceResponse",
    "VerifyIdResponse",
    "VerifyIdentityResponse",
    "VerifyPhoneResponse",
    "VerisoulApi",
]
