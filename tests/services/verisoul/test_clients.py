import json
from typing import Any, Dict, List

import pytest

httpx = pytest.importorskip("httpx")

from risk_engine import AssessmentOutcome, Decision, SignalScope  # noqa: E402
from services.errors import AuthenticationError, CircuitOpenError, ServerError  # noqa: E402
from services.resilience import CircuitState  # noqa: E402
from services.telemetry import ResiliencePolicy  # noqa: E402
from services.verisoul import (  # noqa: E402
    AccountClient,
    FaceMatchClient,
    IDCheckClient,
    ListClient,
    PhoneClient,
    SessionClient,
    UserAccount,
    VerisoulApi,
)


class _Recorder:
    def __init__(self, payload: Dict[str, Any], status: int = 200) -> None:
        self.payload = payload
        self.status = status
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.payload)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.last.content)


def _make(client_cls, payload: Dict[str, Any], status: int = 200):
    recorder = _Recorder(payload, status)
    client = client_cls("key", "sandbox", transport=httpx.MockTransport(recorder), sleep=lambda _: None)
    return client, recorder


AUTHENTICATE_PAYLOAD = {
    "project_id": "p-1",
    "session_id": "s-1",
    "account_id": "acc-1",
    "request_id": "r-1",
    "decision": "Suspicious",
    "account_score": 0.55,
    "bot": 0.1,
    "multiple_accounts": 0.2,
    "risk_signals": 0.4,
    "accounts_linked": 2,
    "lists": ["watch"],
    "session": {"risk_signals": {"proxy": 0.9, "vpn": 0.0, "tor": 0.2}},
    "account": {"risk_signal_average": {"proxy": 0.4}},
}


def test_authenticate_session_posts_account_and_parses_signals():
    client, recorder = _make(SessionClient, AUTHENTICATE_PAYLOAD)

    response = client.authenticate(UserAccount(id="acc-1", email="a@example.com"), "s-1")

    assert recorder.last.url.path == "/session/authenticate"
    assert recorder.last.url.params["accounts_linked"] == "false"
    assert recorder.last_json() == {"account": {"id": "acc-1", "email": "a@example.com", "metadata": {}}, "session_id": "s-1"}
    assert response.decision is Decision.SUSPICIOUS
    signals = response.signals()
    assert signals.names() == ["proxy", "tor", "proxy"]
    assert signals[2].scope is SignalScope.ACCOUNT
    assert response.has_concerning_signals()
    assert response.most_critical_signals(1).names() == ["proxy"]
    assert response.assess().outcome is AssessmentOutcome.REVIEW


def test_unauthenticated_and_get_session():
    client, recorder = _make(SessionClient, {"session_id": "s-2", "risk_signals": {"vpn": 0.7}})

    unauthenticated = client.unauthenticated("s-2", accounts_linked=True)
    assert recorder.last.url.params["accounts_linked"] == "true"
    assert recorder.last_json() == {"session_id": "s-2"}
    assert unauthenticated.signals().names() == ["vpn"]

    fetched = client.get_session("s-2")
    assert recorder.last.method == "GET"
    assert recorder.last.url.path == "/session/s-2"
    assert fetched.session_id == "s-2"


def test_account_client_operations():
    client, recorder = _make(
        AccountClient,
        {
            "account": {"id": "acc-1"},
            "decision": "Real",
            "account_score": 0.1,
            "risk_signal_average": {"datacenter": 0.3},
            "sessions": [{"session_id": "s-1"}],
            "accounts_linked": [{"account_id": "acc-2"}],
            "success": True,
            "account_id": "acc-1",
        },
    )

    account = client.get_account("acc-1")
    assert recorder.last.url.path == "/account/acc-1"
    assert account.account.id == "acc-1"
    assert account.signals()[0].scope is SignalScope.ACCOUNT

    assert client.get_account_sessions("acc-1").sessions == [{"session_id": "s-1"}]
    assert recorder.last.url.path == "/account/acc-1/sessions"

    assert client.get_linked_accounts("acc-1").accounts_linked[0]["account_id"] == "acc-2"
    assert recorder.last.url.path == "/account/acc-1/accounts-linked"

    client.update_account("acc-1", {"email": "new@example.com"})
    assert recorder.last.method == "PUT"
    assert recorder.last_json() == {"email": "new@example.com"}

    assert client.delete_account("acc-1").success is True
    assert recorder.last.method == "DELETE"


def test_list_client_operations():
    client, recorder = _make(ListClient, {"lists": [{"name": "vip", "description": "VIP"}], "success": True})

    lists = client.get_all_lists()
    assert [item.name for item in lists] == ["vip"]
    assert recorder.last.url.path == "/list"

    client.create_list("vip", "VIP users")
    assert recorder.last.method == "POST"
    assert recorder.last.url.path == "/list/vip"
    assert recorder.last_json() == {"list_description": "VIP users"}

    client.add_account_to_list("vip", "acc-1")
    assert recorder.last.url.path == "/list/vip/account/acc-1"

    client.remove_account_from_list("vip", "acc-1")
    assert recorder.last.method == "DELETE"

    assert client.delete_list("vip").success is True


def test_get_all_lists_accepts_keyed_objects():
    client, _ = _make(ListClient, {"vip": {"name": "vip"}, "blocked": {"name": "blocked"}, "request_id": "r"})

    assert sorted(item.name for item in client.get_all_lists()) == ["blocked", "vip"]


def test_phone_client():
    client, recorder = _make(PhoneClient, {"phone": {"valid": True, "line_type": "mobile"}})

    response = client.verify_phone("+15555550100")

    assert recorder.last.url.path == "/phone"
    assert recorder.last_json() == {"phone_number": "+15555550100"}
    assert response.phone.valid is True
    assert response.phone.line_type == "mobile"


def test_face_match_flow():
    client, recorder = _make(
        FaceMatchClient,
        {
            "session_id": "live-1",
            "decision": "Real",
            "risk_score": 0.1,
            "risk_flags": [],
            "device_network_signals": {"proxy": 0.2},
            "success": True,
            "match": True,
        },
    )

    session = client.session(referring_session_id="ref-1")
    assert recorder.last.url.path == "/liveness/session"
    assert recorder.last.url.params["referring_session_id"] == "ref-1"
    assert session.session_id == "live-1"

    verified = client.verify("live-1")
    assert recorder.last.url.path == "/liveness/verify-face"
    assert verified.is_successful()
    assert verified.assess().outcome is AssessmentOutcome.APPROVE

    enrolled = client.enroll("live-1", "acc-1")
    assert recorder.last_json() == {"session_id": "live-1", "account_id": "acc-1"}
    assert enrolled.success is True

    identity = client.verify_identity("live-1", "acc-1")
    assert recorder.last.url.path == "/liveness/verify-identity"
    assert identity.match is True


def test_id_check_flow():
    client, recorder = _make(
        IDCheckClient,
        {
            "session_id": "id-1",
            "decision": "Fake",
            "risk_score": 0.95,
            "risk_flags": ["id_expired"],
            "document_signals": {"id_age": 12, "idFaceMatchScore": 0.85},
        },
    )

    client.session()
    assert recorder.last.url.params["id"] == "true"

    verified = client.verify("id-1")
    assert recorder.last.url.path == "/liveness/verify-id"
    assert verified.signals().names() == ["id_face_match_score"]
    assert verified.has_blocking_risk_flags()
    assert verified.should_reject()
    assert verified.assess().outcome is AssessmentOutcome.REJECT


def test_typed_clients_raise_on_failure():
    client, _ = _make(AccountClient, {"message": "bad key"}, status=401)

    with pytest.raises(AuthenticationError):
        client.get_account("acc-1")


def test_api_facade_shares_one_breaker():
    recorder = _Recorder({"message": "down"}, status=500)
    api = VerisoulApi(
        "key",
        "production",
        policy=ResiliencePolicy(max_attempts=1, circuit_failure_threshold=2),
        transport=httpx.MockTransport(recorder),
        sleep=lambda _: None,
    )

    with pytest.raises(ServerError):
        api.accounts.get_account("acc-1")
    with pytest.raises(ServerError):
        api.lists.get_all_lists()

    assert api.breaker.state() is CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        api.phone.verify_phone("+15555550100")
    assert len(recorder.requests) == 2
    api.close()
