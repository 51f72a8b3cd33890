from typing import Any, Dict, List, Optional

import pytest
import requests

from peereval.core.enums import StoreTable
from peereval.core.exceptions import AuthorizationError, RemoteOperationError
from peereval.persistence import InMemoryRecordStore, RemoteRecordStore, SessionContext, TokenRefresher
from peereval.persistence.session import HttpTokenRefresher


BASE = "https://store.test/database/project-1"


class FakeResponse:
    def __init__(self, status_code: int, payload: Any = None):
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class FakeHttp:
    """Stand-in for requests.Session that replays queued responses."""

    def __init__(self, responses: List[FakeResponse]):
        self._responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def request(self, method: str, url: str, headers: Optional[Dict[str, str]] = None,
                timeout: Optional[float] = None, **kwargs) -> FakeResponse:
        self.calls.append({'method': method, 'url': url, 'headers': headers, 'timeout': timeout, **kwargs})
        return self._responses.pop(0)

    def post(self, url: str, json: Any = None, timeout: Optional[float] = None) -> FakeResponse:
        return self.request("POST", url, json=json, timeout=timeout)


class StubRefresher(TokenRefresher):
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.calls = 0

    def refresh(self, session: SessionContext) -> bool:
        self.calls += 1
        if self.succeed:
            session.set_tokens("fresh-token")
        return self.succeed


def _store(responses, refresher=None, token="old-token"):
    http = FakeHttp(responses)
    session = SessionContext(token, "refresh-1")
    return RemoteRecordStore(BASE, session, refresher=refresher, timeout=3.0, http=http), http, session


def test_read_sends_table_and_filter() -> None:
    store, http, _ = _store([FakeResponse(200, [{'_id': "g1", 'name': "Grupo 1"}])])

    records = store.read(StoreTable.GROUP, {'categoryId': "cat-1"})

    assert records == [{'_id': "g1", 'name': "Grupo 1"}]
    call = http.calls[0]
    assert call['method'] == "GET"
    assert call['url'] == f"{BASE}/read"
    assert call['params'] == {'tableName': "GroupModel", 'categoryId': "cat-1"}
    assert call['headers'] == {'Authorization': "Bearer old-token"}
    assert call['timeout'] == 3.0


def test_write_payloads() -> None:
    store, http, _ = _store([FakeResponse(201), FakeResponse(200), FakeResponse(200)])

    store.insert(StoreTable.PEER_EVALUATION, [{'id': "e1"}])
    store.update(StoreTable.ASSESSMENT, "_id", "a1", {'cancelled': True})
    store.delete(StoreTable.GROUP, "_id", "g1")

    assert [(c['method'], c['url']) for c in http.calls] == [
        ("POST", f"{BASE}/insert"), ("PUT", f"{BASE}/update"), ("DELETE", f"{BASE}/delete")
    ]
    assert http.calls[0]['json'] == {'tableName': "PeerEvaluationModel", 'records': [{'id': "e1"}]}
    assert http.calls[1]['json'] == {
        'tableName': "AssessmentModel", 'idColumn': "_id", 'idValue': "a1", 'updates': {'cancelled': True}
    }
    assert http.calls[2]['json'] == {'tableName': "GroupModel", 'idColumn': "_id", 'idValue': "g1"}


def test_unauthorized_refreshes_once_and_retries() -> None:
    refresher = StubRefresher()
    store, http, session = _store([FakeResponse(401), FakeResponse(201)], refresher)

    store.insert(StoreTable.GROUP, [{'id': "g1"}])

    assert refresher.calls == 1
    assert len(http.calls) == 2
    assert http.calls[1]['headers'] == {'Authorization': "Bearer fresh-token"}
    assert session.access_token == "fresh-token"


def test_second_unauthorized_surfaces() -> None:
    refresher = StubRefresher()
    store, http, _ = _store([FakeResponse(401), FakeResponse(401)], refresher)

    with pytest.raises(AuthorizationError):
        store.read(StoreTable.COURSE)

    assert refresher.calls == 1
    assert len(http.calls) == 2


def test_failed_refresh_surfaces_without_retry() -> None:
    store, http, _ = _store([FakeResponse(401)], StubRefresher(succeed=False))

    with pytest.raises(AuthorizationError):
        store.read(StoreTable.COURSE)
    assert len(http.calls) == 1


def test_missing_token_never_calls_the_store() -> None:
    store, http, _ = _store([], token=None)

    with pytest.raises(AuthorizationError):
        store.read(StoreTable.COURSE)
    assert http.calls == []


def test_other_errors_carry_status_and_message() -> None:
    store, _, _ = _store([FakeResponse(500, {'message': "table locked"})])

    with pytest.raises(RemoteOperationError) as excinfo:
        store.insert(StoreTable.GROUP, [{'id': "g1"}])

    assert excinfo.value.status == 500
    assert excinfo.value.remote_message == "table locked"


def test_unexpected_success_code_is_an_error() -> None:
    store, _, _ = _store([FakeResponse(200)])

    with pytest.raises(RemoteOperationError) as excinfo:
        store.insert(StoreTable.GROUP, [{'id': "g1"}])
    assert excinfo.value.status == 200


def test_http_refresher_updates_session() -> None:
    http = FakeHttp([FakeResponse(201, {'accessToken': "new", 'refreshToken': "r2"})])
    session = SessionContext("old", "r1")

    assert HttpTokenRefresher("https://auth.test/refresh-token", http=http).refresh(session) is True
    assert http.calls[0]['json'] == {'refreshToken': "r1"}
    assert session.access_token == "new"
    assert session.refresh_token == "r2"


@pytest.mark.parametrize("body", [["accessToken", "new"], "new", {'accessToken': ""}])
def test_http_refresher_rejects_unusable_body(body) -> None:
    session = SessionContext("old", "r1")
    refresher = HttpTokenRefresher("https://auth.test/refresh-token", http=FakeHttp([FakeResponse(200, body)]))

    assert refresher.refresh(session) is False
    assert session.access_token == "old"


def test_http_refresher_without_refresh_token_clears_session() -> None:
    session = SessionContext("old", None)

    with pytest.raises(AuthorizationError):
        HttpTokenRefresher("https://auth.test/refresh-token", http=FakeHttp([])).refresh(session)
    assert session.access_token is None


def test_network_failure_becomes_remote_error() -> None:
    class BrokenHttp(FakeHttp):
        def request(self, *args, **kwargs):
            raise requests.ConnectionError("unreachable")

    store = RemoteRecordStore(BASE, SessionContext("t"), http=BrokenHttp([]))

    with pytest.raises(RemoteOperationError):
        store.read(StoreTable.COURSE)


def test_memory_store_filters_and_copies() -> None:
    store = InMemoryRecordStore()
    store.insert(StoreTable.GROUP, [
        {'id': "g1", 'categoryId': "c1", 'memberIds': ["a"]},
        {'id': "g2", 'categoryId': "c2", 'memberIds': []},
    ])

    found = store.read(StoreTable.GROUP, {'categoryId': "c1"})
    found[0]['memberIds'].append("intruder")

    assert [r['_id'] for r in found] == ["g1"]
    assert store.read(StoreTable.GROUP, {'_id': "g1"})[0]['memberIds'] == ["a"]


def test_memory_store_update_and_delete() -> None:
    store = InMemoryRecordStore()
    store.insert(StoreTable.ASSESSMENT, [{'id': "a1", 'cancelled': False}])

    store.update(StoreTable.ASSESSMENT, "_id", "a1", {'cancelled': True})
    assert store.read(StoreTable.ASSESSMENT)[0]['cancelled'] is True

    store.delete(StoreTable.ASSESSMENT, "_id", "a1")
    assert store.count(StoreTable.ASSESSMENT) == 0

    with pytest.raises(RemoteOperationError) as excinfo:
        store.delete(StoreTable.ASSESSMENT, "_id", "a1")
    assert excinfo.value.status == 404


def test_memory_store_optional_unique_key() -> None:
    key = ("assessmentId", "evaluatorId", "evaluateeId")
    store = InMemoryRecordStore(unique_keys={StoreTable.PEER_EVALUATION: key})
    record = {'assessmentId': "a1", 'evaluatorId': "x", 'evaluateeId': "y"}

    store.insert(StoreTable.PEER_EVALUATION, [dict(record, id="e1")])
    with pytest.raises(RemoteOperationError) as excinfo:
        store.insert(StoreTable.PEER_EVALUATION, [dict(record, id="e2")])

    assert excinfo.value.status == 409
    assert store.count(StoreTable.PEER_EVALUATION) == 1
