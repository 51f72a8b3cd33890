"""
Record store implementations: the remote CRUD-over-HTTP backend and an
in-memory stand-in used by the demo and the tests.
"""

import copy
import logging
import threading
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from ..core.enums import StoreTable
from ..core.exceptions import AuthorizationError, RemoteOperationError
from ..core.interfaces import RecordStore
from .session import SessionContext, TokenRefresher


logger = logging.getLogger("peereval.persistence.record_store")

PRIMARY_KEY = "_id"


class RemoteRecordStore(RecordStore):
    """Record store backed by the remote database API.

    Every call carries the session's bearer token. An unauthorized answer
    triggers exactly one refresh-and-retry; a second unauthorized answer
    surfaces as AuthorizationError.
    """

    def __init__(self, base_url: str, session: SessionContext,
                 refresher: Optional[TokenRefresher] = None, timeout: float = 10.0,
                 http: Optional[requests.Session] = None):
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._refresher = refresher
        self._timeout = timeout
        self._http = http or requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    def read(self, table: StoreTable, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        params = {"tableName": table.value}
        for field, value in (filters or {}).items():
            params[field] = value
        response = self._request("GET", "read", expected=(200,), params=params)
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteOperationError(
                f"Invalid response reading {table.value}",
                status=response.status_code
            ) from e
        if not isinstance(data, list):
            raise RemoteOperationError(
                f"Expected a list of records reading {table.value}",
                status=response.status_code
            )
        return data

    def insert(self, table: StoreTable, records: List[Dict[str, Any]]) -> None:
        self._request("POST", "insert", expected=(201,),
                      json={"tableName": table.value, "records": records})

    def update(self, table: StoreTable, id_column: str, id_value: str, updates: Dict[str, Any]) -> None:
        self._request("PUT", "update", expected=(200,), json={
            "tableName": table.value,
            "idColumn": id_column,
            "idValue": id_value,
            "updates": updates,
        })

    def delete(self, table: StoreTable, id_column: str, id_value: str) -> None:
        self._request("DELETE", "delete", expected=(200,), json={
            "tableName": table.value,
            "idColumn": id_column,
            "idValue": id_value,
        })

    def _request(self, method: str, operation: str, expected: Tuple[int, ...], **kwargs) -> requests.Response:
        url = f"{self._base_url}/{operation}"
        token = self._session.access_token
        if not token:
            raise AuthorizationError("No authentication token available", error_code="no_token")

        logger.debug("Store request", extra={'method': method, 'url': url})
        response = self._send(method, url, token, **kwargs)

        if response.status_code == 401:
            if self._refresher is None or not self._refresh():
                raise AuthorizationError("Unauthorized", error_code="unauthorized")
            logger.warning("Retrying store request after token refresh",
                           extra={'method': method, 'url': url})
            response = self._send(method, url, self._session.access_token, **kwargs)
            if response.status_code == 401:
                raise AuthorizationError("Unauthorized after token refresh", error_code="unauthorized")

        if response.status_code not in expected:
            remote_message = self._error_message(response)
            raise RemoteOperationError(
                f"{operation} failed with status {response.status_code}: {remote_message or 'Unknown error'}",
                status=response.status_code,
                remote_message=remote_message,
                details={'operation': operation}
            )
        return response

    def _send(self, method: str, url: str, token: str, **kwargs) -> requests.Response:
        headers = {"Authorization": f"Bearer {token}"}
        try:
            return self._http.request(method, url, headers=headers, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise RemoteOperationError(
                f"Request to {url} failed: {e}",
                details={'method': method}
            ) from e

    def _refresh(self) -> bool:
        try:
            return self._refresher.refresh(self._session)
        except AuthorizationError:
            return False

    @staticmethod
    def _error_message(response: requests.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            message = body.get("message")
            return str(message) if message is not None else None
        return None


class InMemoryRecordStore(RecordStore):
    """Thread-safe in-process record store with the remote store's contract."""

    def __init__(self, unique_keys: Optional[Dict[StoreTable, Iterable[str]]] = None):
        self._tables: Dict[StoreTable, List[Dict[str, Any]]] = {table: [] for table in StoreTable}
        self._unique_keys = {table: tuple(fields) for table, fields in (unique_keys or {}).items()}
        self._lock = threading.RLock()

    def read(self, table: StoreTable, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(record) for record in self._tables[table]
                if self._matches(record, filters or {})
            ]

    def insert(self, table: StoreTable, records: List[Dict[str, Any]]) -> None:
        with self._lock:
            prepared = []
            for record in records:
                stored = copy.deepcopy(record)
                stored.setdefault(PRIMARY_KEY, stored.get("id") or str(uuid.uuid4()))
                self._check_unique(table, stored, prepared)
                prepared.append(stored)
            self._tables[table].extend(prepared)

    def update(self, table: StoreTable, id_column: str, id_value: str, updates: Dict[str, Any]) -> None:
        with self._lock:
            record = self._find(table, id_column, id_value)
            record.update(copy.deepcopy(updates))

    def delete(self, table: StoreTable, id_column: str, id_value: str) -> None:
        with self._lock:
            record = self._find(table, id_column, id_value)
            self._tables[table].remove(record)

    def count(self, table: StoreTable) -> int:
        with self._lock:
            return len(self._tables[table])

    def _find(self, table: StoreTable, id_column: str, id_value: str) -> Dict[str, Any]:
        for record in self._tables[table]:
            if str(record.get(id_column)) == str(id_value):
                return record
        raise RemoteOperationError(
            f"No {table.value} record with {id_column}={id_value}",
            status=404,
            remote_message="Record not found"
        )

    def _check_unique(self, table: StoreTable, record: Dict[str, Any], pending: List[Dict[str, Any]]) -> None:
        fields = self._unique_keys.get(table)
        if not fields:
            return
        key = tuple(record.get(field) for field in fields)
        for existing in self._tables[table] + pending:
            if tuple(existing.get(field) for field in fields) == key:
                raise RemoteOperationError(
                    f"Duplicate {table.value} record",
                    status=409,
                    remote_message="Duplicate key",
                    details=dict(zip(fields, key))
                )

    @staticmethod
    def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        return all(str(record.get(field)) == str(value) for field, value in filters.items())
