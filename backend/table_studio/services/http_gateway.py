"""REST client for the remote schema and record service."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Any
from urllib import error as urllib_error
from urllib import parse as urllib_parse
from urllib import request as urllib_request

from table_studio.config import Settings
from table_studio.errors import PersistenceError, TableNotFoundError
from table_studio.schemas.schema_diff import SchemaDiff
from table_studio.schemas.table import SYSTEM_COLUMNS, ColumnDefinition, ForeignKeyDefinition, TableDefinition
from table_studio.schemas.wire import column_to_wire, table_from_wire

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HttpSchemaServiceClient:
    """Schema/record gateway over the service's JSON REST API using stdlib HTTP."""

    base_url: str
    api_key: str | None = None
    access_token: str | None = None
    timeout_seconds: int = 30
    system_columns: tuple[str, ...] = SYSTEM_COLUMNS

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpSchemaServiceClient":
        return cls(
            base_url=settings.schema_service_url,
            api_key=settings.schema_service_api_key,
            timeout_seconds=settings.schema_service_timeout_seconds,
            system_columns=tuple(settings.system_columns),
        )

    def list_tables(self) -> list[str]:
        data = self._request("GET", "/api/database/tables")
        return [str(name) for name in data] if isinstance(data, list) else []

    def get_table_schema(self, table_name: str) -> TableDefinition:
        data = self._request("GET", f"/api/database/tables/{_segment(table_name)}/schema", table_name=table_name)
        if not isinstance(data, dict):
            raise PersistenceError(f"Schema service returned an unexpected schema for '{table_name}'.")
        data.setdefault("tableName", table_name)
        try:
            return table_from_wire(data, system_columns=self.system_columns)
        except (KeyError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Schema service returned an invalid schema for '{table_name}'.") from exc

    def update_table_schema(self, table_name: str, diff: SchemaDiff) -> TableDefinition | None:
        data = self._request(
            "PATCH",
            f"/api/database/tables/{_segment(table_name)}/schema",
            body=diff.to_request_payload(),
            table_name=table_name,
        )
        return self._confirmed_schema(table_name, data)

    def create_table(
        self,
        table_name: str,
        columns: list[ColumnDefinition],
        foreign_keys: list[ForeignKeyDefinition],
    ) -> TableDefinition | None:
        keys_by_column = {fk.column_name: fk for fk in foreign_keys}
        body = {
            "tableName": table_name,
            # System columns are provisioned by the service itself.
            "columns": [
                column_to_wire(column, keys_by_column.get(column.name))
                for column in columns
                if column.name not in self.system_columns
            ],
            "rlsEnabled": True,
        }
        data = self._request("POST", "/api/database/tables", body=body)
        return self._confirmed_schema(table_name, data)

    def get_record_by_foreign_key_value(self, table_name: str, column_name: str, value: Any) -> dict[str, Any] | None:
        data = self._request(
            "GET",
            f"/api/database/records/{_segment(table_name)}",
            query={column_name: f"eq.{value}", "limit": "1"},
            table_name=table_name,
        )
        if isinstance(data, list):
            return data[0] if data else None
        if isinstance(data, dict) and isinstance(data.get("records"), list):
            records = data["records"]
            return records[0] if records else None
        return None

    def create_record(self, table_name: str, values: dict[str, Any]) -> Any:
        record = dict(values)
        if record.get("id") == "":
            record.pop("id")
        data = self._request("POST", f"/api/database/records/{_segment(table_name)}", body=[record])
        if isinstance(data, list) and data and isinstance(data[0], dict):
            return data[0].get("id")
        if isinstance(data, dict):
            return data.get("id")
        return None

    def update_record(self, table_name: str, record_id: Any, values: dict[str, Any]) -> None:
        self._request(
            "PATCH",
            f"/api/database/records/{_segment(table_name)}",
            query={"id": f"eq.{record_id}"},
            body=values,
        )

    def delete_record(self, table_name: str, record_id: Any) -> None:
        self._request("DELETE", f"/api/database/records/{_segment(table_name)}", query={"id": f"eq.{record_id}"})

    def _confirmed_schema(self, table_name: str, data: Any) -> TableDefinition | None:
        if isinstance(data, dict) and isinstance(data.get("columns"), list):
            data.setdefault("tableName", table_name)
            try:
                return table_from_wire(data, system_columns=self.system_columns)
            except (KeyError, TypeError, ValueError):
                logger.warning("schema_service.unparsed_confirmation table=%s", table_name)
        return None

    def _request(
        self,
        method: str,
        path: str,
        *,
        query: dict[str, str] | None = None,
        body: Any = None,
        table_name: str | None = None,
    ) -> Any:
        url = f"{self.base_url.rstrip('/')}{path}"
        if query:
            url = f"{url}?{urllib_parse.urlencode(query)}"
        headers = {"Accept": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.api_key:
            headers["x-api-key"] = self.api_key
        data = None
        if body is not None:
            data = json.dumps(body, default=str).encode("utf-8")
            headers["Content-Type"] = "application/json"
        req = urllib_request.Request(url=url, data=data, method=method, headers=headers)

        started = perf_counter()
        try:
            with urllib_request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read().decode("utf-8")
        except urllib_error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            message = _error_message(detail) or f"HTTP {exc.code}"
            logger.warning("schema_service.request_failed method=%s path=%s status=%s", method, path, exc.code)
            if exc.code == 404 and table_name is not None:
                raise TableNotFoundError(f"Table '{table_name}' was not found: {message}") from exc
            raise PersistenceError(f"Schema service HTTP {exc.code}: {message}") from exc
        except urllib_error.URLError as exc:
            logger.warning("schema_service.request_failed method=%s path=%s reason=%s", method, path, exc.reason)
            raise PersistenceError(f"Schema service request failed: {exc.reason}") from exc
        except (TimeoutError, OSError, UnicodeDecodeError) as exc:
            # Read timeouts and undecodable bodies surface after the connection opened.
            logger.warning("schema_service.request_failed method=%s path=%s error=%s", method, path, exc)
            raise PersistenceError(f"Schema service request failed: {exc}") from exc

        logger.debug(
            "schema_service.request method=%s path=%s duration_ms=%.2f",
            method,
            path,
            (perf_counter() - started) * 1000,
        )
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw


def _segment(value: str) -> str:
    return urllib_parse.quote(value, safe="")


def _error_message(detail: str) -> str | None:
    try:
        decoded = json.loads(detail)
    except json.JSONDecodeError:
        return detail.strip() or None
    if isinstance(decoded, dict):
        message = decoded.get("message") or decoded.get("error")
        if message:
            return str(message)
    return detail.strip() or None
