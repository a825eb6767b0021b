import json
import logging

from app.core import context
from app.core.logging import JsonFormatter, RequestContextFilter
from app.db.url import normalize_database_url
from app.middlewares.trust_proxies import resolve_client_ip


def test_normalize_database_url_targets_psycopg() -> None:
    assert normalize_database_url("postgres://u:p@db:5432/app") == "postgresql+psycopg://u:p@db:5432/app"
    assert (
        normalize_database_url("postgresql+asyncpg://u:p@db/app?ssl=true")
        == "postgresql+psycopg://u:p@db/app?sslmode=require"
    )
    assert normalize_database_url("postgresql://u:p@db/app?ssl=false") == "postgresql+psycopg://u:p@db/app?sslmode=disable"
    assert normalize_database_url("") == ""


def test_resolve_client_ip_from_proxy_headers() -> None:
    assert resolve_client_ip("203.0.113.5, 10.0.0.1", "", 1) == "203.0.113.5"
    assert resolve_client_ip("10.0.0.1", "198.51.100.2", 1) == "198.51.100.2"
    assert resolve_client_ip("", "", 1) is None


def test_json_formatter_carries_request_and_audit_fields() -> None:
    context.set_request_id("req-123")
    context.set_client_ip("203.0.113.5")
    record = logging.LogRecord("app.audit", logging.INFO, __file__, 1, "Audit entry recorded", None, None)
    record.record_id = "abc"
    record.field_name = "notes"

    RequestContextFilter().filter(record)
    payload = json.loads(JsonFormatter(stream_label="audit").format(record))

    assert payload["request_id"] == "req-123"
    assert payload["client_ip"] == "203.0.113.5"
    assert payload["stream"] == "audit"
    assert payload["record_id"] == "abc"
    assert payload["field_name"] == "notes"
    assert "table_name" not in payload
