from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

# Every spelling of a Postgres URL is served by the async psycopg 3 driver.
_POSTGRES_SCHEMES = {"postgres", "postgresql", "postgresql+asyncpg", "postgresql+psycopg2"}
_FALSY = {"0", "false", "no", "off", "disable"}
_STRICT_SSL_MODES = {"require", "verify-ca", "verify-full"}


def _sslmode_from_flag(value: str) -> str:
    normalized = value.lower().strip()
    if normalized in _FALSY:
        return "disable"
    if normalized in _STRICT_SSL_MODES:
        return normalized
    return "require"


def normalize_database_url(url: str) -> str:
    """Rewrite hosted-Postgres URLs (``postgres://``, ``?ssl=true``) for SQLAlchemy + psycopg."""
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = "postgresql+psycopg" if parts.scheme in _POSTGRES_SCHEMES else parts.scheme

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    ssl_key = next((key for key in query if key.lower() == "ssl"), None)
    if ssl_key is not None:
        ssl_value = query.pop(ssl_key)
        query.setdefault("sslmode", _sslmode_from_flag(ssl_value))

    return urlunsplit((scheme, parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment))
