from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_ASYNC_DRIVERS = {
    "postgres": "postgresql+psycopg",
    "postgresql": "postgresql+psycopg",
    "postgresql+asyncpg": "postgresql+psycopg",
    "sqlite": "sqlite+aiosqlite",
}

_SSL_OFF = {"0", "false", "no", "off", "disable"}
_SSL_STRICT = {"require", "verify-ca", "verify-full"}


def _translate_ssl(query: dict[str, str]) -> dict[str, str]:
    """Fold hosted-provider style ``ssl=`` flags into libpq ``sslmode``."""
    ssl_key = next((key for key in query if key.lower() == "ssl"), None)
    if ssl_key is None:
        return query
    value = query.pop(ssl_key).lower().strip()
    if "sslmode" in query:
        return query
    if value in _SSL_OFF:
        query["sslmode"] = "disable"
    elif value in _SSL_STRICT:
        query["sslmode"] = value
    else:
        query["sslmode"] = "require"
    return query


def normalize_database_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = _ASYNC_DRIVERS.get(parts.scheme, parts.scheme)
    if scheme.startswith("sqlite"):
        # urlunsplit drops the empty authority of sqlite:/// urls
        return scheme + url[len(parts.scheme):]

    query = _translate_ssl(dict(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit((scheme, parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment))
