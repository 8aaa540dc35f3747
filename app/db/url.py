from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_TRUTHY_SSL = {"1", "true", "yes", "on", "require", "verify-ca", "verify-full"}


def normalize_database_url(url: str) -> str:
    """Coerce a Postgres URL into the ``postgresql+asyncpg`` form.

    Hosted Postgres providers hand out ``postgres://`` URLs with libpq's
    ``sslmode`` parameter, which asyncpg does not understand; it takes
    ``ssl`` instead.
    """
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = parts.scheme
    if scheme in {"postgres", "postgresql", "postgresql+psycopg", "postgresql+psycopg2"}:
        scheme = "postgresql+asyncpg"

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    sslmode = query.pop("sslmode", None)
    if sslmode is not None and "ssl" not in query:
        query["ssl"] = "require" if sslmode.lower().strip() in _TRUTHY_SSL else "disable"

    new_query = urlencode(query, doseq=True)
    return urlunsplit((scheme, parts.netloc, parts.path, new_query, parts.fragment))
