"""Normalization of the Gmail OAuth callback.

Google normally returns ``code`` and ``state`` in the query string, but some
flows deliver parameters in the URL fragment (including an ``access_token``
directly). Both shapes are folded into one ``CallbackParams`` before any
business logic runs.
"""

from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit


@dataclass(frozen=True)
class CallbackParams:
    code: str | None = None
    state: str | None = None
    error: str | None = None
    access_token: str | None = None
    expires_in: int | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.code or self.state or self.error or self.access_token)


def _first(values: dict[str, list[str]], key: str) -> str | None:
    items = values.get(key)
    if not items:
        return None
    value = items[0].strip()
    return value or None


def _from_pairs(raw: str) -> CallbackParams:
    values = parse_qs(raw.lstrip("?#"), keep_blank_values=False)
    expires_in = _first(values, "expires_in")
    return CallbackParams(
        code=_first(values, "code"),
        state=_first(values, "state"),
        error=_first(values, "error"),
        access_token=_first(values, "access_token"),
        expires_in=int(expires_in) if expires_in and expires_in.isdigit() else None,
    )


def parse_query(query: str) -> CallbackParams:
    """Parse callback parameters from a query string (with or without leading '?')."""
    return _from_pairs(query)


def parse_fragment(fragment: str) -> CallbackParams:
    """Parse callback parameters from a URL fragment (with or without leading '#')."""
    return _from_pairs(fragment)


def normalize_callback(url: str) -> CallbackParams:
    """
    Extract callback parameters from a full callback URL.

    The query string wins; the fragment is only used when the query carries
    nothing useful.
    """
    parts = urlsplit(url)
    from_query = parse_query(parts.query)
    if not from_query.is_empty:
        return from_query
    return parse_fragment(parts.fragment)
