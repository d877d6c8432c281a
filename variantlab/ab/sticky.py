"""Session-scoped storage for sticky variant assignments.

Values live in server-side session state, never in a client-writable cookie,
so a visitor cannot pick their own variant by editing a cookie. Whatever is
read back is still untrusted: the assigner validates it against the current
experiment before reusing it.
"""

from collections.abc import MutableMapping
from typing import Protocol

DEFAULT_PREFIX = "carousel_variant_"


class StickyStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, variant_id: str) -> None: ...


class SessionStickyStore:
    """StickyStore over any session mapping (a web framework session, a dict)."""

    def __init__(
        self,
        session: MutableMapping[str, str] | None = None,
        prefix: str = DEFAULT_PREFIX,
    ):
        self.session = session if session is not None else {}
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> str | None:
        value = self.session.get(self._key(key))
        if value is None or not isinstance(value, str):
            return None
        return value

    def set(self, key: str, variant_id: str) -> None:
        self.session[self._key(key)] = variant_id
