"""Session-scoped key/value storage.

Each browser session owns an isolated namespace. The Xero integration keeps
three keys per session: ``selected_tenant_id``, ``token_set`` and
``oauth_state``. Values are strings (JSON for structured values).
"""
import logging
from typing import Dict, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

SELECTED_TENANT_KEY = "selected_tenant_id"
TOKEN_SET_KEY = "token_set"
OAUTH_STATE_KEY = "oauth_state"


class SessionStore(Protocol):
    """Interface of the session persistence collaborator."""

    def get(self, session_id: str, key: str) -> Optional[str]: ...

    def set(self, session_id: str, key: str, value: str) -> None: ...

    def delete(self, session_id: str, key: str) -> None: ...


class InMemorySessionStore:
    """Process-local session store."""

    def __init__(self) -> None:
        self._values: Dict[Tuple[str, str], str] = {}

    def get(self, session_id: str, key: str) -> Optional[str]:
        return self._values.get((session_id, key))

    def set(self, session_id: str, key: str, value: str) -> None:
        self._values[(session_id, key)] = value

    def delete(self, session_id: str, key: str) -> None:
        if self._values.pop((session_id, key), None) is not None:
            logger.debug(f"Cleared {key} for session {session_id}")

    def keys(self, session_id: str) -> list[str]:
        return [key for (sid, key) in self._values if sid == session_id]
