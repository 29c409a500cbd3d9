"""Connection state for one Xero session.

All mutations go through ``ConnectionStateStore.dispatch``, which applies a
pure reducer and then notifies subscribers synchronously. Readers only ever
see immutable ``SessionState`` snapshots and derived ``ConnectionStatus``
values.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

from compliance_api.core.session_store import (
    SELECTED_TENANT_KEY,
    TOKEN_SET_KEY,
    SessionStore,
)

from .models import (
    ConnectionStatus,
    ErrorKind,
    FlowPhase,
    Tenant,
    TokenSet,
    utc_now,
)

logger = logging.getLogger(__name__)

ACTIVE_PHASES = frozenset(
    {FlowPhase.CONNECTED, FlowPhase.TOKEN_EXPIRING, FlowPhase.REFRESHING}
)


class EventType(str, Enum):
    CREDENTIALS_SET = "CREDENTIALS_SET"
    AUTHORIZATION_REQUESTED = "AUTHORIZATION_REQUESTED"
    AUTHORIZATION_PENDING = "AUTHORIZATION_PENDING"
    AUTHORIZATION_CANCELLED = "AUTHORIZATION_CANCELLED"
    EXCHANGE_STARTED = "EXCHANGE_STARTED"
    AUTHORIZATION_FAILED = "AUTHORIZATION_FAILED"
    TOKEN_OBTAINED = "TOKEN_OBTAINED"
    TOKEN_EXPIRING = "TOKEN_EXPIRING"
    REFRESH_STARTED = "REFRESH_STARTED"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    TOKEN_REFRESH_FAILED = "TOKEN_REFRESH_FAILED"
    REFRESH_ABORTED = "REFRESH_ABORTED"
    TENANT_SELECTED = "TENANT_SELECTED"
    STATUS_REFRESHED = "STATUS_REFRESHED"
    DISCONNECTED = "DISCONNECTED"
    SESSION_RESTORED = "SESSION_RESTORED"


@dataclass(frozen=True)
class ConnectionEvent:
    type: EventType
    token_set: Optional[TokenSet] = None
    tenants: Optional[Tuple[Tenant, ...]] = None
    tenant_id: Optional[str] = None
    error: Optional[ErrorKind] = None
    credentials_configured: Optional[bool] = None


@dataclass(frozen=True)
class SessionState:
    phase: FlowPhase = FlowPhase.IDLE
    token_set: Optional[TokenSet] = None
    tenants: Tuple[Tenant, ...] = field(default_factory=tuple)
    selected_tenant_id: Optional[str] = None
    # Selection restored from the session store, applied once tenants are known
    preferred_tenant_id: Optional[str] = None
    last_error: Optional[ErrorKind] = None
    credentials_configured: bool = False

    def has_tenant(self, tenant_id: Optional[str]) -> bool:
        return tenant_id is not None and any(t.id == tenant_id for t in self.tenants)

    def to_status(self, now: Optional[datetime] = None) -> ConnectionStatus:
        now = now or utc_now()
        token = self.token_set
        token_valid = token is not None and not token.is_expired(now)
        refreshable = token is not None and bool(token.refresh_token)

        return ConnectionStatus(
            connected=(
                self.phase in ACTIVE_PHASES and (token_valid or refreshable)
            ),
            token_valid=token_valid,
            tenants=list(self.tenants),
            selected_tenant_id=self.selected_tenant_id,
            last_error=self.last_error,
            phase=self.phase,
            credentials_configured=self.credentials_configured,
            expires_at=token.expires_at if token else None,
        )


def _with_tenants(state: SessionState, tenants: Tuple[Tenant, ...]) -> SessionState:
    """Replace the tenant set, keeping the selection only if still a member."""
    updated = replace(state, tenants=tenants)
    if updated.has_tenant(state.selected_tenant_id):
        return updated
    if updated.has_tenant(state.preferred_tenant_id):
        return replace(
            updated,
            selected_tenant_id=state.preferred_tenant_id,
            preferred_tenant_id=None,
        )
    return replace(updated, selected_tenant_id=None)


def reduce(state: SessionState, event: ConnectionEvent) -> SessionState:
    """Pure transition function: (state, event) -> new state."""
    kind = event.type

    if kind is EventType.CREDENTIALS_SET:
        configured = (
            True if event.credentials_configured is None else event.credentials_configured
        )
        return replace(state, credentials_configured=configured)

    if kind is EventType.AUTHORIZATION_REQUESTED:
        return replace(state, phase=FlowPhase.AUTHORIZATION_REQUESTED, last_error=None)

    if kind is EventType.AUTHORIZATION_PENDING:
        return replace(state, phase=FlowPhase.PENDING_CALLBACK)

    if kind is EventType.AUTHORIZATION_CANCELLED:
        phase = FlowPhase.CONNECTED if state.token_set else FlowPhase.IDLE
        return replace(state, phase=phase)

    if kind is EventType.EXCHANGE_STARTED:
        return replace(state, phase=FlowPhase.EXCHANGING)

    if kind is EventType.AUTHORIZATION_FAILED:
        phase = FlowPhase.CONNECTED if state.token_set else FlowPhase.DISCONNECTED
        return replace(
            state,
            phase=phase,
            last_error=event.error or ErrorKind.AUTHORIZATION_ERROR,
        )

    if kind is EventType.TOKEN_OBTAINED:
        updated = replace(
            state,
            phase=FlowPhase.CONNECTED,
            token_set=event.token_set,
            last_error=None,
        )
        if event.tenants is not None:
            updated = _with_tenants(updated, event.tenants)
        return updated

    if kind is EventType.TOKEN_EXPIRING:
        if state.phase is not FlowPhase.CONNECTED:
            return state
        return replace(state, phase=FlowPhase.TOKEN_EXPIRING)

    if kind is EventType.REFRESH_STARTED:
        return replace(state, phase=FlowPhase.REFRESHING)

    if kind is EventType.TOKEN_REFRESHED:
        return replace(
            state,
            phase=FlowPhase.CONNECTED,
            token_set=event.token_set,
            last_error=None,
        )

    if kind is EventType.TOKEN_REFRESH_FAILED:
        return replace(
            state,
            phase=FlowPhase.DISCONNECTED,
            token_set=None,
            last_error=event.error or ErrorKind.TOKEN_REFRESH_ERROR,
        )

    if kind is EventType.REFRESH_ABORTED:
        # Transient failure: the current token set is kept
        phase = FlowPhase.CONNECTED if state.token_set else FlowPhase.DISCONNECTED
        return replace(state, phase=phase, last_error=event.error)

    if kind is EventType.TENANT_SELECTED:
        if not state.has_tenant(event.tenant_id):
            return state
        return replace(state, selected_tenant_id=event.tenant_id)

    if kind is EventType.STATUS_REFRESHED:
        updated = state
        if event.tenants is not None:
            updated = _with_tenants(updated, event.tenants)
        if event.error is not None:
            updated = replace(updated, last_error=event.error)
        return updated

    if kind is EventType.DISCONNECTED:
        return replace(
            state,
            phase=FlowPhase.DISCONNECTED,
            token_set=None,
            tenants=(),
            selected_tenant_id=None,
            preferred_tenant_id=None,
            last_error=None,
        )

    if kind is EventType.SESSION_RESTORED:
        phase = FlowPhase.CONNECTED if event.token_set else state.phase
        return replace(
            state,
            phase=phase,
            token_set=event.token_set,
            preferred_tenant_id=event.tenant_id,
        )

    raise ValueError(f"Unhandled connection event: {kind}")


Listener = Callable[[SessionState, ConnectionEvent], None]


class ConnectionStateStore:
    """Single-writer container for one session's connection state."""

    def __init__(self, initial: Optional[SessionState] = None):
        self._state = initial or SessionState()
        self._listeners: List[Listener] = []
        self._dispatching = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def token_set(self) -> Optional[TokenSet]:
        return self._state.token_set

    def status(self) -> ConnectionStatus:
        return self._state.to_status()

    def dispatch(self, event: ConnectionEvent) -> ConnectionStatus:
        """
        Apply an event, then notify every subscriber in registration order.

        A subscriber that raises does not stop the others; the first failure
        is re-raised once all of them have been notified.
        """
        if self._dispatching:
            raise RuntimeError(
                f"Cannot dispatch {event.type.value} while notifying subscribers"
            )

        previous = self._state
        self._state = reduce(previous, event)
        if previous.phase is not self._state.phase:
            logger.debug(
                f"Xero connection {previous.phase.value} -> "
                f"{self._state.phase.value} on {event.type.value}"
            )

        failure: Optional[Exception] = None
        self._dispatching = True
        try:
            for listener in list(self._listeners):
                try:
                    listener(self._state, event)
                except Exception as e:
                    logger.error(
                        f"Connection state subscriber failed on {event.type.value}: {e}",
                        exc_info=True,
                    )
                    failure = failure or e
        finally:
            self._dispatching = False

        if failure is not None:
            raise failure
        return self._state.to_status()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


class SessionPersistence:
    """Mirrors the token set and tenant selection into the session store."""

    def __init__(self, store: SessionStore, session_id: str):
        self.store = store
        self.session_id = session_id

    def restore_event(self) -> Optional[ConnectionEvent]:
        """Build a SESSION_RESTORED event from stored values, if any."""
        raw_token = self.store.get(self.session_id, TOKEN_SET_KEY)
        selected = self.store.get(self.session_id, SELECTED_TENANT_KEY)
        if raw_token is None and selected is None:
            return None

        token_set = None
        if raw_token is not None:
            try:
                token_set = TokenSet.model_validate_json(raw_token)
            except ValueError:
                logger.warning(
                    f"Discarding unreadable token set for session {self.session_id}"
                )
                self.store.delete(self.session_id, TOKEN_SET_KEY)

        return ConnectionEvent(
            type=EventType.SESSION_RESTORED,
            token_set=token_set,
            tenant_id=selected,
        )

    def __call__(self, state: SessionState, event: ConnectionEvent) -> None:
        if state.token_set is None:
            self.store.delete(self.session_id, TOKEN_SET_KEY)
        else:
            self.store.set(
                self.session_id, TOKEN_SET_KEY, state.token_set.model_dump_json()
            )

        # A restored selection stays persisted until tenants are known
        selected = state.selected_tenant_id or state.preferred_tenant_id
        if selected is None:
            self.store.delete(self.session_id, SELECTED_TENANT_KEY)
        else:
            self.store.set(self.session_id, SELECTED_TENANT_KEY, selected)
