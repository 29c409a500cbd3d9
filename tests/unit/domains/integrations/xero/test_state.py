# tests/unit/domains/integrations/xero/test_state.py
"""
Tests for the connection state reducer, store and session persistence.
"""
from typing import List, Tuple
from unittest.mock import Mock

import pytest

from compliance_api.core.session_store import (
    SELECTED_TENANT_KEY,
    TOKEN_SET_KEY,
    InMemorySessionStore,
)
from compliance_api.domains.integrations.xero.models import (
    ErrorKind,
    FlowPhase,
    Tenant,
    TokenSet,
)
from compliance_api.domains.integrations.xero.state import (
    ConnectionEvent,
    ConnectionStateStore,
    EventType,
    SessionPersistence,
    SessionState,
    reduce,
)
from tests.fixtures.xero_fixtures import connect_store, make_token_set


class TestReduce:
    """Test suite for the pure state transition function."""

    def test_token_obtained_connects(
        self, valid_token_set: TokenSet, test_tenant: Tenant
    ) -> None:
        """Test that obtaining a token moves to connected with tenants."""
        # Act
        state = reduce(
            SessionState(phase=FlowPhase.EXCHANGING),
            ConnectionEvent(
                type=EventType.TOKEN_OBTAINED,
                token_set=valid_token_set,
                tenants=(test_tenant,),
            ),
        )

        # Assert
        assert state.phase is FlowPhase.CONNECTED
        assert state.token_set == valid_token_set
        assert state.tenants == (test_tenant,)
        assert state.to_status().connected is True
        assert state.to_status().token_valid is True

    def test_selection_dropped_when_tenant_disappears(
        self, test_tenant: Tenant, second_tenant: Tenant
    ) -> None:
        """Test that a selection not in the new tenant set is cleared."""
        # Arrange
        state = SessionState(
            tenants=(test_tenant, second_tenant),
            selected_tenant_id=second_tenant.id,
        )

        # Act
        state = reduce(
            state,
            ConnectionEvent(type=EventType.STATUS_REFRESHED, tenants=(test_tenant,)),
        )

        # Assert
        assert state.selected_tenant_id is None

    def test_selection_kept_when_tenant_still_present(
        self, test_tenant: Tenant, second_tenant: Tenant
    ) -> None:
        state = SessionState(tenants=(test_tenant,), selected_tenant_id=test_tenant.id)

        state = reduce(
            state,
            ConnectionEvent(
                type=EventType.STATUS_REFRESHED,
                tenants=(test_tenant, second_tenant),
            ),
        )

        assert state.selected_tenant_id == test_tenant.id

    def test_select_unknown_tenant_is_ignored(self, test_tenant: Tenant) -> None:
        """Test that selecting a non-member tenant changes nothing."""
        # Arrange
        state = SessionState(tenants=(test_tenant,))

        # Act
        updated = reduce(
            state,
            ConnectionEvent(type=EventType.TENANT_SELECTED, tenant_id="unknown"),
        )

        # Assert
        assert updated == state

    def test_refresh_failure_clears_token_and_disconnects(
        self, valid_token_set: TokenSet, test_tenant: Tenant
    ) -> None:
        """Test that a failed refresh discards the token set."""
        # Arrange
        state = SessionState(
            phase=FlowPhase.REFRESHING,
            token_set=valid_token_set,
            tenants=(test_tenant,),
            selected_tenant_id=test_tenant.id,
        )

        # Act
        state = reduce(state, ConnectionEvent(type=EventType.TOKEN_REFRESH_FAILED))

        # Assert
        status = state.to_status()
        assert state.token_set is None
        assert status.connected is False
        assert status.last_error is ErrorKind.TOKEN_REFRESH_ERROR
        assert state.selected_tenant_id == test_tenant.id

    def test_refresh_aborted_keeps_token(self, valid_token_set: TokenSet) -> None:
        """Test that a transient refresh failure keeps the current token."""
        state = SessionState(phase=FlowPhase.REFRESHING, token_set=valid_token_set)

        state = reduce(
            state,
            ConnectionEvent(type=EventType.REFRESH_ABORTED, error=ErrorKind.TIMEOUT_ERROR),
        )

        assert state.phase is FlowPhase.CONNECTED
        assert state.token_set == valid_token_set
        assert state.last_error is ErrorKind.TIMEOUT_ERROR

    def test_token_expiring_only_from_connected(self) -> None:
        state = SessionState(phase=FlowPhase.IDLE)

        assert reduce(state, ConnectionEvent(type=EventType.TOKEN_EXPIRING)) == state

    def test_authorization_failed_without_token_disconnects(self) -> None:
        state = reduce(
            SessionState(phase=FlowPhase.EXCHANGING),
            ConnectionEvent(
                type=EventType.AUTHORIZATION_FAILED,
                error=ErrorKind.REDIRECT_URI_MISMATCH,
            ),
        )

        assert state.phase is FlowPhase.DISCONNECTED
        assert state.last_error is ErrorKind.REDIRECT_URI_MISMATCH

    def test_disconnected_clears_everything(
        self, valid_token_set: TokenSet, test_tenant: Tenant
    ) -> None:
        state = SessionState(
            phase=FlowPhase.CONNECTED,
            token_set=valid_token_set,
            tenants=(test_tenant,),
            selected_tenant_id=test_tenant.id,
        )

        state = reduce(state, ConnectionEvent(type=EventType.DISCONNECTED))

        assert state.token_set is None
        assert state.tenants == ()
        assert state.selected_tenant_id is None
        assert state.to_status().connected is False

    def test_restored_selection_applied_when_tenants_arrive(
        self, valid_token_set: TokenSet, test_tenant: Tenant, second_tenant: Tenant
    ) -> None:
        """Test that a persisted selection is re-applied once tenants are known."""
        # Arrange
        state = reduce(
            SessionState(),
            ConnectionEvent(
                type=EventType.SESSION_RESTORED,
                token_set=valid_token_set,
                tenant_id=second_tenant.id,
            ),
        )
        assert state.selected_tenant_id is None

        # Act
        state = reduce(
            state,
            ConnectionEvent(
                type=EventType.STATUS_REFRESHED,
                tenants=(test_tenant, second_tenant),
            ),
        )

        # Assert
        assert state.selected_tenant_id == second_tenant.id
        assert state.preferred_tenant_id is None

    def test_expired_token_without_refresh_token_is_not_connected(self) -> None:
        """Test the connected flag for an unusable token."""
        token_set = make_token_set(refresh_token=None, expires_in=-10)

        status = SessionState(phase=FlowPhase.CONNECTED, token_set=token_set).to_status()

        assert status.connected is False
        assert status.token_valid is False

    def test_expired_token_with_refresh_token_is_still_connected(self) -> None:
        token_set = make_token_set(expires_in=-10)

        status = SessionState(phase=FlowPhase.CONNECTED, token_set=token_set).to_status()

        assert status.connected is True
        assert status.token_valid is False


class TestConnectionStateStore:
    """Test suite for ConnectionStateStore dispatch and subscriptions."""

    def test_dispatch_notifies_subscribers_with_new_state(
        self, state_store: ConnectionStateStore, valid_token_set: TokenSet
    ) -> None:
        """Test that subscribers see the state after the event is applied."""
        # Arrange
        seen: List[Tuple[FlowPhase, EventType]] = []
        state_store.subscribe(lambda state, event: seen.append((state.phase, event.type)))

        # Act
        status = state_store.dispatch(
            ConnectionEvent(type=EventType.TOKEN_OBTAINED, token_set=valid_token_set)
        )

        # Assert
        assert seen == [(FlowPhase.CONNECTED, EventType.TOKEN_OBTAINED)]
        assert status.connected is True

    def test_unsubscribe_stops_notifications(
        self, state_store: ConnectionStateStore
    ) -> None:
        listener = Mock()
        unsubscribe = state_store.subscribe(listener)

        unsubscribe()
        state_store.dispatch(ConnectionEvent(type=EventType.CREDENTIALS_SET))

        listener.assert_not_called()

    def test_failing_subscriber_does_not_block_others(
        self, state_store: ConnectionStateStore
    ) -> None:
        """Test that a raising subscriber is re-raised after the others run."""
        # Arrange
        failing = Mock(side_effect=RuntimeError("store unavailable"))
        healthy = Mock()
        state_store.subscribe(failing)
        state_store.subscribe(healthy)

        # Act
        with pytest.raises(RuntimeError, match="store unavailable"):
            state_store.dispatch(ConnectionEvent(type=EventType.CREDENTIALS_SET))

        # Assert
        healthy.assert_called_once()
        assert state_store.state.credentials_configured is True

    def test_dispatch_after_failed_subscriber_still_works(
        self, state_store: ConnectionStateStore
    ) -> None:
        """Test that a failed notification does not leave the store locked."""
        # Arrange
        state_store.subscribe(Mock(side_effect=[RuntimeError("once"), None]))
        with pytest.raises(RuntimeError):
            state_store.dispatch(ConnectionEvent(type=EventType.CREDENTIALS_SET))

        # Act
        status = state_store.dispatch(
            ConnectionEvent(type=EventType.AUTHORIZATION_REQUESTED)
        )

        # Assert
        assert status.phase is FlowPhase.AUTHORIZATION_REQUESTED

    def test_dispatch_from_subscriber_is_rejected(
        self, state_store: ConnectionStateStore
    ) -> None:
        """Test that subscribers cannot dispatch while being notified."""
        # Arrange
        errors: List[Exception] = []

        def reentrant(state: SessionState, event: ConnectionEvent) -> None:
            try:
                state_store.dispatch(ConnectionEvent(type=EventType.DISCONNECTED))
            except RuntimeError as e:
                errors.append(e)

        state_store.subscribe(reentrant)

        # Act
        state_store.dispatch(
            ConnectionEvent(type=EventType.AUTHORIZATION_REQUESTED)
        )

        # Assert
        assert len(errors) == 1
        assert state_store.state.phase is FlowPhase.AUTHORIZATION_REQUESTED


class TestSessionPersistence:
    """Test suite for mirroring state into the session store."""

    def test_token_and_selection_are_persisted(
        self,
        session_store: InMemorySessionStore,
        state_store: ConnectionStateStore,
        valid_token_set: TokenSet,
        test_tenant: Tenant,
    ) -> None:
        # Arrange
        state_store.subscribe(SessionPersistence(session_store, "session-1"))

        # Act
        connect_store(state_store, valid_token_set, (test_tenant,))
        state_store.dispatch(
            ConnectionEvent(type=EventType.TENANT_SELECTED, tenant_id=test_tenant.id)
        )

        # Assert
        stored = TokenSet.model_validate_json(
            session_store.get("session-1", TOKEN_SET_KEY)
        )
        assert stored == valid_token_set
        assert session_store.get("session-1", SELECTED_TENANT_KEY) == test_tenant.id

    def test_disconnect_removes_persisted_values(
        self,
        session_store: InMemorySessionStore,
        state_store: ConnectionStateStore,
        valid_token_set: TokenSet,
    ) -> None:
        state_store.subscribe(SessionPersistence(session_store, "session-1"))
        connect_store(state_store, valid_token_set)

        state_store.dispatch(ConnectionEvent(type=EventType.DISCONNECTED))

        assert session_store.get("session-1", TOKEN_SET_KEY) is None
        assert session_store.get("session-1", SELECTED_TENANT_KEY) is None

    def test_persistence_failure_is_surfaced(
        self, state_store: ConnectionStateStore, valid_token_set: TokenSet
    ) -> None:
        """Test that a session store write failure reaches the caller."""
        # Arrange
        broken_store = Mock(spec=InMemorySessionStore)
        broken_store.set.side_effect = OSError("session store offline")
        state_store.subscribe(SessionPersistence(broken_store, "session-1"))

        # Act
        with pytest.raises(OSError, match="session store offline"):
            state_store.dispatch(
                ConnectionEvent(type=EventType.TOKEN_OBTAINED, token_set=valid_token_set)
            )

        # Assert
        broken_store.set.assert_called_once()

    def test_restore_event_reads_stored_values(
        self, session_store: InMemorySessionStore, valid_token_set: TokenSet
    ) -> None:
        """Test that a new session object picks up what was persisted."""
        # Arrange
        session_store.set("session-1", TOKEN_SET_KEY, valid_token_set.model_dump_json())
        session_store.set("session-1", SELECTED_TENANT_KEY, "test-tenant-id")

        # Act
        event = SessionPersistence(session_store, "session-1").restore_event()

        # Assert
        assert event is not None
        assert event.type is EventType.SESSION_RESTORED
        assert event.token_set == valid_token_set
        assert event.tenant_id == "test-tenant-id"

    def test_restore_discards_unreadable_token(
        self, session_store: InMemorySessionStore
    ) -> None:
        session_store.set("session-1", TOKEN_SET_KEY, "{not json")

        event = SessionPersistence(session_store, "session-1").restore_event()

        assert event is not None
        assert event.token_set is None
        assert session_store.get("session-1", TOKEN_SET_KEY) is None

    def test_restore_with_nothing_stored(
        self, session_store: InMemorySessionStore
    ) -> None:
        assert SessionPersistence(session_store, "session-1").restore_event() is None

    @pytest.mark.parametrize("session_id", ["session-1", "session-2"])
    def test_sessions_are_isolated(
        self,
        session_store: InMemorySessionStore,
        valid_token_set: TokenSet,
        session_id: str,
    ) -> None:
        """Test that persisted values never leak across sessions."""
        store = ConnectionStateStore()
        store.subscribe(SessionPersistence(session_store, "session-1"))
        connect_store(store, valid_token_set)

        stored = session_store.get(session_id, TOKEN_SET_KEY)

        assert (stored is not None) is (session_id == "session-1")
