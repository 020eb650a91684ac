"""Tests for the readiness and shutdown flags."""

from tezos_indexer.core.health import HealthState


class TestHealthState:
    def test_initial_state(self):
        state = HealthState()

        assert not state.is_ready
        assert not state.is_shutting_down
        assert state.uptime_seconds >= 0

    def test_ready_then_shutdown(self):
        """Shutdown clears readiness and cannot be undone."""
        state = HealthState()
        state.set_ready(True)
        assert state.is_ready

        state.start_shutdown()

        assert state.is_shutting_down
        assert not state.is_ready

    def test_to_dict(self):
        state = HealthState()
        state.set_ready()

        data = state.to_dict()

        assert data["ready"] is True
        assert data["shutdown"] is False
        assert data["started_at"] == state.started_at.isoformat()
