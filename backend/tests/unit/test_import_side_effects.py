"""Guard test to ensure no import-time side effects.

This test verifies that importing backend modules does not trigger:
- get_settings() calls
- Database engine creation
- HTTP client creation
- Any other I/O operations

If this test fails, it means someone introduced import-time side effects
that need to be moved to lazy initialization.
"""

import sys
from unittest.mock import patch

import pytest

PACKAGES = (
    "tezos_indexer.api",
    "tezos_indexer.services",
    "tezos_indexer.storage",
    "tezos_indexer.main",
)


class TestNoImportSideEffects:
    """Verify that importing modules does not trigger side effects."""

    def test_no_get_settings_on_import(self):
        """Ensure get_settings() is not called during import.

        get_settings is patched to raise, then every module that builds
        engines, clients or apps is imported fresh.
        """

        def mock_get_settings():
            raise RuntimeError("get_settings() was called during import")

        # Clear cached modules so the imports below run their module bodies again
        saved = {
            key: sys.modules.pop(key)
            for key in list(sys.modules)
            if key.startswith(PACKAGES)
        }
        try:
            with patch("tezos_indexer.core.config.get_settings", mock_get_settings):
                try:
                    from tezos_indexer.services.data import tzkt_client  # noqa: F401
                    from tezos_indexer.services.data import factory  # noqa: F401
                    from tezos_indexer.services.sync import delegation_sync  # noqa: F401
                    from tezos_indexer.services.query import get_delegations  # noqa: F401
                    from tezos_indexer.storage import sql, memory  # noqa: F401
                    from tezos_indexer.api import delegations, health, metrics  # noqa: F401
                    from tezos_indexer import main  # noqa: F401
                except RuntimeError as e:
                    pytest.fail(f"Module import caused side effect: {e}")
        finally:
            for key in [k for k in sys.modules if k.startswith(PACKAGES)]:
                del sys.modules[key]
            sys.modules.update(saved)
            # Re-point package attributes at the restored modules
            for key, module in saved.items():
                parent, _, child = key.rpartition(".")
                if parent in sys.modules:
                    setattr(sys.modules[parent], child, module)

    def test_create_app_does_not_connect(self, test_settings):
        """Building the app only wires state; the lifespan does the I/O."""
        with patch("tezos_indexer.main.create_store") as create_store, patch(
            "tezos_indexer.main.create_delegation_source"
        ) as create_source:
            from tezos_indexer.main import create_app

            app = create_app("service", test_settings)

        create_store.assert_not_called()
        create_source.assert_not_called()
        assert app.state.poller is None
        assert not app.state.health.is_ready
