"""Guard test to ensure no import-time side effects.

This test verifies that importing package modules does not trigger:
- get_settings() calls
- Redis connections
- HTTP client creation
- Any other I/O operations

If this test fails, it means someone introduced import-time side effects
that need to be moved to lazy initialization.
"""

import importlib
import sys
from contextlib import contextmanager
from unittest.mock import patch, MagicMock
import pytest


@contextmanager
def restored_modules():
    """Put the original modules back after a test re-imports them.

    Other tests hold references to classes from the first import; they must
    keep matching what the package raises.
    """
    with patch.dict(sys.modules):
        yield
    # Re-point package attributes at the restored submodules
    for name, module in list(sys.modules.items()):
        if not name.startswith("wallet_accounts.") or module is None:
            continue
        parent_name, _, child = name.rpartition(".")
        parent = sys.modules.get(parent_name)
        if parent is not None:
            setattr(parent, child, module)


def forget_module(name: str) -> None:
    """Drop ``name`` from sys.modules and from its parent package's attributes.

    ``from package import child`` returns the cached attribute when one is
    set, so clearing sys.modules alone does not force a fresh import.
    """
    sys.modules.pop(name, None)
    parent_name, _, child = name.rpartition(".")
    parent = sys.modules.get(parent_name)
    if parent is not None and hasattr(parent, child):
        delattr(parent, child)


class TestNoImportSideEffects:
    """Verify that importing modules does not trigger side effects."""

    def test_no_get_settings_on_import(self):
        """Ensure get_settings() is not called during import.

        We monkeypatch get_settings to raise an error, then import every
        service and API module. If get_settings is called at import time,
        this test will fail.
        """
        call_tracker = {"called": False, "caller": None}

        def mock_get_settings():
            import traceback
            call_tracker["called"] = True
            call_tracker["caller"] = "".join(traceback.format_stack())
            raise RuntimeError(
                "get_settings() was called during import! "
                "This indicates an import-time side effect.\n"
                f"Call stack:\n{call_tracker['caller']}"
            )

        with restored_modules():
            # Clear any cached modules that might have already loaded
            modules_to_clear = [
                key for key in list(sys.modules.keys())
                if key.startswith("wallet_accounts.services")
                or key.startswith("wallet_accounts.api")
                or key == "wallet_accounts.main"
            ]
            for mod in modules_to_clear:
                forget_module(mod)

            with patch("wallet_accounts.core.config.get_settings", mock_get_settings):
                try:
                    from wallet_accounts.services.accounts import lifecycle
                    from wallet_accounts.services.accounts import persistence
                    from wallet_accounts.services.accounts import import_workflow
                except RuntimeError as e:
                    if "get_settings() was called during import" in str(e):
                        pytest.fail(f"Account module import caused side effect: {e}")
                    raise

                try:
                    from wallet_accounts.services.derivation import derivation_client
                    from wallet_accounts.services.derivation import wallet_detector
                except RuntimeError as e:
                    if "get_settings() was called during import" in str(e):
                        pytest.fail(f"Derivation module import caused side effect: {e}")
                    raise

                try:
                    from wallet_accounts.api.v1 import accounts
                    from wallet_accounts.api.v1 import health
                    from wallet_accounts import main
                except RuntimeError as e:
                    if "get_settings() was called during import" in str(e):
                        pytest.fail(f"API module import caused side effect: {e}")
                    raise

        assert not call_tracker["called"], "get_settings was called during import"

    def test_core_modules_remain_lazy(self):
        """Verify that the redis client and scheduler are created lazily."""
        with restored_modules():
            forget_module("wallet_accounts.core.redis")
            forget_module("wallet_accounts.core.scheduler")

            with patch("wallet_accounts.core.config.get_settings") as mock_settings:
                mock_settings.return_value = MagicMock()

                redis = importlib.import_module("wallet_accounts.core.redis")
                scheduler = importlib.import_module("wallet_accounts.core.scheduler")

                assert redis._redis_client is None, "Redis client was created at import time"
                assert scheduler._scheduler is None, "Scheduler was created at import time"
                mock_settings.assert_not_called()
