"""
Project-wide pytest configuration.

Adjusts settings for fast, isolated tests and auto-marks tests by file
name. App-specific fixtures are defined in each app's conftest.py.
"""

import pytest


def pytest_configure():
    """Configure Django settings before tests run."""
    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # The test client speaks plain HTTP
    settings.SECURE_SSL_REDIRECT = False

    # No Redis in the test environment
    settings.CACHES = {
        "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"},
    }

    # The sweep sleeps between processor calls; tests don't wait
    settings.BILLING_SWEEP_INTER_CALL_DELAY_MS = 0


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_views.py, test_tasks.py, test_handlers.py, service tests → integration
    - test_models.py, test_plan_*.py, test_state_transitions.py, adapter tests → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    unit_patterns = [
        "test_models.py",
        "test_plan_builder.py",
        "test_plan_detection.py",
        "test_state_transitions.py",
        "test_money.py",
        "test_stripe_adapter.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]
        if any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)
