"""
Root pytest configuration for the Django project.

Sets environment defaults so the settings module loads without a .env
file, then configures Django. App-specific fixtures are defined in each
app's conftest.py.
"""

import os

import django

# Settings read these from the environment; CI may override any of them
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite:///test-billing.sqlite3")
os.environ.setdefault("LOG_LEVEL", "WARNING")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()
