from django.apps import AppConfig


class AuthenticationConfig(AppConfig):
    """Learner and staff accounts; billing reads names, email and segment metadata from here."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "authentication"
    verbose_name = "Accounts"
