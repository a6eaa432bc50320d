"""
Authentication models.

- User: Custom user model with email-based authentication

The user carries the learner-facing identity the billing engine needs:
a name and email for processor customer creation, a cached processor
customer reference, and free-form segment metadata consulted by payment
plan auto-detect rules.

"""

from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.db import models


class UserManager(BaseUserManager):
    """Creates learners and staff keyed by normalized email."""

    use_in_migrations = True

    def _create(self, email, password, **extra_fields):
        if not email:
            raise ValueError("An email address is required")
        user = self.model(email=self.normalize_email(email), **extra_fields)
        if password:
            user.set_password(password)
        else:
            # Learners provisioned by a tenant sign in through the tenant, not here
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        return self._create(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        if not (extra_fields["is_staff"] and extra_fields["is_superuser"]):
            raise ValueError("Superusers must have is_staff and is_superuser set")
        return self._create(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        first_name/last_name: Display name sent to the processor
        stripe_customer_id: Fallback processor customer reference
        metadata: Segment attributes used by plan auto-detection
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin and issue refunds

    Usage:
        user = User.objects.create_user(
            email='learner@example.com',
            password='securepassword',
            first_name='Ada',
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    first_name = models.CharField(
        max_length=150,
        blank=True,
        default="",
        help_text="Given name",
    )

    last_name = models.CharField(
        max_length=150,
        blank=True,
        default="",
        help_text="Family name",
    )

    # ==========================================================================
    # Billing
    # ==========================================================================

    stripe_customer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe Customer ID (cus_xxx) - fallback when the enrollment has none",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Segment attributes (e.g. {'segment': 'alumni'}) for plan auto-detection",
    )

    # ==========================================================================
    # Account Status
    # ==========================================================================

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_full_name(self):
        """Return 'first last', or the email when no name is set."""
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.email

    def get_short_name(self):
        return self.first_name or self.email.split("@")[0]
