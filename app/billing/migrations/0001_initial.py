# Generated manually - Billing engine schema

import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        # ======================================================================
        # Tenant & Credentials
        # ======================================================================
        migrations.CreateModel(
            name="Tenant",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True, help_text="When the row was last written; drives reconciliation and stuck-event scans")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                ("name", models.CharField(help_text="Tenant display name", max_length=200)),
                ("slug", models.SlugField(help_text="Unique URL-safe identifier", max_length=100, unique=True)),
                ("payment_grace_days", models.PositiveSmallIntegerField(blank=True, help_text="Days past due before access is suspended (blank = platform default)", null=True)),
                ("is_active", models.BooleanField(default=True, help_text="Whether the tenant is operating")),
            ],
            options={
                "verbose_name": "Tenant",
                "verbose_name_plural": "Tenants",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="PaymentIntegrationCredential",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True, help_text="When the row was last written; drives reconciliation and stuck-event scans")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                ("integration_key", models.CharField(choices=[("stripe", "Stripe")], default="stripe", help_text="Payment processor these credentials belong to", max_length=30)),
                ("secret_key", models.CharField(help_text="Processor secret API key", max_length=255)),
                ("publishable_key", models.CharField(help_text="Processor publishable key for client-side checkout", max_length=255)),
                ("webhook_secret", models.CharField(blank=True, default="", help_text="Webhook signing secret", max_length=255)),
                ("is_enabled", models.BooleanField(db_index=True, default=True, help_text="Whether these credentials may be used")),
                ("tenant", models.ForeignKey(help_text="Tenant owning these credentials", on_delete=django.db.models.deletion.CASCADE, related_name="payment_credentials", to="billing.tenant")),
            ],
            options={
                "verbose_name": "Payment Integration Credential",
                "verbose_name_plural": "Payment Integration Credentials",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_enabled", True)),
                        fields=("tenant", "integration_key"),
                        name="one_enabled_credential_per_integration",
                    ),
                ],
            },
        ),
        # ======================================================================
        # Catalog
        # ======================================================================
        migrations.CreateModel(
            name="Course",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True, help_text="When the row was last written; drives reconciliation and stuck-event scans")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                ("title", models.CharField(help_text="Course title", max_length=255)),
                ("tenant", models.ForeignKey(help_text="Tenant offering the course", on_delete=django.db.models.deletion.CASCADE, related_name="courses", to="billing.tenant")),
            ],
            options={
                "ordering": ["title"],
            },
        ),
        migrations.CreateModel(
            name="Program",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True, help_text="When the row was last written; drives reconciliation and stuck-event scans")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                ("title", models.CharField(help_text="Program title", max_length=255)),
                ("courses", models.ManyToManyField(blank=True, help_text="Courses included in the program", related_name="programs", to="billing.course")),
                ("tenant", models.ForeignKey(help_text="Tenant offering the program", on_delete=django.db.models.deletion.CASCADE, related_name="programs", to="billing.tenant")),
            ],
            options={
                "ordering": ["title"],
            },
        ),
        migrations.CreateModel(
            name="PaymentPlan",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True, help_text="When the row was last written; drives reconciliation and stuck-event scans")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                ("name", models.CharField(help_text="Plan name shown to admins and learners", max_length=200)),
                ("description", models.TextField(blank=True, default="", help_text="Optional plan description")),
                (
                    "plan_type",
                    models.CharField(
                        choices=[
                            ("one_time", "One Time"),
                            ("free", "Free"),
                            ("deposit_then_plan", "Deposit Then Plan"),
                            ("subscription", "Subscription"),
                        ],
                        default="one_time",
                        help_text="Payment model used to generate schedules",
                        max_length=30,
                    ),
                ),
                (
                    "deposit_type",
                    models.CharField(
                        choices=[("none", "No Deposit"), ("fixed", "Fixed Amount"), ("percentage", "Percentage")],
                        default="none",
                        help_text="How the deposit is computed",
                        max_length=20,
                    ),
                ),
                ("deposit_amount", models.DecimalField(blank=True, decimal_places=2, help_text="Fixed deposit amount (major currency units)", max_digits=12, null=True)),
                ("deposit_percentage", models.DecimalField(blank=True, decimal_places=2, help_text="Deposit as a percentage of the total (0-100)", max_digits=5, null=True)),
                ("installment_count", models.PositiveSmallIntegerField(blank=True, help_text="Number of installments after the deposit", null=True)),
                (
                    "installment_frequency",
                    models.CharField(
                        choices=[("weekly", "Weekly"), ("biweekly", "Biweekly"), ("monthly", "Monthly"), ("custom", "Custom")],
                        default="monthly",
                        help_text="Spacing between installment due dates",
                        max_length=20,
                    ),
                ),
                ("custom_frequency_days", models.PositiveSmallIntegerField(blank=True, help_text="Days between installments when frequency is custom", null=True)),
                (
                    "subscription_interval",
                    models.CharField(
                        choices=[("weekly", "Weekly"), ("monthly", "Monthly"), ("quarterly", "Quarterly"), ("annually", "Annually")],
                        default="monthly",
                        help_text="Billing interval for subscriptions",
                        max_length=20,
                    ),
                ),
                ("subscription_trial_days", models.PositiveSmallIntegerField(default=0, help_text="Days before the first subscription charge")),
                (
                    "subscription_billing_cycles",
                    models.PositiveSmallIntegerField(
                        default=1,
                        help_text="Number of cycles the product price is spread over",
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                ("auto_detect_enabled", models.BooleanField(default=False, help_text="Whether the plan takes part in auto-detection")),
                (
                    "auto_detect_rules",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text='Rules that must all match, e.g. [{"condition": "price_range", "operator": "between", "min": 500, "max": 5000}]',
                    ),
                ),
                ("priority", models.IntegerField(db_index=True, default=0, help_text="Higher priority plans are evaluated first")),
                ("is_active", models.BooleanField(default=True, help_text="Whether the plan can be assigned")),
                ("is_default", models.BooleanField(default=False, help_text="Tenant-wide fallback plan")),
                ("tenant", models.ForeignKey(help_text="Tenant owning the plan", on_delete=django.db.models.deletion.CASCADE, related_name="payment_plans", to="billing.tenant")),
            ],
            options={
                "verbose_name": "Payment Plan",
                "verbose_name_plural": "Payment Plans",
                "ordering": ["-priority", "name"],
                "indexes": [
                    models.Index(fields=["tenant", "is_active", "auto_detect_enabled"], name="billing_pay_tenant__5b1c2e_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True, help_text="When the row was last written; drives reconciliation and stuck-event scans")),
                ("metadata", models.JSONField(blank=True, default=dict, help_text="Flexible key-value metadata storage")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                ("name", models.CharField(help_text="Product name", max_length=255)),
                (
                    "product_type",
                    models.CharField(
                        choices=[("course", "Course"), ("program", "Program")],
                        default="course",
                        help_text="Whether the product grants a course or a program",
                        max_length=20,
                    ),
                ),
                (
                    "price",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Price in major currency units",
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                    ),
                ),
                ("currency", models.CharField(default="usd", help_text="ISO 4217 currency code (lowercase)", max_length=3)),
                ("auto_assign_payment_plan", models.BooleanField(default=False, help_text="Pick the plan with auto-detection rules")),
                ("is_active", models.BooleanField(default=True, help_text="Whether the product can be purchased")),
                ("course", models.ForeignKey(blank=True, help_text="Course granted (course products)", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="products", to="billing.course")),
                ("default_payment_plan", models.ForeignKey(blank=True, help_text="Plan used when no other plan applies", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="default_for_products", to="billing.paymentplan")),
                ("forced_payment_plan", models.ForeignKey(blank=True, help_text="Plan always used for this product", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="forced_for_products", to="billing.paymentplan")),
                ("program", models.ForeignKey(blank=True, help_text="Program granted (program products)", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="products", to="billing.program")),
                ("tenant", models.ForeignKey(help_text="Tenant selling the product", on_delete=django.db.models.deletion.CASCADE, related_name="products", to="billing.tenant")),
            ],
            options={
                "ordering": ["name"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("course__isnull", False), ("program__isnull", True)),
                            models.Q(("course__isnull", True), ("program__isnull", False)),
                            _connector="OR",
                        ),
                        name="product_grants_course_or_program",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("price__gte", 0)),
                        name="product_price_non_negative",
                    ),
                ],
            },
        ),
        # ======================================================================
        # Enrollment & Schedule
        # ======================================================================
        migrations.CreateModel(
            name="Enrollment",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True, help_text="When the row was last written; drives reconciliation and stuck-event scans")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("active", "Active"), ("completed", "Completed"), ("cancelled", "Cancelled")],
                        db_index=True,
                        default="pending",
                        help_text="Enrollment lifecycle status",
                        max_length=20,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("partial", "Partial"), ("paid", "Paid")],
                        db_index=True,
                        default="pending",
                        help_text="Aggregate payment status derived from schedule rows",
                        max_length=20,
                    ),
                ),
                ("total_amount", models.DecimalField(decimal_places=2, help_text="Total owed (major currency units)", max_digits=12)),
                ("paid_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Sum of paid schedule rows (major currency units)", max_digits=12)),
                ("currency", models.CharField(default="usd", help_text="ISO 4217 currency code (lowercase)", max_length=3)),
                ("stripe_customer_id", models.CharField(blank=True, help_text="Stripe Customer ID (cus_xxx) carrying the saved payment method", max_length=255, null=True)),
                ("enrolled_at", models.DateTimeField(blank=True, help_text="When the learner enrolled", null=True)),
                ("expires_at", models.DateTimeField(blank=True, help_text="When access ends, if ever", null=True)),
                ("next_payment_date", models.DateTimeField(blank=True, help_text="Due date of the earliest open schedule row", null=True)),
                ("payment_plan", models.ForeignKey(blank=True, help_text="Plan used to generate the payment schedule", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="enrollments", to="billing.paymentplan")),
                ("product", models.ForeignKey(help_text="Product purchased", on_delete=django.db.models.deletion.PROTECT, related_name="enrollments", to="billing.product")),
                ("tenant", models.ForeignKey(help_text="Tenant the enrollment belongs to", on_delete=django.db.models.deletion.PROTECT, related_name="enrollments", to="billing.tenant")),
                ("user", models.ForeignKey(help_text="Enrolled learner", on_delete=django.db.models.deletion.PROTECT, related_name="enrollments", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Enrollment",
                "verbose_name_plural": "Enrollments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["tenant", "user"], name="billing_enr_tenant__8d0e4a_idx"),
                    models.Index(fields=["tenant", "payment_status"], name="billing_enr_tenant__c27f91_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("user", "product"), name="one_enrollment_per_user_product"),
                    models.CheckConstraint(condition=models.Q(("total_amount__gte", 0)), name="enrollment_total_non_negative"),
                    models.CheckConstraint(condition=models.Q(("paid_amount__gte", 0)), name="enrollment_paid_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentSchedule",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True, help_text="When the row was last written; drives reconciliation and stuck-event scans")),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                ("payment_number", models.PositiveSmallIntegerField(help_text="1-based sequence within the enrollment")),
                (
                    "payment_type",
                    models.CharField(
                        choices=[
                            ("deposit", "Deposit"),
                            ("installment", "Installment"),
                            ("one_time", "One Time"),
                            ("subscription_cycle", "Subscription Cycle"),
                        ],
                        help_text="Deposit, installment, one-time or subscription cycle",
                        max_length=30,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, help_text="Face amount (major currency units)", max_digits=12)),
                ("currency", models.CharField(default="usd", help_text="ISO 4217 currency code (lowercase), matches the enrollment", max_length=3)),
                ("scheduled_date", models.DateTimeField(db_index=True, help_text="When the payment is due")),
                ("original_due_date", models.DateTimeField(help_text="Due date as generated, before any adjustment")),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                            ("adjusted", "Adjusted"),
                            ("paused", "Paused"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current status (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("stripe_invoice_id", models.CharField(blank=True, db_index=True, help_text="Stripe Invoice ID (in_xxx)", max_length=255, null=True)),
                ("stripe_payment_intent_id", models.CharField(blank=True, db_index=True, help_text="Stripe PaymentIntent ID (pi_xxx)", max_length=255, null=True)),
                ("paid_date", models.DateTimeField(blank=True, help_text="When the payment settled", null=True)),
                ("refunded_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Cumulative refunded amount (major currency units)", max_digits=12)),
                ("refunded_at", models.DateTimeField(blank=True, help_text="When the latest refund was issued", null=True)),
                ("refund_reason", models.TextField(blank=True, help_text="Reason given for the latest refund", null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0, help_text="Number of failed collection attempts")),
                ("next_retry_date", models.DateTimeField(blank=True, help_text="Earliest time the sweep may retry (null = no further retry)", null=True)),
                ("last_error", models.TextField(blank=True, help_text="Most recent collection error", null=True)),
                ("paused_at", models.DateTimeField(blank=True, help_text="When payments were paused", null=True)),
                ("paused_reason", models.TextField(blank=True, help_text="Why payments were paused", null=True)),
                ("resumed_at", models.DateTimeField(blank=True, help_text="When payments resumed", null=True)),
                ("adjustment_history", models.JSONField(blank=True, default=list, help_text="Audit records of admin adjustments, pauses and resumes")),
                ("enrollment", models.ForeignKey(help_text="Enrollment this payment is part of", on_delete=django.db.models.deletion.PROTECT, related_name="payment_schedules", to="billing.enrollment")),
                ("paused_by", models.ForeignKey(blank=True, help_text="Admin who paused the payment", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("tenant", models.ForeignKey(help_text="Tenant the payment belongs to", on_delete=django.db.models.deletion.PROTECT, related_name="payment_schedules", to="billing.tenant")),
            ],
            options={
                "verbose_name": "Payment Schedule",
                "verbose_name_plural": "Payment Schedules",
                "ordering": ["enrollment", "payment_number"],
                "indexes": [
                    models.Index(fields=["status", "scheduled_date"], name="billing_pay_status_3e7a10_idx"),
                    models.Index(fields=["tenant", "status", "scheduled_date"], name="billing_pay_tenant__9f42d6_idx"),
                    models.Index(fields=["enrollment", "status"], name="billing_pay_enrollm_61b0c3_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("enrollment", "payment_number"), name="unique_payment_number_per_enrollment"),
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="payment_schedule_amount_positive"),
                    models.CheckConstraint(
                        condition=models.Q(("refunded_amount__gte", 0), ("refunded_amount__lte", models.F("amount"))),
                        name="payment_schedule_refund_within_amount",
                    ),
                ],
            },
        ),
        # ======================================================================
        # Ledger & Webhooks
        # ======================================================================
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True, help_text="When the row was last written; drives reconciliation and stuck-event scans")),
                ("metadata", models.JSONField(blank=True, default=dict, help_text="Flexible key-value metadata storage")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                ("stripe_payment_intent_id", models.CharField(blank=True, help_text="Stripe PaymentIntent ID (pi_xxx)", max_length=255, null=True, unique=True)),
                ("stripe_invoice_id", models.CharField(blank=True, db_index=True, help_text="Stripe Invoice ID (in_xxx)", max_length=255, null=True)),
                ("amount", models.DecimalField(decimal_places=2, help_text="Amount collected (major currency units)", max_digits=12)),
                ("currency", models.CharField(default="usd", help_text="ISO 4217 currency code (lowercase)", max_length=3)),
                ("payment_type", models.CharField(blank=True, default="", help_text="Payment type copied from the schedule row", max_length=30)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                            ("partially_refunded", "Partially Refunded"),
                        ],
                        db_index=True,
                        default="succeeded",
                        help_text="Ledger status",
                        max_length=20,
                    ),
                ),
                ("paid_at", models.DateTimeField(blank=True, help_text="When the charge settled", null=True)),
                ("refunded_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Cumulative refunded amount (major currency units)", max_digits=12)),
                ("refunded_at", models.DateTimeField(blank=True, help_text="When the latest refund was issued", null=True)),
                ("refund_reason", models.TextField(blank=True, help_text="Reason given for the latest refund", null=True)),
                ("enrollment", models.ForeignKey(help_text="Enrollment the payment belongs to", on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="billing.enrollment")),
                ("payment_schedule", models.ForeignKey(blank=True, help_text="Schedule row settled by this payment", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="billing.paymentschedule")),
                ("tenant", models.ForeignKey(help_text="Tenant the payment belongs to", on_delete=django.db.models.deletion.PROTECT, related_name="payments", to="billing.tenant")),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["enrollment", "status"], name="billing_pay_enrollm_a4d8e2_idx"),
                    models.Index(fields=["payment_schedule", "status"], name="billing_pay_payment_07c5b9_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="payment_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When the row was inserted")),
                ("updated_at", models.DateTimeField(auto_now=True, db_index=True, help_text="When the row was last written; drives reconciliation and stuck-event scans")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier (UUID v4)", primary_key=True, serialize=False)),
                ("stripe_event_id", models.CharField(db_index=True, help_text="Stripe Event ID (evt_xxx)", max_length=255)),
                ("event_type", models.CharField(db_index=True, help_text="Stripe event type (e.g., 'invoice.paid')", max_length=100)),
                ("payload", models.JSONField(help_text="Full webhook payload from Stripe (JSON)")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, help_text="When event was successfully processed", null=True)),
                ("error_message", models.TextField(blank=True, help_text="Error message if processing failed", null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0, help_text="Number of processing attempts")),
                ("tenant", models.ForeignKey(help_text="Tenant whose Stripe account sent the event", on_delete=django.db.models.deletion.CASCADE, related_name="webhook_events", to="billing.tenant")),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="billing_web_status_5c2f8d_idx"),
                    models.Index(fields=["event_type", "created_at"], name="billing_web_event_t_e913a7_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("tenant", "stripe_event_id"), name="unique_stripe_event_per_tenant"),
                ],
            },
        ),
    ]
