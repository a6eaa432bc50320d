"""
Billing admin configuration.

Schedule status is FSM-managed and read-only here; staff change payments
through the admin actions, which call the service layer.
"""

from django.contrib import admin, messages

from billing.models import (
    Course,
    Enrollment,
    Payment,
    PaymentIntegrationCredential,
    PaymentPlan,
    PaymentSchedule,
    Product,
    Program,
    Tenant,
    WebhookEvent,
)
from billing.services import ScheduleManager


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "payment_grace_days", "is_active", "created_at"]
    list_filter = ["is_active"]
    search_fields = ["name", "slug"]
    prepopulated_fields = {"slug": ("name",)}


@admin.register(PaymentIntegrationCredential)
class PaymentIntegrationCredentialAdmin(admin.ModelAdmin):
    """Secret key and webhook secret are write-only: never listed or searched."""

    list_display = ["tenant", "integration_key", "publishable_key", "is_enabled", "created_at"]
    list_filter = ["integration_key", "is_enabled"]
    search_fields = ["tenant__name", "publishable_key"]


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ["title", "tenant", "created_at"]
    list_filter = ["tenant"]
    search_fields = ["title"]


@admin.register(Program)
class ProgramAdmin(admin.ModelAdmin):
    list_display = ["title", "tenant", "created_at"]
    list_filter = ["tenant"]
    search_fields = ["title"]
    filter_horizontal = ["courses"]


@admin.register(PaymentPlan)
class PaymentPlanAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "tenant",
        "plan_type",
        "priority",
        "auto_detect_enabled",
        "is_default",
        "is_active",
    ]
    list_filter = ["plan_type", "auto_detect_enabled", "is_default", "is_active"]
    search_fields = ["name"]

    fieldsets = (
        (None, {"fields": ("tenant", "name", "description", "plan_type", "is_active", "is_default")}),
        (
            "Deposit + Installments",
            {
                "fields": (
                    "deposit_type",
                    "deposit_amount",
                    "deposit_percentage",
                    "installment_count",
                    "installment_frequency",
                    "custom_frequency_days",
                ),
            },
        ),
        (
            "Subscription",
            {
                "fields": (
                    "subscription_interval",
                    "subscription_trial_days",
                    "subscription_billing_cycles",
                ),
                "classes": ("collapse",),
            },
        ),
        ("Auto-detection", {"fields": ("auto_detect_enabled", "auto_detect_rules", "priority")}),
    )


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["name", "tenant", "product_type", "price", "currency", "is_active"]
    list_filter = ["product_type", "currency", "is_active"]
    search_fields = ["name"]


class PaymentScheduleInline(admin.TabularInline):
    model = PaymentSchedule
    extra = 0
    can_delete = False
    fields = ["payment_number", "payment_type", "amount", "scheduled_date", "status", "refunded_amount"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "user",
        "product",
        "status",
        "payment_status",
        "paid_amount",
        "total_amount",
        "next_payment_date",
    ]
    list_filter = ["status", "payment_status", "tenant"]
    search_fields = ["id", "user__email", "stripe_customer_id"]
    readonly_fields = ["id", "paid_amount", "payment_status", "next_payment_date", "created_at", "updated_at"]
    inlines = [PaymentScheduleInline]
    actions = ["pause_payments", "resume_payments"]

    @admin.action(description="Pause payments")
    def pause_payments(self, request, queryset):
        paused = 0
        for enrollment in queryset:
            result = ScheduleManager.pause_enrollment_payments(
                enrollment.id, reason="Paused from admin", paused_by=request.user
            )
            paused += result.data or 0
        self.message_user(request, f"Paused {paused} payment(s).", messages.SUCCESS)

    @admin.action(description="Resume payments")
    def resume_payments(self, request, queryset):
        resumed = 0
        for enrollment in queryset:
            result = ScheduleManager.resume_enrollment_payments(enrollment.id, resumed_by=request.user)
            resumed += result.data or 0
        self.message_user(request, f"Resumed {resumed} payment(s).", messages.SUCCESS)


@admin.register(PaymentSchedule)
class PaymentScheduleAdmin(admin.ModelAdmin):
    """
    Admin configuration for PaymentSchedule.

    Status changes go through the service layer, not the change form.
    """

    list_display = [
        "id",
        "enrollment",
        "payment_number",
        "amount",
        "currency",
        "scheduled_date",
        "status",
        "retry_count",
    ]
    list_filter = ["status", "payment_type", "currency"]
    search_fields = ["id", "stripe_invoice_id", "stripe_payment_intent_id", "enrollment__user__email"]
    readonly_fields = [
        "id",
        "status",
        "version",
        "stripe_invoice_id",
        "stripe_payment_intent_id",
        "paid_date",
        "refunded_amount",
        "refunded_at",
        "retry_count",
        "next_retry_date",
        "last_error",
        "adjustment_history",
        "created_at",
        "updated_at",
    ]
    ordering = ["scheduled_date"]
    actions = ["retry_failed"]

    @admin.action(description="Retry failed or adjusted payments")
    def retry_failed(self, request, queryset):
        retried = 0
        for schedule in queryset:
            if ScheduleManager.retry_schedule(schedule.id).success:
                retried += 1
        self.message_user(request, f"Requeued {retried} payment(s).", messages.SUCCESS)

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ["id", "enrollment", "amount", "currency", "status", "refunded_amount", "paid_at"]
    list_filter = ["status", "currency"]
    search_fields = ["id", "stripe_payment_intent_id", "stripe_invoice_id"]
    readonly_fields = [field.name for field in Payment._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "tenant",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["stripe_event_id"]
    readonly_fields = [field.name for field in WebhookEvent._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False
