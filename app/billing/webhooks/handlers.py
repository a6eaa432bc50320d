"""
Webhook event handlers for Stripe events.

This module provides a handler registry and implementations for the
events that settle, fail or refund schedule rows.

Events are mapped back to a schedule row through the `schedule_id` the
engine writes into every invoice and intent's metadata, falling back to
the stored invoice or intent id. Lookups are always scoped to the tenant
whose endpoint received the event.

Usage:
    from billing.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone as dt_timezone
from typing import Callable

from django.core.exceptions import ValidationError as DjangoValidationError

from core.services import ServiceResult

from billing.adapters import invoice_payment_intent_id
from billing.models import PaymentSchedule, WebhookEvent
from billing.money import from_minor_units
from billing.services import SettlementReconciler

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("invoice.paid")
        def handle_invoice_paid(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to its handler.

    Events without a handler succeed, so Stripe stops resending them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return handler(webhook_event)


# =============================================================================
# Row Lookup
# =============================================================================


def find_schedule(
    webhook_event: WebhookEvent,
    invoice_id: str | None = None,
    payment_intent_id: str | None = None,
) -> PaymentSchedule | None:
    """Resolve the row an event refers to: metadata, then invoice, then intent."""
    rows = PaymentSchedule.objects.filter(tenant_id=webhook_event.tenant_id)
    metadata = webhook_event.get_object().get("metadata") or {}

    schedule_id = metadata.get("schedule_id")
    if schedule_id:
        try:
            schedule = rows.filter(pk=schedule_id).first()
        except DjangoValidationError:
            schedule = None
        if schedule is not None:
            return schedule

    if invoice_id:
        schedule = rows.filter(stripe_invoice_id=invoice_id).first()
        if schedule is not None:
            return schedule

    if payment_intent_id:
        return rows.filter(stripe_payment_intent_id=payment_intent_id).first()
    return None


def _unmatched(webhook_event: WebhookEvent) -> ServiceResult:
    logger.warning(
        f"{webhook_event.event_type}: no schedule row matches event",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "object_id": webhook_event.get_object_id(),
            "tenant_id": str(webhook_event.tenant_id),
        },
    )
    return ServiceResult.success(None)


def _timestamp(value) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """Settle the row a checkout or customer-less intent was created for."""
    intent = webhook_event.get_object()
    payment_intent_id = intent.get("id")

    schedule = find_schedule(webhook_event, payment_intent_id=payment_intent_id)
    if schedule is None:
        return _unmatched(webhook_event)

    return SettlementReconciler.mark_paid(
        schedule,
        payment_intent_id=payment_intent_id,
        paid_at=_timestamp(intent.get("created")),
    )


@register_handler("payment_intent.payment_failed")
def handle_payment_intent_failed(webhook_event: WebhookEvent) -> ServiceResult:
    intent = webhook_event.get_object()
    payment_intent_id = intent.get("id")

    schedule = find_schedule(webhook_event, payment_intent_id=payment_intent_id)
    if schedule is None:
        return _unmatched(webhook_event)

    error = intent.get("last_payment_error") or {}
    message = error.get("message") or "Payment failed"
    return SettlementReconciler.mark_failed(schedule, message)


# =============================================================================
# Invoice Handlers
# =============================================================================


@register_handler("invoice.paid")
@register_handler("invoice.payment_succeeded")
def handle_invoice_paid(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Settle the row an invoice was created for.

    Stripe sends both invoice.paid and invoice.payment_succeeded for the
    same payment; the second one is a no-op.
    """
    invoice = webhook_event.get_object()
    invoice_id = invoice.get("id")
    payment_intent_id = invoice_payment_intent_id(invoice)

    schedule = find_schedule(webhook_event, invoice_id=invoice_id, payment_intent_id=payment_intent_id)
    if schedule is None:
        return _unmatched(webhook_event)

    transitions = invoice.get("status_transitions") or {}
    return SettlementReconciler.mark_paid(
        schedule,
        payment_intent_id=payment_intent_id,
        invoice_id=invoice_id,
        paid_at=_timestamp(transitions.get("paid_at")),
    )


@register_handler("invoice.payment_failed")
def handle_invoice_payment_failed(webhook_event: WebhookEvent) -> ServiceResult:
    invoice = webhook_event.get_object()
    invoice_id = invoice.get("id")

    schedule = find_schedule(
        webhook_event,
        invoice_id=invoice_id,
        payment_intent_id=invoice_payment_intent_id(invoice),
    )
    if schedule is None:
        return _unmatched(webhook_event)

    message = f"Invoice payment failed (attempt {invoice.get('attempt_count') or 1})"
    return SettlementReconciler.mark_failed(schedule, message)


@register_handler("invoice.overdue")
def handle_invoice_overdue(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Record a sent invoice that passed its due date unpaid.

    The row leaves processing for failed, so the access gate counts it as
    overdue once the grace period passes and the sweep retries it.
    """
    invoice = webhook_event.get_object()
    invoice_id = invoice.get("id")

    schedule = find_schedule(
        webhook_event,
        invoice_id=invoice_id,
        payment_intent_id=invoice_payment_intent_id(invoice),
    )
    if schedule is None:
        return _unmatched(webhook_event)

    return SettlementReconciler.mark_failed(schedule, "Invoice past due date")


# =============================================================================
# Refund Handlers
# =============================================================================


@register_handler("charge.refunded")
def handle_charge_refunded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Apply Stripe's cumulative refunded total to the row.

    Refunds the engine issued itself are already recorded, so for them
    this is a no-op; dashboard refunds are picked up here.
    """
    charge = webhook_event.get_object()
    payment_intent_id = charge.get("payment_intent")
    currency = charge.get("currency") or "usd"

    schedule = find_schedule(
        webhook_event,
        invoice_id=charge.get("invoice"),
        payment_intent_id=payment_intent_id,
    )
    if schedule is None:
        return _unmatched(webhook_event)

    refunds = (charge.get("refunds") or {}).get("data") or []
    latest = refunds[0] if refunds else {}
    return SettlementReconciler.apply_external_refund(
        schedule,
        from_minor_units(charge.get("amount_refunded"), currency),
        reason=latest.get("reason"),
        refund_id=latest.get("id"),
        refunded_at=_timestamp(latest.get("created")),
    )
