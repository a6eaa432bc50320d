"""
Add celery-beat schedules for the periodic billing jobs.

- Daily sweep invoicing upcoming and retry-due payments
- Daily reconciliation against Stripe
- Webhook retry every 15 minutes, stuck-event recovery every 30 minutes
- Nightly cleanup of old processed webhook events
"""

from django.db import migrations

CRONTAB_TASKS = [
    {
        "name": "Billing: Sweep Upcoming Schedules",
        "task": "billing.tasks.sweep_upcoming_schedules",
        "hour": "6",
        "minute": "0",
        "description": "Creates invoices for payments due within the sweep horizon and retries failed ones.",
    },
    {
        "name": "Billing: Reconcile Processor Ledger",
        "task": "billing.tasks.reconcile_processor_ledger",
        "hour": "4",
        "minute": "0",
        "description": "Re-reads recent invoices and refunds from Stripe and converges local state.",
    },
    {
        "name": "Billing: Cleanup Old Webhooks",
        "task": "billing.tasks.cleanup_old_webhooks",
        "hour": "3",
        "minute": "30",
        "description": "Deletes processed webhook events older than 90 days.",
    },
]

INTERVAL_TASKS = [
    {
        "name": "Billing: Retry Failed Webhooks",
        "task": "billing.tasks.retry_failed_webhooks",
        "every": 15,
        "description": "Requeues failed webhook events with attempts left.",
    },
    {
        "name": "Billing: Cleanup Stuck Webhooks",
        "task": "billing.tasks.cleanup_stuck_webhooks",
        "every": 30,
        "description": "Marks webhook events stuck in processing as failed so they are retried.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for spec in CRONTAB_TASKS:
        schedule, _ = CrontabSchedule.objects.get_or_create(
            minute=spec["minute"],
            hour=spec["hour"],
            day_of_week="*",
            day_of_month="*",
            month_of_year="*",
        )
        PeriodicTask.objects.get_or_create(
            name=spec["name"],
            defaults={
                "task": spec["task"],
                "crontab": schedule,
                "enabled": True,
                "description": spec["description"],
            },
        )

    for spec in INTERVAL_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=spec["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=spec["name"],
            defaults={
                "task": spec["task"],
                "interval": schedule,
                "enabled": True,
                "description": spec["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    names = [spec["name"] for spec in CRONTAB_TASKS + INTERVAL_TASKS]
    PeriodicTask.objects.filter(name__in=names).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
