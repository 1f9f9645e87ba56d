"""
Add the celery-beat schedules for refund reconciliation and webhook retries.

- reconcile_approved_refunds every 15 minutes settles APPROVED refunds
  whose Stripe outcome was never recorded locally.
- retry_failed_webhooks every 5 minutes re-queues failed and never-queued
  Stripe webhook events.
"""

from django.db import migrations

PERIODIC_TASKS = [
    {
        "name": "reconcile-approved-refunds",
        "task": "payments.workers.reconciliation_worker.reconcile_approved_refunds",
        "every": 15,
        "description": (
            "Checks APPROVED refunds older than the minimum age against "
            "Stripe and moves them to COMPLETED or FAILED."
        ),
    },
    {
        "name": "retry-failed-webhooks",
        "task": "payments.tasks.retry_failed_webhooks",
        "every": 5,
        "description": "Re-queues failed and never-queued Stripe webhook events.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")
    PeriodicTask.objects.filter(name__in=[entry["name"] for entry in PERIODIC_TASKS]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
