"""
Add celery-beat schedule for the failed refund retry sweep.

This migration creates the periodic task schedule for the
retry_failed_refunds task, which runs every 15 minutes to re-process
FAILED refunds whose next retry time has passed.
"""

from django.db import migrations


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for retrying failed refunds."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Create interval schedule: every 15 minutes
    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name="Retry Failed Refunds",
        defaults={
            "task": "payments.tasks.retry_failed_refunds",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Re-processes FAILED refunds whose next_retry_at has passed "
                "and whose automatic retry budget is not exhausted."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name="Retry Failed Refunds",
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
