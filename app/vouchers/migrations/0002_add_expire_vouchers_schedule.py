"""
Add celery-beat schedule for the daily voucher expiry sweep.

This migration creates the periodic task schedule for the
expire_vouchers task, which runs every day at 02:30 UTC to expire
vouchers past their expiry date and lapse their subscriptions.
"""

from django.db import migrations


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for expiring vouchers."""
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Daily at 02:30 UTC
    schedule, _ = CrontabSchedule.objects.get_or_create(
        minute="30",
        hour="2",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
        timezone="UTC",
    )

    PeriodicTask.objects.get_or_create(
        name="Expire Meal Vouchers",
        defaults={
            "task": "vouchers.tasks.expire_vouchers",
            "crontab": schedule,
            "enabled": True,
            "description": (
                "Marks AVAILABLE/RESTORED vouchers past their expiry date as "
                "EXPIRED and lapses subscriptions whose vouchers have expired."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name="Expire Meal Vouchers",
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("vouchers", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
