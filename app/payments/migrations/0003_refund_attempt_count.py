"""
Track gateway attempts separately from the retry budget.

Changes:
    - Add Refund.attempt_count, which manual retry never resets, so each
      gateway attempt gets its own idempotency key
    - Backfill it from the PROCESSING entries already in status_timeline
"""

from django.db import migrations, models


def backfill_attempt_count(apps, schema_editor):
    """Count past PROCESSING timeline entries for existing refunds."""
    Refund = apps.get_model("payments", "Refund")

    for refund in Refund.objects.only("id", "status_timeline").iterator():
        attempts = sum(
            1
            for entry in refund.status_timeline or []
            if entry.get("status") == "PROCESSING"
        )
        if attempts:
            Refund.objects.filter(pk=refund.pk).update(attempt_count=attempts)


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0002_add_retry_failed_refunds_schedule"),
    ]

    operations = [
        migrations.AddField(
            model_name="refund",
            name="attempt_count",
            field=models.PositiveIntegerField(
                default=0,
                help_text="Gateway attempts made over the refund's lifetime (never reset)",
            ),
        ),
        migrations.RunPython(backfill_attempt_count, migrations.RunPython.noop),
    ]
