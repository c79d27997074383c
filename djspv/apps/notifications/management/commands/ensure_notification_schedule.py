from django.core.management.base import BaseCommand
from django_celery_beat.models import IntervalSchedule, PeriodicTask

TASK_NAME = "Retry failed distribution notifications"
TASK_PATH = "apps.notifications.tasks.retry_failed_notifications"


class Command(BaseCommand):
    help = "Register the periodic retry of failed distribution notifications with celery beat."

    def add_arguments(self, parser):
        parser.add_argument("--every", type=int, default=10, help="Interval in minutes (default 10).")
        parser.add_argument("--disable", action="store_true", help="Keep the task registered but disabled.")

    def handle(self, *args, **options):
        every = max(1, options["every"])
        schedule, _ = IntervalSchedule.objects.get_or_create(every=every, period=IntervalSchedule.MINUTES)
        task, created = PeriodicTask.objects.update_or_create(
            name=TASK_NAME,
            defaults={
                "task": TASK_PATH,
                "interval": schedule,
                "enabled": not options["disable"],
                "description": "Re-sends email/SMS for notifications whose delivery failed",
            },
        )
        verb = "Created" if created else "Updated"
        state = "enabled" if task.enabled else "disabled"
        self.stdout.write(self.style.SUCCESS(f"{verb} periodic task '{task.name}' every {every} minutes ({state})"))
