from django.core.management.base import BaseCommand

from practice.activity import purge_expired_activities


class Command(BaseCommand):
    help = "Delete activity log entries past their expiry date."

    def handle(self, *args, **options):
        deleted = purge_expired_activities()
        self.stdout.write(self.style.SUCCESS(f"Expired activity entries removed: {deleted}"))
