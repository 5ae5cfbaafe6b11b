from django.core.management.base import BaseCommand

from practice.lifecycle import run_auto_archive


class Command(BaseCommand):
    help = "Archive tasks that were completed more than AUTO_ARCHIVE_DAYS days ago. Run daily."

    def handle(self, *args, **options):
        archived = run_auto_archive()
        self.stdout.write(self.style.SUCCESS(f"Auto-archive complete. Tasks archived: {archived}"))
