from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from api.exceptions import InvalidStateTransition
from api.models import UploadRecord


class Command(BaseCommand):
    help = 'Mark uploads stuck in "processing" (e.g. after a worker crash) as failed.'

    def add_arguments(self, parser):
        parser.add_argument(
            "--minutes",
            type=int,
            default=30,
            help="Only touch records that have been processing for longer than this.",
        )

    def handle(self, *args, **options):
        cutoff = timezone.now() - timedelta(minutes=options["minutes"])
        stale = UploadRecord.objects.filter(
            status=UploadRecord.Status.PROCESSING, updated_at__lt=cutoff
        )
        failed = 0
        for record in stale:
            try:
                record.mark_failed("Processing did not finish")
            except InvalidStateTransition:
                # Finished while we were iterating
                self.stdout.write(self.style.WARNING(f'Upload {record.pk} is no longer processing, skipped'))
                continue
            failed += 1
            self.stdout.write(self.style.WARNING(f'Marked upload {record.pk} ({record.original_name}) as failed'))
        self.stdout.write(self.style.SUCCESS(f'Stale upload cleanup complete. {failed} upload(s) failed.'))
