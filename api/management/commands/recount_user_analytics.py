from django.core.management.base import BaseCommand
from django.db.models import Count, Q

from api.models import UploadRecord, User


class Command(BaseCommand):
    help = (
        'Raise files_uploaded and charts_created to at least the number of completed uploads '
        'and charts still stored. Both are lifetime counters, so they are never lowered.'
    )

    def handle(self, *args, **options):
        users = User.objects.annotate(
            upload_total=Count(
                "uploads",
                filter=Q(uploads__status=UploadRecord.Status.COMPLETED),
                distinct=True,
            ),
            chart_total=Count("charts", distinct=True),
        )
        fixed = 0
        for user in users:
            files_uploaded = max(user.files_uploaded, user.upload_total)
            charts_created = max(user.charts_created, user.chart_total)
            if (files_uploaded, charts_created) == (user.files_uploaded, user.charts_created):
                continue
            User.objects.filter(pk=user.pk).update(
                files_uploaded=files_uploaded, charts_created=charts_created
            )
            fixed += 1
            self.stdout.write(
                f'{user.email}: files_uploaded {user.files_uploaded} -> {files_uploaded}, '
                f'charts_created {user.charts_created} -> {charts_created}'
            )
        self.stdout.write(self.style.SUCCESS(f'Recount complete. {fixed} user(s) updated.'))
