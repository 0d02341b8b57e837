from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import CommandError, call_command
from django.utils import timezone

from api.models import Chart, UploadRecord, User

pytestmark = pytest.mark.django_db


def processing_record(owner, minutes_ago):
    record = UploadRecord.objects.create_processing(
        uploaded_by=owner,
        file=f"uploads/file-{minutes_ago}.xlsx",
        filename=f"file-{minutes_ago}.xlsx",
        original_name="report.xlsx",
        mimetype="text/csv",
        size=1,
    )
    UploadRecord.objects.filter(pk=record.pk).update(
        updated_at=timezone.now() - timedelta(minutes=minutes_ago)
    )
    return record


def test_fail_stale_uploads(user):
    stale = processing_record(user, 120)
    fresh = processing_record(user, 5)
    out = StringIO()

    call_command("fail_stale_uploads", "--minutes", "60", stdout=out)

    stale.refresh_from_db()
    fresh.refresh_from_db()
    assert stale.status == UploadRecord.Status.FAILED
    assert stale.processing_error == "Processing did not finish"
    assert fresh.status == UploadRecord.Status.PROCESSING
    assert "1 upload(s) failed" in out.getvalue()


def test_recount_counts_completed_uploads_only(user):
    processing_record(user, 1).mark_completed({"sheets": [], "summary": {}})
    processing_record(user, 2).mark_failed("File is not a zip file")
    processing_record(user, 3)
    Chart.objects.create(title="A", type=Chart.Type.PIE, created_by=user)
    out = StringIO()

    call_command("recount_user_analytics", stdout=out)

    user.refresh_from_db()
    assert (user.files_uploaded, user.charts_created) == (1, 1)
    assert "1 user(s) updated" in out.getvalue()


def test_recount_never_lowers_lifetime_counters(user, make_user):
    processing_record(user, 1).mark_completed({"sheets": [], "summary": {}})
    User.objects.filter(pk=user.pk).update(files_uploaded=4, charts_created=7)
    idle = make_user("idle@example.com")
    out = StringIO()

    call_command("recount_user_analytics", stdout=out)

    user.refresh_from_db()
    idle.refresh_from_db()
    assert (user.files_uploaded, user.charts_created) == (4, 7)
    assert (idle.files_uploaded, idle.charts_created) == (0, 0)
    assert "0 user(s) updated" in out.getvalue()


def test_promote_admin(user):
    call_command("promote_admin", user.email.upper(), stdout=StringIO())

    user.refresh_from_db()
    assert user.is_admin
    assert user.is_staff


def test_promote_admin_unknown_email(db):
    with pytest.raises(CommandError):
        call_command("promote_admin", "nobody@example.com")
