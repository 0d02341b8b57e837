import os
import re

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from api import pipeline, tasks
from api.exceptions import InvalidRequest, ProcessingFailed, UnsupportedMediaType
from api.models import UploadRecord
from api.parsers import XLS_MIMETYPE, XLSX_MIMETYPE
from api.pipeline import ingest, stored_upload_name
from conftest import csv_upload, xlsx_upload

pytestmark = pytest.mark.django_db


def stored_files(media_root):
    folder = media_root / "uploads"
    return sorted(os.listdir(folder)) if folder.exists() else []


def test_stored_upload_name_keeps_extension():
    name = stored_upload_name("Quarterly Report.XLSX")

    assert re.fullmatch(r"uploads/file-\d+-\d{9}\.xlsx", name)


def test_successful_ingestion(user, media_root):
    result = ingest(xlsx_upload(), user.pk)

    record = UploadRecord.objects.get(pk=result.record_id)
    assert record.status == UploadRecord.Status.COMPLETED
    assert record.uploaded_by_id == user.pk
    assert record.original_name == "sales.xlsx"
    assert record.mimetype == XLSX_MIMETYPE
    assert record.extracted_data["summary"] == {"totalSheets": 1, "totalRows": 3, "totalColumns": 2}
    assert record.metadata["headers"] == ["Month", "Sales"]
    assert stored_files(media_root) == [record.filename]

    assert result.chart_projection.labels == ["Jan", "Feb"]
    assert result.chart_projection.dataset.values == [100, 200]

    user.refresh_from_db()
    assert user.files_uploaded == 1


def test_response_shape(user):
    payload = ingest(xlsx_upload(), user.pk).to_response()

    assert payload["success"] is True
    assert isinstance(payload["fileId"], int)
    assert payload["metadata"] == {"filename": "sales.xlsx", "sheets": 1, "totalRows": 3}
    assert payload["data"]["labels"] == ["Jan", "Feb"]
    assert payload["data"]["datasets"][0]["label"] == "Sales"
    assert payload["data"]["datasets"][0]["data"] == [100, 200]


def test_header_only_file_completes_without_chart_data(user):
    result = ingest(xlsx_upload([("Sheet1", [["Month", "Sales"]])]), user.pk)

    assert result.to_response()["data"] is None
    assert UploadRecord.objects.get(pk=result.record_id).processed


def test_empty_workbook_completes(user):
    result = ingest(xlsx_upload([("Sheet1", [])]), user.pk)

    record = UploadRecord.objects.get(pk=result.record_id)
    assert record.status == UploadRecord.Status.COMPLETED
    assert record.extracted_data == {
        "sheets": [],
        "summary": {"totalSheets": 0, "totalRows": 0, "totalColumns": 0},
    }
    assert result.to_response()["metadata"]["sheets"] == 0


def test_csv_upload(user):
    result = ingest(csv_upload("Region,Revenue\nNorth,10\nSouth,12.5\n"), user.pk)

    assert result.chart_projection.labels == ["North", "South"]
    assert result.chart_projection.dataset.values == [10, 12.5]


def test_corrupt_file_leaves_failed_record(user, media_root):
    upload = SimpleUploadedFile("broken.xlsx", b"not really a workbook", content_type=XLSX_MIMETYPE)

    with pytest.raises(ProcessingFailed) as excinfo:
        ingest(upload, user.pk)

    record = UploadRecord.objects.get(pk=excinfo.value.record_id)
    assert record.status == UploadRecord.Status.FAILED
    assert record.processing_error
    assert record.processing_error == excinfo.value.message
    assert record.extracted_data is None
    # The stored file stays with the failed record
    assert stored_files(media_root) == [record.filename]

    user.refresh_from_db()
    assert user.files_uploaded == 0


def test_unsupported_type_persists_nothing(user, media_root):
    upload = SimpleUploadedFile("notes.txt", b"hello", content_type="text/plain")

    with pytest.raises(UnsupportedMediaType):
        ingest(upload, user.pk)

    assert not UploadRecord.objects.exists()
    assert stored_files(media_root) == []


def test_missing_file_or_owner(user, media_root):
    with pytest.raises(InvalidRequest):
        ingest(None, user.pk)
    with pytest.raises(InvalidRequest):
        ingest(xlsx_upload(), None)

    assert not UploadRecord.objects.exists()
    assert stored_files(media_root) == []


def test_record_creation_failure_removes_stored_file(user, media_root, monkeypatch):
    def fail(**fields):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(UploadRecord.objects, "create_processing", fail)

    with pytest.raises(RuntimeError):
        ingest(xlsx_upload(), user.pk)

    assert stored_files(media_root) == []


def test_counter_failure_does_not_fail_the_upload(user, monkeypatch, caplog):
    class BrokenTask:
        def delay(self, *args, **kwargs):
            raise ConnectionError("broker down")

    monkeypatch.setattr(tasks, "update_user_analytics_task", BrokenTask())

    result = ingest(xlsx_upload(), user.pk)

    assert UploadRecord.objects.get(pk=result.record_id).processed
    assert "Could not record files_uploaded" in caplog.text
    user.refresh_from_db()
    assert user.files_uploaded == 0


def test_each_upload_gets_its_own_record(user, media_root):
    first = ingest(xlsx_upload(), user.pk)
    second = ingest(xlsx_upload(), user.pk)

    assert first.record_id != second.record_id
    assert len(stored_files(media_root)) == 2
    user.refresh_from_db()
    assert user.files_uploaded == 2


def test_extraction_error_marks_record_failed(user, monkeypatch):
    def explode(frames, filename=""):
        raise KeyError("header")

    monkeypatch.setattr(pipeline, "describe_columns", explode)

    with pytest.raises(ProcessingFailed) as excinfo:
        ingest(xlsx_upload(), user.pk)

    record = UploadRecord.objects.get(pk=excinfo.value.record_id)
    assert record.status == UploadRecord.Status.FAILED
    assert record.processing_error == "'header'"


def test_csv_sent_as_excel_is_ingested(user):
    upload = SimpleUploadedFile("sales.csv", b"Month,Sales\nJan,100\nFeb,200,note\n", content_type=XLS_MIMETYPE)

    result = ingest(upload, user.pk)

    assert result.chart_projection.labels == ["Jan", "Feb"]
    assert result.chart_projection.dataset.values == [100, 200]
    assert UploadRecord.objects.get(pk=result.record_id).mimetype == XLS_MIMETYPE
