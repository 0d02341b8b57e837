"""Upload ingestion: store -> record -> parse -> project -> respond.

Each call handles one uploaded file inside the request that carried it.
Nothing is retried; a failed upload has to be submitted again and gets a
new UploadRecord.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.utils import timezone
from django.utils.crypto import get_random_string

from .charts import ChartProjection, project_chart_data
from .exceptions import InvalidRequest, ParseError, ProcessingFailed, UnsupportedMediaType
from .models import UploadRecord
from .parsers import describe_columns, extract_data, is_supported_mimetype, read_workbook
from .tasks import record_user_activity

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    chart_projection: Optional[ChartProjection]
    record_id: int
    sheet_count: int
    total_rows: int
    filename: str

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "fileId": self.record_id,
            "data": self.chart_projection.to_chart_data() if self.chart_projection else None,
            "metadata": {
                "filename": self.filename,
                "sheets": self.sheet_count,
                "totalRows": self.total_rows,
            },
        }


def stored_upload_name(original_name: str) -> str:
    ext = os.path.splitext(original_name)[1].lower()
    stamp = int(timezone.now().timestamp() * 1000)
    return f"uploads/file-{stamp}-{get_random_string(9, '0123456789')}{ext}"


def _create_record(uploaded_file, owner_id, mimetype) -> UploadRecord:
    storage = UploadRecord._meta.get_field("file").storage
    original_name = os.path.basename(uploaded_file.name or "upload")
    stored_name = storage.save(stored_upload_name(original_name), uploaded_file)

    try:
        return UploadRecord.objects.create_processing(
            uploaded_by_id=owner_id,
            file=stored_name,
            filename=os.path.basename(stored_name),
            original_name=original_name,
            mimetype=mimetype,
            size=uploaded_file.size,
        )
    except Exception:
        # No record to point at the file, so nothing would ever clean it up.
        logger.warning("Upload record not created, removing stored file %s", stored_name)
        storage.delete(stored_name)
        raise


def ingest(uploaded_file, owner_id) -> IngestionResult:
    """Run one uploaded spreadsheet through the ingestion pipeline.

    Raises:
        InvalidRequest: file or owner missing (nothing persisted).
        UnsupportedMediaType: declared type is not XLSX/XLS/CSV (nothing persisted).
        ProcessingFailed: the file could not be parsed or its data could not be
            extracted; the record is kept in the ``failed`` state together
            with the stored file.
    """
    if uploaded_file is None:
        raise InvalidRequest("No file uploaded")
    if not owner_id:
        raise InvalidRequest("Unauthorized. User ID is required.")

    mimetype = getattr(uploaded_file, "content_type", None)
    if not is_supported_mimetype(mimetype):
        raise UnsupportedMediaType(mimetype)

    record = _create_record(uploaded_file, owner_id, mimetype)
    logger.info("Processing upload %s (%s) for user %s", record.pk, record.original_name, owner_id)

    try:
        with record.file.open("rb") as handle:
            frames = read_workbook(handle, record.mimetype)
        extracted_data = extract_data(frames)
        metadata = describe_columns(frames, record.original_name)
    except Exception as exc:
        message = str(exc) or type(exc).__name__
        if isinstance(exc, ParseError):
            logger.warning("Upload %s failed: %s", record.pk, message)
        else:
            logger.exception("Upload %s failed while extracting data", record.pk)
        record.mark_failed(message)
        raise ProcessingFailed(record.pk, message) from exc

    record.mark_completed(extracted_data, metadata)

    projection = project_chart_data(extracted_data)
    record_user_activity(owner_id, "files_uploaded")

    summary = extracted_data["summary"]
    logger.info(
        "Upload %s completed: %s sheet(s), %s row(s)",
        record.pk, summary["totalSheets"], summary["totalRows"],
    )
    return IngestionResult(
        chart_projection=projection,
        record_id=record.pk,
        sheet_count=len(extracted_data["sheets"]),
        total_rows=summary["totalRows"],
        filename=record.original_name,
    )
