# Errors raised by the upload ingestion flow. Views map them to HTTP status codes.


class IngestionError(Exception):
    """Base class for ingestion failures."""


class InvalidRequest(IngestionError):
    """File or owner missing from the request."""


class UnsupportedMediaType(IngestionError):
    def __init__(self, mimetype):
        self.mimetype = mimetype
        super().__init__(
            f"Invalid file type '{mimetype}'. Only Excel and CSV files are allowed."
        )


class ParseError(IngestionError):
    """The spreadsheet container could not be decoded."""


class ProcessingFailed(IngestionError):
    """Parsing failed after the upload record was created and marked failed."""

    def __init__(self, record_id, message):
        self.record_id = record_id
        self.message = message
        super().__init__(message)


class InvalidStateTransition(Exception):
    """An upload record was asked to leave a terminal state."""

    def __init__(self, record_id, current, target):
        self.record_id = record_id
        self.current = current
        self.target = target
        super().__init__(
            f"Upload record {record_id} cannot move from '{current}' to '{target}'"
        )
