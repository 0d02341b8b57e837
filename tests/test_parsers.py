import datetime as dt
import io
from pathlib import Path

import pytest

from api.exceptions import ParseError, UnsupportedMediaType
from api.parsers import (
    CSV_MIMETYPE,
    OLE_SIGNATURE,
    XLS_MIMETYPE,
    XLSX_MIMETYPE,
    describe_columns,
    is_supported_mimetype,
    normalize_cell,
    parse_spreadsheet,
    read_workbook,
    sniff_engine,
)
from conftest import SALES_ROWS, make_xlsx

DATA_DIR = Path(__file__).parent / "data"


def test_supported_mimetypes_are_exact_strings():
    assert is_supported_mimetype("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")
    assert is_supported_mimetype("application/vnd.ms-excel")
    assert is_supported_mimetype("text/csv")
    assert not is_supported_mimetype("text/plain")
    assert not is_supported_mimetype("application/pdf")
    assert not is_supported_mimetype(None)


def test_single_sheet_rows_and_counts():
    data = parse_spreadsheet(io.BytesIO(make_xlsx([("Sheet1", SALES_ROWS)])), XLSX_MIMETYPE)

    assert data["sheets"] == [
        {"name": "Sheet1", "rows": SALES_ROWS, "rowCount": 3, "columnCount": 2}
    ]
    assert data["summary"] == {"totalSheets": 1, "totalRows": 3, "totalColumns": 2}


def test_sheets_keep_container_order_and_summary_spans_them():
    content = make_xlsx(
        [
            ("Zeta", [["a", "b", "c"], [1, 2, 3]]),
            ("Alpha", [["x"], [1], [2], [3]]),
        ]
    )
    data = parse_spreadsheet(io.BytesIO(content), XLSX_MIMETYPE)

    assert [s["name"] for s in data["sheets"]] == ["Zeta", "Alpha"]
    assert data["summary"] == {"totalSheets": 2, "totalRows": 6, "totalColumns": 3}


def test_empty_sheets_are_skipped():
    content = make_xlsx([("Empty", []), ("Data", SALES_ROWS), ("AlsoEmpty", [])])
    data = parse_spreadsheet(io.BytesIO(content), XLSX_MIMETYPE)

    assert [s["name"] for s in data["sheets"]] == ["Data"]
    assert data["summary"]["totalSheets"] == 1


def test_workbook_without_data_has_zero_summary():
    data = parse_spreadsheet(io.BytesIO(make_xlsx([("Sheet1", [])])), XLSX_MIMETYPE)

    assert data["sheets"] == []
    assert data["summary"] == {"totalSheets": 0, "totalRows": 0, "totalColumns": 0}


def test_column_count_comes_from_first_row():
    rows = [["Month", "Sales"], ["Jan", 100, "extra", "cells"]]
    data = parse_spreadsheet(io.BytesIO(make_xlsx([("Sheet1", rows)])), XLSX_MIMETYPE)

    sheet = data["sheets"][0]
    assert sheet["columnCount"] == 2
    assert sheet["rows"][0] == ["Month", "Sales"]
    assert sheet["rows"][1] == ["Jan", 100, "extra", "cells"]


def test_missing_cells_become_none():
    rows = [["Month", "Sales", "Notes"], ["Jan", None, "late"]]
    data = parse_spreadsheet(io.BytesIO(make_xlsx([("Sheet1", rows)])), XLSX_MIMETYPE)

    assert data["sheets"][0]["rows"][1] == ["Jan", None, "late"]


def test_parsing_is_idempotent():
    content = make_xlsx([("Sheet1", SALES_ROWS), ("Other", [["k", "v"], ["a", 1.5]])])

    first = parse_spreadsheet(io.BytesIO(content), XLSX_MIMETYPE)
    second = parse_spreadsheet(io.BytesIO(content), XLSX_MIMETYPE)

    assert first == second


def test_accepts_paths(tmp_path):
    path = tmp_path / "sales.xlsx"
    path.write_bytes(make_xlsx([("Sheet1", SALES_ROWS)]))

    data = parse_spreadsheet(str(path), XLSX_MIMETYPE)

    assert data["summary"]["totalRows"] == 3


def test_csv_is_a_single_typed_sheet():
    text = "Month,Sales,Active\nJan,100,TRUE\nFeb,12.5,false\nMar,,yes\n"
    data = parse_spreadsheet(io.BytesIO(text.encode()), CSV_MIMETYPE)

    assert data["sheets"] == [
        {
            "name": "Sheet1",
            "rows": [
                ["Month", "Sales", "Active"],
                ["Jan", 100, True],
                ["Feb", 12.5, False],
                ["Mar", None, "yes"],
            ],
            "rowCount": 4,
            "columnCount": 3,
        }
    ]


def test_empty_csv_yields_no_sheets():
    data = parse_spreadsheet(io.BytesIO(b""), CSV_MIMETYPE)

    assert data["sheets"] == []
    assert data["summary"]["totalSheets"] == 0


def test_unsupported_mimetype_is_rejected_before_reading():
    class Unreadable:
        def read(self):
            raise AssertionError("should not be read")

    with pytest.raises(UnsupportedMediaType):
        read_workbook(Unreadable(), "application/json")


@pytest.mark.parametrize(
    "mimetype, content",
    [
        (XLSX_MIMETYPE, b"this is not a spreadsheet"),
        (XLS_MIMETYPE, OLE_SIGNATURE + b"not a compound document"),
        (CSV_MIMETYPE, b"PK\x03\x04 truncated zip"),
    ],
)
def test_corrupt_container_raises_parse_error(mimetype, content):
    with pytest.raises(ParseError) as excinfo:
        read_workbook(io.BytesIO(content), mimetype)

    assert str(excinfo.value)


def test_csv_rows_may_be_wider_than_the_header():
    data = parse_spreadsheet(io.BytesIO(b"Month,Sales\nJan,100\nFeb,200,note\n"), CSV_MIMETYPE)

    sheet = data["sheets"][0]
    assert sheet["columnCount"] == 2
    assert sheet["rows"] == [["Month", "Sales"], ["Jan", 100], ["Feb", 200, "note"]]
    assert data["summary"]["totalColumns"] == 2


def test_csv_blank_lines_inside_data_are_kept():
    data = parse_spreadsheet(io.BytesIO(b"a,b\n\n1,2\n\n"), CSV_MIMETYPE)

    assert data["sheets"][0]["rows"] == [["a", "b"], [], [1, 2]]


def test_legacy_xls_workbook():
    data = parse_spreadsheet(str(DATA_DIR / "sales.xls"), XLS_MIMETYPE)

    assert len(data["sheets"]) == 1
    sheet = data["sheets"][0]
    assert sheet["rows"] == [["Month", "Sales"], ["Jan", 100], ["Feb", 200.5]]
    assert sheet["rowCount"] == 3
    assert sheet["columnCount"] == 2
    assert data["summary"] == {"totalSheets": 1, "totalRows": 3, "totalColumns": 2}


def test_csv_labelled_as_excel_is_read_as_csv():
    data = parse_spreadsheet(io.BytesIO(b"Month,Sales\nJan,100\n"), XLS_MIMETYPE)

    assert data["sheets"][0]["name"] == "Sheet1"
    assert data["sheets"][0]["rows"] == [["Month", "Sales"], ["Jan", 100]]


@pytest.mark.parametrize("mimetype", [XLS_MIMETYPE, CSV_MIMETYPE])
def test_xlsx_is_recognised_whatever_the_label(mimetype):
    content = make_xlsx([("Data", SALES_ROWS)])

    data = parse_spreadsheet(io.BytesIO(content), mimetype)

    assert data["sheets"] == [{"name": "Data", "rows": SALES_ROWS, "rowCount": 3, "columnCount": 2}]


def test_xls_bytes_labelled_as_xlsx_are_read_with_xlrd():
    content = (DATA_DIR / "sales.xls").read_bytes()

    assert sniff_engine(content, XLSX_MIMETYPE) == "xlrd"
    assert parse_spreadsheet(io.BytesIO(content), XLSX_MIMETYPE)["summary"]["totalRows"] == 3


def test_sniff_engine_falls_back_to_declared_type():
    assert sniff_engine(b"Month,Sales\n", XLSX_MIMETYPE) == "openpyxl"
    assert sniff_engine(b"Month,Sales\n", XLS_MIMETYPE) is None
    assert sniff_engine(b"Month,Sales\n", CSV_MIMETYPE) is None


def test_csv_in_windows_encoding():
    text = "City,Visitors\nMünchen,1200\n"

    data = parse_spreadsheet(io.BytesIO(text.encode("latin-1")), CSV_MIMETYPE)

    assert data["sheets"][0]["rows"][1] == ["München", 1200]


def test_csv_utf8_bom_is_dropped():
    data = parse_spreadsheet(io.BytesIO("Month,Sales\nJan,1\n".encode("utf-8-sig")), CSV_MIMETYPE)

    assert data["sheets"][0]["rows"][0] == ["Month", "Sales"]


def test_csv_digit_separators_stay_text():
    data = parse_spreadsheet(io.BytesIO(b"Code,Qty\n1_000,1_5\n"), CSV_MIMETYPE)

    assert data["sheets"][0]["rows"][1] == ["1_000", "1_5"]


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        (float("nan"), None),
        (True, True),
        (7, 7),
        (2.5, 2.5),
        ("text", "text"),
        (dt.datetime(2024, 1, 31, 8, 30), "2024-01-31T08:30:00"),
        (dt.date(2024, 1, 31), "2024-01-31"),
    ],
)
def test_normalize_cell(value, expected):
    assert normalize_cell(value) == expected


def test_describe_columns_classifies_first_sheet():
    rows = [
        ["Month", "Sales", "Closed"],
        ["Jan", 100, dt.datetime(2024, 1, 31)],
        ["Feb", 200.5, dt.datetime(2024, 2, 29)],
    ]
    frames = read_workbook(io.BytesIO(make_xlsx([("Sheet1", rows)])), XLSX_MIMETYPE)

    metadata = describe_columns(frames, "Report.XLSX")

    assert metadata["fileExtension"] == ".xlsx"
    assert metadata["headers"] == ["Month", "Sales", "Closed"]
    assert metadata["textColumns"] == ["Month"]
    assert metadata["numberColumns"] == ["Sales"]
    assert metadata["dateColumns"] == ["Closed"]


def test_describe_columns_without_data():
    frames = read_workbook(io.BytesIO(make_xlsx([("Sheet1", [])])), XLSX_MIMETYPE)

    metadata = describe_columns(frames, "empty.xlsx")

    assert metadata["headers"] == []
    assert metadata["numberColumns"] == []
