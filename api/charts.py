"""Chart helpers: project parsed sheet data into a labels/values series."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_DATASET_LABEL = "Data"

# Dashboard theme for the default single-series chart.
DATASET_STYLE = {
    "backgroundColor": "rgba(255, 255, 255, 0.1)",
    "borderColor": "rgba(255, 255, 255, 0.8)",
    "borderWidth": 2,
}


@dataclass
class ChartDataset:
    label: str
    values: List[float] = field(default_factory=list)


@dataclass
class ChartProjection:
    labels: List[str]
    dataset: ChartDataset

    def to_chart_data(self) -> Dict[str, Any]:
        """Chart.js-style payload consumed by the dashboard."""
        return {
            "labels": list(self.labels),
            "datasets": [
                {
                    "label": self.dataset.label,
                    "data": list(self.dataset.values),
                    **DATASET_STYLE,
                }
            ],
        }


def _cell(row: List[Any], index: int) -> Any:
    return row[index] if index < len(row) else None


def display_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def to_number(value: Any) -> float:
    """Best-effort numeric coercion. Anything unparseable becomes 0."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        number = value
    else:
        text = str(value).strip()
        # float() accepts digit separators ("1_000"), spreadsheets do not
        if "_" in text:
            return 0
        try:
            number = float(text)
        except ValueError:
            return 0
    if isinstance(number, float) and not math.isfinite(number):
        return 0
    return number


def project_chart_data(extracted_data: Optional[Dict[str, Any]]) -> Optional[ChartProjection]:
    """Build a projection from column 0 (labels) and column 1 (values) of the first sheet.

    Returns None when there is no sheet or the first sheet has no data rows
    beyond its header.
    """
    sheets = (extracted_data or {}).get("sheets") or []
    if not sheets:
        return None

    rows = sheets[0].get("rows") or []
    if len(rows) < 2:
        return None

    header, data_rows = rows[0], rows[1:]
    labels = [display_text(_cell(row, 0)) for row in data_rows]
    values = [to_number(_cell(row, 1)) for row in data_rows]

    label = _cell(header, 1)
    if label is None or label == "":
        label = DEFAULT_DATASET_LABEL

    return ChartProjection(
        labels=labels,
        dataset=ChartDataset(label=display_text(label), values=values),
    )
