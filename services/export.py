from __future__ import annotations

import io
from datetime import datetime, timezone
from typing import Iterable

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from services.models import ExportRow, SentimentCategory, Topic, Unit
from services.normalization import normalize_text

UNCATEGORIZED = "Uncategorized"
SHEET_TITLE = "Sentiment Analysis"
EXPORT_COLUMNS = (
    ("Comment Number", 16),
    ("Comment Text", 80),
    ("Sentiment Score", 16),
    ("Sentiment Category", 20),
    ("Topic", 30),
)
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def sentiment_category(score: float) -> SentimentCategory:
    if score > 0.3:
        return "Positive"
    if score < -0.3:
        return "Negative"
    return "Neutral"


def _topic_index(topics: Iterable[Topic]) -> dict[str, str]:
    index: dict[str, str] = {}
    for topic in topics:
        for comment in topic.comments:
            # First topic listing a comment owns it.
            index.setdefault(normalize_text(comment), topic.label)
    return index


def export_rows(units: list[Unit], topics: list[Topic] | None = None) -> list[ExportRow]:
    index = _topic_index(topics or [])
    rows: list[ExportRow] = []
    for unit in units:
        if unit.score is None:
            continue
        rows.append(
            ExportRow(
                comment_number=len(rows) + 1,
                comment_text=unit.text,
                sentiment_score=unit.score,
                sentiment_category=sentiment_category(unit.score),
                topic=index.get(normalize_text(unit.text), UNCATEGORIZED),
            )
        )
    return rows


def write_workbook(rows: list[ExportRow]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append([name for name, _ in EXPORT_COLUMNS])
    for row in rows:
        ws.append(
            [
                row.comment_number,
                row.comment_text,
                row.sentiment_score,
                row.sentiment_category,
                row.topic,
            ]
        )

    header_font = Font(bold=True)
    for cell in ws[1]:
        cell.font = header_font
    for col_idx, (_, width) in enumerate(EXPORT_COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(col_idx)].width = width
    for cells in ws.iter_rows(min_row=2, min_col=2, max_col=2):
        for cell in cells:
            cell.alignment = Alignment(wrap_text=True, vertical="top")
    ws.freeze_panes = "A2"
    ws.auto_filter.ref = ws.dimensions

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def export_filename(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    return f"sentiment_analysis_{stamp}.xlsx"
