"""PDF report of a run (reportlab).

One section per input row, in input order, followed by the run summary.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Union
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..config.logger import logger
from ..models import Result
from .excel import FIELD_KEYS, RESULT_COLUMNS
from .report import RunSummary, summary_lines

REPORT_TITLE = "DIAN RUT Query Results"

# Output labels of the name/status fields, as in the spreadsheet header
FIELD_LABELS = dict(zip(FIELD_KEYS, RESULT_COLUMNS[1:1 + len(FIELD_KEYS)]))

_TABLE_STYLE = TableStyle([
    ('FONTSIZE', (0, 0), (-1, -1), 10),
    ('TEXTCOLOR', (0, 0), (0, -1), colors.grey),
    ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
])


def result_rows(result: Result) -> List[List[str]]:
    """Label/value rows describing one result."""
    if result.is_success:
        fields = result.fields or {}
        rows = [[f"{FIELD_LABELS[key]}:", fields.get(key, "")] for key in FIELD_KEYS]
    else:
        kind = result.error_kind.value if result.error_kind else "error"
        rows = [["Estado:", "Error"], ["Error:", f"{kind}: {result.error_message or ''}"]]
    rows.append(["Intentos:", str(result.attempts)])
    rows.append(["Tiempo:", f"{result.elapsed.total_seconds():.2f}s"])
    return rows


def write_pdf(
    path: Union[str, Path],
    results: Sequence[Result],
    summary: RunSummary,
    generated_at: Optional[datetime] = None,
) -> Path:
    """Write the results and the summary as a PDF document."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    generated_at = generated_at or datetime.now()

    doc = SimpleDocTemplate(
        str(path),
        pagesize=A4,
        rightMargin=20*mm,
        leftMargin=20*mm,
        topMargin=20*mm,
        bottomMargin=20*mm,
        title=REPORT_TITLE,
    )
    styles = getSampleStyleSheet()

    story = [
        Paragraph(REPORT_TITLE, styles['Title']),
        Paragraph(f"Generated on: {generated_at:%Y-%m-%d %H:%M:%S}", styles['Normal']),
        Spacer(1, 10*mm),
    ]

    for index, result in enumerate(results, start=1):
        story.append(Paragraph(f"Consulta {index}: {escape(result.identifier)}", styles['Heading3']))
        table = Table(result_rows(result), colWidths=[40*mm, 130*mm])
        table.setStyle(_TABLE_STYLE)
        story.append(table)
        story.append(Spacer(1, 6*mm))

    story.append(Paragraph("Summary", styles['Heading2']))
    for line in summary_lines(summary):
        story.append(Paragraph(escape(line), styles['Normal']))

    doc.build(story)
    logger.info("results_pdf_written", path=str(path), rows=len(results))
    return path
