"""
Climate Engine — Reports
Writes model output series and source tracking rows to an Excel workbook,
and a short run summary to a Word document.
"""

from typing import Dict, List, Optional
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Border, Side
from openpyxl.utils import get_column_letter
from docx import Document
from docx.shared import Pt, RGBColor
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml.ns import qn
from docx.oxml import OxmlElement

from .core.timeseries import TimeSeries
from .core.fluxpool import TrackingReport

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
HEADER_FONT = Font(bold=True, color="FFFFFF")
THIN_BORDER = Border(
    left=Side(style='thin'), right=Side(style='thin'),
    top=Side(style='thin'), bottom=Side(style='thin')
)

TRACKING_HEADERS = ["year", "pool_name", "pool_value", "pool_units", "source_name", "source_fraction"]


def _write_header(ws, row: int, headers: List[str]):
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        ws.column_dimensions[get_column_letter(col)].width = max(12, len(header) + 4)


def _write_outputs(ws, title: str, series: Dict[str, TimeSeries]):
    ws['A1'] = title
    ws['A1'].font = Font(bold=True, size=14)

    names = list(series)
    headers = ["year"] + [
        f"{name} ({series[name][series[name].first_date].units_name})" if len(series[name]) else name
        for name in names
    ]
    _write_header(ws, 3, headers)

    dates = sorted({d for s in series.values() for d in s.dates()})
    for row_idx, date in enumerate(dates, 4):
        ws.cell(row=row_idx, column=1, value=date).border = THIN_BORDER
        for col_idx, name in enumerate(names, 2):
            value = series[name].get(date)
            cell = ws.cell(row=row_idx, column=col_idx,
                           value=value.magnitude if value is not None else None)
            cell.border = THIN_BORDER


def _write_tracking(ws, report: TrackingReport):
    ws['A1'] = "SOURCE TRACKING"
    ws['A1'].font = Font(bold=True, size=14)
    _write_header(ws, 3, TRACKING_HEADERS)

    for row_idx, row in enumerate(report.to_rows(), 4):
        for col_idx, key in enumerate(TRACKING_HEADERS, 1):
            cell = ws.cell(row=row_idx, column=col_idx, value=row[key])
            cell.border = THIN_BORDER


def write_workbook(filepath: str, series: Optional[Dict[str, TimeSeries]] = None,
                   tracking: Optional[TrackingReport] = None, title: str = "MODEL OUTPUTS") -> str:
    """
    Save output series and tracking rows as an .xlsx workbook.

    Args:
        filepath: Destination path.
        series: Output series by capability name, one column each.
        tracking: Source tracking records, one row per pool source.
        title: Heading of the outputs sheet.

    Returns:
        The path written.
    """
    wb = Workbook()

    ws_outputs = wb.active
    ws_outputs.title = "Outputs"
    _write_outputs(ws_outputs, title, series or {})

    if tracking is not None:
        _write_tracking(wb.create_sheet("Source Tracking"), tracking)

    wb.save(filepath)
    logger.info(f"Workbook written to {filepath}")
    return filepath


# =============================================================================
# RUN SUMMARY DOCUMENT
# =============================================================================

def _shade(cell, color: str):
    shading = OxmlElement('w:shd')
    shading.set(qn('w:fill'), color)
    cell._tc.get_or_add_tcPr().append(shading)


def _add_table(doc, headers: List[str], rows: List[List]):
    table = doc.add_table(rows=1, cols=len(headers))
    table.style = 'Table Grid'

    for i, header in enumerate(headers):
        cell = table.rows[0].cells[i]
        cell.text = header
        cell.paragraphs[0].runs[0].bold = True
        cell.paragraphs[0].runs[0].font.color.rgb = RGBColor(255, 255, 255)
        _shade(cell, "1F4E79")

    for row_data in rows:
        row = table.add_row()
        for i, value in enumerate(row_data):
            row.cells[i].text = f"{value:.4g}" if isinstance(value, float) else str(value)
    return table


def write_run_summary(filepath: str, core, series: Optional[Dict[str, TimeSeries]] = None) -> str:
    """
    Save a Word summary of a core: run settings, components and final outputs.

    Args:
        filepath: Destination path.
        core: The core to describe.
        series: Optional output series; the last value of each is listed.

    Returns:
        The path written.
    """
    status = core.get_status()
    doc = Document()

    style = doc.styles['Normal']
    style.font.name = 'Calibri'
    style.font.size = Pt(11)

    title = doc.add_heading('CLIMATE ENGINE RUN SUMMARY', 0)
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER

    if status["run_name"]:
        subtitle = doc.add_paragraph(status["run_name"])
        subtitle.alignment = WD_ALIGN_PARAGRAPH.CENTER
        subtitle.runs[0].bold = True

    doc.add_heading('Run', level=1)
    _add_table(doc, ["Setting", "Value"], [
        ["Lifecycle", status["lifecycle"]],
        ["Start date", status["start_date"]],
        ["End date", status["end_date"]],
        ["Current date", status["current_date"]],
        ["Spin-up steps", status["spinup_steps"]],
        ["Dirty", status["dirty"]],
    ])

    doc.add_heading('Components', level=1)
    _add_table(doc, ["Name", "Kind", "Depends on", "Checkpoints"], [
        [c["name"], c["kind"], ", ".join(c["depends_on"]) or "-", c["checkpoints"]]
        for c in status["components"]
    ])

    if series:
        doc.add_heading('Final Outputs', level=1)
        rows = []
        for name, ts in series.items():
            if len(ts):
                last = ts[ts.last_date]
                rows.append([name, ts.last_date, last.magnitude, last.units_name])
        _add_table(doc, ["Output", "Year", "Value", "Units"], rows)

    doc.save(filepath)
    logger.info(f"Run summary written to {filepath}")
    return filepath
