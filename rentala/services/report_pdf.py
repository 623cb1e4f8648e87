"""
Tenant satisfaction report PDF rendering (fpdf2).

Each selected metric toggles its own column or line. Table column widths are
recomputed from the selected set so dropping a metric never leaves a gap.
"""

import enum
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from functools import partial

from fpdf import FPDF

from rentala.config import get_config
from rentala.core.datetime_utils import utc_now
from rentala.services.report_data import PeriodRow

PAGE_CONTENT_WIDTH = 190  # A4 width minus default margins, in mm
ROW_HEIGHT = 7


class ReportMetric(str, enum.Enum):
    OVERALL = "overall"
    CLEANLINESS = "cleanliness"
    MAINTENANCE = "maintenance"
    COMMUNICATION = "communication"
    RESPONSIVENESS = "responsiveness"
    VALUE = "value"
    SURVEYS = "surveys"
    RECOMMENDATIONS = "recommendations"


ALL_METRICS = [m.value for m in ReportMetric]

# Renderer contract: (title, period rows, selected metrics) -> PDF bytes
ReportRenderer = Callable[[str, Sequence[PeriodRow], Sequence[str]], bytes]


@dataclass
class TableColumn:
    header: str
    width: float
    value: Callable[[PeriodRow], str]


# Metric -> (header, cell formatter), in display order
TREND_COLUMNS: dict[ReportMetric, tuple[str, Callable[[PeriodRow], str]]] = {
    ReportMetric.OVERALL: ("Satisfaction", lambda row: f"{row.average_satisfaction:.1f}"),
    ReportMetric.SURVEYS: ("Surveys", lambda row: str(row.survey_count)),
    ReportMetric.RECOMMENDATIONS: ("Recommend %", lambda row: f"{row.recommend_percentage}%"),
}

CATEGORY_LINES: dict[ReportMetric, tuple[str, str]] = {
    ReportMetric.CLEANLINESS: ("Cleanliness", "average_cleanliness"),
    ReportMetric.MAINTENANCE: ("Maintenance", "average_maintenance"),
    ReportMetric.COMMUNICATION: ("Communication", "average_communication"),
    ReportMetric.RESPONSIVENESS: ("Responsiveness", "average_responsiveness"),
    ReportMetric.VALUE: ("Value for Money", "average_value_for_money"),
}


def _selected(metrics: Sequence[str]) -> set[ReportMetric]:
    # Unknown metric names are ignored
    return {ReportMetric(m) for m in metrics if m in ALL_METRICS}


def build_table_columns(metrics: Sequence[str]) -> list[TableColumn]:
    """
    Columns for the monthly trends table.

    Returns an empty list when none of the trend metrics are selected, in
    which case the table is omitted entirely.
    """
    selected = _selected(metrics)
    specs = [(header, fmt) for metric, (header, fmt) in TREND_COLUMNS.items() if metric in selected]
    if not specs:
        return []

    specs.insert(0, ("Month", lambda row: row.label))
    width = PAGE_CONTENT_WIDTH / len(specs)
    return [TableColumn(header=header, width=width, value=fmt) for header, fmt in specs]


def build_summary_lines(rows: Sequence[PeriodRow], metrics: Sequence[str]) -> list[str]:
    selected = _selected(metrics)
    lines = []

    if ReportMetric.SURVEYS in selected:
        lines.append(f"Total Surveys Collected: {sum(r.survey_count for r in rows)}")
    if ReportMetric.OVERALL in selected:
        if rows:
            avg = sum(r.average_satisfaction for r in rows) / len(rows)
            lines.append(f"Average Satisfaction Score: {avg:.1f} / 5.0")
        else:
            lines.append("Average Satisfaction Score: N/A")
    if ReportMetric.RECOMMENDATIONS in selected:
        avg_recommend = round(sum(r.recommend_percentage for r in rows) / len(rows)) if rows else 0
        lines.append(f"Would Recommend (Average): {avg_recommend}%")

    return lines


def build_category_lines(rows: Sequence[PeriodRow], metrics: Sequence[str]) -> list[str]:
    if not rows:
        return []

    selected = _selected(metrics)
    lines = []
    for metric, (name, attr) in CATEGORY_LINES.items():
        if metric in selected:
            avg = sum(getattr(r, attr) for r in rows) / len(rows)
            lines.append(f"{name}: {avg:.1f} / 5.0")
    return lines


def _pdf_safe(text: str) -> str:
    """Core fonts are latin-1 only."""
    return text.encode("latin-1", "replace").decode("latin-1")


def _section_heading(pdf: FPDF, heading: str) -> None:
    pdf.set_fill_color(240, 240, 240)
    pdf.set_font("Helvetica", "B", 12)
    pdf.cell(0, 8, f"  {heading}", new_x="LMARGIN", new_y="NEXT", fill=True)
    pdf.set_font("Helvetica", "", 10)
    pdf.ln(2)


def render_satisfaction_report(
    title: str,
    rows: Sequence[PeriodRow],
    metrics: Sequence[str],
    months: int = 12,
) -> bytes:
    """
    Render the tenant satisfaction report.

    Args:
        title: Scope display name (property name or "All Properties")
        rows: Monthly aggregates, oldest first
        metrics: Selected metric names
        months: Trailing window length shown in the header

    Returns:
        PDF document bytes
    """
    pdf = FPDF(format="A4")
    pdf.add_page()
    pdf.set_auto_page_break(auto=True, margin=15)

    # Header
    pdf.set_font("Helvetica", "B", 20)
    pdf.cell(0, 10, "Tenant Satisfaction Report", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 11)
    pdf.cell(0, 6, _pdf_safe(f"Property: {title}"), new_x="LMARGIN", new_y="NEXT")
    pdf.cell(0, 6, f"Period: Last {months} Months", new_x="LMARGIN", new_y="NEXT")
    pdf.cell(0, 6, f"Generated: {utc_now():%Y-%m-%d}", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(4)

    summary = build_summary_lines(rows, metrics)
    if summary:
        _section_heading(pdf, "Report Summary")
        for line in summary:
            pdf.cell(0, 6, line, new_x="LMARGIN", new_y="NEXT")
        pdf.ln(4)

    columns = build_table_columns(metrics)
    if columns:
        _section_heading(pdf, "Monthly Satisfaction Trends")
        pdf.set_font("Helvetica", "B", 9)
        for column in columns:
            pdf.cell(column.width, ROW_HEIGHT, column.header, border="B", new_x="RIGHT")
        pdf.ln()
        pdf.set_font("Helvetica", "", 9)
        for row in rows:
            for column in columns:
                pdf.cell(column.width, ROW_HEIGHT, column.value(row), new_x="RIGHT")
            pdf.ln()
        pdf.ln(4)

    categories = build_category_lines(rows, metrics)
    if categories:
        _section_heading(pdf, "Category Ratings (Average)")
        for line in categories:
            pdf.cell(0, 6, line, new_x="LMARGIN", new_y="NEXT")
        pdf.ln(4)

    # Footer
    pdf.set_font("Helvetica", "I", 8)
    pdf.cell(
        0,
        5,
        "Rentala Property Management System - Confidential Report",
        new_x="LMARGIN",
        new_y="NEXT",
        align="C",
    )

    return bytes(pdf.output())


def default_report_renderer() -> ReportRenderer:
    """The satisfaction report with its header matching the configured trailing window."""
    return partial(render_satisfaction_report, months=get_config().reports.trailing_periods)
