"""PDF rendering of report documents with reportlab."""
import io
import logging
from pathlib import Path
from xml.sax.saxutils import escape

from reportlab.lib.colors import HexColor
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.platypus import HRFlowable, PageBreak, Paragraph, SimpleDocTemplate, Spacer

from .errors import StorageError
from .reporting import ReportDocument, format_datetime

logger = logging.getLogger("faae-core.report_pdf")

# Brand colors
PRIMARY = HexColor("#1E3A5F")
MUTED = HexColor("#6B7280")
SEPARATOR = HexColor("#D1D5DB")

INDENT_STEP = 0.5 * cm


def _styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name="ReportCover",
        parent=styles["Title"],
        fontSize=22,
        textColor=PRIMARY,
        alignment=TA_CENTER,
        spaceAfter=12,
    ))
    styles.add(ParagraphStyle(
        name="ReportCoverSub",
        parent=styles["Heading2"],
        fontSize=14,
        textColor=PRIMARY,
        alignment=TA_CENTER,
        spaceAfter=6,
    ))
    styles.add(ParagraphStyle(
        name="ReportCoverDate",
        parent=styles["Normal"],
        fontSize=10,
        textColor=MUTED,
        alignment=TA_CENTER,
        spaceAfter=24,
    ))
    styles.add(ParagraphStyle(
        name="ReportTitle",
        parent=styles["Heading1"],
        fontSize=16,
        textColor=PRIMARY,
        spaceBefore=6,
        spaceAfter=4,
    ))
    styles.add(ParagraphStyle(
        name="ReportSubtitle",
        parent=styles["Heading2"],
        fontSize=12,
        spaceBefore=10,
        spaceAfter=4,
    ))
    styles.add(ParagraphStyle(
        name="ReportBody",
        parent=styles["Normal"],
        fontSize=10,
        spaceAfter=3,
    ))
    return styles


def _flowables(document: ReportDocument) -> list:
    styles = _styles()
    body_styles: dict[int, ParagraphStyle] = {}
    elements = [
        Paragraph(escape(document.company_name), styles["ReportCover"]),
        Paragraph("Relatório Detalhado de Projetos e Tarefas", styles["ReportCoverSub"]),
        Paragraph(f"Data de Exportação: {format_datetime(document.exported_at)}", styles["ReportCoverDate"]),
    ]

    for index, section in enumerate(document.sections):
        for block in section.blocks:
            if block.kind == "title":
                elements.append(Paragraph(escape(block.text), styles["ReportTitle"]))
            elif block.kind == "separator":
                elements.append(HRFlowable(width="100%", color=SEPARATOR, spaceAfter=6))
            elif block.kind == "subtitle":
                elements.append(Paragraph(escape(block.text), styles["ReportSubtitle"]))
            else:
                if block.indent not in body_styles:
                    body_styles[block.indent] = ParagraphStyle(
                        name=f"ReportBody{block.indent}",
                        parent=styles["ReportBody"],
                        leftIndent=block.indent * INDENT_STEP,
                        fontSize=10 if block.indent < 2 else 9,
                    )
                elements.append(Paragraph(escape(block.text), body_styles[block.indent]))
        if section.new_page_after and index < len(document.sections) - 1:
            elements.append(PageBreak())
        else:
            elements.append(Spacer(1, 0.5 * cm))
    return elements


def render_report_pdf(document: ReportDocument) -> bytes:
    """
    Render a report to PDF bytes.

    Sections that overflow a page continue on the next one; each project
    section and the per-user summary start on a fresh page.
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=2 * cm,
        leftMargin=2 * cm,
        topMargin=2 * cm,
        bottomMargin=2 * cm,
        title=document.filename,
        author=document.company_name,
    )
    doc.build(_flowables(document))
    pdf = buffer.getvalue()
    logger.info(f"Rendered report {document.filename} ({len(pdf)} bytes)")
    return pdf


def write_report_pdf(document: ReportDocument, output_dir: str) -> Path:
    """
    Render a report and write it under ``output_dir`` using its file name.

    Raises:
        StorageError: The file could not be written
    """
    path = Path(output_dir) / document.filename
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(render_report_pdf(document))
    except OSError as e:
        logger.error(f"Failed to write report {path}: {e}", exc_info=True)
        raise StorageError(f"Cannot write report {path}: {e}")
    return path
