"""
Document Generator Service
Exports a rendered ExamDocument as A4 portrait PDF or DOCX.
"""
import logging
import re
import unicodedata
from io import BytesIO
from typing import Optional, Tuple
from urllib.parse import quote
from xml.sax.saxutils import escape

from docx import Document
from docx.shared import Mm, Pt
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.units import mm
from reportlab.platypus import KeepTogether, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from examcraft.errors import ExportError
from examcraft.services.exam_renderer import ANSWER_LINE, ExamDocument

logger = logging.getLogger(__name__)

PAGE_MARGIN_MM = 10
PDF_MEDIA_TYPE = "application/pdf"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

EXPORT_FAILED = (
    "Houve um problema ao gerar o arquivo. Por favor, tente imprimir usando as "
    "opções nativas do seu navegador (Ctrl+P ou Cmd+P)."
)


def export_filename(title: str, extension: str) -> str:
    """Download name derived from the exam title ("Prova Final" -> "Prova_Final.pdf")."""
    name = re.sub(r"\s+", "_", title.strip())
    name = re.sub(r"[^\w\-.]", "", name).strip("._")
    return f"{name or 'prova'}.{extension}"


def content_disposition(filename: str) -> str:
    """Attachment header carrying the UTF-8 name plus an ASCII fallback for older clients."""
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def _pdf_styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name="ExamSchool", parent=styles["Normal"], fontName="Helvetica-Bold", fontSize=13, leading=16,
    ))
    styles.add(ParagraphStyle(
        name="ExamHeaderRight", parent=styles["Normal"], fontSize=9, alignment=TA_RIGHT,
    ))
    styles.add(ParagraphStyle(
        name="ExamTitle", parent=styles["Title"], fontSize=16, leading=20, spaceAfter=2,
    ))
    styles.add(ParagraphStyle(
        name="ExamSubtitle", parent=styles["Normal"], fontName="Helvetica-Oblique", alignment=TA_CENTER,
    ))
    styles.add(ParagraphStyle(
        name="ExamQuestion", parent=styles["Normal"], fontName="Helvetica-Bold", fontSize=12,
        spaceBefore=10, spaceAfter=4,
    ))
    styles.add(ParagraphStyle(name="ExamOption", parent=styles["Normal"], leftIndent=6 * mm))
    return styles


def _text(value: str) -> str:
    return escape(value).replace("\n", "<br/>")


def generate_pdf(document: ExamDocument) -> bytes:
    """
    Generates a PDF from a rendered exam document.

    Returns:
        The PDF bytes (A4 portrait, fixed margins).
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=PAGE_MARGIN_MM * mm,
        leftMargin=PAGE_MARGIN_MM * mm,
        topMargin=PAGE_MARGIN_MM * mm,
        bottomMargin=PAGE_MARGIN_MM * mm,
        title=document.title,
        subject=document.subject,
    )
    styles = _pdf_styles()
    header = document.header
    story = []

    # Boxed header
    header_table = Table(
        [
            [Paragraph(_text(header.school_name), styles["ExamSchool"]),
             Paragraph(_text(header.date_field), styles["ExamHeaderRight"])],
            [Paragraph(_text(header.teacher_line), styles["Normal"]), ""],
            [Paragraph(_text(header.student_field), styles["Normal"]),
             Paragraph(_text(header.class_field), styles["ExamHeaderRight"])],
        ],
        colWidths=[doc.width * 0.62, doc.width * 0.38],
    )
    header_table.setStyle(TableStyle([
        ("BOX", (0, 0), (-1, -1), 1.5, colors.black),
        ("LINEBELOW", (0, 1), (-1, 1), 0.75, colors.black),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    story += [header_table, Spacer(1, 6 * mm)]

    # Title block
    story.append(Paragraph(f"<u>{_text(document.title)}</u>", styles["ExamTitle"]))
    story.append(Paragraph(_text(document.subtitle), styles["ExamSubtitle"]))
    story.append(Spacer(1, 6 * mm))

    if document.instructions:
        panel = Table(
            [[Paragraph(f"<b>INSTRUÇÕES:</b><br/>{_text(document.instructions)}", styles["Normal"])]],
            colWidths=[doc.width],
        )
        panel.setStyle(TableStyle([
            ("BOX", (0, 0), (-1, -1), 0.75, colors.grey),
            ("BACKGROUND", (0, 0), (-1, -1), colors.whitesmoke),
        ]))
        story += [panel, Spacer(1, 4 * mm)]

    for question in document.questions:
        block = [
            Paragraph(_text(question.heading), styles["ExamQuestion"]),
            Paragraph(_text(question.text), styles["Normal"]),
        ]
        block += [Paragraph(_text(option), styles["ExamOption"]) for option in question.options]
        block += [Paragraph(ANSWER_LINE, styles["Normal"]) for _ in range(question.answer_lines)]
        story.append(KeepTogether(block))

    doc.build(story)
    return buffer.getvalue()


def generate_docx(document: ExamDocument) -> bytes:
    """
    Generates a .docx file from a rendered exam document.

    Returns:
        The DOCX bytes (A4 portrait, fixed margins).
    """
    doc = Document()

    # Set Metadata
    core_properties = doc.core_properties
    core_properties.title = document.title
    core_properties.subject = document.subject

    section = doc.sections[0]
    section.page_width = Mm(210)
    section.page_height = Mm(297)
    for side in ("left_margin", "right_margin", "top_margin", "bottom_margin"):
        setattr(section, side, Mm(PAGE_MARGIN_MM))

    style = doc.styles['Normal']
    style.font.size = Pt(12)

    # Boxed header
    header = document.header
    table = doc.add_table(rows=3, cols=2)
    table.style = 'Table Grid'
    table.cell(0, 0).text = header.school_name
    table.cell(0, 0).paragraphs[0].runs[0].bold = True
    table.cell(0, 1).text = header.date_field
    table.cell(1, 0).merge(table.cell(1, 1)).text = header.teacher_line
    table.cell(2, 0).text = header.student_field
    table.cell(2, 1).text = header.class_field

    # Title Section
    heading = doc.add_heading(document.title, 1)
    heading.alignment = 1  # Center
    p_info = doc.add_paragraph()
    p_info.alignment = 1  # Center
    p_info.add_run(document.subtitle).italic = True

    if document.instructions:
        p_inst = doc.add_paragraph()
        p_inst.add_run("INSTRUÇÕES:").bold = True
        for line in document.instructions.splitlines():
            p_inst.add_run("\n" + line)

    # Questions Section
    for question in document.questions:
        p = doc.add_paragraph()
        p.paragraph_format.space_before = Pt(12)
        p.add_run(question.heading).bold = True
        doc.add_paragraph(question.text)

        for option in question.options:
            p_opt = doc.add_paragraph(option)
            p_opt.paragraph_format.left_indent = Mm(6)

        for _ in range(question.answer_lines):
            doc.add_paragraph(ANSWER_LINE)

    buffer = BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


EXPORTERS = {
    "pdf": (generate_pdf, PDF_MEDIA_TYPE),
    "docx": (generate_docx, DOCX_MEDIA_TYPE),
}


def export_document(
    document: ExamDocument,
    fmt: str = "pdf",
    title: Optional[str] = None,
) -> Tuple[str, str, bytes]:
    """
    Exports a document in the requested format.

    Args:
        document: Rendered exam.
        fmt: "pdf" or "docx".
        title: Exam title for the download name; defaults to the document title.

    Returns:
        (filename, media type, file bytes).

    Raises:
        ExportError: If the format is unknown or the exporter fails.
    """
    if fmt not in EXPORTERS:
        raise ExportError(f"Formato de exportação desconhecido: {fmt}")
    exporter, media_type = EXPORTERS[fmt]
    try:
        content = exporter(document)
    except Exception as e:
        logger.exception("Export to %s failed", fmt)
        raise ExportError(EXPORT_FAILED) from e
    filename = export_filename(title or document.title, fmt)
    logger.info("Exported %s (%d bytes)", filename, len(content))
    return filename, media_type, content
