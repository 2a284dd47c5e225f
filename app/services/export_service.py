"""
Story export to PDF, Word and plain text.

Word files are real ``.docx`` documents built with python-docx. PDFs are
laid out with fpdf2 using its built-in Helvetica font, so text outside
Latin-1 such as emoji is replaced.
"""

import io
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt
from fpdf import FPDF

from app.models.story import StoryModel
from app.models.subscription import ExportFormat
from app.services.content_filter import InputSanitizer


@dataclass
class ExportedFile:
    content: bytes
    media_type: str
    filename: str


DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

MEDIA_TYPES = {
    ExportFormat.PDF.value: ("application/pdf", "pdf"),
    ExportFormat.WORD.value: (DOCX_MEDIA_TYPE, "docx"),
    ExportFormat.TXT.value: ("text/plain; charset=utf-8", "txt"),
}


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime("%B %d, %Y") if value else ""


def _story_sections(story: StoryModel, comments: List[Dict[str, Any]]) -> List[tuple]:
    """Ordered (heading, lines) blocks shared by every format."""
    elements = story.elements.describe()
    sections = [
        ("Story Elements", [f"{name.title()}: {value}" for name, value in elements.items()]),
        ("Story", [p.strip() for p in story.content.split("\n") if p.strip()]),
    ]

    assessment = story.ai_assessment
    if assessment:
        lines = [
            f"Grammar: {assessment.grammar_score}  Creativity: {assessment.creativity_score}  "
            f"Overall: {assessment.overall_score}",
        ]
        if assessment.feedback:
            lines.append(assessment.feedback)
        lines.extend(f"Strength: {s}" for s in assessment.strengths)
        lines.extend(f"Try next: {s}" for s in assessment.suggestions)
        sections.append(("Story Assessment", lines))

    if comments:
        sections.append((
            "Mentor Feedback",
            [f"{c.get('commenter_name') or 'Mentor'}: {c.get('content', '')}" for c in comments],
        ))
    return sections


def _footer(story: StoryModel) -> str:
    return (
        f"Word Count: {story.word_count} | Created: {_format_date(story.created_at)} | "
        f"Author: {story.author_name or 'Young Author'}"
    )


# ── Plain text ───────────────────────────────────────────────────────

def render_txt(story: StoryModel, comments: List[Dict[str, Any]]) -> bytes:
    out = [story.title, f"Written by {story.author_name or 'Young Author'}", ""]
    for heading, lines in _story_sections(story, comments):
        out.extend([heading.upper(), "-" * len(heading)])
        out.extend(lines)
        out.append("")
    out.append(_footer(story))
    return "\n".join(out).encode("utf-8")


# ── Word ─────────────────────────────────────────────────────────────

def render_word(story: StoryModel, comments: List[Dict[str, Any]]) -> bytes:
    document = Document()
    document.core_properties.title = story.title
    document.core_properties.author = story.author_name or "Young Author"

    document.add_heading(story.title, level=0).alignment = WD_ALIGN_PARAGRAPH.CENTER
    byline = document.add_paragraph()
    byline.alignment = WD_ALIGN_PARAGRAPH.CENTER
    byline.add_run(f"Written by {story.author_name or 'Young Author'}").italic = True
    created = document.add_paragraph(f"Created on {_format_date(story.created_at)}")
    created.alignment = WD_ALIGN_PARAGRAPH.CENTER

    for heading, lines in _story_sections(story, comments):
        document.add_heading(heading, level=1)
        for line in lines:
            document.add_paragraph(line)

    footer = document.add_paragraph().add_run(_footer(story))
    footer.font.size = Pt(9)

    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


# ── PDF ──────────────────────────────────────────────────────────────

def _latin1(text: str) -> str:
    # core fonts only cover Latin-1
    return text.encode("latin-1", "replace").decode("latin-1")


def render_pdf(story: StoryModel, comments: List[Dict[str, Any]]) -> bytes:
    """
    Lay the story out as an A4 PDF; pages break automatically.

    Args:
        story: Story to render.
        comments: Mentor comments to append.

    Returns:
        PDF file bytes.
    """
    pdf = FPDF()
    pdf.set_title(_latin1(story.title))
    pdf.set_author(_latin1(story.author_name or "Young Author"))
    pdf.set_auto_page_break(auto=True, margin=20)
    pdf.add_page()

    pdf.set_font("Helvetica", "B", 20)
    pdf.multi_cell(0, 10, _latin1(story.title), align="C", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "I", 12)
    pdf.multi_cell(0, 7, _latin1(f"Written by {story.author_name or 'Young Author'}"),
                   align="C", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 10)
    pdf.multi_cell(0, 6, f"Created on {_format_date(story.created_at)}", align="C", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(6)

    for heading, lines in _story_sections(story, comments):
        pdf.set_font("Helvetica", "B", 14)
        pdf.multi_cell(0, 8, _latin1(heading), new_x="LMARGIN", new_y="NEXT")
        pdf.set_font("Helvetica", "", 11)
        for line in lines:
            pdf.multi_cell(0, 6, _latin1(line), new_x="LMARGIN", new_y="NEXT")
            pdf.ln(2)
        pdf.ln(4)

    pdf.set_font("Helvetica", "", 9)
    pdf.multi_cell(0, 5, _latin1(_footer(story)), new_x="LMARGIN", new_y="NEXT")
    return bytes(pdf.output())


RENDERERS = {
    ExportFormat.PDF.value: render_pdf,
    ExportFormat.WORD.value: render_word,
    ExportFormat.TXT.value: render_txt,
}


def export_story(
    story: StoryModel,
    export_format: str,
    comments: Optional[List[Dict[str, Any]]] = None,
) -> ExportedFile:
    """
    Render a story in the requested format.

    Raises:
        ValueError: If the format is unknown.
    """
    if export_format not in RENDERERS:
        raise ValueError(f"Unsupported export format: {export_format}")
    media_type, extension = MEDIA_TYPES[export_format]
    stamp = datetime.utcnow().strftime("%Y%m%d%H%M%S")
    filename = f"{InputSanitizer.sanitize_filename(story.title)}_{stamp}.{extension}"
    content = RENDERERS[export_format](story, comments or [])
    return ExportedFile(content=content, media_type=media_type, filename=filename)
