"""
Audit PDF: the generated report text split into its headed sections and laid
out with reportlab, in memory.
"""
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple, Union
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import (
    HRFlowable, ListFlowable, ListItem, Paragraph, SimpleDocTemplate, Spacer,
)

from .report_writer import REPORT_SECTIONS

logger = logging.getLogger(__name__)

MIN_PDF_BYTES = 200

DISCLAIMER = (
    "This automated audit provides a quick snapshot based on limited metrics and may "
    "not capture every optimization opportunity. Treat it as a starting point for a "
    "deeper review of SEO, performance, accessibility and design."
)

_EMPHASIS = re.compile(r"(\*\*|\*)")
_EMPHASIS_TAGS = {"**": "b", "*": "i"}
_TAG = re.compile(r"</?[bi]>")


class PdfGenerationError(RuntimeError):
    pass


@dataclass
class ReportSection:
    title: str
    # str = paragraph, list = bullet group
    blocks: List[Union[str, List[str]]] = field(default_factory=list)


def inline_markup(line: str) -> str:
    """
    Escape text and turn **bold** / *italic* into reportlab markup in one
    pass. A marker only closes the innermost open one; markers left unpaired
    stay literal, so the tags are always well nested.
    """
    out: List[str] = []
    open_markers: List[Tuple[str, int]] = []   # (marker, index in out)
    for part in _EMPHASIS.split(line):
        if part not in _EMPHASIS_TAGS:
            out.append(escape(part))
        elif open_markers and open_markers[-1][0] == part:
            _, index = open_markers.pop()
            tag = _EMPHASIS_TAGS[part]
            out[index] = f"<{tag}>"
            out.append(f"</{tag}>")
        else:
            open_markers.append((part, len(out)))
            out.append(part)
    return "".join(out)


def _paragraph(markup: str, style: ParagraphStyle) -> Paragraph:
    try:
        return Paragraph(markup, style)
    except ValueError as e:
        logger.warning("report paragraph markup rejected, rendering plain text: %s", str(e)[:120])
        return Paragraph(_TAG.sub("", markup), style)


def _heading_for(line: str) -> Optional[str]:
    lowered = line.lower()
    for heading in REPORT_SECTIONS:
        if lowered.startswith(heading.lower()):
            return heading
    return None


def split_report_sections(text: str) -> List[ReportSection]:
    """
    Group report lines under the known headings. Lines starting with "- "
    form bullet groups; anything before the first heading lands in an
    untitled section.
    """
    sections: List[ReportSection] = []
    current: Optional[ReportSection] = None

    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        heading = _heading_for(line)
        if heading:
            current = ReportSection(title=line.rstrip(":"))
            sections.append(current)
            continue
        if current is None:
            current = ReportSection(title="")
            sections.append(current)
        if line.startswith("- "):
            item = inline_markup(line[2:])
            if current.blocks and isinstance(current.blocks[-1], list):
                current.blocks[-1].append(item)
            else:
                current.blocks.append([item])
        else:
            current.blocks.append(inline_markup(line))
    return sections


def build_report_pdf(url: str, report_text: str, generated_at: Optional[datetime] = None) -> bytes:
    """Render the audit PDF; raises PdfGenerationError on an implausibly small document."""
    generated_at = generated_at or datetime.now()
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=A4,
        leftMargin=18 * mm, rightMargin=18 * mm,
        topMargin=18 * mm, bottomMargin=18 * mm,
        title="Online Presence & Performance Audit",
    )

    ACCENT = colors.HexColor("#007acc")
    MID_GRAY = colors.HexColor("#6b7280")

    title_st = ParagraphStyle("title", fontSize=20, fontName="Helvetica-Bold",
                              textColor=colors.HexColor("#111827"), spaceAfter=8)
    meta_st = ParagraphStyle("meta", fontSize=10, fontName="Helvetica",
                             textColor=MID_GRAY, spaceAfter=2)
    section_st = ParagraphStyle("section", fontSize=13, fontName="Helvetica-Bold",
                                textColor=ACCENT, spaceBefore=14, spaceAfter=6)
    body_st = ParagraphStyle("body", fontSize=10, fontName="Helvetica",
                             leading=15, spaceAfter=8)
    footer_st = ParagraphStyle("footer", fontSize=8, fontName="Helvetica",
                               textColor=MID_GRAY, alignment=TA_CENTER, spaceBefore=16)

    story = [
        Paragraph("Online Presence &amp; Performance Audit", title_st),
        Paragraph(f"<b>URL:</b> {escape(url)}", meta_st),
        Paragraph(f"<b>Date:</b> {generated_at.strftime('%Y-%m-%d')}", meta_st),
        Spacer(1, 4 * mm),
        HRFlowable(width="100%", thickness=1, color=colors.HexColor("#e5e7eb")),
    ]

    for section in split_report_sections(report_text):
        if section.title:
            story.append(Paragraph(escape(section.title), section_st))
        for block in section.blocks:
            if isinstance(block, list):
                story.append(ListFlowable(
                    [ListItem(_paragraph(item, body_st), leftIndent=12) for item in block],
                    bulletType="bullet", start="•",
                ))
            else:
                story.append(_paragraph(block, body_st))

    story.append(Paragraph("Disclaimer", section_st))
    story.append(Paragraph(DISCLAIMER, body_st))
    story.append(Paragraph(f"Generated {generated_at.strftime('%Y-%m-%d %H:%M')}", footer_st))

    doc.build(story)
    pdf = buf.getvalue()
    if len(pdf) < MIN_PDF_BYTES:
        raise PdfGenerationError(f"generated PDF is empty or corrupted ({len(pdf)} bytes)")
    logger.debug("built audit PDF for %s (%d bytes)", url, len(pdf))
    return pdf
