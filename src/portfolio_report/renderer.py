"""
renderer.py — reportlab PDF renderer
====================================
Draws the composer's node list as an A4 PDF and returns the raw bytes.

  Heading(1–3)    purple H1 / H2, dark H3
  Paragraph       runs → <b>/<i> markup; style picks a ParagraphStyle
  BulletList      ListFlowable of bullets
  KeyValueTable   2-column table, purple header row
  ImageNode       scaled to fit max width/height; undecodable images skipped
  PageBreak       PageBreak

Any failure inside reportlab's layout or serialisation becomes a
RenderFailure carrying the original message.
"""

from __future__ import annotations

import io
import logging
from typing import Iterable
from xml.sax.saxutils import escape

from reportlab.lib import colors as rl_colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.lib.utils import ImageReader
from reportlab.platypus import (
    HRFlowable,
    Image,
    ListFlowable,
    ListItem,
    PageBreak as RLPageBreak,
    Paragraph as RLParagraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from portfolio_report.errors import RenderFailure
from portfolio_report.nodes import (
    BulletList,
    Heading,
    ImageNode,
    KeyValueTable,
    Node,
    PageBreak,
    Paragraph,
    Run,
)

logger = logging.getLogger(__name__)


def _rl_colour(hex_str: str):
    """Convert a CSS hex colour string to a reportlab Color."""
    h = hex_str.lstrip("#")
    if len(h) == 3:
        h = "".join(c * 2 for c in h)
    r, g, b = int(h[0:2], 16) / 255, int(h[2:4], 16) / 255, int(h[4:6], 16) / 255
    return rl_colors.Color(r, g, b)


PURPLE = _rl_colour("#5C2D91")
DARK   = _rl_colour("#1f2937")
MUTED  = _rl_colour("#6b7280")
LIGHT  = _rl_colour("#f3f4ff")
WHITE  = rl_colors.white


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    body = ParagraphStyle("Body", parent=base["Normal"],
                          textColor=DARK, fontSize=10, leading=14, spaceAfter=6)
    return {
        "h1":          ParagraphStyle("H1", parent=base["Heading1"],
                                      textColor=PURPLE, fontSize=16, leading=20,
                                      spaceBefore=6, spaceAfter=8),
        "h2":          ParagraphStyle("H2", parent=base["Heading2"],
                                      textColor=PURPLE, fontSize=13, leading=16,
                                      spaceBefore=12, spaceAfter=4),
        "h3":          ParagraphStyle("H3", parent=base["Heading3"],
                                      textColor=DARK, fontSize=11, leading=14,
                                      spaceBefore=8, spaceAfter=3),
        "body":        body,
        "placeholder": ParagraphStyle("Placeholder", parent=body, textColor=MUTED),
        "small":       ParagraphStyle("Small", parent=body, textColor=MUTED,
                                      fontSize=9, alignment=TA_CENTER),
        "centre":      ParagraphStyle("Centre", parent=body, fontSize=13, leading=18,
                                      alignment=TA_CENTER),
        "subtitle":    ParagraphStyle("Subtitle", parent=body, fontSize=22, leading=28,
                                      alignment=TA_CENTER, spaceAfter=10),
        "title":       ParagraphStyle("Title", parent=base["Title"], textColor=PURPLE,
                                      fontSize=26, leading=32, spaceBefore=4 * cm,
                                      spaceAfter=16),
        "cell":        ParagraphStyle("Cell", parent=body, fontSize=9, leading=12, spaceAfter=0),
    }


def _markup(runs: Iterable[Run]) -> str:
    parts = []
    for run in runs:
        text = escape(run.text).replace("\n", "<br/>")
        if run.bold:
            text = f"<b>{text}</b>"
        if run.italic:
            text = f"<i>{text}</i>"
        parts.append(text)
    return "".join(parts)


def _image(node: ImageNode):
    try:
        reader = ImageReader(io.BytesIO(node.data))
        width, height = reader.getSize()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Skipping undecodable image (%d bytes): %s", len(node.data), exc)
        return None
    if not width or not height:
        return None
    scale = min(node.max_width / width, node.max_height / height, 1.0)
    return Image(io.BytesIO(node.data), width=width * scale, height=height * scale, hAlign="LEFT")


def _table(node: KeyValueTable, styles: dict[str, ParagraphStyle], width: float) -> Table:
    cell = styles["cell"]
    data = [[RLParagraph(escape(k), cell), RLParagraph(escape(v), cell)] for k, v in node.rows]
    commands = [
        ("GRID",          (0, 0), (-1, -1), 0.25, rl_colors.lightgrey),
        ("VALIGN",        (0, 0), (-1, -1), "TOP"),
        ("TOPPADDING",    (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    if node.header:
        header_style = ParagraphStyle("HeaderCell", parent=cell, textColor=WHITE)
        data.insert(0, [RLParagraph(f"<b>{escape(h)}</b>", header_style) for h in node.header])
        commands += [
            ("BACKGROUND", (0, 0), (-1, 0), PURPLE),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [WHITE, LIGHT]),
        ]
    table = Table(data, colWidths=[width * 0.4, width * 0.6], repeatRows=1 if node.header else 0)
    table.setStyle(TableStyle(commands))
    return table


def _flowables(nodes: Iterable[Node], styles: dict[str, ParagraphStyle], width: float) -> list:
    story: list = []
    for node in nodes:
        if isinstance(node, Heading):
            story.append(RLParagraph(escape(node.text), styles[f"h{node.level}"]))
            if node.level == 1:
                story.append(HRFlowable(width="100%", thickness=1, color=PURPLE, spaceAfter=6))
        elif isinstance(node, Paragraph):
            story.append(RLParagraph(_markup(node.runs), styles.get(node.style, styles["body"])))
        elif isinstance(node, BulletList):
            story.append(ListFlowable(
                [ListItem(RLParagraph(escape(item), styles["body"]), leftIndent=12) for item in node.items],
                bulletType="bullet",
                leftIndent=12,
            ))
        elif isinstance(node, KeyValueTable):
            story.append(_table(node, styles, width))
            story.append(Spacer(1, 0.3 * cm))
        elif isinstance(node, ImageNode):
            image = _image(node)
            if image is not None:
                story.append(image)
                story.append(Spacer(1, 0.2 * cm))
        elif isinstance(node, PageBreak):
            story.append(RLPageBreak())
        else:
            raise RenderFailure(f"Unsupported node type: {type(node).__name__}")
    return story


def render(nodes: list[Node], *, title: str = "Home Education Learning Portfolio") -> bytes:
    """Node list → PDF bytes.  Raises RenderFailure if reportlab fails."""
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=A4,
        leftMargin=2 * cm, rightMargin=2 * cm,
        topMargin=2 * cm, bottomMargin=2 * cm,
        title=title,
    )
    try:
        story = _flowables(nodes, _styles(), doc.width)
        doc.build(story)
    except RenderFailure:
        raise
    except Exception as exc:  # noqa: BLE001
        raise RenderFailure(f"PDF rendering failed: {exc}", node_count=len(nodes)) from exc
    data = buf.getvalue()
    logger.info("Rendered %d node(s) into %d byte PDF", len(nodes), len(data))
    return data
