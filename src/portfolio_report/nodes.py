"""
Abstract document nodes produced by composer.py and consumed by renderer.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class Run:
    text:   str
    bold:   bool = False
    italic: bool = False


@dataclass(frozen=True)
class Heading:
    level: int      # 1–3
    text:  str

    def __post_init__(self) -> None:
        if self.level not in (1, 2, 3):
            raise ValueError(f"Heading level must be 1–3, got {self.level}")


@dataclass(frozen=True)
class Paragraph:
    runs:  tuple[Run, ...]
    style: str = "body"   # "body" | "title" | "subtitle" | "placeholder" | "small"

    @property
    def text(self) -> str:
        return "".join(r.text for r in self.runs)

    @classmethod
    def plain(cls, text: str, style: str = "body") -> "Paragraph":
        return cls(runs=(Run(text),), style=style)

    @classmethod
    def placeholder(cls, text: str) -> "Paragraph":
        """Italic stand-in for a section with no content."""
        return cls(runs=(Run(text, italic=True),), style="placeholder")

    @classmethod
    def labelled(cls, label: str, text: str) -> "Paragraph":
        """``**Label:** text``"""
        return cls(runs=(Run(f"{label}: ", bold=True), Run(text)))


@dataclass(frozen=True)
class BulletList:
    items: tuple[str, ...]


@dataclass(frozen=True)
class KeyValueTable:
    rows:   tuple[tuple[str, str], ...]
    header: tuple[str, str] | None = None


@dataclass(frozen=True)
class ImageNode:
    data:       bytes = field(repr=False)
    max_width:  float = 400.0   # points
    max_height: float = 300.0


@dataclass(frozen=True)
class PageBreak:
    pass


Node = Union[Heading, Paragraph, BulletList, KeyValueTable, ImageNode, PageBreak]


def plain_text(nodes: list[Node]) -> str:
    """Flatten a node list to text, one line per block (tests and logging)."""
    lines: list[str] = []
    for node in nodes:
        if isinstance(node, Heading):
            lines.append(node.text)
        elif isinstance(node, Paragraph):
            lines.append(node.text)
        elif isinstance(node, BulletList):
            lines.extend(f"• {item}" for item in node.items)
        elif isinstance(node, KeyValueTable):
            rows = ((node.header,) if node.header else ()) + node.rows
            lines.extend(f"{k} | {v}" for k, v in rows)
    return "\n".join(lines)
