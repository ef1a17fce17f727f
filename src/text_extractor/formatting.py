# -*- coding: utf-8 -*-
"""
Visual formatting of the recognized text in the full-text view.

A ``TextStyle`` is rendered to HTML for a ``QTextBrowser``; the text itself is
never modified, only escaped.
"""

from __future__ import annotations

import enum
import html
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

FONT_SIZE_RANGE = (12, 24)
LINE_SPACING_RANGE = (0, 20)
LETTER_SPACING_RANGE = (0, 10)

ALIGNMENTS = ("left", "center", "right")

TRANSPARENT = "transparent"

LIGHT_MODE_TEXT_COLOR = "#000000"
DARK_MODE_TEXT_COLOR = "#ffffff"

TEXT_COLORS: List[str] = ["#000000", "#800080", "#0000ff", "#ff0000", "#008000", "#ffa500"]
BACKGROUND_COLORS: List[str] = [TRANSPARENT, "#ffffff", "#fffacd", "#e6e6fa", "#e0ffff", "#f0f0f0"]


class FormattingOption(enum.Enum):
    FONT = "font"
    COLOR = "color"
    BACKGROUND = "background"
    ALIGNMENT = "alignment"
    SPACING = "spacing"
    STYLE = "style"

    @property
    def title(self) -> str:
        return self.value.capitalize()


def _clamp(value: float, bounds) -> float:
    low, high = bounds
    return max(low, min(high, value))


@dataclass(frozen=True)
class TextStyle:
    font_size: int = 16
    bold: bool = False
    italic: bool = False
    # None follows the light or dark appearance.
    foreground_color: Optional[str] = None
    background_color: str = TRANSPARENT
    alignment: str = "left"
    line_spacing: float = 5
    letter_spacing: float = 0

    def clamped(self) -> "TextStyle":
        """Return a copy with every value forced into its allowed range."""
        return replace(
            self,
            font_size=int(_clamp(self.font_size, FONT_SIZE_RANGE)),
            alignment=self.alignment if self.alignment in ALIGNMENTS else "left",
            line_spacing=_clamp(self.line_spacing, LINE_SPACING_RANGE),
            letter_spacing=_clamp(self.letter_spacing, LETTER_SPACING_RANGE),
        )

    def resolved(self, dark_mode: bool = False) -> "TextStyle":
        """Return a copy with the appearance-dependent text colour filled in."""
        if self.foreground_color is not None:
            return self
        return replace(self, foreground_color=DARK_MODE_TEXT_COLOR if dark_mode else LIGHT_MODE_TEXT_COLOR)

    def css(self, dark_mode: bool = False) -> Dict[str, str]:
        style = self.clamped().resolved(dark_mode)
        rules = {
            "font-size": f"{style.font_size}px",
            "font-weight": "bold" if style.bold else "normal",
            "font-style": "italic" if style.italic else "normal",
            "color": style.foreground_color,
            "text-align": style.alignment,
            # Qt's rich text engine understands line-height as a percentage.
            "line-height": f"{round(100 * (style.font_size + style.line_spacing) / style.font_size)}%",
            "letter-spacing": f"{style.letter_spacing:g}px",
        }
        if style.background_color != TRANSPARENT:
            rules["background-color"] = style.background_color
        return rules


def render_html(text: str, style: TextStyle, dark_mode: bool = False) -> str:
    """One paragraph per line so alignment and spacing apply to every line."""
    declarations = "; ".join(f"{name}: {value}" for name, value in style.css(dark_mode).items())
    paragraphs = "".join(
        f'<p style="{declarations}">{html.escape(line) or "&nbsp;"}</p>' for line in text.split("\n")
    )
    return f"<html><body>{paragraphs}</body></html>"
