"""
icons_color_algorithm.py
------------------------
Algorithm to recolor and resize fetched Simple Icons SVGs, and to encode the
result as a base64 data URI.

Markup is rewritten as text: only the root <svg ...> opening tag and
fill="..." attributes are touched. Everything else is left as it came.

Two modes:
- apply_style: rewrite fills (unless the source already applied the colour)
  and replace width/height on the root tag.
- rebuild_from_path: for single-path glyphs, take the first <path d="...">
  and wrap it in a fresh 24x24 viewBox <svg>.
"""

from __future__ import annotations
import base64
import re
from typing import Optional

DEFAULT_COLOR = "#000000"

HEX_RE = re.compile(r'^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$')
CSS_NAME_RE = re.compile(r'^[a-zA-Z]{3,30}$')
RGB_FUNC_RE = re.compile(r'^(rgb|rgba|hsl|hsla)\([0-9.,%\s/]+\)$', re.IGNORECASE)

FILL_ATTR_RE = re.compile(r'fill="[^"]*"')
ROOT_TAG_RE = re.compile(r'<svg\b([^>]*?)(/?)>', re.IGNORECASE)
SIZE_ATTR_RE = re.compile(r'\s+(?:width|height)\s*=\s*(?:"[^"]*"|\'[^\']*\')', re.IGNORECASE)
ROOT_FILL_RE = re.compile(r'\sfill\s*=', re.IGNORECASE)
PATH_D_RE = re.compile(r'<path\b[^>]*?\sd\s*=\s*"([^"]*)"', re.IGNORECASE)


def normalize_hex(c: str) -> str:
    c = c.strip()
    if HEX_RE.fullmatch(c):
        c = c if c.startswith("#") else f"#{c}"
        if len(c) == 4:  # #rgb → #rrggbb
            r, g, b = c[1], c[2], c[3]
            return f"#{r}{r}{g}{g}{b}{b}"
        return c
    return c  # leave non-hex as-is (e.g., rgb(...))


def normalize_color(value: Optional[str]) -> str:
    """Hex (with or without '#'), CSS names and rgb()/hsl() pass; anything else is black."""
    if not value:
        return DEFAULT_COLOR
    token = value.strip()
    if not token:
        return DEFAULT_COLOR
    if HEX_RE.fullmatch(token):
        return normalize_hex(token)
    if CSS_NAME_RE.fullmatch(token):
        return token.lower()
    if RGB_FUNC_RE.fullmatch(token):
        return token
    return DEFAULT_COLOR


def color_for_url(color: str) -> str:
    """Colour as the colour-aware endpoint expects it: no leading '#'."""
    return color.lstrip("#")


def is_valid_svg(markup: Optional[str]) -> bool:
    if not markup or not markup.strip():
        return False
    return "</svg>" in markup.lower()


def recolor_fills(svg: str, color: str) -> str:
    """Replace every fill="..." with the requested colour; add one to the root tag if none exists."""
    if FILL_ATTR_RE.search(svg):
        return FILL_ATTR_RE.sub(f'fill="{color}"', svg)
    # Static corpus assets carry no fill at all
    match = ROOT_TAG_RE.search(svg)
    if not match or ROOT_FILL_RE.search(match.group(1)):
        return svg
    attrs, self_closing = match.group(1), match.group(2)
    return f'{svg[:match.start()]}<svg{attrs} fill="{color}"{self_closing}>{svg[match.end():]}'


def resize_root(svg: str, size: int) -> str:
    """Drop width/height from the root <svg> tag and set both to size. No root tag: unchanged."""
    match = ROOT_TAG_RE.search(svg)
    if not match:
        return svg
    attrs = SIZE_ATTR_RE.sub("", match.group(1))
    self_closing = match.group(2)
    tag = f'<svg{attrs} width="{size}" height="{size}"{self_closing}>'
    return svg[:match.start()] + tag + svg[match.end():]


def apply_style(svg: str, color: str, size: int, color_applied: bool = False) -> str:
    """
    Apply colour and pixel size to fetched markup.

    When color_applied is True the upstream source already coloured the
    markup with this colour and the fill rewrite is skipped.
    Raises ValueError if the markup is not a complete <svg> before or after.
    """
    if not is_valid_svg(svg):
        raise ValueError("incomplete svg markup")
    if not color_applied:
        svg = recolor_fills(svg, color)
    svg = resize_root(svg, size)
    if not is_valid_svg(svg):
        raise ValueError("svg markup damaged by rewrite")
    return svg


def extract_path_data(svg: str) -> Optional[str]:
    match = PATH_D_RE.search(svg or "")
    if not match or not match.group(1).strip():
        return None
    return match.group(1)


def rebuild_from_path(svg: str, color: str, size: int) -> Optional[str]:
    """Wrap the first path of a single-path glyph in a fresh 24x24 <svg>. None if there is no path data."""
    d = extract_path_data(svg)
    if d is None:
        return None
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24" '
        f'width="{size}" height="{size}">'
        f'<path d="{d}" fill="{color}"/></svg>'
    )


def encode_data_uri(svg: str) -> str:
    # UTF-8 first so titles such as "Citroën" survive base64
    data = base64.b64encode(svg.encode("utf-8")).decode("ascii")
    return f"data:image/svg+xml;base64,{data}"


def decode_data_uri(uri: str) -> str:
    prefix = "data:image/svg+xml;base64,"
    if not uri.startswith(prefix):
        raise ValueError("not an svg base64 data uri")
    return base64.b64decode(uri[len(prefix):]).decode("utf-8")
