"""
Color palette sampling from the rendered DOM and WCAG contrast between the
two leading colors.
"""
import re
from typing import Iterable, List, Optional, Tuple

from playwright.async_api import Page

from ..models import ColorPalette

# Walks every element once and stops as soon as `limit` distinct colors are seen.
COLOR_SAMPLER_JS = """
(limit) => {
    const seen = [];
    for (const el of document.querySelectorAll('*')) {
        const color = window.getComputedStyle(el).color;
        if (color && !seen.includes(color)) {
            seen.push(color);
            if (seen.length >= limit) break;
        }
    }
    return seen;
}
"""

_RGB = re.compile(r"rgba?\(\s*([\d.]+)[\s,]+([\d.]+)[\s,]+([\d.]+)")
_HEX = re.compile(r"^#([0-9a-f]{3}|[0-9a-f]{6})$", re.IGNORECASE)

RGB = Tuple[float, float, float]


def parse_css_color(value: str) -> Optional[RGB]:
    """rgb()/rgba()/#hex to an (r, g, b) triple in 0-255; None for anything else."""
    value = (value or "").strip()
    m = _RGB.match(value)
    if m:
        return tuple(min(255.0, float(c)) for c in m.groups())
    m = _HEX.match(value)
    if m:
        h = m.group(1)
        if len(h) == 3:
            h = "".join(c * 2 for c in h)
        return tuple(float(int(h[i:i + 2], 16)) for i in (0, 2, 4))
    return None


def relative_luminance(rgb: RGB) -> float:
    def channel(c: float) -> float:
        c = c / 255.0
        return c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4
    r, g, b = (channel(c) for c in rgb)
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrast_ratio(first: str, second: str) -> float:
    """WCAG 2.x contrast ratio, 1.0 to 21.0; 0 if either color cannot be parsed."""
    a, b = parse_css_color(first), parse_css_color(second)
    if a is None or b is None:
        return 0
    la, lb = relative_luminance(a), relative_luminance(b)
    lighter, darker = max(la, lb), min(la, lb)
    return round((lighter + 0.05) / (darker + 0.05), 2)


def build_palette(colors: Iterable[str], limit: int = 10) -> ColorPalette:
    palette: List[str] = []
    for color in colors:
        if color and color not in palette:
            palette.append(color)
            if len(palette) >= limit:
                break
    contrast = contrast_ratio(palette[0], palette[1]) if len(palette) >= 2 else 0
    return ColorPalette(palette=palette, primary_contrast=contrast)


async def sample_colors(page: Page, limit: int = 10) -> ColorPalette:
    raw = await page.evaluate(COLOR_SAMPLER_JS, limit)
    return build_palette(raw or [], limit)
