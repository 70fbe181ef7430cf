"""
Static HTML extraction: structural metrics, structured data and on-page
signals from the raw (unrendered) HTML. Pure functions, no network.
"""
import json
import re
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction

from ..models import (
    HtmlMetrics, SeoSignals, TechSignals, SocialSignals, ConversionSignals, UNTITLED,
)

_NON_TEXT_TAGS = {"script", "style", "noscript", "template"}
_NON_TEXT_STRINGS = (Comment, CData, Declaration, Doctype, ProcessingInstruction)

SOCIAL_PLATFORMS = ("facebook", "twitter", "instagram", "linkedin", "youtube", "tiktok")

_ANALYTICS_PATTERNS = (
    ("GA", re.compile(r"gtag\(|google-analytics|analytics\.js|measurementid=g-")),
    ("GTM", re.compile(r"googletagmanager\.com/gtm\.js")),
    ("Facebook Pixel", re.compile(r"fbq\(|connect\.facebook\.net")),
)
_CTA_PATTERN = re.compile(r"buy|order|add to cart|subscribe|get started|checkout", re.IGNORECASE)


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def _clean(text: str) -> str:
    return " ".join(text.split())


def visible_text(soup: BeautifulSoup) -> str:
    """Body text with script/style/noscript/template contents and comments left out."""
    root = soup.body or soup
    parts = []
    for s in root.find_all(string=True):
        if isinstance(s, _NON_TEXT_STRINGS):
            continue
        if s.parent is not None and s.parent.name in _NON_TEXT_TAGS:
            continue
        parts.append(str(s))
    return " ".join(parts)


def _meta_description(soup: BeautifulSoup) -> Optional[str]:
    tag = soup.find("meta", attrs={"name": re.compile(r"^description$", re.I)})
    if tag is None:
        return None
    return (tag.get("content") or "").strip()


# ─── HtmlMetrics ──────────────────────────────────────────────────────────────

def metrics_from_soup(soup: BeautifulSoup) -> HtmlMetrics:
    title_tag = soup.find("title")
    h1 = soup.find("h1")
    images = soup.find_all("img")
    return HtmlMetrics(
        title=_clean(title_tag.get_text(" ")) if title_tag is not None else UNTITLED,
        description=_meta_description(soup),
        first_h1=_clean(h1.get_text(" ")) if h1 is not None else None,
        h2_count=len(soup.find_all("h2")),
        word_count=len(visible_text(soup).split()),
        link_count=len(soup.find_all("a")),
        image_count=len(images),
        images_missing_alt=sum(1 for img in images if img.get("alt") is None),
    )


def extract_html_metrics(html: str) -> HtmlMetrics:
    """Deterministic counts over the parsed DOM; identical input gives identical output."""
    return metrics_from_soup(parse_html(html))


# ─── Structured data ──────────────────────────────────────────────────────────

def extract_json_ld(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    """All JSON-LD objects on the page; arrays are flattened, invalid blocks skipped."""
    blocks: List[Dict[str, Any]] = []
    for script in soup.find_all("script", attrs={"type": re.compile(r"application/ld\+json", re.I)}):
        raw = script.string or script.get_text() or ""
        try:
            parsed = json.loads(raw)
        except ValueError:
            continue
        items = parsed if isinstance(parsed, list) else [parsed]
        blocks.extend(item for item in items if isinstance(item, dict))
    return blocks


def _types_of(node: Dict[str, Any]) -> List[str]:
    t = node.get("@type")
    if t is None:
        return []
    return [str(x) for x in t] if isinstance(t, list) else [str(t)]


def structured_data_types(blocks: List[Dict[str, Any]]) -> List[str]:
    found: List[str] = []
    for block in blocks:
        if "@type" in block:
            found.extend(_types_of(block))
        elif isinstance(block.get("@graph"), list):
            for node in block["@graph"]:
                if isinstance(node, dict):
                    found.extend(_types_of(node))
    return list(dict.fromkeys(s.lower() for s in found))


# ─── On-page signals ──────────────────────────────────────────────────────────

def extract_seo_signals(soup: BeautifulSoup, blocks: List[Dict[str, Any]]) -> SeoSignals:
    canonical = soup.find("link", rel="canonical")
    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag is not None else ""
    return SeoSignals(
        canonical=(canonical.get("href") or None) if canonical is not None else None,
        h1_present=any(h.get_text(strip=True) for h in soup.find_all("h1")),
        title_length=len(title),
        meta_description_length=len(_meta_description(soup) or ""),
        structured_data_types=structured_data_types(blocks),
    )


def detect_tech(html: str, url: str) -> TechSignals:
    lowered = (html or "").lower()
    return TechSignals(
        analytics=[name for name, pattern in _ANALYTICS_PATTERNS if pattern.search(lowered)],
        https=url.lower().startswith("https://"),
    )


def extract_social_links(soup: BeautifulSoup) -> SocialSignals:
    profiles: Dict[str, str] = {}
    for platform in SOCIAL_PLATFORMS:
        link = soup.select_one(f'a[href*="{platform}.com"]')
        if link is not None:
            profiles[platform] = link["href"]
    return SocialSignals(profiles=profiles, presence_score=min(100, len(profiles) * 20))


def _page_type(path: str, has_product: bool) -> str:
    if has_product or re.search(r"/product|/item/", path):
        return "product"
    if re.search(r"/blog|/article|/post", path):
        return "article"
    if path in ("", "/"):
        return "homepage"
    return "landing"


def detect_conversion(soup: BeautifulSoup, blocks: List[Dict[str, Any]], url: str) -> ConversionSignals:
    cta_count = 0
    for el in soup.select("a, button, input[type=submit]"):
        label = el.get_text(" ", strip=True) or el.get("aria-label") or el.get("value") or ""
        if _CTA_PATTERN.search(label):
            cta_count += 1

    has_product = any("product" in json.dumps(b).lower() for b in blocks)
    has_cart = bool(soup.select('a[href*="cart"], a[href*="checkout"], [class*="cart"]'))
    return ConversionSignals(
        cta_count=cta_count,
        forms=len(soup.find_all("form")),
        has_cart=has_cart,
        has_newsletter=bool(soup.select('input[type="email"]')),
        has_product_schema=has_product,
        page_type=_page_type(urlparse(url).path.lower(), has_product),
        is_ecommerce=has_product or has_cart,
    )


def as_soup(html_or_soup: Union[str, BeautifulSoup]) -> BeautifulSoup:
    if isinstance(html_or_soup, BeautifulSoup):
        return html_or_soup
    return parse_html(html_or_soup)
