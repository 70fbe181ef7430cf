"""
Rule-based page metadata scraper.

Each field has an ordered tuple of resolvers. A resolver receives a
PageContext and returns a string or None; the first non-empty answer wins.
Structured data (JSON-LD, Open Graph, Twitter cards, meta tags) is tried
before DOM heuristics. The rule set is a plain value: build it once with
build_default_rules() and pass it to every scrape.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .html_extractor import as_soup, extract_json_ld

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageContext:
    soup: BeautifulSoup
    url: str
    json_ld: List[Dict[str, Any]] = field(default_factory=list)


Resolver = Callable[[PageContext], Optional[str]]


@dataclass(frozen=True)
class MetadataRules:
    """field name -> resolvers, tried in order."""
    rules: Mapping[str, Tuple[Resolver, ...]]

    def fields(self) -> Tuple[str, ...]:
        return tuple(self.rules)


# ─── Resolver building blocks ─────────────────────────────────────────────────

def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
        return _text(value)
    if isinstance(value, dict):
        return _text(value.get("name") or value.get("url") or value.get("@id"))
    s = " ".join(str(value).split())
    return s or None


def meta(*keys: str) -> Resolver:
    """<meta property|name=key content=...> for the first matching key."""
    def resolve(ctx: PageContext) -> Optional[str]:
        for key in keys:
            pattern = re.compile(rf"^{re.escape(key)}$", re.I)
            tag = ctx.soup.find("meta", attrs={"property": pattern}) or ctx.soup.find("meta", attrs={"name": pattern})
            if tag is not None:
                value = _text(tag.get("content"))
                if value:
                    return value
        return None
    return resolve


def json_ld(*path: str) -> Resolver:
    """First JSON-LD node (top level or @graph member) carrying the key path."""
    def nodes(ctx: PageContext):
        for block in ctx.json_ld:
            yield block
            graph = block.get("@graph")
            if isinstance(graph, list):
                for node in graph:
                    if isinstance(node, dict):
                        yield node

    def resolve(ctx: PageContext) -> Optional[str]:
        for node in nodes(ctx):
            value: Any = node
            for key in path:
                if isinstance(value, list):
                    value = value[0] if value else None
                if not isinstance(value, dict):
                    value = None
                    break
                value = value.get(key)
            found = _text(value)
            if found:
                return found
        return None
    return resolve


def dom_text(selector: str) -> Resolver:
    def resolve(ctx: PageContext) -> Optional[str]:
        el = ctx.soup.select_one(selector)
        return _text(el.get_text(" ")) if el is not None else None
    return resolve


def dom_attr(selector: str, attr: str) -> Resolver:
    def resolve(ctx: PageContext) -> Optional[str]:
        el = ctx.soup.select_one(selector)
        return _text(el.get(attr)) if el is not None else None
    return resolve


def absolute(resolver: Resolver) -> Resolver:
    """Resolve relative URLs against the page URL."""
    def resolve(ctx: PageContext) -> Optional[str]:
        value = resolver(ctx)
        return urljoin(ctx.url, value) if value else None
    return resolve


def first_paragraph(min_length: int = 60) -> Resolver:
    def resolve(ctx: PageContext) -> Optional[str]:
        for p in ctx.soup.find_all("p"):
            text = _text(p.get_text(" "))
            if text and len(text) >= min_length:
                return text
        return None
    return resolve


def page_url(ctx: PageContext) -> Optional[str]:
    return ctx.url


def favicon(ctx: PageContext) -> Optional[str]:
    return urljoin(ctx.url, "/favicon.ico")


def build_default_rules() -> MetadataRules:
    return MetadataRules(rules={
        "title": (
            meta("og:title", "twitter:title"),
            json_ld("headline"),
            dom_text("title"),
            dom_text("h1"),
        ),
        "description": (
            meta("og:description", "twitter:description", "description"),
            json_ld("description"),
            first_paragraph(),
        ),
        "author": (
            meta("author", "article:author", "twitter:creator"),
            json_ld("author", "name"),
            json_ld("author"),
            dom_text("[rel=author]"),
            dom_text("[itemprop=author]"),
            dom_text(".author"),
        ),
        "image": (
            absolute(meta("og:image", "og:image:url", "og:image:secure_url", "twitter:image", "twitter:image:src")),
            absolute(json_ld("image", "url")),
            absolute(json_ld("image")),
            absolute(dom_attr("link[rel=image_src]", "href")),
            absolute(dom_attr("article img[src]", "src")),
        ),
        "publisher": (
            meta("og:site_name", "application-name"),
            json_ld("publisher", "name"),
            meta("twitter:site"),
        ),
        "language": (
            dom_attr("html[lang]", "lang"),
            meta("og:locale", "content-language", "language"),
            dom_attr("meta[http-equiv=content-language]", "content"),
            json_ld("inLanguage"),
        ),
        "url": (
            absolute(meta("og:url")),
            absolute(dom_attr("link[rel=canonical]", "href")),
            page_url,
        ),
        "logo": (
            absolute(json_ld("publisher", "logo", "url")),
            absolute(json_ld("logo", "url")),
            absolute(json_ld("logo")),
            absolute(dom_attr("link[rel=apple-touch-icon]", "href")),
            absolute(dom_attr("link[rel~=icon]", "href")),
            favicon,
        ),
    })


def scrape_metadata(html: Union[str, BeautifulSoup], url: str, rules: MetadataRules) -> Dict[str, str]:
    """Resolve every field of the rule set; unresolved fields are left out."""
    soup = as_soup(html)
    ctx = PageContext(soup=soup, url=url, json_ld=extract_json_ld(soup))
    result: Dict[str, str] = {}
    for name, resolvers in rules.rules.items():
        for resolver in resolvers:
            try:
                value = resolver(ctx)
            except Exception as e:
                logger.debug("metadata resolver for %s failed: %s", name, e)
                continue
            if value:
                result[name] = value
                break
    return result
