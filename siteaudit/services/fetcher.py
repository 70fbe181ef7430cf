"""
Timeout-bounded HTTP fetcher for the target page, robots.txt and sitemaps.
Every failure (network, timeout, non-2xx) comes back as None.
"""
import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import aiohttp
from bs4 import BeautifulSoup

from ..models import SiteSignals
from ..config import get_settings
from ..utils.url_guard import is_public_url

settings = get_settings()
logger = logging.getLogger(__name__)

_SITEMAP_DIRECTIVE = re.compile(r"^\s*sitemap\s*:\s*(\S+)", re.IGNORECASE)
_DISALLOW_ALL = re.compile(r"^\s*disallow\s*:\s*/\s*$", re.IGNORECASE)
_SITEMAP_CANDIDATES = ("/sitemap.xml", "/sitemap_index.xml")


def _origin(url: str) -> str:
    p = urlparse(url)
    return f"{p.scheme}://{p.netloc}"


async def fetch_text(session: aiohttp.ClientSession, url: str, timeout: float) -> Optional[str]:
    """GET url once. Returns the body text, or None on any failure."""
    try:
        async with session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=timeout),
            allow_redirects=True,
            headers={"User-Agent": settings.user_agent},
        ) as resp:
            if resp.status < 200 or resp.status >= 300:
                logger.debug("GET %s -> HTTP %s", url, resp.status)
                return None
            return await resp.text(errors="replace")
    except asyncio.TimeoutError:
        logger.debug("GET %s timed out after %ss", url, timeout)
        return None
    except Exception as e:
        logger.debug("GET %s failed: %s", url, str(e)[:120])
        return None


# ─── robots.txt ───────────────────────────────────────────────────────────────

def parse_robots(text: str) -> Tuple[Optional[str], bool]:
    """Return (first Sitemap: directive, crawl_allowed)."""
    sitemap = None
    crawl_allowed = True
    for line in text.splitlines():
        if sitemap is None:
            m = _SITEMAP_DIRECTIVE.match(line)
            if m:
                sitemap = m.group(1)
        if _DISALLOW_ALL.match(line):
            crawl_allowed = False
    return sitemap, crawl_allowed


# ─── sitemap.xml ──────────────────────────────────────────────────────────────

def _parse_lastmod(value: str) -> Optional[datetime]:
    value = value.strip()
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_sitemap(xml: str) -> Tuple[Optional[int], Optional[str]]:
    """Return (<url> entry count or None, latest <lastmod> as ISO-8601 or None)."""
    soup = BeautifulSoup(xml, "xml")
    pages = len(soup.find_all("url")) or None
    dates: List[datetime] = []
    for tag in soup.find_all("lastmod"):
        dt = _parse_lastmod(tag.get_text())
        if dt is not None:
            dates.append(dt)
    latest = max(dates).astimezone(timezone.utc).isoformat() if dates else None
    return pages, latest


async def _may_fetch(target: str, page_url: str) -> bool:
    """Same-host URLs were already vetted with the page; others go through the SSRF guard."""
    if urlparse(target).hostname == urlparse(page_url).hostname:
        return True
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, is_public_url, target)


async def resolve_site_signals(session: aiohttp.ClientSession, url: str) -> SiteSignals:
    """
    robots.txt first; its Sitemap: directive wins over the conventional locations.
    A directive is reported even when the sitemap itself cannot be fetched.
    """
    base = _origin(url)
    robots = await fetch_text(session, f"{base}/robots.txt", settings.robots_timeout_seconds)

    sitemap_url = None
    crawl_allowed = True
    if robots is not None:
        sitemap_url, crawl_allowed = parse_robots(robots)

    pages = latest = None
    if sitemap_url:
        if await _may_fetch(sitemap_url, url):
            xml = await fetch_text(session, sitemap_url, settings.sitemap_timeout_seconds)
            if xml:
                pages, latest = parse_sitemap(xml)
        else:
            logger.warning("sitemap directive %s points at a private address, not fetched", sitemap_url)
    else:
        for path in _SITEMAP_CANDIDATES:
            candidate = f"{base}{path}"
            xml = await fetch_text(session, candidate, settings.sitemap_timeout_seconds)
            if not xml:
                continue
            sitemap_url = candidate
            pages, latest = parse_sitemap(xml)
            break

    return SiteSignals(
        robots_txt_present=robots is not None,
        sitemap_url=sitemap_url,
        crawl_allowed=crawl_allowed,
        sitemap_page_estimate=pages,
        sitemap_latest_date=latest,
    )
