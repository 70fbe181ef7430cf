"""
Analysis pipeline: fetch and extract, then render and audit, then compose.

    FETCHING_PRIMARY -> FAILED
                     -> EXTRACTING -> RENDERING (accessibility+colors || performance)
                                   -> COMPOSING -> DONE

Only the primary fetch can fail the request. Every other step is wrapped in
an Outcome and replaced by its documented default when it does not deliver.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union
from urllib.parse import urlparse

import aiohttp
from playwright.async_api import Page

from ..models import (
    AnalysisReport, AnalysisError, AccessibilityResult, ColorPalette, ConversionSignals,
    HtmlMetrics, PerformanceResult, SeoSignals, SiteSignals, SocialSignals, TechSignals,
    normalize_url,
)
from ..config import get_settings
from .fetcher import fetch_text, resolve_site_signals
from .html_extractor import (
    parse_html, metrics_from_soup, visible_text, extract_json_ld, extract_seo_signals,
    detect_tech, extract_social_links, detect_conversion,
)
from .metadata_scraper import MetadataRules, build_default_rules, scrape_metadata
from .keywords import extract_keywords
from .browser import with_rendered_page
from .accessibility import audit_accessibility
from .colors import sample_colors
from .performance import audit_performance
from ..utils.outcome import run_step, run_async_step

settings = get_settings()
logger = logging.getLogger(__name__)


class AnalysisStage(str, Enum):
    FETCHING_PRIMARY = "fetching_primary"
    FAILED = "failed"
    EXTRACTING = "extracting"
    RENDERING = "rendering"
    COMPOSING = "composing"
    DONE = "done"


@dataclass(frozen=True)
class RenderedSignals:
    accessibility: AccessibilityResult
    colors: ColorPalette


def _enter(stage: AnalysisStage, url: str) -> None:
    logger.debug("[%s] %s", stage.value, url)


async def _inspect_rendered_page(page: Page) -> RenderedSignals:
    accessibility = await audit_accessibility(page)
    try:
        colors = await sample_colors(page, settings.palette_limit)
    except Exception as e:
        logger.warning("color sampling failed on %s: %s", page.url, str(e)[:120])
        colors = ColorPalette()
    return RenderedSignals(accessibility=accessibility, colors=colors)


async def _render_branch(url: str) -> Optional[RenderedSignals]:
    return await with_rendered_page(url, _inspect_rendered_page, settings.render_timeout_seconds)


async def _performance_branch(url: str, enabled: bool) -> Optional[PerformanceResult]:
    if not enabled:
        return None
    return await audit_performance(url)


async def analyze(
    url: str,
    rules: Optional[MetadataRules] = None,
    run_performance: Optional[bool] = None,
) -> Union[AnalysisReport, AnalysisError]:
    """
    Analyze one page. Returns a structurally complete AnalysisReport, or
    AnalysisError("Page could not be fetched") when the page itself is
    unreachable; in that case nothing else is attempted.
    """
    target = normalize_url(url)
    rules = rules or build_default_rules()
    if run_performance is None:
        run_performance = settings.run_lighthouse

    async with aiohttp.ClientSession() as session:
        _enter(AnalysisStage.FETCHING_PRIMARY, target)
        html = await fetch_text(session, target, settings.request_timeout_seconds)
        if html is None:
            _enter(AnalysisStage.FAILED, target)
            logger.info("primary fetch failed for %s", target)
            return AnalysisError()

        _enter(AnalysisStage.EXTRACTING, target)
        soup = parse_html(html)
        blocks = run_step("json_ld", extract_json_ld, soup).or_default([])
        metrics = run_step("html_metrics", metrics_from_soup, soup).or_default(HtmlMetrics())
        metadata = run_step("metadata", scrape_metadata, soup, target, rules).or_default({})
        keywords = run_step(
            "keywords", lambda: extract_keywords(visible_text(soup), settings.keyword_limit)
        ).or_default([])
        seo = run_step("seo", extract_seo_signals, soup, blocks).or_default(SeoSignals())
        tech = run_step("tech", detect_tech, html, target).or_default(TechSignals())
        social = run_step("social", extract_social_links, soup).or_default(SocialSignals())
        conversion = run_step("conversion", detect_conversion, soup, blocks, target).or_default(ConversionSignals())
        site_signals = (
            await run_async_step("site_signals", resolve_site_signals, session, target)
        ).or_default(SiteSignals())

    _enter(AnalysisStage.RENDERING, target)
    rendered_outcome, performance_outcome = await asyncio.gather(
        run_async_step("rendering", _render_branch, target),
        run_async_step("performance", _performance_branch, target, run_performance),
    )
    rendered = rendered_outcome.or_default(
        RenderedSignals(accessibility=AccessibilityResult(), colors=ColorPalette())
    )
    performance = performance_outcome.or_default(PerformanceResult())

    _enter(AnalysisStage.COMPOSING, target)
    report = AnalysisReport(
        url=target,
        domain=urlparse(target).hostname or "",
        html_metrics=metrics,
        metadata=metadata,
        site_signals=site_signals,
        seo=seo,
        tech=tech,
        social=social,
        conversion=conversion,
        accessibility=rendered.accessibility,
        performance=performance,
        keywords=keywords,
        colors=rendered.colors,
        analyzed_at=datetime.now(timezone.utc),
    )
    _enter(AnalysisStage.DONE, target)
    return report
