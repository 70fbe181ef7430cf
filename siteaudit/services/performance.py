"""
Page-speed audit: a dedicated Chromium with a remote-debugging port, driven
by the Lighthouse CLI. Independent of the rendering session; skipped (None)
when no Chromium binary or no Lighthouse CLI is available.
"""
import asyncio
import json
import logging
import os
import shutil
import socket
from typing import Any, Dict, Optional

from playwright.async_api import async_playwright, Browser

from ..models import PerformanceResult
from ..config import get_settings
from .browser import LAUNCH_ARGS, close_quietly, resolve_chrome_executable, run_playwright_job

settings = get_settings()
logger = logging.getLogger(__name__)

LIGHTHOUSE_CATEGORIES = ("performance", "accessibility", "seo")

KEY_AUDITS = {
    "renderBlocking": "render-blocking-resources",
    "unusedJs": "unused-javascript",
    "imageOptimization": "uses-optimized-images",
    "thirdPartyRequests": "third-party-summary",
}


def resolve_lighthouse() -> Optional[str]:
    configured = settings.lighthouse_bin
    if os.path.isfile(configured) and os.access(configured, os.X_OK):
        return configured
    return shutil.which(configured)


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def parse_lighthouse_report(lhr: Dict[str, Any]) -> Optional[PerformanceResult]:
    """Map a Lighthouse result (LHR) to PerformanceResult; None without a performance score."""
    categories = lhr.get("categories") or {}
    audits = lhr.get("audits") or {}

    def category_score(name: str) -> Optional[int]:
        score = (categories.get(name) or {}).get("score")
        if not isinstance(score, (int, float)):
            return None
        return max(0, min(100, round(float(score) * 100)))

    def numeric(audit_id: str) -> float:
        value = (audits.get(audit_id) or {}).get("numericValue")
        return max(0.0, float(value)) if isinstance(value, (int, float)) else 0.0

    performance = category_score("performance")
    if performance is None:
        return None
    return PerformanceResult(
        performance_score=performance,
        lcp=numeric("largest-contentful-paint"),
        cls=numeric("cumulative-layout-shift"),
        tbt=numeric("total-blocking-time"),
        accessibility_score=category_score("accessibility"),
        seo_score=category_score("seo"),
        key_audits={k: (audits.get(a) or {}).get("displayValue") for k, a in KEY_AUDITS.items()},
        available=True,
    )


async def _run_lighthouse(binary: str, url: str, port: int, timeout: float) -> Dict[str, Any]:
    proc = await asyncio.create_subprocess_exec(
        binary, url,
        f"--port={port}",
        "--output=json",
        "--output-path=stdout",
        "--quiet",
        f"--only-categories={','.join(LIGHTHOUSE_CATEGORIES)}",
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    finally:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
    if proc.returncode != 0:
        raise RuntimeError(f"lighthouse exited {proc.returncode}: {stderr.decode(errors='replace')[:200]}")
    return json.loads(stdout)


async def _async_audit_performance(url: str, binary: str, timeout: float) -> Optional[PerformanceResult]:
    browser: Optional[Browser] = None

    async with async_playwright() as p:
        executable = resolve_chrome_executable()
        if executable is None:
            bundled = p.chromium.executable_path
            executable = bundled if bundled and os.path.isfile(bundled) else None
        if executable is None:
            logger.info("no Chromium binary found, performance audit skipped")
            return None

        port = _free_port()
        try:
            browser = await p.chromium.launch(
                headless=True,
                executable_path=executable,
                args=LAUNCH_ARGS + [f"--remote-debugging-port={port}"],
            )
            lhr = await _run_lighthouse(binary, url, port, timeout)
            return parse_lighthouse_report(lhr)
        except asyncio.TimeoutError:
            logger.warning("lighthouse timed out after %ss for %s", timeout, url)
            return None
        except Exception as e:
            logger.warning("lighthouse audit failed for %s: %s", url, str(e)[:160])
            return None
        finally:
            await close_quietly(None, browser)


async def audit_performance(url: str) -> Optional[PerformanceResult]:
    binary = resolve_lighthouse()
    if binary is None:
        logger.info("lighthouse CLI not found, performance audit skipped")
        return None
    try:
        return await run_playwright_job(
            _async_audit_performance(url, binary, settings.lighthouse_timeout_seconds)
        )
    except Exception as e:
        logger.warning("performance audit for %s failed: %s", url, str(e)[:160])
        return None
