"""
Headless-browser adapter. Every caller that needs a live page goes through
with_rendered_page(), which owns launch, navigation and teardown.

Playwright work runs in a ThreadPoolExecutor with its own event loop
(ProactorEventLoop on Windows) so it never conflicts with uvicorn's loop.
The browser and context are closed in a finally block on every exit path.
"""
import asyncio
import logging
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

from playwright.async_api import async_playwright, Page, Browser, BrowserContext

from ..config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

T = TypeVar("T")

LAUNCH_ARGS: List[str] = ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"]

_playwright_executor = ThreadPoolExecutor(
    max_workers=max(2, settings.playwright_workers), thread_name_prefix="playwright",
)


def _run_in_thread(coro):
    loop = asyncio.ProactorEventLoop() if sys.platform == "win32" else asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def run_playwright_job(coro):
    """Run a Playwright coroutine on the dedicated executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_playwright_executor, _run_in_thread, coro)


# ─── Executable resolution ────────────────────────────────────────────────────

def _find_local_chrome(chrome_root: Path) -> Optional[str]:
    """Look for chrome/<channel>/<version>/chrome-linux64/chrome under chrome_root."""
    if not chrome_root.is_dir():
        return None
    channels = sorted(d for d in chrome_root.iterdir() if d.is_dir())
    channel = next((d for d in channels if d.name == "chrome"), channels[0] if channels else None)
    if channel is None:
        return None
    for version in sorted(d for d in channel.iterdir() if d.is_dir()):
        candidate = version / "chrome-linux64" / "chrome"
        if candidate.is_file():
            return str(candidate)
    return None


def resolve_chrome_executable() -> Optional[str]:
    """
    CHROME_PATH first, then a local ./chrome install. None means "let
    Playwright use its bundled Chromium".
    """
    if settings.chrome_path and os.path.isfile(settings.chrome_path):
        return settings.chrome_path
    try:
        return _find_local_chrome(Path.cwd() / settings.chrome_dir)
    except OSError as e:
        logger.warning("local chrome lookup failed: %s", e)
        return None


async def close_quietly(context: Optional[BrowserContext], browser: Optional[Browser]) -> None:
    if context is not None:
        try:
            await context.close()
        except Exception as e:
            logger.warning("browser context close failed: %s", e)
    if browser is not None:
        try:
            await browser.close()
        except Exception as e:
            logger.warning("browser close failed: %s", e)


# ─── Scoped page ──────────────────────────────────────────────────────────────

async def _async_with_rendered_page(
    url: str, callback: Callable[[Page], Awaitable[T]], timeout: float,
) -> Optional[T]:
    browser: Optional[Browser] = None
    context: Optional[BrowserContext] = None

    async with async_playwright() as p:
        try:
            browser = await p.chromium.launch(
                headless=True,
                executable_path=resolve_chrome_executable(),
                args=LAUNCH_ARGS,
            )
            context = await browser.new_context(
                viewport={"width": 1280, "height": 800},
                user_agent=settings.user_agent,
            )
            page = await context.new_page()
            await page.goto(url, timeout=timeout * 1000, wait_until="networkidle")
            return await callback(page)
        except Exception as e:
            logger.warning("rendered page for %s unavailable: %s", url, str(e)[:160])
            return None
        finally:
            await close_quietly(context, browser)


async def with_rendered_page(
    url: str, callback: Callable[[Page], Awaitable[T]], timeout: Optional[float] = None,
) -> Optional[T]:
    """
    Launch a headless browser, load url (network idle, bounded by timeout
    seconds), and return callback(page). Any launch, navigation or callback
    failure returns None; the browser is always closed first.
    """
    try:
        return await run_playwright_job(
            _async_with_rendered_page(url, callback, timeout or settings.render_timeout_seconds)
        )
    except Exception as e:
        logger.warning("browser session for %s failed: %s", url, str(e)[:160])
        return None
