"""
Accessibility audit: injects axe-core into the live page and runs it.
Any failure returns the zero-violation default (available=False).
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from playwright.async_api import Page

from ..models import AccessibilityResult, ViolationRecord
from ..config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

AXE_RUN_JS = "async () => await axe.run(document, { resultTypes: ['violations'] })"


def _is_file(path: Optional[str]) -> Optional[str]:
    if path and os.path.isfile(path):
        return str(Path(path).resolve())
    return None


def resolve_axe_script() -> Optional[str]:
    """axe.min.js from settings, then AXE_CORE_JS, then ./node_modules/axe-core."""
    return (
        _is_file(settings.axe_core_path)
        or _is_file(os.environ.get("AXE_CORE_JS"))
        or _is_file(os.path.join("node_modules", "axe-core", "axe.min.js"))
    )


def parse_axe_results(raw: Any) -> AccessibilityResult:
    violations: List[Dict[str, Any]] = (raw or {}).get("violations") or []
    details: List[ViolationRecord] = []
    for v in violations:
        if not isinstance(v, dict) or not v.get("id"):
            continue
        details.append(ViolationRecord(
            id=str(v["id"]),
            impact=v.get("impact"),
            description=v.get("description") or "",
            help=v.get("help") or "",
            help_url=v.get("helpUrl"),
            node_count=len(v.get("nodes") or []),
        ))
    return AccessibilityResult(violation_count=len(details), violation_details=details, available=True)


async def audit_accessibility(page: Page) -> AccessibilityResult:
    script = resolve_axe_script()
    if script is None:
        logger.warning("axe-core script not found, accessibility audit skipped")
        return AccessibilityResult()
    try:
        await page.add_script_tag(path=script)
        raw = await page.evaluate(AXE_RUN_JS)
        return parse_axe_results(raw)
    except Exception as e:
        logger.warning("accessibility audit failed on %s: %s", page.url, str(e)[:160])
        return AccessibilityResult()
