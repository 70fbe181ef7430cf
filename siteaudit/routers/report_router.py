"""
siteaudit/routers/report_router.py
POST /analyze        → analysis JSON (502 + error object when the page is unreachable)
POST /report-request → 202, report + email delivered in the background
POST /report-pdf     → audit PDF download
"""
import logging
from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from ..models import AnalysisError, AnalysisRequest, ReportRequest, normalize_url
from ..services.analyzer import analyze
from ..services.email_service import build_report, process_report_and_email
from ..services.metadata_scraper import MetadataRules
from ..services.pdf_report import PdfGenerationError
from ..utils.email_rules import email_rejection_reason
from ..utils.url_guard import is_public_url

router = APIRouter(tags=["Audit"])
logger = logging.getLogger(__name__)

# ── SSRF ───────────────────────────────────────────────────────────────────────
def _safe_url(url: str) -> bool:
    return is_public_url(url)


def _assert_safe(url: str):
    if not _safe_url(url):
        raise HTTPException(status_code=400, detail="URL blocked by SSRF protection.")


def _rules(request: Request) -> Optional[MetadataRules]:
    return getattr(request.app.state, "metadata_rules", None)


def _valid_http_url(url: str) -> bool:
    p = urlparse(url)
    return p.scheme in ("http", "https") and bool(p.hostname)


# ── Routes ─────────────────────────────────────────────────────────────────────

@router.post("/analyze")
async def analyze_url(body: AnalysisRequest, request: Request):
    _assert_safe(body.url)
    result = await analyze(body.url, rules=_rules(request))
    if isinstance(result, AnalysisError):
        return JSONResponse(status_code=502, content=result.to_json_dict())
    return result.to_json_dict()


@router.post("/report-request", status_code=202)
async def report_request(body: ReportRequest, request: Request, background_tasks: BackgroundTasks):
    if not body.url or not body.url.strip():
        raise HTTPException(status_code=400, detail="Missing URL")
    reason = email_rejection_reason(body.email)
    if reason:
        raise HTTPException(status_code=400, detail=reason)

    url = normalize_url(body.url)
    if not _valid_http_url(url):
        raise HTTPException(status_code=400, detail="Invalid URL")
    _assert_safe(url)

    job = body.model_copy(update={"url": url})
    background_tasks.add_task(process_report_and_email, job, _rules(request))
    logger.info("report requested for %s", url)
    return {"status": "accepted"}


@router.post("/report-pdf")
async def report_pdf(body: AnalysisRequest, request: Request):
    _assert_safe(body.url)
    try:
        analysis, pdf = await build_report(body.url, _rules(request))
    except PdfGenerationError as e:
        logger.error("/report-pdf failed for %s: %s", body.url, e)
        raise HTTPException(status_code=500, detail=f"PDF generation failed: {e}")
    if pdf is None:
        return JSONResponse(status_code=502, content=analysis.to_json_dict())
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": "attachment; filename=Website_Audit.pdf"},
    )
