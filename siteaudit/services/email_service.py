"""
siteaudit/services/email_service.py
Builds the audit report for a request and delivers it via the SendGrid API.
"""
import base64
import io
import logging
import os
import re
import time
import zipfile
from dataclasses import dataclass
from typing import Optional

import httpx

from ..config import get_settings
from ..models import AnalysisError, ReportRequest
from .analyzer import analyze
from .metadata_scraper import MetadataRules
from .pdf_report import build_report_pdf
from .report_writer import generate_report_text

settings = get_settings()
logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    mime_type: str

    def to_sendgrid(self) -> dict:
        return {
            "content": base64.b64encode(self.content).decode("ascii"),
            "filename": self.filename,
            "type": self.mime_type,
            "disposition": "attachment",
        }


def domain_slug(url: str) -> str:
    return re.sub(r"/.*$", "", re.sub(r"^https?://", "", url or "")) or "site"


def create_zip(filename: str, data: bytes) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
        zf.writestr(filename, data)
    return buf.getvalue()


def package_report(pdf: bytes, url: str) -> Attachment:
    """ZIP the PDF; hand back the raw PDF if zipping fails."""
    slug = domain_slug(url)
    try:
        return Attachment(f"audit-report-{slug}.zip", create_zip("audit-report.pdf", pdf), "application/zip")
    except Exception as e:
        logger.error("failed creating report ZIP for %s: %s", url, e)
        return Attachment(f"audit-report-{slug}.pdf", pdf, "application/pdf")


def _body_text(req: ReportRequest, url: str) -> str:
    name = " ".join(p for p in (req.first_name, req.last_name) if p) or "there"
    return (
        f"Hi {name},\n\n"
        f"Please find attached the website audit report for {url} that you requested.\n\n"
        "If you have any questions or would like a deeper review, reply to this email.\n\n"
        "Best,\nThe SiteAudit Team\n"
    )


async def send_email(to_email: str, subject: str, text: str,
                     attachment: Optional[Attachment] = None) -> bool:
    """Send email via SendGrid. Returns True on success."""
    if not settings.sendgrid_api_key:
        logger.warning("SendGrid not configured, skipping email to %s", to_email)
        return False

    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": settings.sendgrid_from_email, "name": "SiteAudit"},
        "subject": subject,
        "content": [{"type": "text/plain", "value": text}],
    }
    if attachment is not None:
        payload["attachments"] = [attachment.to_sendgrid()]

    try:
        async with httpx.AsyncClient(timeout=30) as client:
            resp = await client.post(
                SENDGRID_URL,
                json=payload,
                headers={
                    "Authorization": f"Bearer {settings.sendgrid_api_key}",
                    "Content-Type": "application/json",
                },
            )
            if resp.status_code in (200, 202):
                logger.info("email sent to %s: %s", to_email, subject)
                return True
            logger.error("SendGrid error %s: %s", resp.status_code, resp.text[:200])
            return False
    except Exception as e:
        logger.error("email send failed: %s", e)
        return False


def save_failed_send(attachment: Attachment, url: str) -> Optional[str]:
    try:
        os.makedirs(settings.reports_dir, exist_ok=True)
        path = os.path.join(
            settings.reports_dir,
            f"failed-{int(time.time() * 1000)}-{domain_slug(url)}{os.path.splitext(attachment.filename)[1]}",
        )
        with open(path, "wb") as f:
            f.write(attachment.content)
        logger.info("wrote failed-send report to %s", path)
        return path
    except OSError as e:
        logger.warning("could not write failed-send report: %s", e)
        return None


async def build_report(url: str, rules: Optional[MetadataRules] = None):
    """analysis -> report text -> PDF. Returns (analysis, pdf) or (AnalysisError, None)."""
    analysis = await analyze(url, rules=rules)
    if isinstance(analysis, AnalysisError):
        return analysis, None
    text = await generate_report_text(analysis.to_json_dict())
    return analysis, build_report_pdf(analysis.url, text)


async def process_report_and_email(req: ReportRequest, rules: Optional[MetadataRules] = None) -> bool:
    """
    Background job behind /report-request. Never raises: every failure is
    logged and reported through the return value.
    """
    if not settings.sendgrid_api_key:
        logger.warning("SendGrid not configured, report for %s not built", req.url)
        return False
    try:
        analysis, pdf = await build_report(req.url, rules)
        if pdf is None:
            logger.info("report for %s not sent: %s", req.url, analysis.error)
            return False

        attachment = package_report(pdf, analysis.url)
        sent = await send_email(
            req.email,
            f"Your Website Audit for {analysis.url}",
            _body_text(req, analysis.url),
            attachment,
        )
        if not sent:
            save_failed_send(attachment, analysis.url)
        return sent
    except Exception as e:
        logger.exception("report pipeline failed for %s: %s", req.url, e)
        return False
