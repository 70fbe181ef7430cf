"""
HTTP layer and report delivery: routes, SSRF guard, rate limiting, email
rules, report text, PDF and the email job. Analysis itself is mocked.
"""
import io
import zipfile
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError
from unittest.mock import AsyncMock, MagicMock, patch
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph

from siteaudit.config import Settings
from siteaudit.models import AnalysisError, AnalysisReport, ReportRequest
from siteaudit.routers.report_router import _safe_url
from siteaudit.services import email_service, report_writer
from siteaudit.services.pdf_report import (
    MIN_PDF_BYTES, _paragraph, build_report_pdf, inline_markup, split_report_sections,
)
from siteaudit.utils.email_rules import email_rejection_reason


def make_report(url="https://example.com"):
    return AnalysisReport(url=url, domain="example.com", analyzed_at=datetime(2024, 5, 1, tzinfo=timezone.utc))


VALID_REQUEST = {"url": "example.com", "firstName": "Sam", "lastName": "Doe", "email": "sam@acme.io"}


# ─── SSRF Protection tests ─────────────────────────────────────────────────────

class TestSSRFProtection:

    def test_private_ranges_blocked(self):
        for url in ("http://127.0.0.1", "http://10.0.0.5", "http://172.16.0.1",
                    "http://192.168.1.1", "http://169.254.169.254", "http://[::1]"):
            assert _safe_url(url) is False, url

    def test_public_ip_allowed(self):
        assert _safe_url("https://8.8.8.8") is True

    def test_non_http_scheme_blocked(self):
        assert _safe_url("ftp://example.com") is False
        assert _safe_url("file:///etc/passwd") is False

    def test_unresolvable_host_blocked(self):
        with patch("siteaudit.utils.url_guard.socket.getaddrinfo", side_effect=OSError("nxdomain")):
            assert _safe_url("https://does-not-exist.test") is False

    def test_host_resolving_to_private_ip_blocked(self):
        answer = [(2, 1, 6, "", ("10.1.2.3", 0))]
        with patch("siteaudit.utils.url_guard.socket.getaddrinfo", return_value=answer):
            assert _safe_url("https://internal.example.com") is False


# ─── Email rules ───────────────────────────────────────────────────────────────

class TestEmailRules:

    def test_company_address_accepted(self):
        assert email_rejection_reason("sam@acme.io") is None

    def test_invalid_address(self):
        assert email_rejection_reason("not-an-email") == "Invalid email"
        assert email_rejection_reason(None) == "Invalid email"
        assert email_rejection_reason("a b@acme.io") == "Invalid email"

    def test_role_based_address(self):
        assert email_rejection_reason("Info@acme.io") == "Role-based emails not allowed"

    def test_free_mail_domain(self):
        assert email_rejection_reason("sam@Gmail.com") == "Use a company email"


# ─── Routes ────────────────────────────────────────────────────────────────────

class TestRoutes:

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"

    def test_analyze_returns_report(self, client):
        with patch("siteaudit.routers.report_router._safe_url", return_value=True), \
             patch("siteaudit.routers.report_router.analyze", AsyncMock(return_value=make_report())) as run:
            r = client.post("/analyze", json={"url": "example.com"})
        assert r.status_code == 200
        body = r.json()
        assert body["schemaVersion"] == "1.0"
        assert body["htmlMetrics"]["title"] == "(untitled)"
        assert run.call_args.args[0] == "https://example.com"
        assert run.call_args.kwargs["rules"] is not None

    def test_analyze_fetch_failure_is_502(self, client):
        with patch("siteaudit.routers.report_router._safe_url", return_value=True), \
             patch("siteaudit.routers.report_router.analyze", AsyncMock(return_value=AnalysisError())):
            r = client.post("/analyze", json={"url": "https://down.test"})
        assert r.status_code == 502
        assert r.json() == {"error": "Page could not be fetched"}

    def test_analyze_blocks_private_targets(self, client, private_url):
        r = client.post("/analyze", json={"url": private_url})
        assert r.status_code == 400

    def test_analyze_rejects_empty_url(self, client):
        assert client.post("/analyze", json={"url": "  "}).status_code == 422

    def test_report_request_accepted(self, client):
        job = AsyncMock(return_value=True)
        with patch("siteaudit.routers.report_router._safe_url", return_value=True), \
             patch("siteaudit.routers.report_router.process_report_and_email", job):
            r = client.post("/report-request", json=VALID_REQUEST)
        assert r.status_code == 202
        assert r.json() == {"status": "accepted"}
        req = job.call_args.args[0]
        assert req.url == "https://example.com"
        assert req.email == "sam@acme.io"

    @pytest.mark.parametrize("email,detail", [
        ("nope", "Invalid email"),
        ("support@acme.io", "Role-based emails not allowed"),
        ("sam@yahoo.com", "Use a company email"),
    ])
    def test_report_request_email_validation(self, client, email, detail):
        r = client.post("/report-request", json={**VALID_REQUEST, "email": email})
        assert r.status_code == 400
        assert r.json()["detail"] == detail

    def test_report_request_missing_url(self, client):
        r = client.post("/report-request", json={"email": "sam@acme.io"})
        assert r.status_code == 400
        assert r.json()["detail"] == "Missing URL"

    def test_report_request_rate_limited(self, client):
        payload = {**VALID_REQUEST, "email": "nope"}
        codes = [client.post("/report-request", json=payload).status_code for _ in range(6)]
        assert codes[:5] == [400] * 5
        assert codes[5] == 429
        r = client.post("/report-request", json=payload)
        assert int(r.headers["Retry-After"]) > 0

    def test_rate_limit_ignores_other_routes(self, client):
        for _ in range(8):
            assert client.get("/health").status_code == 200

    def test_report_pdf_download(self, client):
        pdf = build_report_pdf("https://example.com", report_writer.fallback_report())
        with patch("siteaudit.routers.report_router._safe_url", return_value=True), \
             patch("siteaudit.routers.report_router.build_report", AsyncMock(return_value=(make_report(), pdf))):
            r = client.post("/report-pdf", json={"url": "example.com"})
        assert r.status_code == 200
        assert r.headers["content-type"] == "application/pdf"
        assert r.content.startswith(b"%PDF")

    def test_report_pdf_fetch_failure(self, client):
        with patch("siteaudit.routers.report_router._safe_url", return_value=True), \
             patch("siteaudit.routers.report_router.build_report", AsyncMock(return_value=(AnalysisError(), None))):
            r = client.post("/report-pdf", json={"url": "example.com"})
        assert r.status_code == 502


# ─── Report text & PDF ─────────────────────────────────────────────────────────

REPORT_TEXT = """Executive Summary
The site is **fast** but *thin* on content.
SEO Analysis:
- Missing meta description
- Title too short
Two fixes recommended.
Critical Issues
None <script>"""


class TestReportText:

    def test_fallback_lists_every_section(self):
        text = report_writer.fallback_report()
        for heading in report_writer.REPORT_SECTIONS:
            assert heading in text
        assert "Unable to generate report due to API error." in text
        assert text.count("N/A") == len(report_writer.REPORT_SECTIONS) - 1

    @pytest.mark.asyncio
    async def test_no_api_key_uses_fallback(self):
        with patch.object(report_writer.settings, "groq_api_key", None):
            assert await report_writer.generate_report_text({}) == report_writer.fallback_report()

    @pytest.mark.asyncio
    async def test_model_answer_is_returned(self):
        client = MagicMock()
        response = MagicMock()
        response.choices = [MagicMock(message=MagicMock(content="  Executive Summary\nAll good.  "))]
        client.chat.completions.create = AsyncMock(return_value=response)
        with patch.object(report_writer.settings, "groq_api_key", "gsk_test"), \
             patch.object(report_writer, "get_client", return_value=client):
            text = await report_writer.generate_report_text({"url": "https://example.com"})
        assert text == "Executive Summary\nAll good."
        sent = client.chat.completions.create.call_args.kwargs["messages"]
        assert "https://example.com" in sent[1]["content"]

    @pytest.mark.asyncio
    async def test_api_error_uses_fallback(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=RuntimeError("rate limited"))
        with patch.object(report_writer.settings, "groq_api_key", "gsk_test"), \
             patch.object(report_writer, "get_client", return_value=client):
            assert await report_writer.generate_report_text({}) == report_writer.fallback_report()

    def test_sections_split_by_known_headings(self):
        sections = split_report_sections(REPORT_TEXT)
        assert [s.title for s in sections] == ["Executive Summary", "SEO Analysis", "Critical Issues"]
        assert sections[0].blocks == ["The site is <b>fast</b> but <i>thin</i> on content."]
        assert sections[1].blocks == [["Missing meta description", "Title too short"], "Two fixes recommended."]
        assert sections[2].blocks == ["None &lt;script&gt;"]

    def test_text_before_first_heading_is_kept(self):
        sections = split_report_sections("Preamble line\nKeyword Strategy\nFocus on widgets")
        assert sections[0].title == ""
        assert sections[0].blocks == ["Preamble line"]
        assert sections[1].title == "Keyword Strategy"

    def test_inline_markup_escapes(self):
        assert inline_markup("a & b **c**") == "a &amp; b <b>c</b>"

    def test_inline_markup_nests_bold_and_italic(self):
        assert inline_markup("**bold *both* bold**") == "<b>bold <i>both</i> bold</b>"

    def test_overlapping_markers_stay_literal(self):
        text = inline_markup("The site is **fast *and** clean* overall.")
        assert text == "The site is **fast *and** clean* overall."

    def test_unpaired_marker_stays_literal(self):
        assert inline_markup("5 * 3 = **15") == "5 * 3 = **15"

    def test_pdf_built_from_overlapping_markdown(self):
        text = "Executive Summary\nThe site is **fast *and** clean* overall.\n- a *b **c* d**\n"
        pdf = build_report_pdf("https://a.test", text)
        assert pdf.startswith(b"%PDF")
        assert len(pdf) >= MIN_PDF_BYTES

    def test_rejected_markup_falls_back_to_plain_text(self):
        styles = getSampleStyleSheet()
        para = _paragraph("<b>fast <i>and</b> clean</i>", styles["Normal"])
        assert isinstance(para, Paragraph)

    def test_pdf_is_built(self):
        pdf = build_report_pdf("https://example.com", REPORT_TEXT)
        assert pdf.startswith(b"%PDF")
        assert len(pdf) >= MIN_PDF_BYTES


# ─── Email delivery ────────────────────────────────────────────────────────────

def _sendgrid_client(status_code=202):
    client = AsyncMock()
    client.post = AsyncMock(return_value=MagicMock(status_code=status_code, text="err"))
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=client)
    cm.__aexit__ = AsyncMock(return_value=False)
    return cm, client


class TestEmailDelivery:

    def test_zip_package_contains_pdf(self):
        attachment = email_service.package_report(b"%PDF-1.4 body", "https://www.acme.io/about")
        assert attachment.filename == "audit-report-www.acme.io.zip"
        assert attachment.mime_type == "application/zip"
        with zipfile.ZipFile(io.BytesIO(attachment.content)) as zf:
            assert zf.read("audit-report.pdf") == b"%PDF-1.4 body"

    def test_zip_failure_falls_back_to_pdf(self):
        with patch.object(email_service, "create_zip", side_effect=RuntimeError("zlib")):
            attachment = email_service.package_report(b"%PDF", "https://acme.io")
        assert attachment.filename == "audit-report-acme.io.pdf"
        assert attachment.content == b"%PDF"

    @pytest.mark.asyncio
    async def test_send_without_api_key_is_skipped(self):
        with patch.object(email_service.settings, "sendgrid_api_key", None):
            assert await email_service.send_email("sam@acme.io", "s", "t") is False

    @pytest.mark.asyncio
    async def test_send_posts_attachment(self):
        cm, client = _sendgrid_client(202)
        attachment = email_service.Attachment("r.zip", b"zipdata", "application/zip")
        with patch.object(email_service.settings, "sendgrid_api_key", "SG.test"), \
             patch("siteaudit.services.email_service.httpx.AsyncClient", return_value=cm):
            assert await email_service.send_email("sam@acme.io", "Audit", "Hi", attachment) is True
        payload = client.post.call_args.kwargs["json"]
        assert payload["personalizations"][0]["to"][0]["email"] == "sam@acme.io"
        assert payload["attachments"][0]["filename"] == "r.zip"
        assert payload["attachments"][0]["content"] == "emlwZGF0YQ=="

    @pytest.mark.asyncio
    async def test_send_reports_api_error(self):
        cm, _ = _sendgrid_client(400)
        with patch.object(email_service.settings, "sendgrid_api_key", "SG.test"), \
             patch("siteaudit.services.email_service.httpx.AsyncClient", return_value=cm):
            assert await email_service.send_email("sam@acme.io", "Audit", "Hi") is False

    @pytest.mark.asyncio
    async def test_unreachable_site_sends_nothing(self):
        req = ReportRequest(url="https://down.test", email="sam@acme.io")
        with patch.object(email_service.settings, "sendgrid_api_key", "SG.test"), \
             patch.object(email_service, "build_report", AsyncMock(return_value=(AnalysisError(), None))), \
             patch.object(email_service, "send_email", AsyncMock()) as send:
            assert await email_service.process_report_and_email(req) is False
        send.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_send_writes_copy(self, tmp_path):
        req = ReportRequest(url="https://example.com", email="sam@acme.io", first_name="Sam")
        pdf = b"%PDF" + b"x" * 300
        with patch.object(email_service.settings, "sendgrid_api_key", "SG.test"), \
             patch.object(email_service, "build_report", AsyncMock(return_value=(make_report(), pdf))), \
             patch.object(email_service, "send_email", AsyncMock(return_value=False)) as send, \
             patch.object(email_service.settings, "reports_dir", str(tmp_path)):
            assert await email_service.process_report_and_email(req) is False
        assert send.call_args.args[0] == "sam@acme.io"
        assert "Hi Sam" in send.call_args.args[2]
        written = list(tmp_path.iterdir())
        assert len(written) == 1
        assert written[0].name.endswith("-example.com.zip")

    @pytest.mark.asyncio
    async def test_unconfigured_sendgrid_builds_and_writes_nothing(self, tmp_path):
        req = ReportRequest(url="https://example.com", email="sam@acme.io")
        with patch.object(email_service.settings, "sendgrid_api_key", None), \
             patch.object(email_service, "build_report", AsyncMock()) as build, \
             patch.object(email_service.settings, "reports_dir", str(tmp_path)):
            assert await email_service.process_report_and_email(req) is False
        build.assert_not_called()
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_pipeline_error_is_contained(self):
        req = ReportRequest(url="https://example.com", email="sam@acme.io")
        with patch.object(email_service.settings, "sendgrid_api_key", "SG.test"), \
             patch.object(email_service, "build_report", AsyncMock(side_effect=RuntimeError("boom"))):
            assert await email_service.process_report_and_email(req) is False


# ─── Settings ──────────────────────────────────────────────────────────────────

class TestSettings:

    def test_palette_limit_capped_at_ten(self):
        with pytest.raises(ValidationError):
            Settings(palette_limit=11)
        with pytest.raises(ValidationError):
            Settings(palette_limit=0)
        assert Settings(palette_limit=10).palette_limit == 10
