"""
Audit report text via Groq. The analysis JSON is the only input; the model
answers with plain-text paragraphs under a fixed list of headings.
"""
import json
import logging
from typing import Any, Dict

from groq import AsyncGroq
from ..config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

REPORT_SECTIONS = (
    "Executive Summary",
    "SEO Analysis",
    "Accessibility Review",
    "Performance Review",
    "Social Media and Brand Presence",
    "Visual and Design Assessment",
    "Reputation and Trust Signals",
    "Keyword Strategy",
    "Critical Issues",
    "Actionable Recommendations",
)

SYSTEM_PROMPT = f"""You are a senior web audit analyst writing for business owners.
Write a professional, executive-friendly audit based ONLY on the JSON you are given.

Rules:
- Use exactly these headings, in this order, each on its own line:
{chr(10).join(REPORT_SECTIONS)}
- Under each heading write one plain-text paragraph. No bullets, tables, markdown or raw JSON.
- Never claim to have visited the site or used outside sources.
- Label any inference inline as INFERRED (confidence: XX%).
- A performance block with "available": false means the audit did not run; say so instead of quoting zeros.
"""


def fallback_report() -> str:
    first, *rest = REPORT_SECTIONS
    lines = [first, "Unable to generate report due to API error.", ""]
    for heading in rest:
        lines += [heading, "N/A", ""]
    return "\n".join(lines).strip()


def get_client() -> AsyncGroq:
    return AsyncGroq(api_key=settings.groq_api_key)


async def generate_report_text(analysis: Dict[str, Any]) -> str:
    """Report prose for an analysis dict; the fallback text on any failure."""
    if not settings.groq_api_key:
        logger.warning("GROQ_API_KEY not configured, using fallback report text")
        return fallback_report()
    try:
        client = get_client()
        response = await client.chat.completions.create(
            model=settings.report_model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": f"JSON Input:\n{json.dumps(analysis, default=str)}"},
            ],
            max_tokens=4000,
            temperature=0.1,
        )
        text = (response.choices[0].message.content or "").strip()
        if not text:
            raise ValueError("model returned no report text")
        return text
    except Exception as e:
        logger.error("report generation failed: %s", e)
        return fallback_report()
