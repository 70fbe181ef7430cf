from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict
from datetime import datetime


SCHEMA_VERSION = "1.0"
FETCH_FAILED_MESSAGE = "Page could not be fetched"
UNTITLED = "(untitled)"


def normalize_url(raw: str) -> str:
    """Prefix https:// when the URL carries no http(s) scheme."""
    url = (raw or "").strip()
    if not url.lower().startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


class _Result(BaseModel):
    """Immutable result model, serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ─── Request Models ────────────────────────────────────────────────────────────

class AnalysisRequest(_Result):
    url: str = Field(..., description="Target URL; https:// is assumed when no scheme is given")

    @field_validator("url")
    @classmethod
    def normalize(cls, v):
        if not v or not v.strip():
            raise ValueError("URL is required")
        return normalize_url(v)

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True,
        json_schema_extra={"example": {"url": "example.com"}},
    )


class ReportRequest(BaseModel):
    url: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    job_title: Optional[str] = None
    phone: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True,
        json_schema_extra={
            "example": {
                "url": "https://example.com",
                "firstName": "Sam",
                "lastName": "Doe",
                "email": "sam@acme.io",
            }
        },
    )


# ─── Extraction Models ─────────────────────────────────────────────────────────

class HtmlMetrics(_Result):
    title: str = UNTITLED
    description: Optional[str] = None      # None = no meta description tag
    first_h1: Optional[str] = None         # None = no <h1>
    h2_count: int = 0
    word_count: int = 0
    link_count: int = 0
    image_count: int = 0
    images_missing_alt: int = 0


class SiteSignals(_Result):
    robots_txt_present: bool = False
    sitemap_url: Optional[str] = None
    crawl_allowed: bool = True
    sitemap_page_estimate: Optional[int] = None
    sitemap_latest_date: Optional[str] = None


class SeoSignals(_Result):
    canonical: Optional[str] = None
    h1_present: bool = False
    title_length: int = 0
    meta_description_length: int = 0
    structured_data_types: List[str] = []


class TechSignals(_Result):
    analytics: List[str] = []
    https: bool = False


class SocialSignals(_Result):
    profiles: Dict[str, str] = {}
    presence_score: int = 0


class ConversionSignals(_Result):
    cta_count: int = 0
    forms: int = 0
    has_cart: bool = False
    has_newsletter: bool = False
    has_product_schema: bool = False
    page_type: str = "landing"
    is_ecommerce: bool = False


# ─── Browser Audit Models ──────────────────────────────────────────────────────

class ViolationRecord(_Result):
    """One failed axe-core rule."""
    id: str
    impact: Optional[str] = None
    description: str = ""
    help: str = ""
    help_url: Optional[str] = None
    node_count: int = 0


class AccessibilityResult(_Result):
    violation_count: int = Field(0, ge=0)
    violation_details: List[ViolationRecord] = []
    available: bool = False     # False = audit could not run; counts are defaults


class PerformanceResult(_Result):
    performance_score: int = Field(0, ge=0, le=100)
    lcp: float = Field(0, ge=0)          # ms
    cls: float = Field(0, ge=0)          # ratio
    tbt: float = Field(0, ge=0)          # ms
    accessibility_score: Optional[int] = None
    seo_score: Optional[int] = None
    key_audits: Dict[str, Optional[str]] = {}
    available: bool = False     # False = Lighthouse did not run; zeros are defaults


class ColorPalette(_Result):
    palette: List[str] = []
    primary_contrast: float = 0


# ─── Aggregate ─────────────────────────────────────────────────────────────────

class AnalysisReport(_Result):
    schema_version: str = SCHEMA_VERSION
    url: str
    domain: str = ""
    html_metrics: HtmlMetrics = HtmlMetrics()
    metadata: Dict[str, str] = {}
    site_signals: SiteSignals = SiteSignals()
    seo: SeoSignals = SeoSignals()
    tech: TechSignals = TechSignals()
    social: SocialSignals = SocialSignals()
    conversion: ConversionSignals = ConversionSignals()
    accessibility: AccessibilityResult = AccessibilityResult()
    performance: PerformanceResult = PerformanceResult()
    keywords: List[str] = []
    colors: ColorPalette = ColorPalette()
    analyzed_at: datetime

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class AnalysisError(_Result):
    """Returned instead of a report when the primary page cannot be fetched."""
    error: str = FETCH_FAILED_MESSAGE

    def to_json_dict(self) -> dict:
        return {"error": self.error}
