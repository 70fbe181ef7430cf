from pydantic_settings import BaseSettings
from pydantic import ConfigDict, Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )
    # App
    environment: str = "development"
    frontend_url: str = "*"   # CORS origin(s), comma-separated
    log_level: str = "INFO"
    # Fetcher
    request_timeout_seconds: int = 15
    robots_timeout_seconds: int = 4
    sitemap_timeout_seconds: int = 8
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/121.0.0.0 Safari/537.36"
    )
    # Browser / audits
    render_timeout_seconds: int = 60
    lighthouse_timeout_seconds: int = 120
    run_lighthouse: bool = True
    chrome_path: Optional[str] = None       # explicit Chromium binary
    chrome_dir: str = "chrome"              # local install: chrome/<channel>/<version>/chrome-linux64/chrome
    lighthouse_bin: str = "lighthouse"
    axe_core_path: Optional[str] = None     # path to axe.min.js
    playwright_workers: int = 3
    # Text analysis
    keyword_limit: int = 15
    palette_limit: int = Field(10, ge=1, le=10)   # palette holds at most 10 colors
    # Rate limiting (POST /report-request)
    rate_limit_requests: int = 5
    rate_limit_window_seconds: int = 600
    # Report generation (Groq)
    groq_api_key: Optional[str] = None
    report_model: str = "llama-3.1-8b-instant"
    # SendGrid email
    sendgrid_api_key: Optional[str] = None
    sendgrid_from_email: str = "reports@siteaudit.app"
    # Reports
    reports_dir: str = "reports"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
