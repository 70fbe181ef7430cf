"""
SiteAudit FastAPI application: main entry point.
"""
import os, sys, asyncio, logging
from contextlib import asynccontextmanager

if sys.platform == 'win32':
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers.report_router import router as report_router
from .services.metadata_scraper import build_default_rules
from .config import get_settings
from .middleware.rate_limit import RateLimitMiddleware

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    os.makedirs(settings.reports_dir, exist_ok=True)
    app.state.metadata_rules = build_default_rules()
    logger.info("SiteAudit started (%s)", settings.environment)
    yield


app = FastAPI(
    title="SiteAudit API",
    description=(
        "**SiteAudit**: single-page website analysis\n\n"
        "- HTML metrics, metadata and keywords\n"
        "- Robots and sitemap signals\n"
        "- Accessibility (axe-core) and performance (Lighthouse) audits\n"
        "- Emailed PDF audit reports\n"
    ),
    version="1.0.0",
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
    lifespan=lifespan,
)

app.add_middleware(RateLimitMiddleware)

ALLOWED_ORIGINS = [o.strip() for o in settings.frontend_url.split(",") if o.strip()] or ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials="*" not in ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(report_router)


@app.get("/", tags=["Health"])
async def root():
    return {"service": "SiteAudit API", "version": "1.0.0", "status": "running", "docs": "/docs"}


@app.api_route("/health", methods=["GET", "HEAD"], tags=["Health"])
async def health():
    return {
        "status": "ok",
        "environment": settings.environment,
        "lighthouse_enabled": settings.run_lighthouse,
        "report_ai_enabled": bool(settings.groq_api_key),
        "email_enabled": bool(settings.sendgrid_api_key),
    }
