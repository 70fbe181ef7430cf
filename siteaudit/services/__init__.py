from .analyzer import analyze
from .fetcher import fetch_text, resolve_site_signals
from .html_extractor import extract_html_metrics
from .metadata_scraper import MetadataRules, build_default_rules, scrape_metadata
from .keywords import extract_keywords
from .browser import with_rendered_page
from .accessibility import audit_accessibility
from .performance import audit_performance
