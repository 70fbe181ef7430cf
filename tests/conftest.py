"""
conftest.py: shared pytest fixtures
Adds the project root to sys.path so `siteaudit.*` imports resolve
regardless of where pytest is invoked from.
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest
from fastapi.testclient import TestClient
from siteaudit.main import app
from siteaudit.middleware import rate_limit


@pytest.fixture
def client():
    """Synchronous test client (no real browser launched)."""
    rate_limit.reset()
    with TestClient(app) as c:
        yield c
    rate_limit.reset()


@pytest.fixture
def safe_url():
    return "https://example.com"


@pytest.fixture
def private_url():
    return "http://192.168.1.1"


@pytest.fixture
def localhost_url():
    return "http://127.0.0.1:8080"


@pytest.fixture
def sample_html():
    return """<!DOCTYPE html>
<html lang="en">
<head>
  <title>  Acme   Widgets </title>
  <meta name="description" content=" Handmade widgets since 1999 ">
  <meta property="og:title" content="Acme Widgets Store">
  <meta property="og:image" content="/img/hero.png">
  <link rel="canonical" href="https://acme.test/">
  <script>var ignored = "scriptword scriptword";</script>
  <script type="application/ld+json">
    {"@context": "https://schema.org", "@type": "Organization", "name": "Acme Inc",
     "logo": {"@type": "ImageObject", "url": "https://acme.test/logo.png"}}
  </script>
  <style>.widgets { color: red; }</style>
</head>
<body>
  <h1>Widgets for everyone</h1>
  <h2>Quality</h2>
  <h2>Price</h2>
  <p>Widgets widgets gadgets.</p>
  <!-- commentword commentword -->
  <a href="/shop">Shop</a>
  <a href="https://facebook.com/acme">Facebook</a>
  <a href="https://www.linkedin.com/company/acme">LinkedIn</a>
  <button>Buy now</button>
  <img src="/a.png" alt="A widget">
  <img src="/b.png">
  <img src="/c.png" alt="">
</body>
</html>"""
