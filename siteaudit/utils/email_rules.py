"""
Who may request an emailed report: a syntactically valid, personal address
on a company domain.
"""
import re
from typing import Optional

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

FORBIDDEN_LOCAL_PARTS = frozenset({
    "support", "careers", "career", "info", "admin", "contact", "webmaster",
    "sales", "hello", "noreply", "no-reply", "jobs", "hr", "team", "press",
    "marketing", "office", "service", "services",
})

FREE_EMAIL_DOMAINS = frozenset({
    "gmail.com", "yahoo.com", "outlook.com", "hotmail.com", "live.com",
    "icloud.com", "me.com", "aol.com", "protonmail.com", "pm.me",
    "yandex.com", "yandex.ru", "zoho.com", "gmx.com", "gmx.de",
})


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_REGEX.match(email) is not None


def is_forbidden_local_part(email: str) -> bool:
    local, _, _ = (email or "").partition("@")
    return local.lower() in FORBIDDEN_LOCAL_PARTS


def is_free_email_domain(email: str) -> bool:
    _, _, domain = (email or "").partition("@")
    return domain.lower() in FREE_EMAIL_DOMAINS


def email_rejection_reason(email: Optional[str]) -> Optional[str]:
    """The client-facing error for an unacceptable address, or None."""
    if not is_valid_email(email):
        return "Invalid email"
    if is_forbidden_local_part(email):
        return "Role-based emails not allowed"
    if is_free_email_domain(email):
        return "Use a company email"
    return None
