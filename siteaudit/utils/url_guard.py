"""
siteaudit/utils/url_guard.py
SSRF guard shared by the HTTP layer and the fetcher: only http(s) URLs whose
host resolves outside private, loopback and link-local ranges pass.
"""
import ipaddress
import socket
from urllib.parse import urlparse

BLOCKED = [
    ipaddress.ip_network("10.0.0.0/8"), ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"), ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"), ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"), ipaddress.ip_network("fc00::/7"),
]


def is_public_url(url: str) -> bool:
    try:
        p = urlparse(url)
        if p.scheme not in ("http", "https") or not p.hostname:
            return False
        try:
            return not any(ipaddress.ip_address(p.hostname) in n for n in BLOCKED)
        except ValueError:
            pass
        for *_, sa in socket.getaddrinfo(p.hostname, None):
            if any(ipaddress.ip_address(sa[0]) in n for n in BLOCKED):
                return False
        return True
    except Exception:
        return False
