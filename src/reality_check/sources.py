from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Tuple
from urllib.parse import urlparse

import idna

from .models import UrlContext


# domain -> (service type, credibility)
KNOWN_IMAGE_HOSTS: Dict[str, Tuple[str, str]] = {
    "images.pexels.com": ("stock", "high"),
    "unsplash.com": ("stock", "high"),
    "images.unsplash.com": ("stock", "high"),
    "pixabay.com": ("stock", "medium"),
    "cdn.cnn.com": ("news", "high"),
    "media.reuters.com": ("news", "high"),
    "images.bbc.co.uk": ("news", "high"),
    "ichef.bbci.co.uk": ("news", "high"),
    "imgur.com": ("social", "low"),
    "i.imgur.com": ("social", "low"),
    "i.redd.it": ("social", "low"),
}

FACT_CHECK_SITES: Tuple[str, ...] = (
    "snopes.com",
    "factcheck.org",
    "politifact.com",
    "reuters.com/fact-check",
    "apnews.com/hub/ap-fact-check",
)

_TIMESTAMP_PATH = re.compile(r"\d{4}[-/]\d{2}[-/]\d{2}")
_ID_PATH = re.compile(r"[a-f0-9]{8,}")


def _normalize_host(host: str) -> str:
    host = host.strip().lower()
    if host.startswith("www."):
        host = host[4:]
    # Convert unicode domains to ASCII punycode for consistent matching
    try:
        host = idna.encode(host).decode("ascii")
    except idna.IDNAError:
        pass
    return host


def host_from_url(url: str) -> Optional[str]:
    if not url or not isinstance(url, str):
        return None
    u = url.strip()
    # urlparse needs scheme to parse netloc reliably
    if "://" not in u:
        u = "http://" + u
    p = urlparse(u)
    if not p.netloc:
        return None
    host = _normalize_host(p.hostname or "")
    return host or None


def domain_of(url: Optional[str]) -> str:
    return host_from_url(url or "") or "unknown"


@dataclass(frozen=True)
class SourcePolicy:
    """
    Credibility lookup for hosts that serve images and news.

    Matching is exact-host first, then parent-domain for hosts listed in
    `subdomain_allowed` (so cdn.example.com inherits example.com's entry only
    when example.com opts in).
    """
    known_hosts: Mapping[str, Tuple[str, str]] = field(default_factory=lambda: dict(KNOWN_IMAGE_HOSTS))
    subdomain_allowed: frozenset = frozenset()

    @staticmethod
    def from_config(
        known_hosts: Optional[Mapping[str, Iterable[str]]] = None,
        subdomain_allowed: Iterable[str] = (),
    ) -> "SourcePolicy":
        """Build from the `sources:` settings section; no host table means the built-in one."""
        hosts: Dict[str, Tuple[str, str]] = {}
        for host, pair in (KNOWN_IMAGE_HOSTS if known_hosts is None else known_hosts).items():
            kind, credibility = tuple(pair)
            hosts[_normalize_host(host)] = (str(kind), str(credibility))
        return SourcePolicy(
            known_hosts=hosts,
            subdomain_allowed=frozenset(d.strip().lower() for d in subdomain_allowed if d.strip()),
        )

    def lookup(self, host: str) -> Optional[Tuple[str, str]]:
        if not host:
            return None
        host = _normalize_host(host)

        if host in self.known_hosts:
            return self.known_hosts[host]

        for parent in self.subdomain_allowed:
            if parent in self.known_hosts and host.endswith("." + parent):
                return self.known_hosts[parent]
        return None

    def url_context(self, url: str) -> UrlContext:
        host = host_from_url(url)
        if not host:
            return UrlContext()

        kind, credibility = self.lookup(host) or ("unknown", "medium")
        path = urlparse(url if "://" in url else "http://" + url).path or ""
        return UrlContext(
            domain=host,
            service=kind,
            credibility=credibility,
            sources=[host],
            has_timestamp=bool(_TIMESTAMP_PATH.search(path)),
            has_id=bool(_ID_PATH.search(path)),
        )
