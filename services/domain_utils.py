from __future__ import annotations

from typing import Optional
from urllib.parse import unquote, urlparse
import unicodedata


def normalize_linkedin_profile_url(url: Optional[str]) -> Optional[str]:
    """Canonical https://linkedin.com/in/<slug>; None for non-profile URLs."""
    if not url:
        return None
    u = urlparse(str(url).strip())
    host = (u.netloc or '').lower()
    if host.startswith('www.'):
        host = host[4:]
    path = (u.path or '').rstrip('/')
    # Country subdomains (fr.linkedin.com) point at the same profile
    if not host.endswith('linkedin.com') or not path.startswith('/in/'):
        return None
    parts = [p for p in path.split('/') if p]
    if len(parts) < 2:
        return None
    slug = unquote(parts[1])
    slug = unicodedata.normalize('NFKC', slug).strip().lower()
    slug = slug.replace('\u200b', '').replace('\u200c', '').replace('\u200d', '')
    if not slug:
        return None
    return f"https://linkedin.com/in/{slug}"
