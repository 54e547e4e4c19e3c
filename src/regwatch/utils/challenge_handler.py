"""
Bot challenge detection.

Recognizes the interstitial pages anti-bot services (Cloudflare, DDoS-Guard,
Sucuri and similar) serve in place of real content. Detection works on raw
HTML so it can run against a plain HTTP preflight request before any browser exists.

Usage:
    if is_challenge_page(response.text):
        strategy = BrowserFetch()
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Challenge Markers
# =============================================================================

# Lower-cased substrings searched for in the page body
CHALLENGE_INDICATORS = {
    # Cloudflare
    "cloudflare_wait": "<title>just a moment",
    "cloudflare_chl": "__cf_chl",
    "cloudflare_verification": "cf-browser-verification",
    "cloudflare_running": "cf-challenge-running",
    "cloudflare_turnstile": "challenges.cloudflare.com",
    "cloudflare_checking": "checking your browser before accessing",
    "connection_check": "checking if the site connection is secure",

    # Generic interstitials
    "browser_verify": "please wait while we verify your browser",
    "ddos_protection": "ddos protection by",
    "sucuri_firewall": "sucuri website firewall",
}

# Titles that mean the challenge has not cleared yet
CHALLENGE_TITLES = [
    "just a moment",
    "attention required",
    "please wait",
    "ddos-guard",
]


def detect_challenge(html: Optional[str]) -> Optional[str]:
    """
    Detect if an HTML body is a bot challenge instead of real content.

    Args:
        html: Raw page HTML

    Returns:
        Name of detected challenge marker, or None if no challenge found
    """
    if not html:
        return None

    html_lower = html.lower()
    for name, marker in CHALLENGE_INDICATORS.items():
        if marker in html_lower:
            logger.debug(f"Challenge marker matched: {name}")
            return name

    return None


def is_challenge_page(html: Optional[str]) -> bool:
    """Check if the HTML body carries any challenge marker."""
    return detect_challenge(html) is not None


def is_challenge_title(title: Optional[str]) -> bool:
    """Check if a document title still shows a challenge interstitial."""
    if not title:
        return False
    title_lower = title.lower()
    return any(marker in title_lower for marker in CHALLENGE_TITLES)
