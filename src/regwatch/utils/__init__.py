"""
Utilities Package.

Provides bot challenge detection shared by the fetch strategies and the
crawler's preflight request.
"""

from .challenge_handler import (
    detect_challenge,
    is_challenge_page,
    is_challenge_title,
    CHALLENGE_INDICATORS,
    CHALLENGE_TITLES,
)

__all__ = [
    "detect_challenge",
    "is_challenge_page",
    "is_challenge_title",
    "CHALLENGE_INDICATORS",
    "CHALLENGE_TITLES",
]
