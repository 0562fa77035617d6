"""
core/redirects.py -- Post-sign-in redirect target validation.

Shared by the API sign-in endpoints (callbackUrl) and the web forms.
"""

from typing import Optional

DEFAULT_CALLBACK_URL = "/moe"


def safe_callback_url(url: Optional[str], default: str = DEFAULT_CALLBACK_URL) -> str:
    """Only accept relative paths as redirect targets.

    Rejects absolute URLs (https://attacker.com), protocol-relative URLs
    (//attacker.com) and backslash variants some browsers normalize to "//".
    """
    if url and url.startswith("/") and not url.startswith("//") and "\\" not in url:
        return url
    return default
