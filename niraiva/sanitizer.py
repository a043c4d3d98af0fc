import html
from typing import Optional

import bleach


def sanitize_text(value: str) -> str:
    """Return a sanitized version of *value* with HTML stripped.

    Used for free text that is stored and later displayed back to users.
    Entities escaped by bleach are decoded, so "<5 mg" is stored as typed.
    """
    cleaned = bleach.clean(value, tags=[], attributes={}, strip=True)
    return html.unescape(cleaned).strip()


def sanitize_optional(value: Optional[str]) -> Optional[str]:
    """Sanitize *value* when present; blank input collapses to ``None``."""
    if value is None:
        return None
    cleaned = sanitize_text(str(value))
    return cleaned or None
