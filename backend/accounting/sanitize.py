# accounting/sanitize.py
"""Free-text sanitization applied before validating line fields."""

HTML_REPLACEMENTS = str.maketrans({
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
})


def no_html(text):
    """
    Escape HTML-significant characters and trim surrounding whitespace.

    Ampersands are left alone so already-escaped text is not escaped twice.
    Non-string values are converted with str(); None is returned unchanged.
    """
    if text is None:
        return None
    return str(text).strip().translate(HTML_REPLACEMENTS)


def clean_code(code) -> str:
    """Trim an account code; None becomes an empty string."""
    if code is None:
        return ""
    return str(code).strip()
