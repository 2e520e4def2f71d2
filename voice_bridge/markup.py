"""
Voice markup (TwiML) builders.
"""

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

_ESCAPES = (
    ('&', '&amp;'),  # must run first
    ('<', '&lt;'),
    ('>', '&gt;'),
    ('"', '&quot;'),
    ("'", '&apos;'),
)


def escape_markup(text) -> str:
    """Escape & < > " ' for embedding in markup."""
    out = str(text) if text is not None else ''
    for raw, entity in _ESCAPES:
        out = out.replace(raw, entity)
    return out


def say(text: str) -> str:
    """Markup that speaks ``text``."""
    return f"{XML_DECLARATION}<Response><Say>{escape_markup(text)}</Say></Response>"


def play(url: str) -> str:
    """Markup that plays the audio at ``url``."""
    return f"{XML_DECLARATION}<Response><Play>{escape_markup(url)}</Play></Response>"
