"""Unescaping for long-form content recovered from streamed fragments."""

# Applied in order; anything else is left untouched
CONTENT_ESCAPES: tuple[tuple[str, str], ...] = (
    ("\\u003c", "<"),
    ("\\u003e", ">"),
    ("\\u0026", "&"),
    ('\\"', '"'),
    ("\\\\", "\\"),
)


def unescape_content(text: str) -> str:
    """Undo the fixed set of escapes the portal applies to article bodies.

    This is not a general unicode-escape decoder: unknown sequences such as
    \\u00e9 or \\n pass through as-is.
    """
    for escaped, plain in CONTENT_ESCAPES:
        text = text.replace(escaped, plain)
    return text
