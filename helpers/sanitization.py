"""
HTML sanitization for rendered datatable cells.

Raw cells (action buttons, image columns, forced raw columns) carry markup;
everything they contain passes through bleach with a fixed allow-list.
"""
from typing import Any

import bleach
from markupsafe import escape

# Define allowed tags and attributes for rendered cells
ALLOWED_TAGS = ['a', 'span', 'strong', 'em', 'br', 'small', 'code', 'pre', 'i', 'img', 'div']
ALLOWED_ATTRIBUTES = {
    'a': ['href', 'target', 'rel', 'title', 'class'],
    'img': ['src', 'alt', 'class', 'width', 'height'],
    'span': ['class', 'title'],
    '*': ['class', 'title']
}
# Define allowed protocols for links
ALLOWED_PROTOCOLS = ['http', 'https', 'mailto']


def sanitize_html(html_content: Any) -> str:
    """
    Sanitize HTML content to prevent XSS attacks.

    Args:
        html_content: Raw HTML content to sanitize

    Returns:
        Sanitized HTML content safe for rendering
    """
    if html_content is None or html_content == '':
        return ''

    return bleach.clean(
        str(html_content),
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True
    )


def escape_cell(value: Any) -> Any:
    """HTML-escape string cells; other JSON scalars pass through unchanged."""
    if isinstance(value, str):
        return str(escape(value))
    return value
