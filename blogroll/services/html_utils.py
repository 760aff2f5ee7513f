"""HTML cleanup for untrusted feed content."""

import html
import re
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Comment, Declaration, Doctype, ProcessingInstruction


ALLOWED_TAGS = frozenset(
    ["a", "b", "i", "em", "strong", "p", "br", "ul", "ol", "li", "blockquote", "code", "pre"]
)

# Removed together with everything inside them.
DROPPED_TAGS = ["script", "style", "iframe", "object", "embed", "noscript", "textarea"]

SAFE_SCHEMES = frozenset(["http", "https", "mailto", "ftp", "tel"])

_SPACE_RE = re.compile(r"[ \t\n\r\f\v]+")
_CONTROL_RE = re.compile(r"[\x00-\x20\x7f]+")


def _is_safe_href(href: str) -> bool:
    scheme = urlparse(_CONTROL_RE.sub("", href)).scheme.lower()
    return not scheme or scheme in SAFE_SCHEMES


def sanitize_html(content: str) -> str:
    """Reduce HTML to the allow-listed tags.

    Disallowed tags are unwrapped (their text is kept), except the
    ``DROPPED_TAGS`` whose content is removed. Only ``href`` survives, on
    ``<a>``, and only with a safe or relative scheme.
    """
    if not content:
        return ""

    soup = BeautifulSoup(content, "html.parser")

    for tag in soup.find_all(DROPPED_TAGS):
        tag.decompose()

    for node in soup.find_all(
        string=lambda s: isinstance(s, (Comment, Declaration, Doctype, ProcessingInstruction))
    ):
        node.extract()

    for tag in soup.find_all(True):
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        href = tag.get("href") if tag.name == "a" else None
        tag.attrs = {}
        if isinstance(href, str) and href.strip() and _is_safe_href(href):
            tag["href"] = href.strip()

    return str(soup).strip()


def decode_entities(text: str) -> str:
    if not text:
        return ""
    return html.unescape(text)


def strip_html(content: str) -> str:
    """Plain text of an HTML fragment.

    ``DROPPED_TAGS`` are removed with their content, entities are decoded and
    runs of whitespace collapse to one space. Non-breaking spaces are kept.
    """
    if not content:
        return ""
    soup = BeautifulSoup(content, "html.parser")
    for tag in soup.find_all(DROPPED_TAGS):
        tag.decompose()
    for node in soup.find_all(string=lambda s: isinstance(s, Comment)):
        node.extract()
    return _SPACE_RE.sub(" ", soup.get_text(" ")).strip()


def truncate_text(text: str, max_length: int = 300) -> str:
    """Shorten text to ``max_length`` characters, ending in ``...`` when cut."""
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3].strip() + "..."
