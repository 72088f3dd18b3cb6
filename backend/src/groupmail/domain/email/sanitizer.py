"""HTML/text body sanitizer.

Turns the HTML and plain-text bodies of an inbound email into one cleaned
HTML fragment:

- Prefers the HTML body; falls back to the text body when the HTML carries
  no content (no text, no images).
- Cuts everything from the first quoted-reply marker: reply containers
  (blockquote, gmail_quote, ...), attribution lines ("On ... wrote:"),
  "-----Original Message-----" separators and "-- " signature delimiters.
- Drops scripts, styles, comments, presentation attributes, empty blocks
  and redundant line breaks; collapses whitespace.

sanitize() is idempotent: each cleaning pass is repeated until the output
stops changing, so sanitizing a sanitized body returns it unchanged.
"""

import html as html_lib
import logging
import re
from typing import Optional

from bs4 import BeautifulSoup, Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag

logger = logging.getLogger(__name__)

MAX_PASSES = 10

REMOVED_TAGS = ["script", "style", "head", "meta", "title", "link", "noscript"]
UNWRAP_TAGS = ["html", "body", "span", "font", "o:p"]
ALLOWED_ATTRIBUTES = {"href", "src", "alt"}
VOID_TAGS = {"br", "img", "hr"}
BLOCK_TAGS = {
    "p", "div", "blockquote", "ul", "ol", "li", "table", "thead", "tbody",
    "tr", "td", "th", "h1", "h2", "h3", "h4", "h5", "h6", "pre", "hr",
    "section", "article", "header", "footer",
}

QUOTE_CLASSES = {
    "gmail_quote",
    "gmail_attr",
    "gmail_signature",
    "moz-cite-prefix",
    "yahoo_quoted",
    "OutlookMessageHeader",
}
QUOTE_IDS = {"divRplyFwdMsg", "appendonsend"}

# Attribution lines: "On Mon, Jan 8, 2024 at 10:00, Alice <a@x.com> wrote:"
ATTRIBUTION = re.compile(
    r"^\s*(?:On\s.{1,250}?\swrote\s*:|Le\s.{1,250}?\sa\s+écrit\s*:)\s*$",
    re.IGNORECASE | re.DOTALL,
)
ATTRIBUTION_IN_TEXT = re.compile(
    r"(?:^|\n)[ \t]*(?:On\s.{1,250}?\swrote\s*:|Le\s.{1,250}?\sa\s+écrit\s*:)[ \t]*(?=\n|$)",
    re.IGNORECASE | re.DOTALL,
)
ORIGINAL_MESSAGE = re.compile(r"-{2,}\s*Original Message\s*-{2,}", re.IGNORECASE)
SIGNATURE_DELIMITERS = ("--", "-- ")
SIGNATURE_IN_TEXT = re.compile(r"(?:^|\n)--[ \xa0]?(?=\n|$)")
WHITESPACE = re.compile(r"[ \t\n\r\f]+")


def sanitize(html: Optional[str], text: Optional[str] = None) -> str:
    """Return a cleaned HTML fragment for an email body.

    Args:
        html: HTML body (may be None or degenerate)
        text: Plain-text body used when the HTML has no content

    Returns:
        Cleaned HTML, or "" when neither body has content
    """
    cleaned = ""
    if not is_degenerate(html):
        cleaned = _converge(html)
    if not cleaned and text and text.strip():
        cleaned = _converge(text_to_html(text))
    return cleaned


def is_degenerate(html: Optional[str]) -> bool:
    """True when an HTML body has no visible text and no images."""
    if html is None or not html.strip():
        return True
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "head"]):
        tag.decompose()
    return not soup.get_text(strip=True) and soup.find("img") is None


def strip_quoted_text(text: Optional[str]) -> str:
    """Remove quoted replies and signatures from a plain-text body."""
    if not text:
        return ""
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    kept = []
    for index, line in enumerate(lines):
        stripped = line.strip()
        if stripped in SIGNATURE_DELIMITERS or line in SIGNATURE_DELIMITERS:
            break
        if ORIGINAL_MESSAGE.search(stripped):
            break
        if ATTRIBUTION.match(stripped):
            break
        # Attribution wrapped over two lines
        if index + 1 < len(lines) and stripped.lower().startswith(("on ", "le ")):
            if ATTRIBUTION.match(f"{stripped} {lines[index + 1].strip()}"):
                break
        if stripped.startswith(">"):
            continue
        kept.append(line.rstrip())
    return "\n".join(kept).strip()


def text_to_html(text: Optional[str]) -> str:
    """Convert a plain-text body into paragraphs, quoted text removed."""
    body = strip_quoted_text(text)
    if not body:
        return ""
    paragraphs = re.split(r"\n\s*\n", body)
    rendered = []
    for paragraph in paragraphs:
        lines = [html_lib.escape(line.strip(), quote=False) for line in paragraph.split("\n")]
        lines = [line for line in lines if line]
        if lines:
            rendered.append("<p>" + "<br/>".join(lines) + "</p>")
    return "".join(rendered)


def html_to_text(html: Optional[str]) -> str:
    """Plain-text rendition of a sanitized body."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    return soup.get_text(separator="\n", strip=True)


def _converge(html: str) -> str:
    result = html
    for _ in range(MAX_PASSES):
        cleaned = _clean_pass(result)
        if cleaned == result:
            return cleaned
        result = cleaned
    logger.warning("Sanitizer did not converge after %d passes", MAX_PASSES)
    return result


def _clean_pass(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(REMOVED_TAGS):
        tag.decompose()
    for node in soup.find_all(string=lambda s: isinstance(s, (Comment, Doctype, Declaration, ProcessingInstruction))):
        node.extract()

    root = soup.body or soup

    _cut_quoted_reply(root)
    _strip_attributes(root)
    _remove_empty_blocks(root)
    _trim_line_breaks(root)
    _collapse_whitespace(soup, root)

    if not root.get_text(strip=True) and root.find("img") is None:
        return ""
    return root.decode_contents().strip()


def _is_quote_marker(node) -> bool:
    if not isinstance(node, Tag):
        return False
    if node.name == "blockquote":
        return True
    if QUOTE_CLASSES.intersection(node.get("class") or []):
        return True
    if node.get("id") in QUOTE_IDS:
        return True
    if node.name in BLOCK_TAGS:
        block_text = node.get_text(" ", strip=True)
        if block_text and (ATTRIBUTION.match(block_text) or ORIGINAL_MESSAGE.fullmatch(block_text)):
            return True
    return False


def _quote_offset(text: str) -> Optional[int]:
    """Offset in a text node where quoted content starts, if any."""
    if text.strip() in SIGNATURE_DELIMITERS:
        return 0
    offsets = []
    for pattern in (ATTRIBUTION_IN_TEXT, ORIGINAL_MESSAGE, SIGNATURE_IN_TEXT):
        match = pattern.search(text)
        if match:
            offsets.append(match.start())
    return min(offsets) if offsets else None


def _truncate_after(node, root) -> None:
    """Remove everything that follows `node` in document order, up to root."""
    current = node
    while current is not None and current is not root:
        for sibling in list(current.next_siblings):
            sibling.extract()
        current = current.parent


def _cut_quoted_reply(root) -> None:
    for node in list(root.descendants):
        if isinstance(node, Tag):
            if _is_quote_marker(node):
                _truncate_after(node, root)
                node.extract()
                return
        elif type(node) is NavigableString:
            offset = _quote_offset(str(node))
            if offset is not None:
                before = NavigableString(str(node)[:offset])
                node.replace_with(before)
                _truncate_after(before, root)
                return


def _strip_attributes(root) -> None:
    for tag in root.find_all(True):
        attrs = {}
        for key, value in tag.attrs.items():
            if key not in ALLOWED_ATTRIBUTES:
                continue
            if isinstance(value, str) and value.strip().lower().startswith("javascript:"):
                continue
            attrs[key] = value
        tag.attrs = attrs
    for tag in root.find_all(UNWRAP_TAGS):
        tag.unwrap()


def _remove_empty_blocks(root) -> None:
    # Reverse document order visits children before their parents
    for tag in reversed(root.find_all(True)):
        if tag.name in VOID_TAGS:
            continue
        if not tag.get_text(strip=True) and tag.find("img") is None:
            tag.decompose()


def _is_br(node) -> bool:
    return isinstance(node, Tag) and node.name == "br"


def _is_blank_string(node) -> bool:
    return isinstance(node, NavigableString) and not node.strip()


def _trim_line_breaks(root) -> None:
    for container in [root] + root.find_all(True):
        if container.name in VOID_TAGS:
            continue
        children = [c for c in container.contents if not _is_blank_string(c)]
        if container is root or container.name in BLOCK_TAGS:
            while children and _is_br(children[0]):
                children.pop(0).extract()
            while children and _is_br(children[-1]):
                children.pop().extract()
        run = 0
        for child in children:
            if _is_br(child):
                run += 1
                if run > 2:
                    child.extract()
            else:
                run = 0


def _is_block(node) -> bool:
    return isinstance(node, Tag) and (node.name in BLOCK_TAGS or node.name == "br")


def _collapse_whitespace(soup, root) -> None:
    soup.smooth()
    for node in list(root.find_all(string=True)):
        if type(node) is not NavigableString:
            continue
        if node.find_parent("pre") is not None:
            continue
        collapsed = WHITESPACE.sub(" ", str(node))
        if not collapsed.strip():
            parent = node.parent
            at_edge = node.previous_sibling is None or node.next_sibling is None
            next_to_block = _is_block(node.previous_sibling) or _is_block(node.next_sibling)
            if next_to_block or (at_edge and (parent is root or parent.name in BLOCK_TAGS)):
                node.extract()
                continue
        if collapsed != str(node):
            node.replace_with(NavigableString(collapsed))
