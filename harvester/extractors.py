"""
Content extractors for blog post markup.

Two engines produce the same output shape from a post's main container:
- a structural engine walking the parsed tree (BeautifulSoup)
- a pattern engine scanning raw markup, used when the tree finds nothing

On top of them sit document-level locators that look for the post body
anywhere in a full page: known content regions, inline script variables,
and broad page regions as a last resort.
"""

import logging
import re

from bs4 import BeautifulSoup, Tag

from .normalizer import (
    NOT_FOUND,
    collapse_whitespace,
    decode_entities,
    find_blocks,
    normalize,
    normalize_text,
    remove_blocks,
    strip_tags,
    unescape_script_string,
)

logger = logging.getLogger(__name__)

MAIN_CONTAINER = "se-main-container"

# Below this many characters the main-content result is escalated
MIN_MAIN_CONTENT = 100
MIN_MODULE_TEXT = 10
MIN_REGION_CONTENT = 200
MIN_PAGE_CONTENT = 500

HORIZONTAL_RULE = "----------"

# Module classes collected after paragraphs, in order
QUOTATION_MODULE = "se-module-quotation"
CODE_MODULE = "se-module-code"
TABLE_MODULE = "se-module-table"
RULE_MODULE = "se-module-horizontalLine"
NESTED_MODULES = (QUOTATION_MODULE, CODE_MODULE, TABLE_MODULE)

# Known post body regions, highest priority first
CONTENT_SELECTORS = [
    ".se-main-container",
    "#postViewArea",
    ".post_ct",
    "#contentArea",
    ".se_component_wrap",
    ".se-component",
    "#post-view",
    ".post-view",
    ".post-content",
    ".post_body",
    "#postContent",
    ".viewer",
    "#viewTypeSelector",
    ".article_body",
    ".se_view",
    "#mainFrame",
]

MOBILE_SELECTORS = [
    ".se_component_wrap",
    ".viewer_mainMobile",
    "#viewTypeSelector",
    ".post_ct",
    ".post_content",
    ".post_body",
    "article",
]

# Inline script variables that sometimes carry the post body
SCRIPT_VARIABLES = [
    "postContent",
    "htmlContent",
    "bloggermain",
    "g_PostViewBody",
    "se_publishContent",
    "htContentBody",
]

PAGE_REGIONS = ["article", "main", "body"]
PAGE_CHROME = ["header", "nav", "footer", "script", "style"]

_CELL_RE = re.compile(r"<t[dh]\b[^>]*>(.*?)</t[dh]\s*>", re.I | re.S)
_MAIN_FRAME_RE = re.compile(
    r'<iframe\b[^>]*\bid\s*=\s*["\']mainFrame["\'][^>]*>', re.I
)
_SRC_RE = re.compile(r'\bsrc\s*=\s*["\']([^"\']+)["\']', re.I)


def _script_variable_re(name: str) -> re.Pattern:
    # Matches `name = '...'`, `"name": "..."` and similar, honouring escapes
    return re.compile(
        rf"""['"]?\b{name}['"]?\s*[=:]\s*(['"])((?:\\.|(?!\1).)*)\1""",
        re.S,
    )


_SCRIPT_VARIABLE_RES = [(name, _script_variable_re(name)) for name in SCRIPT_VARIABLES]
_MOBILE_CONTENT_RE = _script_variable_re("htmlContent")


# ─────────────────────────────────────────────────────────────
# Structural engine
# ─────────────────────────────────────────────────────────────

def _text(element: Tag) -> str:
    return element.get_text().strip()


def _has_nested_module_parent(element: Tag, container: Tag) -> bool:
    for parent in element.parents:
        if parent is container:
            return False
        classes = parent.get("class") or []
        if any(module in classes for module in NESTED_MODULES):
            return True
    return False


def extract_structural(html: str) -> str:
    """
    Extract main content by walking the parsed tree.

    Returns "" when the page has no main container.
    """
    soup = BeautifulSoup(html, "html.parser")
    container = soup.select_one(f".{MAIN_CONTAINER}")
    if container is None:
        return ""

    parts = []

    paragraphs = [
        _text(p)
        for p in container.select(".se-text-paragraph")
        if not _has_nested_module_parent(p, container)
    ]
    paragraphs = [p for p in paragraphs if p]
    if paragraphs:
        parts.append("\n\n".join(paragraphs))

    for selector in (QUOTATION_MODULE, CODE_MODULE):
        for module in container.select(f".{selector}"):
            text = _text(module)
            if text:
                parts.append(text)

    for table in container.select(f".{TABLE_MODULE}"):
        cells = [_text(cell) for cell in table.find_all(["td", "th"])]
        text = " ".join(cell for cell in cells if cell)
        if text:
            parts.append(text)

    for _ in container.select(f".{RULE_MODULE}"):
        parts.append(HORIZONTAL_RULE)

    content = "\n\n".join(parts).strip()

    if len(content) < MIN_MAIN_CONTENT:
        for module in container.select(".se-module"):
            if "se-module-image" in (module.get("class") or []):
                continue
            text = _text(module)
            if len(text) > MIN_MODULE_TEXT and text not in content:
                content = f"{content}\n\n{text}".strip()

    if len(content) < MIN_MAIN_CONTENT:
        content = _text(container)

    return content


# ─────────────────────────────────────────────────────────────
# Pattern engine
# ─────────────────────────────────────────────────────────────

def _plain(fragment: str) -> str:
    return collapse_whitespace(decode_entities(strip_tags(fragment)))


def extract_by_pattern(html: str) -> str:
    """
    Extract main content by scanning raw markup for module markers.

    Same steps and escalation as the structural engine.
    """
    containers = find_blocks(html, MAIN_CONTAINER)
    if not containers:
        return ""
    container = containers[0]

    parts = []

    body = remove_blocks(container, NESTED_MODULES)
    paragraphs = [_plain(block) for block in find_blocks(body, "se-text-paragraph")]
    paragraphs = [p for p in paragraphs if p]
    if paragraphs:
        parts.append("\n\n".join(paragraphs))

    for marker in (QUOTATION_MODULE, CODE_MODULE):
        for block in find_blocks(container, marker):
            text = _plain(block)
            if text:
                parts.append(text)

    for block in find_blocks(container, TABLE_MODULE):
        cells = [_plain(cell) for cell in _CELL_RE.findall(block)]
        text = " ".join(cell for cell in cells if cell)
        if text:
            parts.append(text)

    for _ in find_blocks(container, RULE_MODULE):
        parts.append(HORIZONTAL_RULE)

    content = "\n\n".join(parts).strip()

    if len(content) < MIN_MAIN_CONTENT:
        images = find_blocks(container, "se-module-image", outer=True)
        for block in find_blocks(container, "se-module", outer=True):
            if block in images:
                continue
            text = _plain(block)
            if len(text) > MIN_MODULE_TEXT and text not in content:
                content = f"{content}\n\n{text}".strip()

    if len(content) < MIN_MAIN_CONTENT:
        content = _plain(container)

    return content


def extract_main_content(html: str) -> str:
    """Extract text from the post's main container, or "" without one."""
    content = extract_structural(html)
    if not content:
        content = extract_by_pattern(html)
    return content


# ─────────────────────────────────────────────────────────────
# Document-level locators
# ─────────────────────────────────────────────────────────────

def extract_script_content(html: str) -> str:
    """Look for the post body inside inline script variables."""
    for name, pattern in _SCRIPT_VARIABLE_RES:
        for match in pattern.finditer(html):
            raw = match.group(2)
            if len(raw) < MIN_MAIN_CONTENT:
                continue
            markup = decode_entities(unescape_script_string(raw))
            text = ""
            if MAIN_CONTAINER in markup:
                text = extract_main_content(markup)
            if len(text) >= MIN_MAIN_CONTENT:
                text = normalize_text(text)
            else:
                text = normalize(markup)
            if text != NOT_FOUND:
                logger.debug(f"Found post body in script variable {name}")
                return text
    return ""


def find_main_frame_src(html: str) -> str | None:
    """Return the src of the page's mainFrame iframe, if any."""
    tag = _MAIN_FRAME_RE.search(html)
    if not tag:
        return None
    src = _SRC_RE.search(tag.group(0))
    return decode_entities(src.group(1)) if src else None


def _select_region(soup: BeautifulSoup, selectors: list[str], minimum: int) -> str:
    for selector in selectors:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = normalize(str(element))
        if text != NOT_FOUND and len(text) > minimum:
            return text
    return ""


def _page_region(soup: BeautifulSoup) -> str:
    for name in PAGE_REGIONS:
        region = soup.find(name)
        if region is None:
            continue
        for chrome in region.find_all(PAGE_CHROME):
            chrome.decompose()
        text = normalize(str(region))
        if text != NOT_FOUND and len(text) > MIN_PAGE_CONTENT:
            return text
    return ""


def extract_document(html: str) -> str:
    """
    Locate and extract the post body from a full page.

    Tries, in order: the main container, known content regions, inline
    script variables, then broad page regions. Always returns normalized
    text, or NOT_FOUND.
    """
    if not html:
        return NOT_FOUND

    if MAIN_CONTAINER in html:
        text = extract_main_content(html)
        if len(text) >= MIN_MAIN_CONTENT:
            return normalize_text(text)

    soup = BeautifulSoup(html, "html.parser")

    text = _select_region(soup, CONTENT_SELECTORS, MIN_REGION_CONTENT)
    if text:
        return text

    text = extract_script_content(html)
    if text:
        return text

    return _page_region(soup) or NOT_FOUND


def extract_mobile_document(html: str) -> str:
    """Locate the post body in a mobile page, falling back to the desktop locators."""
    if not html:
        return NOT_FOUND

    match = _MOBILE_CONTENT_RE.search(html)
    if match:
        markup = decode_entities(unescape_script_string(match.group(2)))
        text = extract_main_content(markup)
        text = normalize_text(text) if text else normalize(markup)
        if text != NOT_FOUND:
            return text

    soup = BeautifulSoup(html, "html.parser")
    text = _select_region(soup, MOBILE_SELECTORS, MIN_REGION_CONTENT)
    if text:
        return text

    return extract_document(html)
