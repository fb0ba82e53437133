"""
Normalizer - Turn post markup into clean plain text.

Handles:
- Removal of images, embedded frames, scripts and image modules
- Unwrapping of styled spans and editor paragraphs
- Entity decoding (named and numeric)
- Whitespace collapsing with paragraph breaks preserved
- The not-found sentinel for fragments too short to be a post
"""

import re

# Returned instead of empty or garbage text
NOT_FOUND = (
    "No post content could be found. "
    "Open the original post to read it."
)

MIN_TEXT_LENGTH = 50

IMAGE_MODULE_CLASSES = ("se-module-image", "se-image", "embedded-image")

_ENTITIES = {
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
    "&nbsp;": " ",
}

_ENTITY_RE = re.compile("|".join(re.escape(e) for e in _ENTITIES))
_NUMERIC_ENTITY_RE = re.compile(r"&#(x[0-9a-fA-F]+|\d+);")

_REMOVE_RE = [
    re.compile(r"<script\b[^>]*>.*?</script\s*>", re.I | re.S),
    re.compile(r"<style\b[^>]*>.*?</style\s*>", re.I | re.S),
    re.compile(r"<iframe\b[^>]*>.*?</iframe\s*>", re.I | re.S),
    re.compile(r"<iframe\b[^>]*>", re.I),
    re.compile(r"<img\b[^>]*>", re.I),
    re.compile(r"<!--.*?-->", re.S),
]

_STYLED_SPAN_RE = re.compile(r'<span\b[^>]*class="se-fs-[^"]*"[^>]*>(.*?)</span>', re.I | re.S)
_EDITOR_PARAGRAPH_RE = re.compile(
    r'<p\b[^>]*class="se-text-paragraph[^"]*"[^>]*>(.*?)</p>', re.I | re.S
)
_LINE_BREAK_RE = re.compile(r"<br\s*/?>", re.I)
_BLOCK_END_RE = re.compile(r"</(?:p|div|li|h[1-6]|tr|blockquote|pre)\s*>", re.I)
_TAG_RE = re.compile(r"<[^>]+>")
_OPEN_TAG_RE = re.compile(r"<([a-zA-Z][a-zA-Z0-9]*)\b([^>]*)>")

_SCRIPT_ESCAPES = re.compile(r"\\(['\"\\n])")

# Stands in for references to NUL, surrogates and code points past Unicode
REPLACEMENT_CHARACTER = "\ufffd"
MAX_CODE_POINT = 0x10FFFF


def decode_entities(text: str) -> str:
    """
    Decode the common named entities and any numeric character reference.

    References that cannot appear in UTF-8 text decode to U+FFFD, as HTML
    parsers do.
    """

    def _numeric(match: re.Match) -> str:
        ref = match.group(1)
        code = int(ref[1:], 16) if ref[0] in "xX" else int(ref)
        if code == 0 or 0xD800 <= code <= 0xDFFF or code > MAX_CODE_POINT:
            return REPLACEMENT_CHARACTER
        return chr(code)

    text = _NUMERIC_ENTITY_RE.sub(_numeric, text)
    return _ENTITY_RE.sub(lambda m: _ENTITIES[m.group(0)], text)


def strip_tags(markup: str) -> str:
    """Remove every tag, leaving text nodes in place."""
    return _TAG_RE.sub("", markup)


def unescape_script_string(raw: str) -> str:
    """Reverse the backslash escaping used for HTML embedded in script strings."""
    return _SCRIPT_ESCAPES.sub(lambda m: "\n" if m.group(1) == "n" else m.group(1), raw)


def _attribute(attrs: str, name: str) -> str | None:
    match = re.search(rf'\b{name}\s*=\s*(["\'])(.*?)\1', attrs, re.I | re.S)
    return match.group(2) if match else None


def _balanced_end(markup: str, tag: str, start: int) -> tuple[int, int]:
    """
    Find the closing tag matching an element opened just before `start`.

    Returns (inner_end, outer_end). Unclosed elements run to the end of input.
    """
    depth = 1
    for match in re.finditer(rf"<(/?){tag}\b[^>]*?(/?)>", markup[start:], re.I):
        if match.group(1):
            depth -= 1
        elif not match.group(2):
            depth += 1
        if depth == 0:
            return start + match.start(), start + match.end()
    return len(markup), len(markup)


def find_blocks(markup: str, marker: str, outer: bool = False) -> list[str]:
    """
    Find elements whose class list holds `marker` (or whose id is `#marker`).

    Extents are found by counting nested tags of the same name, so blocks
    containing their own <div>s come back whole. Returns inner markup, or
    the full element when `outer` is set.
    """
    if marker.startswith("#"):
        attribute, token = "id", marker[1:]
    else:
        attribute, token = "class", marker

    blocks = []
    for match in _OPEN_TAG_RE.finditer(markup):
        tag, attrs = match.group(1), match.group(2)
        value = _attribute(attrs, attribute)
        if value is None or token not in value.split():
            continue
        if attrs.rstrip().endswith("/"):
            continue
        inner_end, outer_end = _balanced_end(markup, tag, match.end())
        if outer:
            blocks.append(markup[match.start():outer_end])
        else:
            blocks.append(markup[match.end():inner_end])
    return blocks


def remove_blocks(markup: str, markers: tuple[str, ...]) -> str:
    """Cut every element carrying one of `markers` out of the markup."""
    for marker in markers:
        for block in find_blocks(markup, marker, outer=True):
            markup = markup.replace(block, "")
    return markup


def collapse_whitespace(text: str) -> str:
    """Collapse runs of spaces, trim around line breaks, keep paragraph gaps."""
    text = re.sub(r"[^\S\n]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def normalize(fragment: str) -> str:
    """
    Convert a markup fragment (or plain text) into clean text.

    Returns NOT_FOUND when fewer than MIN_TEXT_LENGTH characters survive.
    """
    if not fragment:
        return NOT_FOUND

    text = fragment
    for pattern in _REMOVE_RE:
        text = pattern.sub("", text)
    if "<" in text:
        text = remove_blocks(text, IMAGE_MODULE_CLASSES)

    text = _STYLED_SPAN_RE.sub(r"\1", text)
    text = _EDITOR_PARAGRAPH_RE.sub(r"\1\n\n", text)
    text = _LINE_BREAK_RE.sub("\n", text)
    text = _BLOCK_END_RE.sub("\n", text)

    text = strip_tags(text)
    text = decode_entities(text)
    return normalize_text(text)


def normalize_text(text: str) -> str:
    """
    Finish text that is already plain: collapse whitespace and apply the
    not-found threshold.

    Tags and entities are left alone, so literal `<`, `>` and `&` survive.
    """
    text = collapse_whitespace(text or "")
    if len(text) < MIN_TEXT_LENGTH:
        return NOT_FOUND
    return text
