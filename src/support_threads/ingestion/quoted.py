"""Split email bodies into the visible reply and quoted history."""

from __future__ import annotations

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from ..core.models import QuotedBlock


@dataclass(slots=True, frozen=True)
class ParsedEmailContent:
    """Visible and quoted halves of a message body."""

    visible_content: str
    quoted_content: str
    detected_pattern: str | None = None

    @property
    def has_quoted_content(self) -> bool:
        """Return ``True`` when quoted history was found."""
        return bool(self.quoted_content)


_QUOTED_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^On .+ wrote:$", re.MULTILINE), "gmail"),
    (re.compile(r"^Den .+ skrev:$", re.MULTILINE), "gmail-no"),
    (re.compile(r"^På .+ skrev:$", re.MULTILINE), "gmail-no"),
    (re.compile(r"^Skrev .+:$", re.MULTILINE), "gmail-no"),
    (re.compile(r"^From: .+$", re.MULTILINE), "header"),
    (re.compile(r"^Sent: .+$", re.MULTILINE), "header"),
    (re.compile(r"^To: .+$", re.MULTILINE), "header"),
    (re.compile(r"^Subject: .+$", re.MULTILINE), "header"),
    (re.compile(r"^Date: .+$", re.MULTILINE), "header"),
    (re.compile(r"-----Original Message-----", re.IGNORECASE), "outlook"),
    (re.compile(r"_____+"), "separator"),
    (re.compile(r"^Begin forwarded message:$", re.MULTILINE), "apple"),
    (re.compile(r"^> ", re.MULTILINE), "blockquote"),
    (re.compile(r"^&gt; ", re.MULTILINE), "blockquote"),
)

_QUOTE_SELECTORS = ", ".join(
    (
        "blockquote",
        ".quote",
        ".quoted-text",
        ".gmail_quote",
        ".outlook_quote",
        ".yahoo_quoted",
        ".AppleMailQuote",
        '[class*="quote"]',
        'div[class*="gmail"]',
    )
)

_MIN_QUOTE_LINES = 2


def _is_quote_line(line: str) -> bool:
    stripped = line.strip()
    return stripped.startswith(">") or stripped.startswith("&gt;")


def _find_quote_run(content: str) -> int:
    """Return the offset of the first run of quoted lines, or -1."""
    lines = content.split("\n")
    start = -1
    run = 0
    for index, line in enumerate(lines):
        if _is_quote_line(line):
            if start == -1:
                start = index
            run += 1
            continue
        if run >= _MIN_QUOTE_LINES:
            break
        start = -1
        run = 0
    if run >= _MIN_QUOTE_LINES and start != -1:
        return len("\n".join(lines[:start]))
    return -1


def parse_quoted_text(content: str) -> ParsedEmailContent:
    """Split a plain-text body at the earliest quote marker."""
    if not content:
        return ParsedEmailContent(visible_content=content or "", quoted_content="")

    split_point = -1
    detected: str | None = None
    for pattern, kind in _QUOTED_PATTERNS:
        match = pattern.search(content)
        if match and (split_point == -1 or match.start() < split_point):
            split_point = match.start()
            detected = kind

    if split_point == -1:
        split_point = _find_quote_run(content)
        detected = "blockquote" if split_point != -1 else None

    if split_point == -1:
        return ParsedEmailContent(visible_content=content, quoted_content="")

    return ParsedEmailContent(
        visible_content=content[:split_point].strip(),
        quoted_content=content[split_point:].strip(),
        detected_pattern=detected,
    )


def parse_quoted_html(html: str) -> ParsedEmailContent:
    """Split an HTML body using quote containers or, failing that, its text."""
    if not html:
        return ParsedEmailContent(visible_content=html or "", quoted_content="")

    soup = BeautifulSoup(html, "html.parser")
    matches = soup.select(_QUOTE_SELECTORS)
    match_ids = {id(element) for element in matches}
    # Nested matches leave together with their outermost container.
    containers = [
        element
        for element in matches
        if not any(id(parent) in match_ids for parent in element.parents)
    ]
    if containers:
        quoted = "\n".join(str(element) for element in containers)
        for element in containers:
            element.extract()
        return ParsedEmailContent(
            visible_content=str(soup).strip(),
            quoted_content=quoted.strip(),
            detected_pattern="html-elements",
        )

    parsed = parse_quoted_text(soup.get_text("\n"))
    if not parsed.has_quoted_content:
        return ParsedEmailContent(visible_content=html, quoted_content="")

    visible_length = len(parsed.visible_content)
    nodes = list(soup.children)
    consumed = 0
    split_index = 0
    for node in nodes:
        if consumed >= visible_length:
            break
        node_text = node.get_text("\n") if isinstance(node, Tag) else str(node)
        # get_text("\n") joins nodes with one separator character.
        consumed += len(node_text) + 1
        split_index += 1
    visible_html = "".join(str(node) for node in nodes[:split_index])
    quoted_html = "".join(str(node) for node in nodes[split_index:])
    if not quoted_html.strip():
        return ParsedEmailContent(visible_content=html, quoted_content="")
    return ParsedEmailContent(
        visible_content=visible_html,
        quoted_content=quoted_html,
        detected_pattern=parsed.detected_pattern,
    )


def parse_email_content(
    content: str, content_type: str = "text/plain"
) -> ParsedEmailContent:
    """Dispatch to the HTML or plain-text parser by content type."""
    if "html" in (content_type or "").lower():
        return parse_quoted_html(content)
    return parse_quoted_text(content)


def classify_quoted_content(quoted_content: str) -> tuple[QuotedBlock, ...]:
    """Wrap quoted history in a :class:`QuotedBlock` tagged by client style."""
    if not quoted_content.strip():
        return ()
    lowered = quoted_content.lower()
    if "-----original message-----" in lowered:
        kind = "outlook"
    elif "on " in lowered and " wrote:" in lowered:
        kind = "gmail"
    elif "<blockquote" in lowered or "blockquote>" in lowered:
        kind = "blockquote"
    else:
        kind = "generic"
    return (QuotedBlock(kind=kind, raw=quoted_content),)


__all__ = [
    "ParsedEmailContent",
    "classify_quoted_content",
    "parse_email_content",
    "parse_quoted_html",
    "parse_quoted_text",
]
