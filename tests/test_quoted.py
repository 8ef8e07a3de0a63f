"""Tests for splitting visible replies from quoted history."""

from __future__ import annotations

from support_threads.ingestion.quoted import (
    classify_quoted_content,
    parse_email_content,
    parse_quoted_html,
    parse_quoted_text,
)


def test_plain_text_without_quotes_is_untouched() -> None:
    parsed = parse_quoted_text("Thanks, that fixed it.")
    assert parsed.visible_content == "Thanks, that fixed it."
    assert parsed.quoted_content == ""
    assert not parsed.has_quoted_content


def test_gmail_attribution_splits_body() -> None:
    body = (
        "Thanks, that fixed it.\n\n"
        "On Mon, Jan 6, 2025 at 10:00 AM Support <support@example.com> wrote:\n"
        "> Please restart the router.\n"
    )
    parsed = parse_quoted_text(body)
    assert parsed.visible_content == "Thanks, that fixed it."
    assert parsed.quoted_content.startswith("On Mon, Jan 6, 2025")
    assert parsed.detected_pattern == "gmail"


def test_earliest_marker_wins() -> None:
    body = (
        "See below.\n"
        "-----Original Message-----\n"
        "From: Support <support@example.com>\n"
        "Sent: Monday, January 6, 2025 10:00 AM\n"
        "Old reply\n"
    )
    parsed = parse_quoted_text(body)
    assert parsed.visible_content == "See below."
    assert parsed.detected_pattern == "outlook"


def test_html_quote_container_is_removed() -> None:
    html = (
        "<div>New answer</div>"
        '<div class="gmail_quote"><div>On Mon wrote:</div>'
        "<blockquote>Old text</blockquote></div>"
    )
    parsed = parse_quoted_html(html)
    assert parsed.visible_content == "<div>New answer</div>"
    assert parsed.quoted_content.count("gmail_quote") == 1
    assert "Old text" in parsed.quoted_content
    assert parsed.detected_pattern == "html-elements"


def test_html_without_containers_falls_back_to_text_markers() -> None:
    html = (
        "<p>Sounds good.</p>"
        "<p>On Mon, Jan 6, 2025 at 10:00 AM Support wrote:</p>"
        "<p>Earlier text</p>"
    )
    parsed = parse_quoted_html(html)
    assert parsed.visible_content == "<p>Sounds good.</p>"
    assert "Earlier text" in parsed.quoted_content


def test_content_type_selects_parser() -> None:
    html = "<p>Hi</p><blockquote>old</blockquote>"
    assert parse_email_content(html, "text/html").quoted_content == (
        "<blockquote>old</blockquote>"
    )
    assert parse_email_content("Hi", "text/plain").visible_content == "Hi"


def test_classify_quoted_content() -> None:
    assert classify_quoted_content("") == ()
    assert classify_quoted_content("-----Original Message-----\nx")[0].kind == "outlook"
    assert classify_quoted_content("On Mon Jan 6 Casey wrote:\nx")[0].kind == "gmail"
    assert classify_quoted_content("<blockquote>x</blockquote>")[0].kind == "blockquote"
    assert classify_quoted_content("> x\n> y")[0].kind == "generic"
