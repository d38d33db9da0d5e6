"""Unit tests for {{variable}} templating and the email text helpers."""

from __future__ import annotations

from datetime import date

from src.crm.emails.templating import (
    escape_html,
    extract_template_variables,
    filter_valid_emails,
    format_email_date,
    html_to_text,
    is_valid_email,
    render_template,
    text_to_html,
    unsubscribe_link,
    validate_template_context,
)


# ── Rendering ────────────────────────────────────────────────────────────────


def test_render_substitutes_known_variables():
    result = render_template(
        "Hi {{contactName}}, invoice {{invoiceNumber}} is ready.",
        {"contactName": "Dana", "invoiceNumber": "INV-2025-0001"},
    )
    assert result == "Hi Dana, invoice INV-2025-0001 is ready."


def test_render_leaves_missing_and_empty_placeholders():
    result = render_template("{{a}} {{b}} {{c}}", {"a": "x", "b": ""})
    assert result == "x {{b}} {{c}}"


def test_render_keeps_none_placeholder():
    assert render_template("Total: {{amount}}", {"amount": None}) == "Total: {{amount}}"


def test_render_repeated_variable_and_non_string_values():
    assert render_template("{{n}} + {{n}}", {"n": 2}) == "2 + 2"


def test_extract_variables_keeps_first_appearance_order():
    names = extract_template_variables("Hello {{name}} from {{store}}", "{{store}} {{total}} {{name}}")
    assert names == ["name", "store", "total"]


def test_validate_template_context_reports_missing():
    ok, missing = validate_template_context("{{a}} {{b}}", {"a": "set"})
    assert ok is False
    assert missing == ["b"]

    ok, missing = validate_template_context("{{a}}", {"a": "set"})
    assert ok is True
    assert missing == []


# ── HTML helpers ─────────────────────────────────────────────────────────────


def test_escape_html():
    assert escape_html("<b>\"Tom\" & 'Jerry'</b>") == "&lt;b&gt;&quot;Tom&quot; &amp; &#039;Jerry&#039;&lt;/b&gt;"


def test_text_to_html_wraps_each_line():
    assert text_to_html("Hello\n<world>") == "<p>Hello</p><p>&lt;world&gt;</p>"


def test_html_to_text_strips_tags_styles_and_scripts():
    html = "<style>p{color:red}</style><p>Hello   <b>there</b></p>\n<script>alert(1)</script>"
    assert html_to_text(html) == "Hello there"


# ── Addresses and dates ──────────────────────────────────────────────────────


def test_email_validation():
    assert is_valid_email("owner@petstore.ca") is True
    assert is_valid_email("not an email") is False
    assert is_valid_email("missing@tld") is False
    assert filter_valid_emails(["a@b.co", "bad", "c@d.org"]) == ["a@b.co", "c@d.org"]


def test_format_email_date():
    assert format_email_date(date(2024, 12, 5)) == "December 5, 2024"
    assert format_email_date("2025-01-09T10:00:00Z") == "January 9, 2025"


def test_unsubscribe_link():
    assert unsubscribe_link("https://crm.purrify.ca/", "abc 123") == "https://crm.purrify.ca/unsubscribe?id=abc+123"
