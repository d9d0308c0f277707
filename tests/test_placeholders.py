"""
Placeholder substitution tests.

Covers token resolution, rule priority, the catch-all and legacy sample-value
rules, value escaping, and idempotence as a Hypothesis property.

Example usage:
    pytest tests/test_placeholders.py -v
"""

from dataclasses import replace
from datetime import date, datetime, timezone

import pytest
from hypothesis import assume, given, settings
from hypothesis import strategies as st

from core.placeholders import (
    PLACEHOLDER_RULES,
    PlaceholderValues,
    find_unresolved_tokens,
    format_issue_date,
    substitute_placeholders,
)
from core.qr import PLACEHOLDER_QR_DATA_URI

VERIFY_URL = "https://certs.example.org/community/verify-certificate?id=verify-0001"


@pytest.fixture
def values():
    return PlaceholderValues(
        recipient_name="Ada Lovelace",
        issuer_name="Hetawk",
        issue_date="6/13/2025",
        certificate_id="FOM-2025-ABC-0001",
        qr_code_image_source="data:image/png;base64,iVBORw0KGgo=",
        verification_url=VERIFY_URL,
    )


class TestKnownTokens:
    def test_certificate_id_in_sentence(self, values):
        assert substitute_placeholders("Certificate ID: {{certificateId}}", values) == \
            "Certificate ID: FOM-2025-ABC-0001"

    @pytest.mark.parametrize("token,expected", [
        ("{{recipientName}}", "Ada Lovelace"),
        ("{{issuerName}}", "Hetawk"),
        ("{{issueDate}}", "6/13/2025"),
        ("{{certificateId}}", "FOM-2025-ABC-0001"),
        ("{{qrCode}}", "data:image/png;base64,iVBORw0KGgo="),
        ("{{verificationUrl}}", VERIFY_URL),
        ("{recipientName}", "Ada Lovelace"),
        ("{issuerName}", "Hetawk"),
        ("{issueDate}", "6/13/2025"),
        ("{certificateId}", "FOM-2025-ABC-0001"),
        ("{qrCode}", "data:image/png;base64,iVBORw0KGgo="),
    ])
    def test_each_token(self, values, token, expected):
        assert substitute_placeholders(token, values) == expected

    def test_all_occurrences_replaced(self, values):
        result = substitute_placeholders("{{recipientName}} and {recipientName}, {{recipientName}}", values)
        assert result == "Ada Lovelace and Ada Lovelace, Ada Lovelace"

    def test_markup_around_tokens_preserved(self, values):
        result = substitute_placeholders("<strong>{{recipientName}}</strong>", values)
        assert result == "<strong>Ada Lovelace</strong>"

    def test_no_known_tokens_left(self, values):
        content = "{{recipientName}} {issuerName} {{issueDate}} {certificateId} {{qrCode}} {{verificationUrl}}"
        assert find_unresolved_tokens(substitute_placeholders(content, values)) == []

    def test_empty_content(self, values):
        assert substitute_placeholders("", values) == ""


class TestCleanupRules:
    def test_unknown_double_brace_removed(self, values):
        assert substitute_placeholders("Hello {{nickname}}!", values) == "Hello !"

    def test_empty_braces_removed(self, values):
        assert substitute_placeholders("a{}b{ }c{{}}d", values) == "abcd"

    def test_catch_all_keeps_inner_text(self, values):
        assert substitute_placeholders("Course: {Advanced Theology}", values) == "Course: Advanced Theology"

    def test_single_brace_verification_url_is_not_a_token(self, values):
        assert substitute_placeholders("{verificationUrl}", values) == "verificationUrl"

    @pytest.mark.parametrize("content,expected", [
        ("{{{recipientName}}}", "Ada Lovelace"),
        ("{{{{recipientName}}}}", "Ada Lovelace"),
        ("{{{foo}}}", ""),
        ("{a{b}}", "ab"),
        ("ID: {{certificateId}}}", "ID: FOM-2025-ABC-0001}"),
    ])
    def test_adjacent_braces_consumed(self, values, content, expected):
        once = substitute_placeholders(content, values)
        assert once == expected
        assert substitute_placeholders(once, values) == once

    def test_catch_all_can_be_disabled(self, values):
        result = substitute_placeholders("{Advanced} {{recipientName}} {{nickname}}", values,
                                         strip_unknown_braces=False)
        assert result == "{Advanced} Ada Lovelace "

    def test_known_token_wins_over_catch_all(self, values):
        catch_all_index = next(i for i, rule in enumerate(PLACEHOLDER_RULES) if rule.catch_all)
        token_indexes = [i for i, rule in enumerate(PLACEHOLDER_RULES) if rule.name.startswith(("double:", "single:"))]
        assert max(token_indexes) < catch_all_index
        assert substitute_placeholders("{issuerName}", values) == "Hetawk"


class TestLegacyRules:
    def test_legacy_rules_are_flagged(self):
        legacy = [rule for rule in PLACEHOLDER_RULES if rule.legacy]
        assert len(legacy) == 4
        assert all(rule.name.startswith("legacy:") for rule in legacy)

    @pytest.mark.parametrize("content,expected", [
        ("Awarded to Sample Recipient", "Awarded to Ada Lovelace"),
        ("Signed: System Administrator", "Signed: Hetawk"),
        ("Date: 6/13/2025", "Date: 6/13/2025"),
        ("ID FOM-2024-XYZ-0042-A1", "ID FOM-2025-ABC-0001"),
    ])
    def test_sample_values_replaced(self, values, content, expected):
        assert substitute_placeholders(content, values) == expected

    def test_sample_date_replaced_with_real_date(self, values):
        other = PlaceholderValues("Ada", "Hetawk", "1/2/2026", "C-1")
        assert substitute_placeholders("On 6/13/2025.", other) == "On 1/2/2026."

    def test_sample_date_needs_word_boundary(self, values):
        other = PlaceholderValues("Ada", "Hetawk", "1/2/2026", "C-1")
        assert substitute_placeholders("16/13/20250", other) == "16/13/20250"


class TestEscaping:
    def test_values_are_html_escaped(self):
        values = PlaceholderValues('<script>alert("x")</script>', "A & B", "1/1/2025", "C-1")
        result = substitute_placeholders("{{recipientName}} / {{issuerName}}", values)
        assert result == "&lt;script&gt;alert(&quot;x&quot;)&lt;/script&gt; / A &amp; B"

    def test_braces_in_values_cannot_form_tokens(self):
        values = PlaceholderValues("{{issuerName}}", "Hetawk", "1/1/2025", "C-1")
        once = substitute_placeholders("{{recipientName}}", values)
        assert once == "&#123;&#123;issuerName&#125;&#125;"
        assert substitute_placeholders(once, values) == once

    def test_escaping_can_be_disabled_for_sources(self):
        values = PlaceholderValues("Ada", "Hetawk", "1/1/2025", "C-1",
                                   qr_code_image_source="https://x.test/qr?a=1&b=2")
        assert substitute_placeholders("{{qrCode}}", values, escape_values=False) == "https://x.test/qr?a=1&b=2"


class TestUnderline:
    SPAN = '<span style="border-bottom: 2px solid #1e40af; padding-bottom: 1px;">'

    @pytest.fixture
    def underlined(self, values):
        return replace(values, underline_values=True)

    def test_values_wrapped(self, underlined):
        result = substitute_placeholders("Awarded to {{recipientName}} on {issueDate}", underlined)
        assert result == f"Awarded to {self.SPAN}Ada Lovelace</span> on {self.SPAN}6/13/2025</span>"

    def test_legacy_values_wrapped(self, underlined):
        assert substitute_placeholders("Signed: System Administrator", underlined) == \
            f"Signed: {self.SPAN}Hetawk</span>"

    def test_wrapped_value_is_escaped(self, underlined):
        result = substitute_placeholders("{{issuerName}}", replace(underlined, issuer_name="A & B"))
        assert result == f"{self.SPAN}A &amp; B</span>"

    def test_catch_all_and_qr_not_wrapped(self, underlined):
        assert substitute_placeholders("{Advanced Theology}", underlined) == "Advanced Theology"
        assert substitute_placeholders("{{qrCode}}", underlined) == "data:image/png;base64,iVBORw0KGgo="

    def test_sources_never_wrapped(self, underlined):
        result = substitute_placeholders("{{qrCode}}", underlined, escape_values=False)
        assert result == "data:image/png;base64,iVBORw0KGgo="

    def test_idempotent(self, underlined):
        once = substitute_placeholders("{{{recipientName}}} {{certificateId}}", underlined)
        assert substitute_placeholders(once, underlined) == once


class TestQrFallback:
    def test_missing_qr_uses_placeholder_graphic(self):
        values = PlaceholderValues("Ada", "Hetawk", "1/1/2025", "C-1", qr_code_image_source=None)
        assert values.qr_source == PLACEHOLDER_QR_DATA_URI
        result = substitute_placeholders("{{qrCode}}", values, escape_values=False)
        assert result == PLACEHOLDER_QR_DATA_URI
        assert "{{qrCode}}" not in result


class TestFormatIssueDate:
    @pytest.mark.parametrize("value,expected", [
        (date(2025, 6, 13), "6/13/2025"),
        (datetime(2024, 1, 5, 23, 0, tzinfo=timezone.utc), "1/5/2024"),
        ("2025-12-01", "12/1/2025"),
        ("2025-06-13T10:00:00Z", "6/13/2025"),
        ("sometime", "sometime"),
    ])
    def test_formats(self, value, expected):
        assert format_issue_date(value) == expected


# Content is built from tokens, plain words and stray braces, joined with or
# without spaces so braces also land next to other tokens.
TOKENS = [
    "{{recipientName}}", "{{issuerName}}", "{{issueDate}}", "{{certificateId}}",
    "{{qrCode}}", "{{verificationUrl}}", "{recipientName}", "{issuerName}",
    "{issueDate}", "{certificateId}", "{qrCode}", "{{unknown}}", "{free text}", "{}",
    "Sample Recipient", "System Administrator", "6/13/2025", "FOM-2024-XYZ-0042-A1",
    "{", "}", "{{", "}}",
]
WORDS = ["Certificate", "of", "completion", "awarded", "to", "on", "<b>", "</b>", "&amp;", "ID:"]
NAME_ALPHABET = "abcdefghijklmnopqrstuvwxyz <>&\"'{}"


@st.composite
def contents(draw):
    parts = draw(st.lists(st.sampled_from(TOKENS + WORDS), max_size=12))
    separator = draw(st.sampled_from(["", " "]))
    return separator.join(parts)


class TestSubstitutionProperties:
    @given(
        content=contents(),
        recipient=st.text(alphabet=NAME_ALPHABET, max_size=20),
        issuer=st.text(alphabet=NAME_ALPHABET, max_size=20),
    )
    @settings(max_examples=200, deadline=None)
    def test_idempotent(self, content, recipient, issuer):
        values = PlaceholderValues(recipient, issuer, "1/2/2024", "cert-1",
                                   qr_code_image_source="data:image/png;base64,abc",
                                   verification_url="https://x.test/v?id=cert-1")
        once = substitute_placeholders(content, values)
        assert substitute_placeholders(once, values) == once

    @given(content=contents(), recipient=st.text(alphabet=NAME_ALPHABET, max_size=20))
    @settings(max_examples=200, deadline=None)
    def test_complete(self, content, recipient):
        assume(content)
        values = PlaceholderValues(recipient, "hetawk", "1/2/2024", "cert-1")
        assert find_unresolved_tokens(substitute_placeholders(content, values)) == []
