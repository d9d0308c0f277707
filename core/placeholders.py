"""
Placeholder substitution for certificate element content.

Substitution is driven by an ordered table of ``PlaceholderRule`` entries that
is compiled into a single alternation; at any given position the rule listed
first wins. Passes repeat until the text stops changing, so braces left next
to a consumed token (``{{{recipientName}}}``) are consumed too. Injected
values are held out of the text as opaque markers while passes run and are
never rescanned. The table, in priority order:

1. double-brace tokens   ``{{recipientName}}`` ... ``{{verificationUrl}}``
2. single-brace tokens   ``{recipientName}`` ... ``{qrCode}``
3. cleanup               unknown ``{{...}}`` tokens and empty ``{}`` pairs are deleted
4. catch-all             any other ``{text}`` becomes ``text``
5. legacy sample values  literals from the design-time preview data

Legacy rules exist only so certificates authored against the builder's sample
data render with real values once issued. They are flagged ``legacy=True``.

With ``underline_values`` set, each injected text value is wrapped in the
underline span that marks filled-in fields on issued certificates.

Example usage:
    from core.placeholders import PlaceholderValues, substitute_placeholders

    values = PlaceholderValues(
        recipient_name="Ada Lovelace",
        issuer_name="Hetawk",
        issue_date="6/13/2025",
        certificate_id="FOM-2025-ABC-0001",
    )
    substitute_placeholders("Certificate ID: {{certificateId}}", values)
"""

import html
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple, Union

from core.qr import PLACEHOLDER_QR_DATA_URI


@dataclass(frozen=True)
class PlaceholderValues:
    """Resolved values available to placeholder tokens for one certificate."""
    recipient_name: str
    issuer_name: str
    issue_date: str
    certificate_id: str
    qr_code_image_source: Optional[str] = None
    verification_url: str = ""
    underline_values: bool = False

    @property
    def qr_source(self) -> str:
        """QR image source, or the neutral placeholder graphic when unavailable."""
        return self.qr_code_image_source or PLACEHOLDER_QR_DATA_URI


Resolver = Callable[[str, PlaceholderValues], str]


@dataclass(frozen=True)
class PlaceholderRule:
    """
    One substitution rule.

    ``resolve`` receives the matched text and the value set and returns the
    raw replacement; value escaping is applied by the engine. ``escape`` is
    False for rules that reproduce template text rather than inject a value.
    ``underline`` is False for values that are not readable text.
    """
    name: str
    pattern: str
    resolve: Resolver
    escape: bool = True
    underline: bool = True
    legacy: bool = False
    catch_all: bool = False


TOKEN_FIELDS = {
    "recipientName": "recipient_name",
    "issuerName": "issuer_name",
    "issueDate": "issue_date",
    "certificateId": "certificate_id",
    "qrCode": "qr_source",
    "verificationUrl": "verification_url",
}

DOUBLE_BRACE_TOKENS = (
    "recipientName", "issuerName", "issueDate", "certificateId", "qrCode", "verificationUrl",
)
SINGLE_BRACE_TOKENS = (
    "recipientName", "issuerName", "issueDate", "certificateId", "qrCode",
)


def _field(token: str) -> Resolver:
    attribute = TOKEN_FIELDS[token]
    return lambda _text, values: getattr(values, attribute)


def _token_rules(template: str, tokens: Tuple[str, ...], prefix: str) -> List[PlaceholderRule]:
    return [
        PlaceholderRule(
            name=f"{prefix}:{token}",
            pattern=re.escape(template.format(token)),
            resolve=_field(token),
            underline=token != "qrCode",
        )
        for token in tokens
    ]


def _delete(_text: str, _values: PlaceholderValues) -> str:
    return ""


def _inner_text(text: str, _values: PlaceholderValues) -> str:
    return text[1:-1]


# Stands in for an injected value between passes; stripped from input.
VALUE_MARKER = "\ue000"
_MARKER_PATTERN = re.compile(VALUE_MARKER + r"(\d+)" + VALUE_MARKER)

UNDERLINE_STYLE = "border-bottom: 2px solid #1e40af; padding-bottom: 1px;"

PLACEHOLDER_RULES: Tuple[PlaceholderRule, ...] = tuple(
    _token_rules("{{{{{}}}}}", DOUBLE_BRACE_TOKENS, "double")
    + _token_rules("{{{}}}", SINGLE_BRACE_TOKENS, "single")
    + [
        PlaceholderRule("cleanup:unknown-double", r"\{\{[^{}\ue000]*\}\}", _delete, escape=False),
        PlaceholderRule("cleanup:empty-braces", r"\{\s*\}", _delete, escape=False),
        PlaceholderRule("catch-all", r"\{[^{}]+\}", _inner_text, escape=False, catch_all=True),
        # Legacy: sample data shown by the template builder preview
        PlaceholderRule("legacy:sample-recipient", r"Sample Recipient",
                        _field("recipientName"), legacy=True),
        PlaceholderRule("legacy:sample-issuer", r"System Administrator",
                        _field("issuerName"), legacy=True),
        PlaceholderRule("legacy:sample-date", r"\b6/13/2025\b",
                        _field("issueDate"), legacy=True),
        PlaceholderRule("legacy:sample-certificate-id", r"FOM-\d{4}-[A-Z]{3}-\d{4}-[A-Z0-9]{2}",
                        _field("certificateId"), legacy=True),
    ]
)

KNOWN_TOKEN_PATTERN = re.compile(
    r"\{\{(?:" + "|".join(DOUBLE_BRACE_TOKENS) + r")\}\}"
    r"|\{(?:" + "|".join(SINGLE_BRACE_TOKENS) + r")\}"
)


def _compile(rules: Tuple[PlaceholderRule, ...]) -> re.Pattern:
    return re.compile("|".join(f"(?P<r{index}>{rule.pattern})" for index, rule in enumerate(rules)))


_COMPILED_RULES = {
    True: (PLACEHOLDER_RULES, _compile(PLACEHOLDER_RULES)),
    False: (
        tuple(rule for rule in PLACEHOLDER_RULES if not rule.catch_all),
        _compile(tuple(rule for rule in PLACEHOLDER_RULES if not rule.catch_all)),
    ),
}


def escape_value(value: str) -> str:
    """HTML-escape a substituted value and neutralise braces so it can never form a token."""
    return html.escape(value, quote=True).replace("{", "&#123;").replace("}", "&#125;")


def format_issue_date(value: Union[date, datetime, str]) -> str:
    """Format an issue date as M/D/YYYY."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return f"{value.month}/{value.day}/{value.year}"


def substitute_placeholders(
    content: str,
    values: PlaceholderValues,
    strip_unknown_braces: bool = True,
    escape_values: bool = True,
) -> str:
    """
    Replace every recognised token in content with its value.

    Args:
        content: Element content, possibly containing markup and tokens
        values: Resolved values for this certificate
        strip_unknown_braces: Apply the ``{text}`` -> ``text`` catch-all
        escape_values: HTML-escape injected values (off for image sources)

    Returns:
        Content with tokens consumed; running it again leaves it unchanged
    """
    if not content:
        return content

    rules, pattern = _COMPILED_RULES[strip_unknown_braces]
    injected: List[str] = []

    def replace(match: re.Match) -> str:
        rule = rules[int(match.lastgroup[1:])]
        replacement = rule.resolve(match.group(0), values)
        if not rule.escape:
            return replacement
        if escape_values:
            replacement = escape_value(replacement)
            if values.underline_values and rule.underline:
                replacement = f'<span style="{UNDERLINE_STYLE}">{replacement}</span>'
        injected.append(replacement)
        return f"{VALUE_MARKER}{len(injected) - 1}{VALUE_MARKER}"

    # A changing pass either drops braces or swaps a literal for a shorter marker
    text = content.replace(VALUE_MARKER, "")
    while True:
        substituted = pattern.sub(replace, text)
        if substituted == text:
            break
        text = substituted

    return _MARKER_PATTERN.sub(lambda match: injected[int(match.group(1))], text)


def find_unresolved_tokens(content: str) -> List[str]:
    """List known placeholder tokens still present in content."""
    return KNOWN_TOKEN_PATTERN.findall(content or "")
