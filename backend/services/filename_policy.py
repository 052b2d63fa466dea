"""
Filename Policy Checker - naming conventions preparers rely on for triage.

Runs before content screening. Tokens are matched case-insensitively against
the filename with every non-alphanumeric character stripped.
"""
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from models import UploadCategory

_NON_ALNUM = re.compile(r"[^a-z0-9]")

# Camera/scanner default names are rejected for general documents
GENERIC_FILE_PATTERN = re.compile(r"^(img|image|scan|document|file|photo|screenshot)[-_\s]*\d*", re.IGNORECASE)


@dataclass(frozen=True)
class NamingRule:
    label: str
    tokens: Tuple[str, ...]
    display: Tuple[str, ...]
    example: str


NAMING_RULES: Dict[str, NamingRule] = {
    "wage_statement": NamingRule(
        label="W-2 or 1099 forms",
        tokens=("w2", "w-2", "1099"),
        display=("W-2", "1099"),
        example="W-2_2025.pdf",
    ),
    "mortgage_statement": NamingRule(
        label="1098 mortgage statement",
        tokens=("1098", "mortgage"),
        display=("1098", "Mortgage"),
        example="1098_Mortgage_2025.pdf",
    ),
    "identity_document": NamingRule(
        label="Photo ID",
        tokens=("photoid", "photo", "id", "passport", "driverlicense", "driver", "license"),
        display=("Photo ID", "Passport", "Driver_License"),
        example="Photo_ID.pdf",
    ),
    "authorization_form": NamingRule(
        label="authorization form",
        tokens=("8879",),
        display=("8879",),
        example="Form_8879.pdf",
    ),
}

# Catch-all for the general documents vault
GENERAL_DOCUMENT_TOKENS = (
    "w2", "1099", "1098", "id", "passport", "license", "k1",
    "schedule", "receipt", "statement", "tax",
)

# (label, tokens); first match wins
DOCUMENT_TYPE_MATCHERS = (
    ("Form 8879", ("8879",)),
    ("W-2", ("w2", "w-2", "w_2")),
    ("1099", ("1099",)),
    ("1098", ("1098",)),
    ("Photo ID", ("photoid", "passport", "driverlicense", "license", "idcard", "id")),
    ("Schedule K-1", ("k1", "k-1", "schedulek1")),
    ("HSA", ("hsa", "form8889")),
)


def normalize_file_name(value: str) -> str:
    return _NON_ALNUM.sub("", (value or "").lower())


def matches_tokens(filename: str, tokens) -> bool:
    normalized = normalize_file_name(filename)
    return any(normalize_file_name(token) in normalized for token in tokens)


def check_name(filename: str, category: Optional[str]) -> Optional[str]:
    """Return a violation message, or None when the name is acceptable.

    `category` is a naming-rule key (wage_statement, ...) or an upload
    category (documents / authorizations).
    """
    if category in NAMING_RULES:
        rule = NAMING_RULES[category]
        if matches_tokens(filename, rule.tokens):
            return None
        expected = " or ".join(rule.display)
        return f"Rename the {rule.label} file to include {expected}. Example: {rule.example}."

    if category == UploadCategory.AUTHORIZATIONS.value:
        return check_name(filename, "authorization_form")

    if category in (None, "", UploadCategory.DOCUMENTS.value):
        if not matches_tokens(filename, GENERAL_DOCUMENT_TOKENS) or GENERIC_FILE_PATTERN.match(filename or ""):
            return (
                f'Rename "{filename}" to include the document type '
                "(e.g., W-2_2025.pdf) and reselect it."
            )
        return None

    return f"Unknown upload category: {category}."


def detect_document_type(filename: Optional[str], category: Optional[str]) -> str:
    """Label stored on the upload record ("W-2", "Form 8879", "Photo ID", ...)."""
    if not filename:
        return "Document"
    if category == UploadCategory.AUTHORIZATIONS.value:
        return "Form 8879"
    for label, tokens in DOCUMENT_TYPE_MATCHERS:
        if matches_tokens(filename, tokens):
            return label
    return "Document"
