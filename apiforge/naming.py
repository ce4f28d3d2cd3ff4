"""Convert free-form names (tags, operation ids, schema names) to identifiers.

Every generator derives identifiers through these functions, so the same
input always produces the same output everywhere.

Rules:
  - domain abbreviations are substituted before splitting
      "3ds" -> "ThreeDs", "2fa" -> "TwoFa"
  - split on "-", "_" and whitespace; other punctuation is dropped
  - type casing capitalizes each segment and concatenates
  - member casing is type casing with the first letter lower-cased
  - package casing lower-cases the joined string, alphanumerics only

Examples:
  transactions          -> Transactions / transactions / transactions
  payment-methods       -> PaymentMethods / paymentMethods / paymentmethods
  3ds-authentication    -> ThreeDsAuthentication
  TRANSACTION_ID        -> TransactionId / transactionId
"""

from __future__ import annotations

import keyword
import re

# Applied case-insensitively before splitting
_ABBREVIATIONS: dict[str, str] = {
    "3ds": "ThreeDs",
    "2fa": "TwoFa",
}

_ABBREVIATION_RE = re.compile(
    "|".join(re.escape(k) for k in _ABBREVIATIONS), re.IGNORECASE
)
_SEPARATORS = re.compile(r"[-_\s]+")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def _substitute(name: str) -> str:
    return _ABBREVIATION_RE.sub(lambda m: _ABBREVIATIONS[m.group(0).lower()], name)


def _segments(name: str) -> list[str]:
    parts = (_NON_ALNUM.sub("", p) for p in _SEPARATORS.split(_substitute(name)))
    return [p for p in parts if p]


def _capitalize(segment: str) -> str:
    # TRANSACTION -> Transaction
    if segment.isupper() and len(segment) > 1:
        segment = segment.lower()
    return segment[0].upper() + segment[1:]


def to_type_name(name: str | None) -> str:
    """PascalCase identifier for classes and records."""
    segments = _segments(name or "")
    if not segments:
        return "Default"
    result = "".join(_capitalize(s) for s in segments)
    if result[0].isdigit():
        result = "_" + result
    return result


def to_member_name(name: str | None) -> str:
    """camelCase identifier for wire-facing members."""
    if not _segments(name or ""):
        return ""
    type_name = to_type_name(name)
    if type_name.startswith("_"):
        return type_name
    return type_name[0].lower() + type_name[1:]


def to_package_name(name: str | None) -> str:
    """Lower-case alphanumeric package segment ("Payment Methods" -> "paymentmethods")."""
    joined = _NON_ALNUM.sub("", _substitute(name or "")).lower()
    return joined or "default"


def _camel_to_snake(name: str) -> str:
    """Convert camelCase or PascalCase to snake_case."""
    s1 = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    return re.sub(r"([a-z\d])([A-Z])", r"\1_\2", s1).lower()


def to_snake_name(name: str | None) -> str:
    """snake_case Python identifier for modules, functions and attributes."""
    type_name = to_type_name(name)
    snake = _camel_to_snake(type_name.lstrip("_"))
    snake = re.sub(r"_+", "_", snake).strip("_")
    if not snake or snake[0].isdigit():
        snake = "_" + snake
    if keyword.iskeyword(snake) or snake in {"self", "cls"}:
        snake += "_"
    return snake


def module_file_name(type_name: str) -> str:
    """File name for the module holding ``type_name``."""
    return to_snake_name(type_name) + ".py"


def synthesize_operation_id(method: str, path: str) -> str:
    """Derive an operation id from method + path.

    GET /transactions/{transactionId}/refunds -> getTransactionsByTransactionIdRefunds
    """
    result = method.lower()
    for part in path.split("/"):
        if not part:
            continue
        if part.startswith("{") and part.endswith("}"):
            result += "By" + to_type_name(part[1:-1])
        else:
            result += to_type_name(part)
    return result
