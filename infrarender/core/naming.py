"""Naming rules shared by every downstream consumer of rendered manifests."""

from __future__ import annotations

import re

DNS_LABEL_MAX_LENGTH = 63
DNS_NAME_MAX_LENGTH = 253
LABEL_VALUE_MAX_LENGTH = 63
HELM_RELEASE_NAME_MAX_LENGTH = 50

# RFC 1123 label: lowercase alphanumerics and '-', alphanumeric at both ends.
DNS_LABEL_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
# RFC 1035 label: same as above but must start with a letter (Service names).
DNS_1035_LABEL_PATTERN = re.compile(r"^[a-z]([-a-z0-9]*[a-z0-9])?$")
# Kubernetes label value: alphanumerics, '-', '_', '.', alphanumeric at both ends.
LABEL_VALUE_PATTERN = re.compile(r"^[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?$")
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_dns_label(value: str) -> bool:
    return len(value) <= DNS_LABEL_MAX_LENGTH and bool(DNS_LABEL_PATTERN.match(value))


def is_dns_1035_label(value: str) -> bool:
    return len(value) <= DNS_LABEL_MAX_LENGTH and bool(
        DNS_1035_LABEL_PATTERN.match(value)
    )


def is_label_value(value: str) -> bool:
    return len(value) <= LABEL_VALUE_MAX_LENGTH and bool(
        LABEL_VALUE_PATTERN.match(value)
    )


def is_dns_name(value: str) -> bool:
    """Return True for a dot-separated DNS name whose labels are all RFC 1123."""
    name = value[:-1] if value.endswith(".") else value
    if not name or len(name) > DNS_NAME_MAX_LENGTH:
        return False
    return all(is_dns_label(label) for label in name.split("."))


def cut(value: str, max_length: int) -> str:
    """Truncate ``value`` to ``max_length`` characters."""
    return value[:max_length]


def sanitize_name(prefix: str, name: str) -> str:
    """Build a ``prefix-name`` resource name with underscores replaced by dashes."""
    return f"{prefix}-{name}".replace("_", "-")


def managed_db_name_sanitizer(max_size: int, prefix: str, name: str) -> str:
    """Build a managed database name without separators, bounded in length.

    The prefix length is reserved out of ``max_size`` before truncating.
    """
    budget = max_size - len(prefix)
    new_name = f"{prefix}{name.replace('_', '').replace('-', '')}"
    if len(new_name) > budget:
        new_name = new_name[:budget]
    return new_name


def helm_release_name(database_type: str, database_id: str) -> str:
    return cut(f"{database_type}-{database_id}", HELM_RELEASE_NAME_MAX_LENGTH)
