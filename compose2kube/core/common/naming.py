"""Deterministic Kubernetes-safe naming."""

import re

_INVALID = re.compile(r"[^a-z0-9-]+")
_DASHES = re.compile(r"-{2,}")

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "compose2kube"


def to_dns_label(value: str, max_length: int = 63) -> str:
    """
    Map an arbitrary id to an RFC 1123 label.

    Lower-cases, replaces runs of invalid characters with ``-`` and trims
    leading/trailing dashes. Two different ids can map to the same label;
    callers that need uniqueness must check for collisions.
    """
    label = _DASHES.sub("-", _INVALID.sub("-", value.lower())).strip("-")
    return label[:max_length].rstrip("-") or "x"


def resource_name(service_id: str, suffix: str) -> str:
    """
    ``{service-id}-{kind-suffix}`` as an RFC 1035 label.

    Service names must start with a letter and fit 63 characters, so ids
    beginning with a digit get a ``svc-`` prefix and the id part is
    truncated to leave room for the suffix.
    """
    stem = to_dns_label(service_id)
    if stem[0].isdigit():
        stem = f"svc-{stem}"
    budget = max(63 - len(suffix) - 1, 1)
    return f"{stem[:budget].rstrip('-')}-{suffix}"


def identity_labels(service_id: str) -> dict[str, str]:
    """Labels every resource owned by ``service_id`` carries."""
    return {"app": to_dns_label(service_id), MANAGED_BY_LABEL: MANAGED_BY_VALUE}


__all__ = [
    "MANAGED_BY_LABEL",
    "MANAGED_BY_VALUE",
    "to_dns_label",
    "resource_name",
    "identity_labels",
]
