"""Context resolution from provisioning requests."""

from .resolver import SECRET_FIELDS, resolve_context, validate_request

__all__ = ["SECRET_FIELDS", "resolve_context", "validate_request"]
