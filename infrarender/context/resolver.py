"""Provisioning request validation and context resolution."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..core.errors import RenderFailed, ValidationError
from ..core.models import ProvisioningRequest, ResolvedContext
from ..core.naming import (
    DNS_LABEL_MAX_LENGTH,
    helm_release_name,
    managed_db_name_sanitizer,
    sanitize_name,
)
from ..core.versions import VersionNumber, get_supported_version

logger = logging.getLogger(__name__)

SECRET_FIELDS = frozenset({"database_password"})


def _field_name(loc: tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc) or "request"


def _translate_errors(exc: PydanticValidationError) -> list[ValidationError]:
    """Translate pydantic errors into one ValidationError per field.

    Error inputs are dropped on purpose: they may hold secret material.
    """
    messages: dict[str, list[str]] = {}
    for error in exc.errors():
        messages.setdefault(_field_name(error["loc"]), []).append(error["msg"])
    return [
        ValidationError(field, "; ".join(msgs)) for field, msgs in messages.items()
    ]


def validate_request(
    request: ProvisioningRequest | Mapping[str, Any],
) -> ProvisioningRequest:
    """Validate raw request data, reporting every violated field at once.

    Args:
        request: A request model or a mapping of request fields

    Returns:
        Validated request

    Raises:
        RenderFailed: With one ValidationError per violated field
    """
    if isinstance(request, ProvisioningRequest):
        return request

    try:
        return ProvisioningRequest.model_validate(dict(request))
    except PydanticValidationError as exc:
        errors = _translate_errors(exc)
        logger.debug(f"Request rejected with {len(errors)} validation error(s)")
        raise RenderFailed(errors) from None


def build_context_values(request: ProvisioningRequest) -> dict[str, Any]:
    """Return the plain variable mapping derived from a validated request."""
    # database_password stays wrapped in SecretStr through model_dump.
    values: dict[str, Any] = request.model_dump(exclude={"extra"})

    version = VersionNumber.parse(
        get_supported_version(request.database_type, request.version)
    )
    values["version"] = str(version)
    values["version_major"] = version.to_major_version_string()
    values["version_major_minor"] = version.to_major_minor_version_string("0")
    values["database_name"] = request.sanitized_name
    values["database_id"] = request.id
    values["helm_release_name"] = helm_release_name(request.database_type, request.id)
    values["selector"] = f"app={request.sanitized_name}"
    values["resource_name"] = sanitize_name(request.database_type, request.id)
    values["managed_database_name"] = managed_db_name_sanitizer(
        DNS_LABEL_MAX_LENGTH, request.database_type, request.sanitized_name
    )

    values.update(request.extra)
    return values


def resolve_context(
    request: ProvisioningRequest | Mapping[str, Any],
) -> ResolvedContext:
    """Build the immutable rendering context for a provisioning request.

    Args:
        request: A request model or a mapping of request fields

    Returns:
        Resolved context with secret fields tagged

    Raises:
        RenderFailed: With one ValidationError per violated field
    """
    validated = validate_request(request)
    context = ResolvedContext.from_values(
        build_context_values(validated), secrets=SECRET_FIELDS
    )
    logger.debug(
        f"Resolved {len(context)} variable(s) for database {validated.id} "
        f"({validated.database_type} {context['version'].value})"
    )
    return context
