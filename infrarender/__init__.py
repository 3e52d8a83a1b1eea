"""Infrarender - consistent infrastructure manifests from one provisioning request.

Renders Helm values, Terraform/HCL rules and other manifests from templates,
checking that identifiers shared between documents stay identical.
"""

__version__ = "0.1.0"

# Configure logging for library use
import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .core.errors import (
    ConsistencyError,
    DocumentFormatError,
    RenderAborted,
    RenderError,
    RenderFailed,
    ResolutionError,
    TemplateSyntaxError,
    ValidationError,
)
from .core.models import (
    ConsistencyConstraint,
    DocumentFormat,
    ProvisioningRequest,
    RenderResult,
    RenderState,
    TemplateSet,
    TemplateSpec,
)
from .rendering import render_manifests, write_manifests
from .templates import load_template_set

__all__ = [
    "ConsistencyConstraint",
    "ConsistencyError",
    "DocumentFormat",
    "DocumentFormatError",
    "ProvisioningRequest",
    "RenderAborted",
    "RenderError",
    "RenderFailed",
    "RenderResult",
    "RenderState",
    "ResolutionError",
    "TemplateSet",
    "TemplateSpec",
    "TemplateSyntaxError",
    "ValidationError",
    "load_template_set",
    "render_manifests",
    "write_manifests",
]
