"""Render orchestration.

A render moves strictly forward through
``RESOLVING -> PARSING -> EVALUATING -> SUBSTITUTING -> CHECKING -> DONE`` and
ends in ``FAILED`` with every collected error when any stage reports one.
Documents are evaluated and substituted concurrently against the shared,
immutable context; the consistency check is the fan-in barrier.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from ..context import resolve_context
from ..core.errors import (
    Redactor,
    RenderAborted,
    RenderError,
    RenderFailed,
    ResolutionError,
    ValidationError,
)
from ..core.models import (
    ProvisioningRequest,
    RenderedDocument,
    RenderResult,
    RenderState,
    ResolvedContext,
    TemplateSet,
    TemplateSpec,
)
from ..settings import RendererSettings, get_settings
from .ast import TemplateAST
from .conditions import collect_branches
from .consistency import check_consistency
from .formats import get_format
from .parser import parse_template
from .substitutor import substitute

logger = logging.getLogger(__name__)

Overrides = Mapping[str, Mapping[str, Any]]


@dataclass
class _DocumentOutcome:
    name: str
    document: RenderedDocument | None = None
    errors: list[RenderError] = field(default_factory=list)
    stages: list[RenderState] = field(default_factory=list)


class _Render:
    """Mutable bookkeeping for one render call."""

    def __init__(self, template_set: TemplateSet, settings: RendererSettings) -> None:
        self.template_set = template_set
        self.settings = settings
        self.trace: list[RenderState] = []
        self.errors: list[RenderError] = []
        self.redactor = Redactor(marker=settings.redaction_marker)

    def enter(self, state: RenderState) -> None:
        logger.debug(f"Render {self.template_set.name}: {state.value}")
        self.trace.append(state)

    def fail(self) -> RenderResult:
        self.trace.append(RenderState.FAILED)
        logger.info(
            f"Render of {self.template_set.name} failed with "
            f"{len(self.errors)} error(s)"
        )
        return RenderResult(
            RenderState.FAILED, {}, list(self.errors), list(self.trace), self.redactor
        )


def _document_contexts(
    context: ResolvedContext, template_set: TemplateSet, overrides: Overrides
) -> dict[str, ResolvedContext]:
    names = [template.name for template in template_set.templates]
    errors: list[RenderError] = [
        ValidationError(f"overrides.{name}", "unknown document")
        for name in overrides
        if name not in names
    ]

    contexts: dict[str, ResolvedContext] = {}
    for name in names:
        try:
            contexts[name] = context.derive(overrides.get(name, {}))
        except TypeError as exc:
            errors.append(ValidationError(f"overrides.{name}", str(exc)))

    if errors:
        raise RenderFailed(errors)
    return contexts


def _missing_variables(ast: TemplateAST, context: ResolvedContext) -> list[RenderError]:
    return [
        ResolutionError(ast.name, name, "variable is not defined")
        for name in sorted(ast.variables())
        if name not in context
    ]


def _render_document(
    spec: TemplateSpec,
    ast: TemplateAST,
    context: ResolvedContext,
    settings: RendererSettings,
    redactor: Redactor,
    cancel: threading.Event,
) -> _DocumentOutcome:
    outcome = _DocumentOutcome(spec.name)
    if cancel.is_set():
        return outcome

    outcome.stages.append(RenderState.EVALUATING)
    missing = _missing_variables(ast, context)
    undefined = {error.variable for error in missing}
    outcome.errors.extend(missing)
    nodes, condition_errors = collect_branches(ast, context)
    outcome.errors.extend(e for e in condition_errors if e.variable not in undefined)

    outcome.stages.append(RenderState.SUBSTITUTING)
    fmt = get_format(spec.format)
    try:
        result = substitute(nodes, context, fmt, spec.name)
    except RenderFailed as exc:
        outcome.errors.extend(
            e for e in exc.errors if getattr(e, "variable", None) not in undefined
        )
        return outcome
    if outcome.errors:
        return outcome

    if settings.validate_output:
        try:
            fmt.validate(
                spec.name, result.text, redactor.extend(result.secret_fragments)
            )
        except RenderError as exc:
            outcome.errors.append(exc)
            return outcome

    outcome.document = RenderedDocument(
        spec.name,
        spec.format,
        result.text,
        dict(result.exposed),
        frozenset(result.secret_fragments),
    )
    return outcome


def render_manifests(
    request: ProvisioningRequest | Mapping[str, Any],
    template_set: TemplateSet,
    *,
    overrides: Overrides | None = None,
    settings: RendererSettings | None = None,
    cancel: threading.Event | None = None,
) -> RenderResult:
    """Render every template of a set from one provisioning request.

    The render is all-or-nothing: a failed result carries every error found
    and no documents. Errors are returned, never raised.

    Args:
        request: A request model or a mapping of request fields
        template_set: Templates and the constraints binding them
        overrides: Per-document variable overrides, keyed by document name
        settings: Renderer settings; defaults to the environment-driven ones
        cancel: Event that aborts the render between documents when set

    Returns:
        Render result in state DONE or FAILED
    """
    settings = settings or get_settings()
    cancel = cancel or threading.Event()
    render = _Render(template_set, settings)

    render.enter(RenderState.RESOLVING)
    contexts: dict[str, ResolvedContext] = {}
    try:
        context = resolve_context(request)
        render.redactor = render.redactor.extend(context.secret_values())
        contexts = _document_contexts(context, template_set, overrides or {})
    except RenderFailed as exc:
        render.errors.extend(exc.errors)

    # Syntax errors are reported even when the request itself is invalid.
    render.enter(RenderState.PARSING)
    asts: dict[str, TemplateAST] = {}
    for spec in template_set.templates:
        try:
            asts[spec.name] = parse_template(spec.name, spec.text, template_set.grammar)
        except RenderFailed as exc:
            render.errors.extend(exc.errors)
    if render.errors:
        return render.fail()

    for ctx in contexts.values():
        render.redactor = render.redactor.extend(ctx.secret_values())

    workers = max(1, min(settings.max_workers, len(template_set.templates)))
    with ThreadPoolExecutor(
        max_workers=workers, thread_name_prefix="infrarender"
    ) as executor:
        futures = [
            executor.submit(
                _render_document,
                spec,
                asts[spec.name],
                contexts[spec.name],
                settings,
                render.redactor,
                cancel,
            )
            for spec in template_set.templates
        ]
        outcomes = [future.result() for future in futures]

    for state in (RenderState.EVALUATING, RenderState.SUBSTITUTING):
        if any(state in outcome.stages for outcome in outcomes):
            render.enter(state)
    for outcome in outcomes:
        render.errors.extend(outcome.errors)

    if cancel.is_set():
        render.errors.append(
            RenderAborted(f"render of {template_set.name} was cancelled")
        )
        return render.fail()

    documents = {
        outcome.name: outcome.document
        for outcome in outcomes
        if outcome.document is not None
    }
    for document in documents.values():
        render.redactor = render.redactor.extend(document.secret_fragments)

    # Constraints between documents that rendered are checked even when
    # another document failed; failed documents still produce no output.
    render.enter(RenderState.CHECKING)
    constraints = [
        constraint
        for constraint in template_set.constraints
        if all(loc.document in documents for loc in constraint.locations)
    ]
    try:
        check_consistency(constraints, documents, asts, render.redactor)
    except RenderFailed as exc:
        render.errors.extend(exc.errors)
    if render.errors:
        return render.fail()

    render.trace.append(RenderState.DONE)
    logger.info(f"Rendered {len(documents)} document(s) for {template_set.name}")
    return RenderResult(
        RenderState.DONE, documents, [], list(render.trace), render.redactor
    )
