"""Cross-document consistency checking.

Each constraint names locations (document, variable) that must carry the same
typed value once every document has rendered. The check runs after the fan-in,
so it sees the values every document actually inserted.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence

from ..core.errors import ConsistencyError, RenderFailed, Redactor
from ..core.models import ConsistencyConstraint, ContextValue, RenderedDocument
from .ast import TemplateAST
from .formats import scalar_text

logger = logging.getLogger(__name__)


def _display(item: ContextValue, redactor: Redactor, with_kind: bool) -> str:
    text = redactor.marker if item.secret else redactor.redact(scalar_text(item))
    return f"{text} ({item.kind.value})" if with_kind else text


def _check_constraint(
    constraint: ConsistencyConstraint,
    documents: Mapping[str, RenderedDocument],
    asts: Mapping[str, TemplateAST],
    redactor: Redactor,
) -> ConsistencyError | None:
    problems: list[str] = []
    found: dict[str, ContextValue] = {}

    for location in constraint.locations:
        ast = asts.get(location.document)
        if ast is None or location.variable not in ast.substituted_variables():
            problems.append(f"{location.label} is never substituted")
            continue
        document = documents.get(location.document)
        if document is None:
            continue
        item = document.exposed.get(location.variable)
        # Absent when the reference sits in a branch that was not taken.
        if item is not None:
            found[location.label] = item

    distinct = {(item.kind, item.reveal()) for item in found.values()}
    if len(distinct) > 1:
        problems.append("values differ")

    for item in found.values():
        text = scalar_text(item)
        if constraint.max_length is not None and len(text) > constraint.max_length:
            problems.append(f"value exceeds {constraint.max_length} characters")
            break
    for item in found.values():
        text = scalar_text(item)
        if constraint.pattern is not None and not re.fullmatch(constraint.pattern, text):
            problems.append(f"value does not match {constraint.pattern!r}")
            break

    if not problems:
        return None

    with_kind = len({item.kind for item in found.values()}) > 1
    values = {
        label: _display(item, redactor, with_kind) for label, item in found.items()
    }
    return ConsistencyError(constraint.name, "; ".join(problems), values)


def check_consistency(
    constraints: Sequence[ConsistencyConstraint],
    documents: Mapping[str, RenderedDocument],
    asts: Mapping[str, TemplateAST],
    redactor: Redactor | None = None,
) -> None:
    """Verify every constraint against the values the documents exposed.

    Args:
        constraints: Constraints declared by the template set
        documents: Rendered documents by name
        asts: Parsed templates by name, used to reject locations that no
            template substitutes
        redactor: Masks secret values in the reported values

    Raises:
        RenderFailed: With one ConsistencyError per violated constraint
    """
    redactor = redactor or Redactor()
    errors = []
    for constraint in constraints:
        error = _check_constraint(constraint, documents, asts, redactor)
        if error is not None:
            errors.append(error)
    if errors:
        raise RenderFailed(errors)
    logger.debug(f"{len(constraints)} consistency constraint(s) satisfied")
