"""Variable substitution over the selected branches of a template."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..core.errors import RenderFailed, ResolutionError
from ..core.models import ContextValue, ResolvedContext
from .ast import Node, TextNode, VariableNode
from .formats import EscapeError, OutputFormat

logger = logging.getLogger(__name__)


@dataclass
class Substitution:
    """Text produced for one document and the values inserted into it."""

    text: str = field(repr=False)
    exposed: dict[str, ContextValue] = field(default_factory=dict, repr=False)
    secret_fragments: set[str] = field(default_factory=set, repr=False)


def _following(nodes: tuple[Node, ...], index: int) -> tuple[str, bool]:
    """Return the literal text after ``nodes[index]`` up to the end of its line.

    The flag is true when another reference appears before the line ends.
    """
    parts: list[str] = []
    for node in nodes[index + 1 :]:
        if isinstance(node, VariableNode):
            return "".join(parts), True
        head, newline, _ = node.text.partition("\n")
        parts.append(head)
        if newline:
            break
    return "".join(parts), False


def substitute(
    nodes: tuple[Node, ...],
    context: ResolvedContext,
    fmt: OutputFormat,
    template: str,
) -> Substitution:
    """Replace every variable reference with its format-escaped value.

    Args:
        nodes: Flattened text and variable nodes of the selected branches
        context: Resolved rendering context
        fmt: Output format descriptor of the document
        template: Template name, for diagnostics

    Returns:
        Rendered text with the values exposed and the secret fragments inserted

    Raises:
        RenderFailed: With one ResolutionError per failing variable
    """
    out: list[str] = []
    emitted = ""
    exposed: dict[str, ContextValue] = {}
    secrets: set[str] = set()
    errors: dict[str, ResolutionError] = {}

    for index, node in enumerate(nodes):
        if isinstance(node, TextNode):
            out.append(node.text)
            emitted += node.text
            continue

        if node.name not in context:
            errors.setdefault(
                node.name,
                ResolutionError(template, node.name, "variable is not defined"),
            )
            continue

        item = context[node.name]
        following, more = _following(nodes, index)
        site = fmt.locate(emitted, following, more)
        try:
            text = fmt.escape(item, site)
        except EscapeError as exc:
            reason = "secret value cannot be represented here" if item.secret else exc
            errors.setdefault(
                node.name,
                ResolutionError(
                    template,
                    node.name,
                    f"line {node.line}, column {node.column}: {reason}",
                ),
            )
            continue

        if item.secret:
            secrets.add(text)
            secrets.add(str(item.reveal()))
        exposed[node.name] = item
        out.append(text)
        emitted += text

    if errors:
        raise RenderFailed(list(errors.values()))

    logger.debug(
        f"Substituted {len(exposed)} variable(s) into {template} "
        f"({'sensitive' if secrets else 'no secrets'})"
    )
    return Substitution("".join(out), exposed, secrets)
