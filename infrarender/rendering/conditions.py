"""Conditional evaluation and branch selection."""

from __future__ import annotations

import logging
from typing import Any

from ..core.errors import RenderFailed, ResolutionError
from ..core.models import ResolvedContext, ValueKind
from .ast import (
    Compare,
    Expr,
    Literal,
    Node,
    Not,
    TemplateAST,
    TextNode,
    VarRef,
    VariableNode,
)

logger = logging.getLogger(__name__)


def describe_expression(expr: Expr) -> str:
    if isinstance(expr, VarRef):
        return expr.name
    if isinstance(expr, Literal):
        return repr(expr.value)
    if isinstance(expr, Not):
        return f"not {describe_expression(expr.operand)}"
    return (
        f"{describe_expression(expr.left)} {expr.op} {describe_expression(expr.right)}"
    )


def _literal_kind(value: Any) -> ValueKind:
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, int):
        return ValueKind.INTEGER
    return ValueKind.STRING


def _operand(
    expr: Expr, context: ResolvedContext, template: str
) -> tuple[Any, ValueKind, str]:
    if isinstance(expr, Literal):
        return expr.value, _literal_kind(expr.value), repr(expr.value)
    if isinstance(expr, VarRef):
        if expr.name not in context:
            raise ResolutionError(template, expr.name, "condition variable is not defined")
        item = context[expr.name]
        return item.reveal(), item.kind, expr.name
    value = _evaluate(expr, context, template)
    return value, ValueKind.BOOLEAN, describe_expression(expr)


def _evaluate(expr: Expr, context: ResolvedContext, template: str) -> bool:
    if isinstance(expr, Compare):
        left, left_kind, left_name = _operand(expr.left, context, template)
        right, right_kind, right_name = _operand(expr.right, context, template)
        if left_kind is not right_kind:
            variable = left_name if isinstance(expr.left, VarRef) else right_name
            raise ResolutionError(
                template,
                variable,
                f"cannot compare {left_kind.value} with {right_kind.value} "
                f"in '{describe_expression(expr)}'",
            )
        equal = left == right
        return equal if expr.op == "==" else not equal

    if isinstance(expr, Not):
        return not _evaluate(expr.operand, context, template)

    value, kind, name = _operand(expr, context, template)
    if kind is not ValueKind.BOOLEAN:
        raise ResolutionError(
            template, name, f"condition must be a boolean, got {kind.value}"
        )
    return value


def evaluate_condition(expr: Expr, context: ResolvedContext, template: str) -> bool:
    """Evaluate a condition expression against the resolved context.

    Args:
        expr: Condition from a conditional node
        context: Resolved rendering context
        template: Template name, for diagnostics

    Returns:
        Whether the if-branch is selected

    Raises:
        ResolutionError: If a variable is missing or the types do not line up
    """
    return _evaluate(expr, context, template)


def _select(
    nodes: tuple[Node, ...],
    context: ResolvedContext,
    template: str,
    out: list[Node],
    errors: list[ResolutionError],
) -> None:
    for node in nodes:
        if isinstance(node, (TextNode, VariableNode)):
            out.append(node)
            continue
        try:
            taken = evaluate_condition(node.condition, context, template)
        except ResolutionError as exc:
            errors.append(exc)
            # Neither branch is emitted; nested conditions are still checked.
            _select(node.body + node.else_body, context, template, [], errors)
            continue
        _select(node.body if taken else node.else_body, context, template, out, errors)


def collect_branches(
    ast: TemplateAST, context: ResolvedContext
) -> tuple[tuple[Node, ...], list[ResolutionError]]:
    """Flatten an AST into the nodes of the selected branches and the errors.

    A conditional whose condition fails contributes no nodes, so the nodes
    around it can still be substituted and checked.
    """
    out: list[Node] = []
    errors: list[ResolutionError] = []
    _select(ast.nodes, context, ast.name, out, errors)

    unique: dict[tuple[str, str], ResolutionError] = {}
    for error in errors:
        unique.setdefault((error.variable, error.message), error)
    return tuple(out), list(unique.values())


def select_branches(ast: TemplateAST, context: ResolvedContext) -> tuple[Node, ...]:
    """Flatten an AST into the text and variable nodes of the selected branches.

    Raises:
        RenderFailed: With one ResolutionError per distinct failing condition
    """
    nodes, errors = collect_branches(ast, context)
    if errors:
        raise RenderFailed(errors)

    logger.debug(f"Selected {len(nodes)} node(s) from {ast.name}")
    return nodes
