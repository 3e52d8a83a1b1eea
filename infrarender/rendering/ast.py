"""Closed AST for parsed templates.

A template is a sequence of literal text, variable references and conditional
blocks. Condition expressions are limited to variable references, negation and
equality comparisons against literals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union

# ── expressions ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class VarRef:
    name: str


@dataclass(frozen=True)
class Literal:
    value: Union[str, int, bool]


@dataclass(frozen=True)
class Not:
    operand: Expr


@dataclass(frozen=True)
class Compare:
    left: Expr
    op: str  # "==" or "!="
    right: Expr


Expr = Union[VarRef, Literal, Not, Compare]


def expression_variables(expr: Expr) -> Iterator[str]:
    if isinstance(expr, VarRef):
        yield expr.name
    elif isinstance(expr, Not):
        yield from expression_variables(expr.operand)
    elif isinstance(expr, Compare):
        yield from expression_variables(expr.left)
        yield from expression_variables(expr.right)


# ── nodes ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TextNode:
    text: str


@dataclass(frozen=True)
class VariableNode:
    name: str
    line: int
    column: int


@dataclass(frozen=True)
class ConditionalNode:
    condition: Expr
    body: tuple[Node, ...]
    else_body: tuple[Node, ...]
    line: int
    column: int


Node = Union[TextNode, VariableNode, ConditionalNode]


@dataclass(frozen=True)
class TemplateAST:
    """Parsed form of one template, reusable across renders."""

    name: str
    nodes: tuple[Node, ...]

    def walk(self) -> Iterator[Node]:
        """Yield every node, descending into both branches of conditionals."""
        stack = list(reversed(self.nodes))
        while stack:
            node = stack.pop()
            yield node
            if isinstance(node, ConditionalNode):
                stack.extend(reversed(node.else_body))
                stack.extend(reversed(node.body))

    def variables(self) -> frozenset[str]:
        """Return every variable referenced anywhere in the template."""
        names: set[str] = set()
        for node in self.walk():
            if isinstance(node, VariableNode):
                names.add(node.name)
            elif isinstance(node, ConditionalNode):
                names.update(expression_variables(node.condition))
        return frozenset(names)

    def substituted_variables(self) -> frozenset[str]:
        """Return variables that appear as ``{{ name }}`` substitutions."""
        return frozenset(
            node.name for node in self.walk() if isinstance(node, VariableNode)
        )
