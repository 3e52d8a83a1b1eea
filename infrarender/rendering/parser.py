"""Template parser producing a closed, cacheable AST.

Directives are located by a small tokenizer that tracks line and column and
applies jinja2's whitespace rules (``-`` markers, ``trim_blocks``,
``lstrip_blocks``). Expressions inside directives go through jinja2's own
expression parser and are then narrowed to the closed grammar in
:mod:`infrarender.rendering.ast`.
"""

from __future__ import annotations

import hashlib
import logging
import re
from bisect import bisect_right
from dataclasses import dataclass, field
from functools import lru_cache

from jinja2 import Environment, TemplateSyntaxError as JinjaSyntaxError, nodes
from jinja2.parser import Parser

from ..core.errors import RenderFailed, TemplateSyntaxError
from ..core.models import TemplateGrammar
from .ast import (
    Compare,
    ConditionalNode,
    Expr,
    Literal,
    Node,
    Not,
    TemplateAST,
    TextNode,
    VariableNode,
    VarRef,
)

logger = logging.getLogger(__name__)

_DEFAULT_GRAMMAR = TemplateGrammar()

# Keyed by (template name, text digest, grammar). Re-parsing equal input yields
# an equal AST, so concurrent writers may race on setdefault harmlessly.
_AST_CACHE: dict[tuple[str, str, TemplateGrammar], TemplateAST] = {}

_COMPARE_OPS = {"eq": "==", "ne": "!="}


class _DirectiveError(ValueError):
    """Internal: a directive failed to parse."""


# ── tokenizer ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class _Token:
    kind: str  # "text", "variable" or "block"
    value: str
    offset: int
    raw: str = ""


class _Source:
    """Template text with offset to line/column lookup."""

    def __init__(self, name: str, text: str) -> None:
        self.name = name
        self.text = text
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", text)]

    def position(self, offset: int) -> tuple[int, int]:
        line = bisect_right(self._line_starts, offset)
        return line, offset - self._line_starts[line - 1] + 1

    def error(
        self, offset: int, message: str, directive: str | None = None
    ) -> TemplateSyntaxError:
        line, column = self.position(offset)
        return TemplateSyntaxError(self.name, line, column, message, directive)


def _find_end(text: str, start: int, end_string: str, quoted: bool) -> int:
    """Return the offset of ``end_string`` at or after ``start``, or -1.

    When ``quoted`` is set, occurrences inside string literals are skipped.
    """
    if not quoted:
        return text.find(end_string, start)

    quote: str | None = None
    i = start
    while i < len(text):
        char = text[i]
        if quote:
            if char == "\\":
                i += 2
                continue
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif text.startswith(end_string, i):
            return i
        i += 1
    return -1


def _tokenize(
    source: _Source, grammar: TemplateGrammar, errors: list[TemplateSyntaxError]
) -> list[_Token]:
    text = source.text
    kinds = {
        grammar.variable_start_string: "variable",
        grammar.block_start_string: "block",
        grammar.comment_start_string: "comment",
    }
    ends = {
        "variable": grammar.variable_end_string,
        "block": grammar.block_end_string,
        "comment": grammar.comment_end_string,
    }
    opener = re.compile(
        "|".join(re.escape(s) for s in sorted(kinds, key=len, reverse=True))
    )

    tokens: list[_Token] = []
    pos = 0
    strip_leading = False
    trim_newline = False

    while True:
        match = opener.search(text, pos)
        data = text[pos : match.start() if match else len(text)]

        if strip_leading:
            data = data.lstrip()
        elif trim_newline:
            if data.startswith("\r\n"):
                data = data[2:]
            elif data.startswith("\n"):
                data = data[1:]
        # Offset in the source where the (possibly trimmed) data begins.
        data_start = (match.start() if match else len(text)) - len(data)

        if match is None:
            if data:
                tokens.append(_Token("text", data, data_start))
            break

        kind = kinds[match.group()]
        inner_start = match.end()
        marker = text[inner_start : inner_start + 1]

        if marker == "-":
            data = data.rstrip()
        elif kind != "variable" and grammar.lstrip_blocks and marker != "+":
            line_start = data.rfind("\n") + 1
            at_line_start = (
                line_start > 0 or data_start == 0 or text[data_start - 1] == "\n"
            )
            if at_line_start and data[line_start:].strip(" \t") == "":
                data = data[:line_start]

        if data:
            tokens.append(_Token("text", data, data_start))

        end_string = ends[kind]
        end = _find_end(text, inner_start, end_string, quoted=kind != "comment")
        if end == -1:
            errors.append(
                source.error(
                    match.start(),
                    f"unclosed directive, expected {end_string!r}",
                    text[match.start() : match.start() + 40].splitlines()[0],
                )
            )
            break

        inner = text[inner_start:end]
        if marker in ("-", "+"):
            inner = inner[1:]
        strip_leading = inner.endswith("-")
        keep_newline = inner.endswith("+")
        if strip_leading or keep_newline:
            inner = inner[:-1]

        if kind != "comment":
            raw = text[match.start() : end + len(end_string)]
            tokens.append(_Token(kind, inner.strip(), match.start(), raw))

        pos = end + len(end_string)
        trim_newline = kind != "variable" and grammar.trim_blocks and not keep_newline

    return tokens


# ── expressions ──────────────────────────────────────────────────────


@lru_cache(maxsize=None)
def _jinja_environment(grammar: TemplateGrammar) -> Environment:
    return Environment(
        variable_start_string=grammar.variable_start_string,
        variable_end_string=grammar.variable_end_string,
        block_start_string=grammar.block_start_string,
        block_end_string=grammar.block_end_string,
        comment_start_string=grammar.comment_start_string,
        comment_end_string=grammar.comment_end_string,
        autoescape=False,
    )


def _jinja_expression(env: Environment, source: str) -> nodes.Expr:
    parser = Parser(env, source, state="variable")
    expr = parser.parse_expression()
    if not parser.stream.eos:
        raise JinjaSyntaxError(
            "chunk after expression", parser.stream.current.lineno, None, None
        )
    return expr


def _translate(node: nodes.Node) -> Expr:
    if isinstance(node, nodes.Name):
        return VarRef(node.name)

    if isinstance(node, nodes.Const):
        if isinstance(node.value, (str, bool, int)):
            return Literal(node.value)
        raise _DirectiveError(f"unsupported literal {node.value!r}")

    if isinstance(node, nodes.Not):
        return Not(_translate(node.node))

    if isinstance(node, nodes.Compare):
        if len(node.ops) != 1 or node.ops[0].op not in _COMPARE_OPS:
            raise _DirectiveError("only a single '==' or '!=' comparison is supported")
        left = _translate(node.expr)
        right = _translate(node.ops[0].expr)
        for operand in (left, right):
            if not isinstance(operand, (VarRef, Literal)):
                raise _DirectiveError(
                    "comparison operands must be variables or literals"
                )
        return Compare(left, _COMPARE_OPS[node.ops[0].op], right)

    raise _DirectiveError(f"unsupported expression ({type(node).__name__.lower()})")


def parse_expression(source: str, grammar: TemplateGrammar | None = None) -> Expr:
    """Parse a condition expression into the closed expression grammar.

    Raises:
        ValueError: If the expression is malformed or outside the grammar
    """
    env = _jinja_environment(grammar or _DEFAULT_GRAMMAR)
    if not source.strip():
        raise _DirectiveError("missing expression")
    try:
        return _translate(_jinja_expression(env, source))
    except JinjaSyntaxError as exc:
        raise _DirectiveError(exc.message or "invalid expression") from exc


# ── parser ───────────────────────────────────────────────────────────


@dataclass
class _Frame:
    condition: Expr
    line: int
    column: int
    offset: int
    raw: str
    is_elif: bool = False
    in_else: bool = False
    body: list[Node] = field(default_factory=list)
    else_body: list[Node] = field(default_factory=list)

    def target(self) -> list[Node]:
        return self.else_body if self.in_else else self.body

    def close(self) -> ConditionalNode:
        return ConditionalNode(
            self.condition,
            tuple(self.body),
            tuple(self.else_body),
            self.line,
            self.column,
        )


def _append(target: list[Node], node: Node) -> None:
    if isinstance(node, TextNode) and target and isinstance(target[-1], TextNode):
        target[-1] = TextNode(target[-1].text + node.text)
    else:
        target.append(node)


def _build(
    source: _Source,
    tokens: list[_Token],
    grammar: TemplateGrammar,
    errors: list[TemplateSyntaxError],
) -> tuple[Node, ...]:
    root: list[Node] = []
    stack: list[_Frame] = []

    def current() -> list[Node]:
        return stack[-1].target() if stack else root

    for token in tokens:
        if token.kind == "text":
            _append(current(), TextNode(token.value))
            continue

        line, column = source.position(token.offset)

        if token.kind == "variable":
            try:
                expr = parse_expression(token.value, grammar)
                if not isinstance(expr, VarRef):
                    raise _DirectiveError(
                        "only plain variable references can be substituted"
                    )
            except _DirectiveError as exc:
                errors.append(source.error(token.offset, str(exc), token.raw))
                continue
            _append(current(), VariableNode(expr.name, line, column))
            continue

        parts = token.value.split(None, 1)
        keyword = parts[0] if parts else ""
        rest = parts[1].strip() if len(parts) > 1 else ""

        if keyword in ("if", "elif"):
            if keyword == "elif" and (not stack or stack[-1].in_else):
                errors.append(
                    source.error(token.offset, "'elif' without an open 'if'", token.raw)
                )
                continue
            try:
                condition = parse_expression(rest, grammar)
            except _DirectiveError as exc:
                errors.append(source.error(token.offset, str(exc), token.raw))
                condition = Literal(False)

            if keyword == "elif":
                stack[-1].in_else = True
            else:
                depth = sum(1 for frame in stack if not frame.is_elif) + 1
                if depth > grammar.max_nesting:
                    errors.append(
                        source.error(
                            token.offset,
                            f"conditional nesting exceeds {grammar.max_nesting} level(s)",
                            token.raw,
                        )
                    )
            stack.append(
                _Frame(
                    condition,
                    line,
                    column,
                    token.offset,
                    token.raw,
                    is_elif=keyword == "elif",
                )
            )

        elif keyword == "else":
            if rest:
                errors.append(
                    source.error(token.offset, "'else' takes no expression", token.raw)
                )
            if not stack:
                errors.append(
                    source.error(token.offset, "'else' without an open 'if'", token.raw)
                )
            elif stack[-1].in_else:
                errors.append(
                    source.error(token.offset, "duplicate 'else' in 'if'", token.raw)
                )
            else:
                stack[-1].in_else = True

        elif keyword == "endif":
            if rest:
                errors.append(
                    source.error(token.offset, "'endif' takes no expression", token.raw)
                )
            if not stack:
                errors.append(
                    source.error(
                        token.offset, "'endif' without an open 'if'", token.raw
                    )
                )
                continue
            while stack[-1].is_elif:
                nested = stack.pop().close()
                stack[-1].target().append(nested)
            node = stack.pop().close()
            current().append(node)

        elif not keyword:
            errors.append(source.error(token.offset, "empty directive", token.raw))

        else:
            errors.append(
                source.error(
                    token.offset, f"unsupported directive {keyword!r}", token.raw
                )
            )

    for frame in stack:
        if not frame.is_elif:
            errors.append(
                source.error(frame.offset, "unclosed 'if', expected 'endif'", frame.raw)
            )

    return tuple(root)


def _parse(name: str, text: str, grammar: TemplateGrammar) -> TemplateAST:
    source = _Source(name, text)
    errors: list[TemplateSyntaxError] = []
    tokens = _tokenize(source, grammar, errors)
    body = _build(source, tokens, grammar, errors)
    if errors:
        errors.sort(key=lambda e: (e.line, e.column))
        logger.debug(f"Template {name} failed to parse with {len(errors)} error(s)")
        raise RenderFailed(errors)
    return TemplateAST(name, body)


def parse_template(
    name: str, text: str, grammar: TemplateGrammar | None = None
) -> TemplateAST:
    """Parse template text into an AST, reusing a cached parse when possible.

    Args:
        name: Template name, used in diagnostics and as part of the cache key
        text: Template source
        grammar: Directive delimiters and whitespace handling

    Returns:
        Immutable template AST

    Raises:
        RenderFailed: With every TemplateSyntaxError found in the template
    """
    grammar = grammar or _DEFAULT_GRAMMAR
    key = (name, hashlib.sha256(text.encode("utf-8")).hexdigest(), grammar)
    cached = _AST_CACHE.get(key)
    if cached is not None:
        logger.debug(f"Template cache hit: {name}")
        return cached

    ast = _parse(name, text, grammar)
    return _AST_CACHE.setdefault(key, ast)


def clear_template_cache() -> None:
    _AST_CACHE.clear()


def template_cache_size() -> int:
    return len(_AST_CACHE)
