"""Tests for infrarender.rendering.conditions."""

from __future__ import annotations

import pytest

from infrarender.core.errors import RenderFailed, ResolutionError
from infrarender.rendering.ast import Compare, Literal, Not, TextNode, VarRef
from infrarender.rendering.conditions import (
    describe_expression,
    collect_branches,
    evaluate_condition,
    select_branches,
)
from infrarender.rendering.parser import parse_template


class TestEvaluateCondition:
    def test_boolean_variable(self, context):
        assert evaluate_condition(VarRef("public"), context, "t") is True

    def test_negation(self, context):
        assert evaluate_condition(Not(VarRef("public")), context, "t") is False

    @pytest.mark.parametrize(
        "expr, expected",
        [
            (Compare(VarRef("tier"), "==", Literal("gold")), True),
            (Compare(VarRef("tier"), "!=", Literal("gold")), False),
            (Compare(VarRef("size"), "==", Literal(10)), True),
            (Compare(Literal(10), "==", VarRef("size")), True),
            (Compare(VarRef("public"), "==", Literal(False)), False),
        ],
    )
    def test_comparisons(self, context, expr, expected):
        assert evaluate_condition(expr, context, "t") is expected

    def test_missing_variable(self, context):
        with pytest.raises(ResolutionError) as excinfo:
            evaluate_condition(VarRef("absent"), context, "t")
        assert excinfo.value.variable == "absent"
        assert excinfo.value.template == "t"

    def test_non_boolean_condition(self, context):
        with pytest.raises(ResolutionError, match="must be a boolean, got string"):
            evaluate_condition(VarRef("tier"), context, "t")

    def test_no_coercion_between_kinds(self, context):
        expr = Compare(VarRef("size"), "==", Literal("10"))
        with pytest.raises(ResolutionError, match="cannot compare integer with string"):
            evaluate_condition(expr, context, "t")

    def test_bool_is_not_an_integer(self, context):
        expr = Compare(VarRef("public"), "==", Literal(1))
        with pytest.raises(ResolutionError, match="boolean with integer"):
            evaluate_condition(expr, context, "t")

    def test_idempotent(self, context):
        expr = Not(Compare(VarRef("tier"), "==", Literal("silver")))
        results = {evaluate_condition(expr, context, "t") for _ in range(5)}
        assert results == {True}

    def test_describe(self):
        expr = Not(Compare(VarRef("tier"), "==", Literal("gold")))
        assert describe_expression(expr) == "not tier == 'gold'"


class TestSelectBranches:
    def test_if_branch(self, context):
        ast = parse_template("t", "{% if public %}LB{% else %}CIP{% endif %}")
        assert select_branches(ast, context) == (TextNode("LB"),)

    def test_else_branch(self, context):
        ast = parse_template("t", "{% if not public %}LB{% else %}CIP{% endif %}")
        assert select_branches(ast, context) == (TextNode("CIP"),)

    def test_no_else(self, context):
        ast = parse_template("t", "a{% if not public %}b{% endif %}c")
        assert select_branches(ast, context) == (TextNode("a"), TextNode("c"))

    def test_elif_chain(self, context):
        ast = parse_template(
            "t",
            "{% if tier == 'silver' %}S{% elif tier == 'gold' %}G{% else %}B{% endif %}",
        )
        assert select_branches(ast, context) == (TextNode("G"),)

    def test_nested(self, context):
        ast = parse_template(
            "t", "{% if public %}{% if size == 10 %}ten{% endif %}{% endif %}"
        )
        assert select_branches(ast, context) == (TextNode("ten"),)

    def test_errors_collected(self, context):
        ast = parse_template(
            "t",
            "{% if missing %}a{% endif %}{% if tier %}b{% endif %}"
            "{% if missing %}c{% endif %}",
        )
        with pytest.raises(RenderFailed) as excinfo:
            select_branches(ast, context)
        assert [error.variable for error in excinfo.value.errors] == ["missing", "tier"]

    def test_nested_errors_under_failed_condition(self, context):
        ast = parse_template(
            "t",
            "{% if tier %}{% if size %}a{% endif %}"
            "{% else %}{% if cpus %}b{% endif %}{% endif %}",
        )
        with pytest.raises(RenderFailed) as excinfo:
            select_branches(ast, context)
        assert [error.variable for error in excinfo.value.errors] == [
            "tier",
            "size",
            "cpus",
        ]


class TestCollectBranches:
    def test_failed_condition_drops_only_its_branches(self, context):
        ast = parse_template("t", "a{% if tier %}b{% else %}c{% endif %}d")
        nodes, errors = collect_branches(ast, context)
        assert nodes == (TextNode("a"), TextNode("d"))
        assert [error.variable for error in errors] == ["tier"]

    def test_no_errors(self, context):
        ast = parse_template("t", "{% if public %}x{% endif %}")
        assert collect_branches(ast, context) == ((TextNode("x"),), [])
