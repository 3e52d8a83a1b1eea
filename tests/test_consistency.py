"""Tests for infrarender.rendering.consistency."""

from __future__ import annotations

import pytest

from conftest import PASSWORD
from infrarender.core.errors import ConsistencyError, Redactor, RenderFailed
from infrarender.core.models import (
    ConsistencyConstraint,
    ContextValue,
    DocumentFormat,
    RenderedDocument,
)
from infrarender.rendering.consistency import check_consistency
from infrarender.rendering.parser import parse_template


def _doc(name: str, **exposed) -> RenderedDocument:
    values = {
        key: value if isinstance(value, ContextValue) else ContextValue.of(value)
        for key, value in exposed.items()
    }
    return RenderedDocument(name, DocumentFormat.TEXT, "", values)


def _constraint(*labels: str, **kwargs) -> ConsistencyConstraint:
    return ConsistencyConstraint(name="cluster", locations=list(labels), **kwargs)


def _check(constraints, documents, asts=None, redactor=None) -> list[ConsistencyError]:
    asts = asts or {
        "a": parse_template("a", "{{ cluster_id }}"),
        "b": parse_template("b", "{{ cluster_id }}"),
    }
    with pytest.raises(RenderFailed) as excinfo:
        check_consistency(constraints, documents, asts, redactor)
    return excinfo.value.errors


class TestCheckConsistency:
    def test_matching_values(self):
        asts = {
            "a": parse_template("a", "{{ cluster_id }}"),
            "b": parse_template("b", "{{ cluster_id }}"),
        }
        documents = {"a": _doc("a", cluster_id="c-1"), "b": _doc("b", cluster_id="c-1")}
        check_consistency([_constraint("a:cluster_id", "b:cluster_id")], documents, asts)

    def test_divergent_values_name_every_location(self):
        documents = {"a": _doc("a", cluster_id="c-1"), "b": _doc("b", cluster_id="c-2")}
        (error,) = _check([_constraint("a:cluster_id", "b:cluster_id")], documents)
        assert error.constraint == "cluster"
        assert error.locations == ["a:cluster_id", "b:cluster_id"]
        assert error.values == {"a:cluster_id": "c-1", "b:cluster_id": "c-2"}
        assert "values differ" in error.message

    def test_kinds_compared(self):
        documents = {"a": _doc("a", cluster_id="7"), "b": _doc("b", cluster_id=7)}
        (error,) = _check([_constraint("a:cluster_id", "b:cluster_id")], documents)
        assert error.values == {
            "a:cluster_id": "7 (string)",
            "b:cluster_id": "7 (integer)",
        }

    def test_one_error_per_constraint(self):
        documents = {
            "a": _doc("a", cluster_id="c-1"),
            "b": _doc("b", cluster_id="c-2"),
        }
        constraints = [
            _constraint("a:cluster_id", "b:cluster_id"),
            ConsistencyConstraint(
                name="length", locations=["a:cluster_id", "b:cluster_id"], max_length=2
            ),
        ]
        errors = _check(constraints, documents)
        assert [error.constraint for error in errors] == ["cluster", "length"]

    def test_max_length(self):
        documents = {"a": _doc("a", cluster_id="c-1"), "b": _doc("b", cluster_id="c-1")}
        (error,) = _check(
            [_constraint("a:cluster_id", "b:cluster_id", max_length=2)], documents
        )
        assert "exceeds 2 characters" in error.message

    def test_pattern(self):
        documents = {"a": _doc("a", cluster_id="C_1"), "b": _doc("b", cluster_id="C_1")}
        (error,) = _check(
            [_constraint("a:cluster_id", "b:cluster_id", pattern="[a-z0-9-]+")],
            documents,
        )
        assert "does not match" in error.message

    def test_location_never_substituted(self):
        asts = {
            "a": parse_template("a", "{{ cluster_id }}"),
            "b": parse_template("b", "{% if cluster_id == 'x' %}y{% endif %}"),
        }
        documents = {"a": _doc("a", cluster_id="c-1"), "b": _doc("b")}
        (error,) = _check([_constraint("a:cluster_id", "b:cluster_id")], documents, asts)
        assert "b:cluster_id is never substituted" in error.message

    def test_branch_not_taken_is_skipped(self):
        asts = {
            "a": parse_template("a", "{{ cluster_id }}"),
            "b": parse_template("b", "{% if public %}{{ cluster_id }}{% endif %}"),
        }
        documents = {"a": _doc("a", cluster_id="c-1"), "b": _doc("b")}
        check_consistency([_constraint("a:cluster_id", "b:cluster_id")], documents, asts)

    def test_secret_values_redacted(self):
        secret = ContextValue.of(PASSWORD, secret=True)
        other = ContextValue.of("other-pass", secret=True)
        documents = {"a": _doc("a", cluster_id=secret), "b": _doc("b", cluster_id=other)}
        (error,) = _check(
            [_constraint("a:cluster_id", "b:cluster_id")],
            documents,
            redactor=Redactor([PASSWORD, "other-pass"], marker="***"),
        )
        assert error.values == {"a:cluster_id": "***", "b:cluster_id": "***"}
        assert PASSWORD not in error.describe()
