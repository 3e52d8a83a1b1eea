"""Template parsing, evaluation, substitution and render orchestration."""

from .conditions import collect_branches, evaluate_condition, select_branches
from .consistency import check_consistency
from .engine import render_manifests
from .io import write_manifests
from .parser import parse_template
from .substitutor import substitute

__all__ = [
    "check_consistency",
    "collect_branches",
    "evaluate_condition",
    "parse_template",
    "render_manifests",
    "select_branches",
    "substitute",
    "write_manifests",
]
