"""Error taxonomy and diagnostics formatting.

Every failure a render can produce is a :class:`RenderError` subclass. Stages
raise :class:`RenderFailed` carrying the whole batch so that operators can fix
every problem in one pass; the renderer returns the collected errors instead of
raising.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

DEFAULT_REDACTION_MARKER = "[REDACTED]"


class RenderError(Exception):
    """Base class for a single render diagnostic."""

    kind = "render"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def describe(self) -> str:
        """Return a one-line, operator-facing description."""
        return f"[{self.kind}] {self.message}"


class ValidationError(RenderError):
    """Raised when a provisioning request field is missing or malformed."""

    kind = "validation"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field

    def describe(self) -> str:
        return f"[{self.kind}] {self.field}: {self.message}"


class TemplateSyntaxError(RenderError):
    """Raised when a template contains a malformed or unsupported directive."""

    kind = "syntax"

    def __init__(
        self,
        template: str,
        line: int,
        column: int,
        message: str,
        directive: str | None = None,
    ) -> None:
        super().__init__(message)
        self.template = template
        self.line = line
        self.column = column
        self.directive = directive

    def describe(self) -> str:
        location = f"{self.template}:{self.line}:{self.column}"
        if self.directive:
            return f"[{self.kind}] {location}: {self.message} (in {self.directive!r})"
        return f"[{self.kind}] {location}: {self.message}"


class ResolutionError(RenderError):
    """Raised when a referenced variable is absent or has the wrong type."""

    kind = "resolution"

    def __init__(self, template: str, variable: str, message: str) -> None:
        super().__init__(message)
        self.template = template
        self.variable = variable

    def describe(self) -> str:
        return f"[{self.kind}] {self.template}: {self.variable}: {self.message}"


class ConsistencyError(RenderError):
    """Raised when locations bound by a constraint carry divergent values.

    ``values`` maps a ``document:variable`` location label to the textual form
    of the value found there. Secret values are replaced by the redaction
    marker before the error is built, so the exception never holds them.
    """

    kind = "consistency"

    def __init__(
        self, constraint: str, message: str, values: Mapping[str, str] | None = None
    ) -> None:
        super().__init__(message)
        self.constraint = constraint
        self.values = dict(values or {})

    @property
    def locations(self) -> list[str]:
        return list(self.values)

    def describe(self) -> str:
        detail = ", ".join(f"{loc}={val}" for loc, val in self.values.items())
        if detail:
            return f"[{self.kind}] {self.constraint}: {self.message} ({detail})"
        return f"[{self.kind}] {self.constraint}: {self.message}"


class DocumentFormatError(RenderError):
    """Raised when a rendered document is not valid in its target format."""

    kind = "format"

    def __init__(self, template: str, format_name: str, message: str) -> None:
        super().__init__(message)
        self.template = template
        self.format_name = format_name

    def describe(self) -> str:
        return f"[{self.kind}] {self.template} ({self.format_name}): {self.message}"


class RenderAborted(RenderError):
    """Raised when a render is cancelled before every document completed."""

    kind = "aborted"


class RenderFailed(Exception):
    """A batch of render errors reported together."""

    def __init__(self, errors: Sequence[RenderError]) -> None:
        self.errors = list(errors)
        super().__init__(f"{len(self.errors)} render error(s)")

    def describe(self, redactor: Redactor | None = None) -> str:
        return format_diagnostics(self.errors, redactor)


class Redactor:
    """Replaces secret material with a placeholder marker."""

    def __init__(
        self, secrets: Iterable[str] = (), marker: str = DEFAULT_REDACTION_MARKER
    ) -> None:
        # Longest first so that a secret containing another is masked whole.
        self._secrets = sorted({s for s in secrets if s}, key=len, reverse=True)
        self.marker = marker

    def __repr__(self) -> str:
        return f"Redactor(<{len(self._secrets)} secret(s)>, marker={self.marker!r})"

    def extend(self, secrets: Iterable[str]) -> Redactor:
        """Return a redactor that also masks ``secrets``."""
        return Redactor([*self._secrets, *secrets], self.marker)

    def redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, self.marker)
        return text


def format_diagnostics(
    errors: Sequence[RenderError], redactor: Redactor | None = None
) -> str:
    """Format a batch of errors as an operator-facing report.

    Args:
        errors: Errors collected by a render
        redactor: Masks secret values that may appear in messages

    Returns:
        Multi-line report, one error per line
    """
    lines = [f"{len(errors)} error(s):"]
    lines.extend(f"  - {error.describe()}" for error in errors)
    report = "\n".join(lines)
    if redactor is not None:
        report = redactor.redact(report)
    return report
