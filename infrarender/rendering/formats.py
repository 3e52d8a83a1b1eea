"""Output format descriptors: site detection, value escaping and validation.

A substitution *site* describes where a ``{{ name }}`` reference sits in the
emitted text: inside a quoted scalar, standing alone as a whole value, embedded
in a larger scalar, in a comment, or inside a YAML block scalar. Each format
escapes a context value for its site, or refuses with :class:`EscapeError`
when the value cannot be represented there.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass

import hcl2  # type: ignore[import-not-found]
import yaml

from ..core.errors import DocumentFormatError, Redactor
from ..core.models import ContextValue, DocumentFormat, ValueKind

logger = logging.getLogger(__name__)


class EscapeError(ValueError):
    """Raised when a value cannot be represented at a substitution site."""


@dataclass(frozen=True)
class Site:
    quote: str | None = None
    standalone: bool = False
    comment: bool = False
    block_indent: int | None = None


def scalar_text(item: ContextValue) -> str:
    """Return the canonical text of a context value, without any quoting."""
    value = item.reveal()
    if item.kind is ValueKind.BOOLEAN:
        return "true" if value else "false"
    if item.kind is ValueKind.NUMBER:
        if not math.isfinite(value):
            raise EscapeError(f"{value} is not a finite number")
        return str(int(value)) if float(value).is_integer() else repr(value)
    return str(value)


def _line_start(emitted: str) -> int:
    return emitted.rfind("\n") + 1


def _single_line(text: str, where: str) -> str:
    if "\n" in text or "\r" in text:
        raise EscapeError(f"multi-line value cannot be placed in {where}")
    return text


class OutputFormat:
    """Base descriptor; plain text with no quoting rules."""

    format = DocumentFormat.TEXT

    def locate(self, emitted: str, following: str, more: bool = False) -> Site:
        """Describe the site of a reference.

        Args:
            emitted: Document text emitted before the reference
            following: Literal text after the reference, up to the end of line
            more: Whether another reference follows on the same line

        Returns:
            Site of the reference
        """
        return Site()

    def escape(self, item: ContextValue, site: Site) -> str:
        return scalar_text(item)

    def validate(self, name: str, text: str, redactor: Redactor) -> None:
        """Check that ``text`` parses in this format.

        Raises:
            DocumentFormatError: With a redacted parser message
        """


class TextFormat(OutputFormat):
    format = DocumentFormat.TEXT


# ── YAML ─────────────────────────────────────────────────────────────

_YAML_BLOCK_INDICATOR = re.compile(r"(?:^|[\s:-])[|>][-+0-9]*\s*(?:#.*)?$")
_YAML_VALUE_START = re.compile(r"(?:^\s*(?:-\s+)*|:\s+|[\[{,]\s*)$")
_YAML_PLAIN_SAFE = re.compile(r"[A-Za-z0-9_./=+-]*")
_YAML_FLOW_CHARS = set(",[]{}")


def _scan_yaml_line(prefix: str) -> tuple[str | None, bool]:
    """Return the quote open at the end of ``prefix`` and whether a comment started."""
    quote: str | None = None
    i = 0
    while i < len(prefix):
        char = prefix[i]
        if quote == '"':
            if char == "\\":
                i += 2
                continue
            if char == '"':
                quote = None
        elif quote == "'":
            if char == "'":
                if prefix[i + 1 : i + 2] == "'":
                    i += 2
                    continue
                quote = None
        elif char == "#" and (i == 0 or prefix[i - 1] in " \t"):
            return None, True
        elif char in "'\"" and _YAML_VALUE_START.search(prefix[:i]):
            quote = char
        i += 1
    return quote, False


def _yaml_block_indent(emitted: str, start: int, indent: int) -> int | None:
    """Return ``indent`` if the current line sits inside a block scalar.

    Block content is indented deeper than its indicator line. A shallower line
    without an indicator may itself be content of an outer block, so the scan
    keeps climbing until it reaches column zero.
    """
    if not start:
        return None
    floor = indent
    for line in reversed(emitted[: start - 1].split("\n")):
        if not line.strip():
            continue
        line_indent = len(line) - len(line.lstrip(" "))
        if line_indent >= floor:
            continue
        if _YAML_BLOCK_INDICATOR.search(line.rstrip()):
            return indent
        floor = line_indent
        if not floor:
            return None
    return None


class YamlFormat(OutputFormat):
    format = DocumentFormat.YAML

    def locate(self, emitted: str, following: str, more: bool = False) -> Site:
        start = _line_start(emitted)
        prefix = emitted[start:]

        # Inside a block scalar quotes and '#' are literal text.
        indent = len(prefix) - len(prefix.lstrip(" "))
        block = _yaml_block_indent(emitted, start, indent)
        if block is not None:
            return Site(block_indent=block)

        quote, comment = _scan_yaml_line(prefix)
        if comment:
            return Site(comment=True)
        if quote:
            return Site(quote=quote)

        rest = following.strip()
        ends = rest[:1] in ("#", ",", "]", "}") if rest else not more
        standalone = ends and bool(_YAML_VALUE_START.search(prefix))
        return Site(standalone=standalone)

    def escape(self, item: ContextValue, site: Site) -> str:
        text = scalar_text(item)

        if site.comment:
            return _single_line(text, "a comment")

        if site.block_indent is not None:
            return text.replace("\n", "\n" + " " * site.block_indent)

        if site.quote == "'":
            if any(not char.isprintable() for char in text):
                raise EscapeError("value cannot be placed in a single-quoted scalar")
            return text.replace("'", "''")

        if site.quote == '"':
            return json.dumps(text, ensure_ascii=False)[1:-1]

        if item.kind is not ValueKind.STRING:
            return text

        if site.standalone:
            if self._loads_as_itself(text):
                return text
            return json.dumps(text, ensure_ascii=False)

        if not _YAML_PLAIN_SAFE.fullmatch(text):
            raise EscapeError(
                f"value {text!r} is not safe inside an unquoted scalar; quote the site"
            )
        return text

    @staticmethod
    def _loads_as_itself(text: str) -> bool:
        if not text or text != text.strip() or "\n" in text:
            return False
        if _YAML_FLOW_CHARS.intersection(text):
            return False
        try:
            return yaml.safe_load(text) == text
        except yaml.YAMLError:
            return False

    def validate(self, name: str, text: str, redactor: Redactor) -> None:
        try:
            list(yaml.safe_load_all(text))
        except yaml.YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            problem = getattr(exc, "problem", None) or str(exc)
            if mark is not None:
                problem = f"{problem} at line {mark.line + 1}, column {mark.column + 1}"
            raise DocumentFormatError(name, "yaml", redactor.redact(problem)) from None
        logger.debug(f"Validated {name} as YAML")


# ── HCL ──────────────────────────────────────────────────────────────

_HCL_BARE_SAFE = re.compile(r"[A-Za-z0-9_-]+")
_HCL_VALUE_START = re.compile(r"(?:^\s*|[=\[(,:]\s*)$")
_HCL_VALUE_END = (",", "]", "}", ")", "#", "//")
_HCL_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"}


def _scan_hcl_line(prefix: str) -> tuple[bool, bool]:
    """Return whether a string is open at the end of ``prefix`` and whether a comment started."""
    quoted = False
    i = 0
    while i < len(prefix):
        char = prefix[i]
        if quoted:
            if char == "\\":
                i += 2
                continue
            if char == '"':
                quoted = False
        elif char == '"':
            quoted = True
        elif char == "#" or prefix.startswith("//", i):
            return False, True
        i += 1
    return quoted, False


def hcl_quote(text: str) -> str:
    """Escape ``text`` for the inside of an HCL quoted template."""
    out = []
    for char in text:
        if char in _HCL_ESCAPES:
            out.append(_HCL_ESCAPES[char])
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            out.append(f"\\u{ord(char):04x}")
        else:
            out.append(char)
    return "".join(out).replace("${", "$${").replace("%{", "%%{")


class HclFormat(OutputFormat):
    format = DocumentFormat.HCL

    def locate(self, emitted: str, following: str, more: bool = False) -> Site:
        prefix = emitted[_line_start(emitted) :]
        quoted, comment = _scan_hcl_line(prefix)
        if comment:
            return Site(comment=True)
        if quoted:
            return Site(quote='"')

        rest = following.strip()
        if rest:
            ends = any(rest.startswith(end) for end in _HCL_VALUE_END)
        else:
            ends = not more
        standalone = ends and bool(_HCL_VALUE_START.search(prefix))
        return Site(standalone=standalone)

    def escape(self, item: ContextValue, site: Site) -> str:
        text = scalar_text(item)

        if site.comment:
            return _single_line(text, "a comment")

        if site.quote:
            return hcl_quote(text)

        if item.kind is not ValueKind.STRING:
            return text

        if site.standalone:
            return f'"{hcl_quote(text)}"'

        if not _HCL_BARE_SAFE.fullmatch(text):
            raise EscapeError(
                f"value {text!r} is not a bare identifier; quote the site"
            )
        return text

    def validate(self, name: str, text: str, redactor: Redactor) -> None:
        try:
            hcl2.loads(text)
        except Exception as exc:  # noqa: BLE001 - hcl2 surfaces lark parse errors
            lines = str(exc).strip().splitlines()
            message = lines[0] if lines else type(exc).__name__
            raise DocumentFormatError(name, "hcl", redactor.redact(message)) from None
        logger.debug(f"Validated {name} as HCL")


FORMATS: dict[DocumentFormat, OutputFormat] = {
    DocumentFormat.YAML: YamlFormat(),
    DocumentFormat.HCL: HclFormat(),
    DocumentFormat.TEXT: TextFormat(),
}


def get_format(fmt: DocumentFormat | str) -> OutputFormat:
    """Return the descriptor for a document format."""
    return FORMATS[DocumentFormat(fmt)]
