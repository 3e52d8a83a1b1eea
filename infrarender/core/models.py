"""Domain models for provisioning requests, template sets and render results."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    StrictBool,
    StrictFloat,
    StrictInt,
    ValidationInfo,
    field_validator,
    model_validator,
)

from .errors import Redactor, RenderError, RenderFailed, format_diagnostics
from .naming import (
    IDENTIFIER_PATTERN,
    is_dns_1035_label,
    is_dns_label,
    is_dns_name,
    is_label_value,
)
from .versions import VersionError, get_supported_version

DatabaseType = Literal["mysql", "postgresql", "mongodb", "redis"]

# Keys the context resolver derives from a request; ``extra`` may not shadow them.
DERIVED_CONTEXT_KEYS = frozenset(
    {
        "version_major",
        "version_major_minor",
        "database_name",
        "database_id",
        "helm_release_name",
        "selector",
        "resource_name",
        "managed_database_name",
    }
)


# ── provisioning request ─────────────────────────────────────────────


class ProvisioningRequest(BaseModel):
    """Immutable input describing one database to provision."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Database identifier")
    long_id: UUID = Field(..., description="Database long identifier")
    environment_id: str = Field(..., description="Owning environment identifier")
    owner_id: str = Field(..., description="Owning organization identifier")

    sanitized_name: str = Field(..., description="DNS-safe database name")
    fqdn: str = Field(..., description="Fully qualified domain name")
    service_name: str = Field(..., description="Kubernetes Service name")

    database_total_cpus: StrictFloat = Field(..., gt=0, description="CPU request")
    database_ram_size_in_mib: StrictInt = Field(..., gt=0, description="Memory in MiB")
    database_disk_size_in_gib: StrictInt = Field(..., gt=0, description="Disk in GiB")
    database_disk_type: str = Field(
        default="do-block-storage", min_length=1, description="Storage class"
    )

    database_login: str = Field(..., min_length=1, description="Database user")
    database_password: SecretStr = Field(..., description="Database password")

    publicly_accessible: StrictBool = Field(
        default=False, description="Expose the database through a load balancer"
    )

    database_type: DatabaseType = Field(default="mysql", description="Engine")
    version: str = Field(..., description="Requested engine version pin")
    database_port: StrictInt = Field(default=3306, gt=0, le=65535, description="Port")

    extra: dict[str, Any] = Field(
        default_factory=dict, description="Additional typed template variables"
    )

    @field_validator("id", "environment_id", "owner_id")
    @classmethod
    def _check_label_value(cls, value: str) -> str:
        if not is_label_value(value):
            raise ValueError(
                "must be 1-63 alphanumerics, '-', '_' or '.', "
                "starting and ending with an alphanumeric"
            )
        return value

    @field_validator("sanitized_name")
    @classmethod
    def _check_sanitized_name(cls, value: str) -> str:
        if not is_dns_label(value):
            raise ValueError(
                "must be a DNS label: 1-63 lowercase alphanumerics or '-', "
                "starting and ending with an alphanumeric"
            )
        return value

    @field_validator("service_name")
    @classmethod
    def _check_service_name(cls, value: str) -> str:
        if not is_dns_1035_label(value):
            raise ValueError(
                "must be a DNS-1035 label: 1-63 lowercase alphanumerics or '-', "
                "starting with a letter"
            )
        return value

    @field_validator("fqdn")
    @classmethod
    def _check_fqdn(cls, value: str) -> str:
        if not is_dns_name(value):
            raise ValueError("must be a DNS name of at most 253 characters")
        return value

    @field_validator("database_password")
    @classmethod
    def _check_password(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("must not be empty")
        return value

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str, info: ValidationInfo) -> str:
        database_type = info.data.get("database_type")
        if database_type is None:
            # database_type itself failed validation and is reported there.
            return value
        try:
            get_supported_version(database_type, value)
        except VersionError as exc:
            raise ValueError(str(exc)) from exc
        return value

    @field_validator("extra")
    @classmethod
    def _check_extra_keys(cls, value: dict[str, Any]) -> dict[str, Any]:
        reserved = set(cls.model_fields) | DERIVED_CONTEXT_KEYS
        bad = sorted(key for key in value if not IDENTIFIER_PATTERN.match(key))
        if bad:
            raise ValueError(f"keys must be identifiers: {', '.join(bad)}")
        shadowed = sorted(key for key in value if key in reserved)
        if shadowed:
            raise ValueError(f"keys shadow built-in variables: {', '.join(shadowed)}")
        untyped = sorted(
            key for key, item in value.items() if not isinstance(item, (bool, int, str))
        )
        if untyped:
            raise ValueError(
                f"values must be strings, integers or booleans: {', '.join(untyped)}"
            )
        return value


# ── resolved context ─────────────────────────────────────────────────


class ValueKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class ContextValue:
    """A typed context value; secret values stay wrapped in ``SecretStr``."""

    value: Any
    kind: ValueKind
    secret: bool = False

    @classmethod
    def of(cls, value: Any, *, secret: bool = False) -> ContextValue:
        if isinstance(value, SecretStr):
            return cls(value, ValueKind.STRING, secret=True)
        if secret:
            return cls(SecretStr(str(value)), ValueKind.STRING, secret=True)
        # bool is an int subclass, so it is checked first.
        if isinstance(value, bool):
            return cls(value, ValueKind.BOOLEAN)
        if isinstance(value, int):
            return cls(value, ValueKind.INTEGER)
        if isinstance(value, float):
            return cls(value, ValueKind.NUMBER)
        if isinstance(value, (str, UUID)):
            return cls(str(value), ValueKind.STRING)
        raise TypeError(f"unsupported context value type: {type(value).__name__}")

    def reveal(self) -> Any:
        """Return the plain value, unwrapping secrets."""
        if isinstance(self.value, SecretStr):
            return self.value.get_secret_value()
        return self.value


class ResolvedContext(Mapping[str, ContextValue]):
    """Immutable mapping of variable name to typed value for one render."""

    def __init__(self, values: Mapping[str, ContextValue]) -> None:
        self._values = MappingProxyType(dict(values))

    @classmethod
    def from_values(
        cls, values: Mapping[str, Any], secrets: Iterable[str] = ()
    ) -> ResolvedContext:
        secret_names = set(secrets)
        return cls(
            {
                name: ContextValue.of(value, secret=name in secret_names)
                for name, value in values.items()
            }
        )

    def __getitem__(self, name: str) -> ContextValue:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ResolvedContext({sorted(self._values)})"

    def derive(self, overrides: Mapping[str, Any]) -> ResolvedContext:
        """Return a new context with ``overrides`` applied.

        Overriding a secret keeps it secret.
        """
        values = dict(self._values)
        for name, value in overrides.items():
            current = values.get(name)
            values[name] = ContextValue.of(
                value, secret=current is not None and current.secret
            )
        return ResolvedContext(values)

    def secret_values(self) -> list[str]:
        return [str(item.reveal()) for item in self._values.values() if item.secret]


# ── templates and constraints ────────────────────────────────────────


class DocumentFormat(str, Enum):
    YAML = "yaml"
    HCL = "hcl"
    TEXT = "text"


class TemplateGrammar(BaseModel):
    """Directive delimiters and whitespace handling for template parsing.

    Option names follow jinja2's ``Environment`` so templates behave the same
    way they would under the jinja2 settings used for deployment files.
    """

    model_config = ConfigDict(frozen=True)

    variable_start_string: str = "{{"
    variable_end_string: str = "}}"
    block_start_string: str = "{%"
    block_end_string: str = "%}"
    comment_start_string: str = "{#"
    comment_end_string: str = "#}"
    trim_blocks: bool = True
    lstrip_blocks: bool = True
    max_nesting: int = Field(default=4, ge=1)


class TemplateSpec(BaseModel):
    """A named template and the format its output must satisfy."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Document name")
    text: str = Field(..., description="Template source")
    format: DocumentFormat = Field(default=DocumentFormat.TEXT)


class DocumentLocation(BaseModel):
    """A variable as it appears in one document."""

    model_config = ConfigDict(frozen=True)

    document: str = Field(..., min_length=1)
    variable: str = Field(..., min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _parse_label(cls, data: Any) -> Any:
        if isinstance(data, str):
            document, sep, variable = data.rpartition(":")
            if not sep:
                raise ValueError(f"location must be DOCUMENT:VARIABLE, got: {data!r}")
            return {"document": document, "variable": variable}
        return data

    @property
    def label(self) -> str:
        return f"{self.document}:{self.variable}"


class ConsistencyConstraint(BaseModel):
    """Locations across documents that must carry the same value."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    locations: list[DocumentLocation] = Field(..., min_length=2)
    max_length: int | None = Field(default=None, gt=0)
    pattern: str | None = Field(default=None, description="Regex the value must match")

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid pattern: {exc}") from exc
        return value


class TemplateSet(BaseModel):
    """Templates rendered together from one request, with their constraints."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    templates: list[TemplateSpec] = Field(..., min_length=1)
    constraints: list[ConsistencyConstraint] = Field(default_factory=list)
    grammar: TemplateGrammar = Field(default_factory=TemplateGrammar)

    @model_validator(mode="after")
    def _check_references(self) -> TemplateSet:
        names = [template.name for template in self.templates]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate template name(s): {', '.join(duplicates)}")

        for constraint in self.constraints:
            unknown = [
                loc.label for loc in constraint.locations if loc.document not in names
            ]
            if unknown:
                raise ValueError(
                    f"constraint {constraint.name!r} references unknown "
                    f"document(s): {', '.join(unknown)}"
                )
        return self

    def template(self, name: str) -> TemplateSpec:
        for template in self.templates:
            if template.name == name:
                return template
        raise KeyError(name)


# ── render output ────────────────────────────────────────────────────


@dataclass(frozen=True)
class RenderedDocument:
    """Final text of one template and the values it exposed."""

    name: str
    format: DocumentFormat
    text: str = field(repr=False)
    exposed: Mapping[str, ContextValue] = field(default_factory=dict, repr=False)
    secret_fragments: frozenset[str] = field(default_factory=frozenset, repr=False)

    @property
    def sensitive(self) -> bool:
        return bool(self.secret_fragments)

    def redacted_text(self, redactor: Redactor) -> str:
        return redactor.extend(self.secret_fragments).redact(self.text)


class RenderState(str, Enum):
    RESOLVING = "resolving"
    PARSING = "parsing"
    EVALUATING = "evaluating"
    SUBSTITUTING = "substituting"
    CHECKING = "checking"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RenderResult:
    """Outcome of one render: every document, or every error."""

    state: RenderState
    documents: dict[str, RenderedDocument] = field(default_factory=dict)
    errors: list[RenderError] = field(default_factory=list)
    trace: list[RenderState] = field(default_factory=list)
    redactor: Redactor = field(default_factory=Redactor, repr=False)

    @property
    def ok(self) -> bool:
        return self.state is RenderState.DONE

    def texts(self) -> dict[str, str]:
        """Return document name to rendered text."""
        return {name: doc.text for name, doc in self.documents.items()}

    def report(self) -> str:
        """Return redacted diagnostics for a failed render."""
        return format_diagnostics(self.errors, self.redactor)

    def raise_for_errors(self) -> None:
        if not self.ok:
            raise RenderFailed(self.errors)
