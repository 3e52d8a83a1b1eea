"""Tests for infrarender.context.resolver."""

from __future__ import annotations

import pytest

from conftest import PASSWORD, make_request
from infrarender.context import SECRET_FIELDS, resolve_context, validate_request
from infrarender.core.errors import RenderFailed, ValidationError
from infrarender.core.models import ProvisioningRequest, ValueKind


def _fields(excinfo) -> list[str]:
    return sorted(error.field for error in excinfo.value.errors)


# ── validation ───────────────────────────────────────────────────────


class TestValidateRequest:
    def test_accepts_model(self):
        request = ProvisioningRequest.model_validate(make_request())
        assert validate_request(request) is request

    def test_accepts_mapping(self):
        assert validate_request(make_request()).sanitized_name == "app1db"

    def test_reports_every_violation(self):
        data = make_request(
            sanitized_name="App_1",
            database_disk_size_in_gib=0,
            database_total_cpus=-1,
            publicly_accessible="maybe",
        )
        del data["fqdn"]
        with pytest.raises(RenderFailed) as excinfo:
            validate_request(data)
        assert _fields(excinfo) == [
            "database_disk_size_in_gib",
            "database_total_cpus",
            "fqdn",
            "publicly_accessible",
            "sanitized_name",
        ]
        assert all(isinstance(e, ValidationError) for e in excinfo.value.errors)

    def test_one_error_per_field(self):
        with pytest.raises(RenderFailed) as excinfo:
            validate_request(make_request(extra={"selector": 1, "bad-key": 2}))
        assert _fields(excinfo) == ["extra"]

    def test_password_never_in_errors(self):
        with pytest.raises(RenderFailed) as excinfo:
            validate_request(make_request(database_password=["not", PASSWORD]))
        assert PASSWORD not in excinfo.value.describe()

    def test_empty_password(self):
        with pytest.raises(RenderFailed) as excinfo:
            validate_request(make_request(database_password=""))
        assert _fields(excinfo) == ["database_password"]

    def test_unsupported_version(self):
        with pytest.raises(RenderFailed) as excinfo:
            validate_request(make_request(version="9.1"))
        assert _fields(excinfo) == ["version"]
        assert "not supported" in excinfo.value.errors[0].message

    def test_service_name_must_start_with_letter(self):
        with pytest.raises(RenderFailed) as excinfo:
            validate_request(make_request(service_name="1-svc"))
        assert _fields(excinfo) == ["service_name"]

    def test_numbers_are_not_coerced(self):
        data = make_request(
            database_disk_size_in_gib=True,
            database_ram_size_in_mib="512",
            database_total_cpus="0.5",
            database_port="3306",
        )
        with pytest.raises(RenderFailed) as excinfo:
            validate_request(data)
        assert _fields(excinfo) == [
            "database_disk_size_in_gib",
            "database_port",
            "database_ram_size_in_mib",
            "database_total_cpus",
        ]

    def test_integral_cpus_accepted(self):
        assert validate_request(make_request(database_total_cpus=2)).database_total_cpus == 2


# ── resolution ───────────────────────────────────────────────────────


class TestResolveContext:
    def test_request_fields_present(self):
        context = resolve_context(make_request())
        assert context["sanitized_name"].reveal() == "app1db"
        assert context["database_disk_size_in_gib"].kind is ValueKind.INTEGER
        assert context["database_total_cpus"].kind is ValueKind.NUMBER
        assert context["publicly_accessible"].kind is ValueKind.BOOLEAN
        assert context["long_id"].kind is ValueKind.STRING

    def test_password_is_secret(self):
        context = resolve_context(make_request())
        assert "database_password" in SECRET_FIELDS
        assert context["database_password"].secret
        assert context["database_password"].reveal() == PASSWORD
        assert context.secret_values() == [PASSWORD]

    def test_derived_keys(self):
        context = resolve_context(make_request())
        assert context["version"].reveal() == "8.0.24"
        assert context["version_major"].reveal() == "8"
        assert context["database_name"].reveal() == "app1db"
        assert context["database_id"].reveal() == "zf7b2a1c3"
        assert context["helm_release_name"].reveal() == "mysql-zf7b2a1c3"
        assert context["selector"].reveal() == "app=app1db"
        assert context["database_port"].reveal() == 3306

    def test_derived_names(self):
        context = resolve_context(make_request(sanitized_name="app-1-db"))
        assert context["version_major_minor"].reveal() == "8.0"
        assert context["resource_name"].reveal() == "mysql-zf7b2a1c3"
        assert context["managed_database_name"].reveal() == "mysqlapp1db"

    def test_derived_names_cannot_be_shadowed(self):
        with pytest.raises(RenderFailed) as excinfo:
            validate_request(make_request(extra={"resource_name": "x"}))
        assert _fields(excinfo) == ["extra"]

    def test_extra_values(self):
        context = resolve_context(make_request(extra={"cluster_id": "c-1", "replicas": 2}))
        assert context["cluster_id"].reveal() == "c-1"
        assert context["replicas"].kind is ValueKind.INTEGER
        assert "extra" not in context

    def test_pure(self):
        assert dict(resolve_context(make_request())) == dict(
            resolve_context(make_request())
        )
