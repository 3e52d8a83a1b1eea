"""Shared fixtures for infrarender tests."""

from __future__ import annotations

from typing import Any

import pytest

from infrarender.core.models import (
    ConsistencyConstraint,
    DocumentFormat,
    ResolvedContext,
    TemplateSet,
    TemplateSpec,
)
from infrarender.rendering.parser import clear_template_cache
from infrarender.settings import RendererSettings, get_settings

PASSWORD = "s3cr3t-P@ss"


def make_request(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": "zf7b2a1c3",
        "long_id": "0b4a8c2e-6f1d-4e3a-9b7c-5d2e1f0a3b4c",
        "environment_id": "env-42",
        "owner_id": "org-7",
        "sanitized_name": "app1db",
        "fqdn": "app1db.example.com",
        "service_name": "app1-svc",
        "database_total_cpus": 0.5,
        "database_ram_size_in_mib": 512,
        "database_disk_size_in_gib": 10,
        "database_login": "superuser",
        "database_password": PASSWORD,
        "publicly_accessible": True,
        "version": "8",
    }
    data.update(overrides)
    return data


def make_set(
    *templates: tuple[str, str] | tuple[str, str, DocumentFormat],
    constraints: list[ConsistencyConstraint] | None = None,
) -> TemplateSet:
    specs = []
    for template in templates:
        name, text = template[0], template[1]
        fmt = template[2] if len(template) > 2 else DocumentFormat.TEXT
        specs.append(TemplateSpec(name=name, text=text, format=fmt))
    return TemplateSet(name="test", templates=specs, constraints=constraints or [])


@pytest.fixture(autouse=True)
def _fresh_caches():
    clear_template_cache()
    get_settings.cache_clear()
    yield
    clear_template_cache()
    get_settings.cache_clear()


@pytest.fixture
def request_data() -> dict[str, Any]:
    return make_request()


@pytest.fixture
def settings() -> RendererSettings:
    return RendererSettings(max_workers=2, validate_output=True)


@pytest.fixture
def context() -> ResolvedContext:
    return ResolvedContext.from_values(
        {
            "name": "app1db",
            "size": 10,
            "cpus": 0.5,
            "public": True,
            "tier": "gold",
            "password": PASSWORD,
        },
        secrets={"password"},
    )
