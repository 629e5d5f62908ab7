# generation/tests/test_factory.py
"""Tests for backend construction and registry assembly."""
from types import SimpleNamespace

import pytest

from generation.backends.factory import BackendFactory
from generation.backends.mock import MockBackend
from generation.backends.openai import OpenAIBackend
from generation.errors import MissingApiKey, NoBackendsConfigured


def settings(**overrides):
    fields = dict(
        primary_backend="openai",
        fallback_backends=["mock"],
        mock_enabled=True,
        openai_model="gpt-4o-mini",
        openai_max_tokens=4000,
        openai_temperature=0.7,
        call_timeout_seconds=12.0,
        max_retries=3,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def test_create_known_backend():
    backend = BackendFactory.create("mock", seed=7)
    assert isinstance(backend, MockBackend)
    assert backend.name == "mock"


def test_create_unknown_backend():
    with pytest.raises(ValueError) as exc_info:
        BackendFactory.create("claude")
    assert "Available: ['mock', 'openai']" in str(exc_info.value)


def test_registry_with_key_registers_both():
    registry = BackendFactory.build_registry(settings(), api_key="sk-test")

    assert registry.list_names() == {"openai", "mock"}
    openai = registry.get("openai")
    assert isinstance(openai, OpenAIBackend)
    assert openai.model == "gpt-4o-mini"


def test_registry_without_key_keeps_mock():
    registry = BackendFactory.build_registry(settings(), api_key=None)
    assert registry.list_names() == {"mock"}


def test_mock_only_when_configured():
    registry = BackendFactory.build_registry(
        settings(fallback_backends=[]), api_key="sk-test"
    )
    assert registry.list_names() == {"openai"}


def test_no_key_and_mock_disabled():
    with pytest.raises(MissingApiKey):
        BackendFactory.build_registry(settings(mock_enabled=False), api_key="")


def test_nothing_wanted_is_registrable():
    with pytest.raises(NoBackendsConfigured):
        BackendFactory.build_registry(
            settings(primary_backend="mock", fallback_backends=[], mock_enabled=False)
        )
