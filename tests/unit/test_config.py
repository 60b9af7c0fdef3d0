"""Tests for MiddlewareConfig."""

from __future__ import annotations

import dataclasses

import pytest

from fastapi_request_middleware.config import MiddlewareConfig


class TestMiddlewareConfig:
    def test_defaults(self) -> None:
        config = MiddlewareConfig()
        assert config.debug is False
        assert config.validate_responses is True
        assert config.state_attribute == "ctx"

    def test_frozen(self) -> None:
        config = MiddlewareConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.debug = True  # type: ignore[misc]


class TestFromEnv:
    def test_empty_environment_keeps_defaults(self) -> None:
        assert MiddlewareConfig.from_env(environ={}) == MiddlewareConfig()

    def test_reads_prefixed_variables(self) -> None:
        config = MiddlewareConfig.from_env(
            environ={
                "REQUEST_MIDDLEWARE_DEBUG": "true",
                "REQUEST_MIDDLEWARE_VALIDATE_RESPONSES": "0",
                "REQUEST_MIDDLEWARE_STATE_ATTRIBUTE": "mw",
            }
        )
        assert config == MiddlewareConfig(
            debug=True, validate_responses=False, state_attribute="mw"
        )

    def test_custom_prefix(self) -> None:
        config = MiddlewareConfig.from_env(prefix="APP_", environ={"APP_DEBUG": "yes"})
        assert config.debug is True

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REQUEST_MIDDLEWARE_DEBUG", "on")
        assert MiddlewareConfig.from_env().debug is True

    def test_invalid_boolean(self) -> None:
        with pytest.raises(ValueError, match="Invalid boolean"):
            MiddlewareConfig.from_env(environ={"REQUEST_MIDDLEWARE_DEBUG": "maybe"})
