"""MiddlewareConfig — engine settings.

Frozen dataclass, immutable after creation::

    config = MiddlewareConfig(debug=True)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


@dataclass(frozen=True, slots=True)
class MiddlewareConfig:
    """Engine configuration. All fields have defaults suitable for production."""

    # Raise on locals rebinding and record a ChainTrace per request
    debug: bool = False

    # Reject handler results that are not Response instances
    validate_responses: bool = True

    # Attribute of request.state holding the RequestContext
    state_attribute: str = "ctx"

    @classmethod
    def from_env(
        cls,
        prefix: str = "REQUEST_MIDDLEWARE_",
        environ: Mapping[str, str] | None = None,
    ) -> MiddlewareConfig:
        """Build a config from ``<prefix>DEBUG``, ``<prefix>VALIDATE_RESPONSES``
        and ``<prefix>STATE_ATTRIBUTE``. Missing variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            debug=_parse_bool(env.get(f"{prefix}DEBUG"), defaults.debug),
            validate_responses=_parse_bool(
                env.get(f"{prefix}VALIDATE_RESPONSES"), defaults.validate_responses
            ),
            state_attribute=env.get(f"{prefix}STATE_ATTRIBUTE")
            or defaults.state_attribute,
        )


def _parse_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"Invalid boolean value: {raw!r}")
