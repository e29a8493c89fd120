"""Engine configuration.

Values come from keyword arguments or, through :meth:`EngineConfig.from_env`,
from ``TYPED_LEDGER_*`` environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

ENV_PREFIX = "TYPED_LEDGER_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class EngineConfig:
    """Settings for query binding and invocation."""

    # Let queries target a declaration by its bare name when it is unambiguous
    allow_short_names: bool = True
    # Coerce string parameter values (e.g. "42") to the compared field's type
    coerce_parameters: bool = True
    # Cap applied to queries without a LIMIT clause; None means unlimited
    default_limit: int | None = None

    def __post_init__(self) -> None:
        if self.default_limit is not None and self.default_limit < 0:
            raise ValueError(f"default_limit must be non-negative, got {self.default_limit}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineConfig:
        """Build a config from ``TYPED_LEDGER_*`` variables, defaulting the rest."""
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}

        raw = env.get(f"{ENV_PREFIX}ALLOW_SHORT_NAMES")
        if raw is not None:
            kwargs["allow_short_names"] = _parse_bool("ALLOW_SHORT_NAMES", raw)

        raw = env.get(f"{ENV_PREFIX}COERCE_PARAMETERS")
        if raw is not None:
            kwargs["coerce_parameters"] = _parse_bool("COERCE_PARAMETERS", raw)

        raw = env.get(f"{ENV_PREFIX}DEFAULT_LIMIT")
        if raw is not None and raw.strip():
            try:
                kwargs["default_limit"] = int(raw)
            except ValueError as e:
                raise ValueError(f"{ENV_PREFIX}DEFAULT_LIMIT must be an integer, got {raw!r}") from e

        return cls(**kwargs)  # type: ignore[arg-type]
