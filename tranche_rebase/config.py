from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .models import RebaseParameters

ENV_PREFIX = "TRANCHE_REBASE_"


def _env_bool(raw: Optional[str]) -> bool:
    return (raw or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EngineConfig:
    params: RebaseParameters = field(default_factory=RebaseParameters)
    min_rebase_interval: int = 24 * 3600      # seconds
    state_path: str = "rebase_state.json"
    fee_recipient: str = "treasury"
    validation_enabled: bool = False          # check external value updates against a reference
    validation_tolerance_bps: int = 100
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "EngineConfig":
        env = os.environ if environ is None else environ
        kwargs = {}
        if env.get(ENV_PREFIX + "MIN_INTERVAL"):
            kwargs["min_rebase_interval"] = int(env[ENV_PREFIX + "MIN_INTERVAL"])
        if env.get(ENV_PREFIX + "STATE_PATH"):
            kwargs["state_path"] = env[ENV_PREFIX + "STATE_PATH"].strip()
        if env.get(ENV_PREFIX + "FEE_RECIPIENT"):
            kwargs["fee_recipient"] = env[ENV_PREFIX + "FEE_RECIPIENT"].strip()
        if ENV_PREFIX + "VALIDATION" in env:
            kwargs["validation_enabled"] = _env_bool(env[ENV_PREFIX + "VALIDATION"])
        if env.get(ENV_PREFIX + "VALIDATION_TOLERANCE_BPS"):
            kwargs["validation_tolerance_bps"] = int(env[ENV_PREFIX + "VALIDATION_TOLERANCE_BPS"])
        if env.get(ENV_PREFIX + "LOG_LEVEL"):
            kwargs["log_level"] = env[ENV_PREFIX + "LOG_LEVEL"].strip().upper()
        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)
