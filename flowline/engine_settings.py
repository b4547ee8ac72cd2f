"""
Flowline - Engine Settings
==========================

Tunable constants for the production flow engine (stall threshold, default
step duration, calendar walk bound, recommendation cap, ...).

Uso:
    from flowline.engine_settings import EngineSettings

    stall_hours = EngineSettings.get_config().stall_hours

Configuração via variáveis de ambiente:
    FLOWLINE_STALL_HOURS=24
    FLOWLINE_DEFAULT_STEP_HOURS=24
    FLOWLINE_SPAN_MULTI_DAY_HORIZONS=true
"""

from __future__ import annotations

import os
import math
import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# SETTINGS DATACLASS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EngineSettingsConfig:
    """
    Engine settings.

    Defaults reproduce the behaviour of the production line planner.
    """
    # Completion projection
    stall_hours: float = 24.0               # Flow considered stalled after this
    default_step_hours: float = 24.0        # Used when a step has no duration
    wip_remaining_fraction: float = 0.5     # WIP step assumed half done
    day_start_hour: int = 0                 # Resume hour after a non-working day
    calendar_safety_iterations: int = 365 * 24

    # Scheduling
    max_recommendations: int = 500
    score_precision: int = 2                # Decimals considered for score ties
    span_multi_day_horizons: bool = False   # days x shift hours for horizons > 24h

    @property
    def default_step_minutes(self) -> float:
        return self.default_step_hours * 60.0


# ═══════════════════════════════════════════════════════════════════════════════
# SETTINGS LOADER
# ═══════════════════════════════════════════════════════════════════════════════

class EngineSettings:
    """
    Lazily loaded engine settings.

    Carrega configuração de variáveis de ambiente ou usa defaults.

    Uso:
        config = EngineSettings.get_config()
        EngineSettings.override(stall_hours=12)   # testes / runtime
        EngineSettings.reset()                    # recarregar do ambiente
    """

    _instance: Optional[EngineSettingsConfig] = None

    ENV_MAPPING = {
        "FLOWLINE_STALL_HOURS": ("stall_hours", float),
        "FLOWLINE_DEFAULT_STEP_HOURS": ("default_step_hours", float),
        "FLOWLINE_WIP_REMAINING_FRACTION": ("wip_remaining_fraction", float),
        "FLOWLINE_DAY_START_HOUR": ("day_start_hour", int),
        "FLOWLINE_CALENDAR_SAFETY_ITERATIONS": ("calendar_safety_iterations", int),
        "FLOWLINE_MAX_RECOMMENDATIONS": ("max_recommendations", int),
        "FLOWLINE_SCORE_PRECISION": ("score_precision", int),
    }

    BOOL_MAPPING = {
        "FLOWLINE_SPAN_MULTI_DAY_HORIZONS": "span_multi_day_horizons",
    }

    @classmethod
    def _load_from_env(cls) -> EngineSettingsConfig:
        """Carrega configuração de variáveis de ambiente."""
        values: Dict[str, Any] = {}

        for env_var, (attr_name, cast) in cls.ENV_MAPPING.items():
            value = os.environ.get(env_var)
            if not value:
                continue
            try:
                parsed = cast(value)
            except ValueError:
                logger.warning(f"Invalid value for {env_var}: {value}")
                continue
            if not math.isfinite(parsed):
                logger.warning(f"Invalid value for {env_var}: {value}")
                continue
            if parsed < 0:
                logger.warning(f"Negative value for {env_var} ignored: {value}")
                continue
            values[attr_name] = parsed
            logger.info(f"Engine setting {attr_name} = {parsed}")

        for env_var, attr_name in cls.BOOL_MAPPING.items():
            value = os.environ.get(env_var)
            if value:
                values[attr_name] = value.lower() in ("true", "1", "yes")

        if "day_start_hour" in values and values["day_start_hour"] > 23:
            logger.warning(f"FLOWLINE_DAY_START_HOUR out of range: {values['day_start_hour']}")
            del values["day_start_hour"]

        return EngineSettingsConfig(**values)

    @classmethod
    def get_config(cls) -> EngineSettingsConfig:
        """Obtém configuração atual."""
        if cls._instance is None:
            cls._instance = cls._load_from_env()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset para recarregar config."""
        cls._instance = None

    @classmethod
    def override(cls, **changes: Any) -> EngineSettingsConfig:
        """
        Replace individual settings at runtime.

        Unknown names are rejected with a warning and left out.
        """
        known = {f.name for f in fields(EngineSettingsConfig)}
        accepted = {k: v for k, v in changes.items() if k in known}
        for name in set(changes) - known:
            logger.warning(f"Unknown engine setting: {name}")
        cls._instance = replace(cls.get_config(), **accepted)
        return cls._instance

    @classmethod
    def to_dict(cls) -> Dict[str, Any]:
        """Exporta configuração como dict."""
        config = cls.get_config()
        return {f.name: getattr(config, f.name) for f in fields(config)}
