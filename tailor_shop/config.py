"""Runtime settings, tunable options and logging setup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv

from .domain import GarmentType

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
HANDLER_NAME = "tailor_shop"

DEFAULT_CAPACITY = 5
DEFAULT_LEAD_TIME_DAYS = 7
URGENT_ORDER_LEAD_TIME_DAYS = 2
MIN_LEAD_TIME_DAYS = 1
MAX_LEAD_TIME_DAYS = 90

LEAD_TIME_BY_GARMENT: Mapping[GarmentType, int] = {
    GarmentType.SHIRT: 5,
    GarmentType.TROUSER: 5,
    GarmentType.DRESS: 7,
    GarmentType.SUIT: 10,
}


@dataclass(slots=True)
class Settings:
    """Process level settings read from the environment."""

    database_path: str = "tailor_shop.sqlite3"
    log_level: str = "INFO"
    demo_data: bool = True
    default_capacity: int = DEFAULT_CAPACITY


@dataclass(slots=True)
class AssignmentOptions:
    """Weights used by the skill based employee scoring."""

    skill_match_bonus: float = 2.0
    high_priority_multiplier: float = 1.5
    specialization_multiplier: float = 1.2


@dataclass(slots=True)
class WorkloadOptions:
    default_capacity: int = DEFAULT_CAPACITY


@dataclass(slots=True)
class OrderOptions:
    """Lead times used to estimate delivery dates for new orders."""

    default_lead_time_days: int = DEFAULT_LEAD_TIME_DAYS
    urgent_lead_time_days: int = URGENT_ORDER_LEAD_TIME_DAYS
    lead_time_by_garment: Dict[GarmentType, int] = field(
        default_factory=lambda: dict(LEAD_TIME_BY_GARMENT)
    )

    def lead_time_for(self, garment_type: GarmentType, is_urgent: bool) -> int:
        if is_urgent:
            days = self.urgent_lead_time_days
        else:
            days = self.lead_time_by_garment.get(
                garment_type, self.default_lead_time_days
            )
        return min(max(days, MIN_LEAD_TIME_DAYS), MAX_LEAD_TIME_DAYS)


def _env_flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    *,
    env_file: Optional[Path] = None,
) -> Settings:
    """Build ``Settings`` from ``TAILOR_SHOP_*`` environment variables.

    Without an explicit ``environ`` the process environment is used, after
    loading ``env_file`` (default ``.env`` in the working directory).
    Variables already set in the environment win over the file.
    """

    if environ is None:
        load_dotenv(env_file or Path.cwd() / ".env")
        env: Mapping[str, str] = os.environ
    else:
        env = environ
    defaults = Settings()
    capacity_text = env.get("TAILOR_SHOP_DEFAULT_CAPACITY", "")
    try:
        capacity = int(capacity_text) if capacity_text else defaults.default_capacity
    except ValueError as exc:
        raise ValueError(
            f"TAILOR_SHOP_DEFAULT_CAPACITY must be an integer, got {capacity_text!r}"
        ) from exc
    if capacity <= 0:
        raise ValueError("TAILOR_SHOP_DEFAULT_CAPACITY must be positive")
    return Settings(
        database_path=env.get("TAILOR_SHOP_DB", defaults.database_path),
        log_level=env.get("TAILOR_SHOP_LOG_LEVEL", defaults.log_level).upper(),
        demo_data=_env_flag(env.get("TAILOR_SHOP_DEMO_DATA"), defaults.demo_data),
        default_capacity=capacity,
    )


def configure_logging(level: str = "INFO") -> None:
    """Attach a console handler to the package logger."""

    package_logger = logging.getLogger("tailor_shop")
    package_logger.setLevel(level)
    handler_names = {handler.get_name() for handler in package_logger.handlers}
    if HANDLER_NAME not in handler_names:
        handler = logging.StreamHandler()
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        package_logger.addHandler(handler)


__all__ = [
    "Settings",
    "AssignmentOptions",
    "WorkloadOptions",
    "OrderOptions",
    "load_settings",
    "configure_logging",
    "HANDLER_NAME",
    "DEFAULT_CAPACITY",
    "LEAD_TIME_BY_GARMENT",
]
