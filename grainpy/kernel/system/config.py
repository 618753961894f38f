import logging
import os
from dataclasses import dataclass

from grainpy.domain.models import GrainSettings, FilmType


@dataclass(frozen=True)
class AppConfig:
    cache_dir: str
    default_export_dir: str
    perf_log: bool
    log_level: int


def _env_flag(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


def _env_log_level(name: str, default: int = logging.INFO) -> int:
    val = os.getenv(name)
    if not val:
        return default
    level = logging.getLevelName(val.strip().upper())
    return level if isinstance(level, int) else default


# User dir env (holds perf stats and default exports)
BASE_USER_DIR = os.path.abspath(os.getenv("GRAINPY_USER_DIR", "user"))

APP_CONFIG = AppConfig(
    cache_dir=os.path.join(BASE_USER_DIR, "cache"),
    default_export_dir=os.path.join(BASE_USER_DIR, "export"),
    perf_log=_env_flag("GRAINPY_PERF_LOG"),
    log_level=_env_log_level("GRAINPY_LOG_LEVEL"),
)

# Settings used when a request does not override them
DEFAULT_GRAIN_SETTINGS = GrainSettings(
    iso=400.0,
    film_type=FilmType.KODAK,
    debug_grain_centers=False,
    max_iterations=5,
    convergence_threshold=0.05,
    lightness_estimation_sampling_density=0.1,
    seed=None,
)
