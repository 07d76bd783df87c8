"""Configuration for intro path discovery."""

from dataclasses import dataclass, fields, replace
import logging
import os

log = logging.getLogger(__name__)

ENV_PREFIX = "INTRO_PATHS_"


@dataclass(frozen=True)
class PathConfig:
    """Constants controlling enumeration, scoring, ranking and caching."""

    # Request defaults and bounds
    default_max_depth: int = 3
    max_depth_ceiling: int = 6
    default_min_strength: float = 0.0
    default_top_k: int = 5

    # Enumeration caps
    max_paths_per_source: int = 10
    global_path_cap: int = 50
    frontier_cap: int = 10_000
    max_workers: int = 8

    # Scoring
    half_life_days: float = 90.0
    unknown_freshness: float = 0.7
    length_penalty_per_extra_hop: float = 0.1
    penalty_free_hops: int = 2

    # Store access
    time_budget_seconds: float = 5.0
    store_retry_attempts: int = 2
    store_retry_backoff_seconds: float = 0.1
    batch_size: int = 200
    batch_delay_seconds: float = 0.0

    # Cache
    cache_ttl_seconds: float = 6 * 3600.0

    def clamp_depth(self, depth: int) -> int:
        """Clamp traversal depth to supported range."""
        if depth < 1:
            return 1
        if depth > self.max_depth_ceiling:
            return self.max_depth_ceiling
        return depth

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "PathConfig":
        """Build config with ``INTRO_PATHS_<FIELD>`` environment overrides.

        Unparseable values are ignored with a warning.
        """
        env = os.environ if environ is None else environ
        base = cls()
        overrides: dict = {}
        for field in fields(cls):
            raw = env.get(f"{ENV_PREFIX}{field.name.upper()}")
            if raw is None or not raw.strip():
                continue
            caster = type(getattr(base, field.name))
            try:
                overrides[field.name] = caster(raw.strip())
            except ValueError:
                log.warning(f"Ignoring invalid {ENV_PREFIX}{field.name.upper()}={raw!r}")
        return replace(base, **overrides)


DEFAULT_PATH_CONFIG = PathConfig()
