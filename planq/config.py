"""Three-layer config loading and merging."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .errors import ConfigError
from .models import QCAgentConfig, QualityControlConfig
from .qc import normalize_qc_mode, validate_quality_control

CONFIG_DIR = ".planq"

_LOG_LEVELS = ("trace", "debug", "info", "warn", "warning", "error")


# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------

def default_quality_control() -> QualityControlConfig:
    return QualityControlConfig(
        enabled=False,
        review_agent="quality-control",
        agents=QCAgentConfig(mode="auto"),
        retry_on_red=2,
    )


@dataclass
class Config:
    max_concurrency: int = 0  # 0 = unlimited
    timeout_sec: int = 36000
    log_level: str = "info"
    log_dir: str = ".planq/logs"
    dry_run: bool = False
    skip_completed: bool = False
    retry_failed: bool = False
    quality_control: QualityControlConfig = field(default_factory=default_quality_control)
    project_root: str = ""


# ---------------------------------------------------------------------------
# Deep merge
# ---------------------------------------------------------------------------

def deep_merge(base: dict, override: dict) -> dict:
    """Field-level deep merge. Lists are replaced, None values ignored."""
    result = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# ---------------------------------------------------------------------------
# Dict → Config mapping
# ---------------------------------------------------------------------------

def _str_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def quality_control_from_dict(data: dict, base: QualityControlConfig | None = None) -> QualityControlConfig:
    """Overlay a ``quality_control`` mapping onto *base* (defaults to disabled QC).

    Only keys present in *data* change the result. A legacy ``review_agent``
    without an ``agents`` section becomes explicit mode with that one agent.
    """
    qc = QualityControlConfig() if base is None else copy.deepcopy(base)

    if "enabled" in data:
        qc.enabled = bool(data["enabled"])
    if "review_agent" in data:
        qc.review_agent = data["review_agent"] or ""
    if "retry_on_red" in data:
        qc.retry_on_red = int(data["retry_on_red"])

    agents = data.get("agents")
    if isinstance(agents, dict):
        a = qc.agents
        if "mode" in agents:
            a.mode = normalize_qc_mode(agents["mode"])
        if "explicit_list" in agents:
            a.explicit_list = _str_list(agents["explicit_list"])
        if "additional" in agents:
            a.additional_agents = _str_list(agents["additional"])
        if "blocked" in agents:
            a.blocked_agents = _str_list(agents["blocked"])
        if "max_agents" in agents:
            a.max_agents = int(agents["max_agents"])
        if "cache_ttl_seconds" in agents:
            a.cache_ttl_seconds = int(agents["cache_ttl_seconds"])
        if "selection_timeout_seconds" in agents:
            a.selection_timeout_seconds = int(agents["selection_timeout_seconds"])
        if "require_code_review" in agents:
            a.require_code_review = bool(agents["require_code_review"])
    elif qc.review_agent and qc.agents.mode == "auto" and "review_agent" in data:
        qc.agents.mode = "explicit"
        qc.agents.explicit_list = [qc.review_agent]

    return qc


def _dict_to_config(data: dict, project_root: str) -> Config:
    cfg = Config(project_root=project_root)

    try:
        if "max_concurrency" in data:
            cfg.max_concurrency = int(data["max_concurrency"])
        if "timeout_sec" in data:
            cfg.timeout_sec = int(data["timeout_sec"])
        if "log_level" in data:
            cfg.log_level = str(data["log_level"]).lower()
        if "log_dir" in data:
            cfg.log_dir = data["log_dir"]
        for flag in ("dry_run", "skip_completed", "retry_failed"):
            if flag in data:
                setattr(cfg, flag, bool(data[flag]))

        if "quality_control" in data and isinstance(data["quality_control"], dict):
            cfg.quality_control = quality_control_from_dict(
                data["quality_control"], cfg.quality_control
            )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config value: {e}") from e

    return cfg


def validate_config(cfg: Config) -> None:
    if cfg.max_concurrency < 0:
        raise ConfigError(f"max_concurrency must be >= 0, got {cfg.max_concurrency}")
    if cfg.timeout_sec <= 0:
        raise ConfigError(f"timeout_sec must be > 0, got {cfg.timeout_sec}")
    if cfg.log_level not in _LOG_LEVELS:
        raise ConfigError(
            f"log_level must be one of: {', '.join(_LOG_LEVELS)}; got {cfg.log_level!r}"
        )
    validate_quality_control(cfg.quality_control)


# ---------------------------------------------------------------------------
# Load config (3-layer)
# ---------------------------------------------------------------------------

def _read_yaml(path: Path) -> dict:
    try:
        parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid {path.name}: {e}") from e
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ConfigError(f"Invalid {path.name}: expected mapping, got {type(parsed).__name__}")
    return parsed


def load_config(project_root: str | Path) -> Config:
    """Load and merge config from up to 3 layers.

    Priority (highest first):
      1. Environment variables (PLANQ_LOG_LEVEL, PLANQ_MAX_CONCURRENCY)
      2. .planq/local.config.yaml
      3. .planq/config.yaml
    """
    project_root = Path(project_root)
    config_dir = project_root / CONFIG_DIR

    base_data: dict = {}
    base_path = config_dir / "config.yaml"
    if base_path.exists():
        base_data = _read_yaml(base_path)

    local_data: dict = {}
    local_path = config_dir / "local.config.yaml"
    if local_path.exists():
        local_data = _read_yaml(local_path)

    merged = deep_merge(base_data, local_data)
    cfg = _dict_to_config(merged, str(project_root))

    env_level = os.environ.get("PLANQ_LOG_LEVEL")
    if env_level:
        cfg.log_level = env_level.lower()

    env_conc = os.environ.get("PLANQ_MAX_CONCURRENCY")
    if env_conc:
        try:
            cfg.max_concurrency = int(env_conc)
        except ValueError as e:
            raise ConfigError(f"PLANQ_MAX_CONCURRENCY must be an integer, got {env_conc!r}") from e

    validate_config(cfg)
    return cfg
