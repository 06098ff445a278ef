"""Quality-control configuration: precedence resolution and validation."""

from __future__ import annotations

import copy
import logging

from .errors import ConfigError
from .models import QC_MODES, Plan, QualityControlConfig

logger = logging.getLogger(__name__)


def normalize_qc_mode(mode: str | None) -> str:
    """Lower-case and strip a mode string; empty means "auto"."""
    mode = (mode or "").strip().lower()
    return mode or "auto"


def resolve_quality_control(
    plan_qc: QualityControlConfig,
    global_qc: QualityControlConfig | None,
) -> QualityControlConfig:
    """Return the QC settings to execute with.

    The plan's own settings win whenever they are enabled. Only when the plan
    leaves QC disabled and the global config enables it is the global config
    adopted, wholesale. There is no field-by-field merge.
    """
    if global_qc is not None and not plan_qc.enabled and global_qc.enabled:
        return copy.deepcopy(global_qc)
    return plan_qc


def apply_quality_control(plan: Plan, global_qc: QualityControlConfig | None) -> Plan:
    """Resolve QC once for *plan*, before execution starts."""
    resolved = resolve_quality_control(plan.quality_control, global_qc)
    if resolved is not plan.quality_control:
        logger.info("quality control enabled from global configuration (mode=%s)",
                    resolved.agents.mode)
    plan.quality_control = resolved
    return plan


def validate_quality_control(qc: QualityControlConfig, where: str = "quality_control") -> None:
    """Validate QC settings. Disabled configs are not checked."""
    if not qc.enabled:
        return

    if qc.retry_on_red < 0:
        raise ConfigError(f"{where}.retry_on_red must be >= 0, got {qc.retry_on_red}")

    agents = qc.agents
    if agents.mode not in QC_MODES:
        raise ConfigError(
            f"{where}.agents.mode must be one of: {', '.join(QC_MODES)}; got {agents.mode!r}"
        )
    if agents.mode == "explicit" and not agents.explicit_list:
        raise ConfigError(
            f"{where}.agents.explicit_list cannot be empty when mode is 'explicit'. "
            "Provide at least one agent name, or switch to mode 'auto'"
        )

    for label, names in (
        ("explicit_list", agents.explicit_list),
        ("additional", agents.additional_agents),
        ("blocked", agents.blocked_agents),
    ):
        for i, name in enumerate(names):
            if not str(name).strip():
                raise ConfigError(f"{where}.agents.{label}[{i}] cannot be empty")
