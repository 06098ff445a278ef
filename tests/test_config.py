"""Tests for config loading and three-layer merge."""

import pytest

from planq.config import deep_merge, load_config, quality_control_from_dict
from planq.errors import ConfigError


# --- Defaults ---

def test_missing_config_uses_defaults(tmp_path):
    """No .planq/ at all → defaults."""
    cfg = load_config(tmp_path)
    assert cfg.max_concurrency == 0
    assert cfg.timeout_sec == 36000
    assert cfg.log_level == "info"
    assert cfg.quality_control.enabled is False
    assert cfg.quality_control.review_agent == "quality-control"
    assert cfg.quality_control.retry_on_red == 2
    assert cfg.project_root == str(tmp_path)


def test_load_base_config(tmp_project):
    """Values from config.yaml are applied."""
    cfg = load_config(tmp_project)
    assert cfg.max_concurrency == 4
    assert cfg.timeout_sec == 600
    assert cfg.quality_control.agents.mode == "auto"


# --- Layering ---

def test_local_overrides_base(tmp_project):
    """local.config.yaml is merged field by field over config.yaml."""
    (tmp_project / ".planq" / "local.config.yaml").write_text("""\
log_level: debug
quality_control:
  enabled: true
""")
    cfg = load_config(tmp_project)
    assert cfg.log_level == "debug"
    assert cfg.max_concurrency == 4
    assert cfg.quality_control.enabled is True
    assert cfg.quality_control.retry_on_red == 2


def test_env_overrides_files(tmp_project, monkeypatch):
    """Environment variables beat both files."""
    monkeypatch.setenv("PLANQ_LOG_LEVEL", "ERROR")
    monkeypatch.setenv("PLANQ_MAX_CONCURRENCY", "16")
    cfg = load_config(tmp_project)
    assert cfg.log_level == "error"
    assert cfg.max_concurrency == 16


def test_env_bad_integer(tmp_project, monkeypatch):
    """Non-integer PLANQ_MAX_CONCURRENCY is a config error."""
    monkeypatch.setenv("PLANQ_MAX_CONCURRENCY", "lots")
    with pytest.raises(ConfigError, match="PLANQ_MAX_CONCURRENCY"):
        load_config(tmp_project)


def test_deep_merge():
    """Dicts merge recursively, lists are replaced, None is ignored."""
    base = {"a": 1, "qc": {"enabled": False, "agents": {"mode": "auto", "blocked": ["x"]}}}
    override = {"a": None, "qc": {"agents": {"blocked": ["y"]}}}
    merged = deep_merge(base, override)
    assert merged == {"a": 1, "qc": {"enabled": False, "agents": {"mode": "auto", "blocked": ["y"]}}}
    assert base["qc"]["agents"]["blocked"] == ["x"]


# --- Quality control section ---

def test_quality_control_agents_section():
    """Every agents key is mapped."""
    qc = quality_control_from_dict({
        "enabled": True,
        "retry_on_red": 3,
        "agents": {
            "mode": "Mixed",
            "explicit_list": ["code-reviewer"],
            "additional": ["security"],
            "blocked": ["slow-agent"],
            "max_agents": 2,
            "cache_ttl_seconds": 60,
            "selection_timeout_seconds": 30,
            "require_code_review": False,
        },
    })
    assert qc.enabled is True
    assert qc.retry_on_red == 3
    assert qc.agents.mode == "mixed"
    assert qc.agents.explicit_list == ["code-reviewer"]
    assert qc.agents.additional_agents == ["security"]
    assert qc.agents.blocked_agents == ["slow-agent"]
    assert qc.agents.max_agents == 2
    assert qc.agents.cache_ttl_seconds == 60
    assert qc.agents.selection_timeout_seconds == 30
    assert qc.agents.require_code_review is False


def test_legacy_review_agent():
    """review_agent without an agents section means explicit mode."""
    qc = quality_control_from_dict({"enabled": True, "review_agent": "senior-reviewer"})
    assert qc.agents.mode == "explicit"
    assert qc.agents.explicit_list == ["senior-reviewer"]


def test_default_review_agent_stays_auto(tmp_project):
    """The built-in review agent does not force explicit mode."""
    cfg = load_config(tmp_project)
    assert cfg.quality_control.agents.mode == "auto"
    assert cfg.quality_control.agents.explicit_list == []


# --- Errors ---

def test_invalid_yaml(tmp_project):
    """Broken YAML is reported as a ConfigError."""
    (tmp_project / ".planq" / "config.yaml").write_text("max_concurrency: [\n")
    with pytest.raises(ConfigError, match="config.yaml"):
        load_config(tmp_project)


def test_non_mapping_config(tmp_project):
    """A config file must hold a mapping."""
    (tmp_project / ".planq" / "config.yaml").write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="expected mapping"):
        load_config(tmp_project)


@pytest.mark.parametrize("text, message", [
    ("max_concurrency: -1\n", "max_concurrency"),
    ("timeout_sec: 0\n", "timeout_sec"),
    ("log_level: verbose\n", "log_level"),
    ("max_concurrency: many\n", "Invalid config value"),
    ("quality_control:\n  enabled: true\n  agents:\n    mode: explicit\n", "explicit_list"),
])
def test_invalid_values(tmp_path, text, message):
    """Invalid settings are rejected at load time."""
    (tmp_path / ".planq").mkdir()
    (tmp_path / ".planq" / "config.yaml").write_text(text)
    with pytest.raises(ConfigError, match=message):
        load_config(tmp_path)
