"""Shared fixtures for planq tests."""

import pytest

from planq.models import Task


PLAN_A = """\
conductor:
  default_agent: python-pro
plan:
  metadata:
    feature_name: Auth Backend
  tasks:
    - task_number: 1
      name: User model
      files: [models/user.py]
      estimated_time: 30m
      description: Create the user model.
    - task_number: 2
      name: Session store
      files: [auth/session.py]
      depends_on: [1]
      estimated_time: 1h
      description: Add session storage.
"""

PLAN_B = """\
plan:
  metadata:
    feature_name: Auth API
  tasks:
    - task_number: 3
      name: Login endpoint
      files: [api/login.py]
      depends_on:
        - file: plan-a.yaml
          task: 2
      description: Expose login over HTTP.
"""


def make_task(number, depends_on=None, **kwargs):
    """Task with just enough fields to pass validation."""
    kwargs.setdefault("name", f"Task {number}")
    kwargs.setdefault("prompt", f"Do task {number}")
    return Task(number=str(number), depends_on=list(depends_on or []), **kwargs)


@pytest.fixture
def tmp_project(tmp_path):
    """Temporary project with a team config under .planq/."""
    config_dir = tmp_path / ".planq"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text("""\
max_concurrency: 4
timeout_sec: 600
log_level: info
quality_control:
  enabled: false
  retry_on_red: 2
  agents:
    mode: auto
""")
    return tmp_path


@pytest.fixture
def write_plan(tmp_path):
    """Write a plan file under tmp_path/plans and return its path."""
    plans_dir = tmp_path / "plans"
    plans_dir.mkdir(exist_ok=True)

    def _write(name, text):
        path = plans_dir / name
        path.write_text(text)
        return path

    return _write


@pytest.fixture
def two_file_plans(write_plan):
    """plan-a.yaml (tasks 1, 2) and plan-b.yaml (task 3 → plan-a task 2)."""
    a = write_plan("plan-a.yaml", PLAN_A)
    b = write_plan("plan-b.yaml", PLAN_B)
    return a, b
