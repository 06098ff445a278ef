"""planq CLI: typer-based command interface."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict
from pathlib import Path

import typer

from .errors import PlanError

app = typer.Typer(
    name="planq",
    help="planq: multi-file plan compiler for agent orchestration",
    no_args_is_help=True,
)

# -------------------------------------------------------------------
# Templates
# -------------------------------------------------------------------

DEFAULT_CONFIG_TEMPLATE = """\
# .planq/config.yaml: team-shared configuration
max_concurrency: 0   # 0 = unlimited
timeout_sec: 36000
log_level: info
log_dir: .planq/logs

quality_control:
  enabled: false
  retry_on_red: 2
  agents:
    mode: auto
    max_agents: 4
"""

DEFAULT_LOCAL_CONFIG_TEMPLATE = """\
# .planq/local.config.yaml: personal overrides (DO NOT commit)
# log_level: debug
# quality_control:
#   enabled: true
"""

GITIGNORE_ENTRIES = [
    ".planq/local.config.yaml",
    ".planq/logs/",
]

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------

def _get_project_root() -> Path:
    return Path.cwd()


def _setup_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else _LEVELS.get(level, logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _fail(error: Exception) -> None:
    typer.echo(f"  Error: {error}", err=True)
    raise typer.Exit(1)


def _load(ctx: typer.Context):
    from .config import load_config

    config = load_config(_get_project_root())
    _setup_logging(config.log_level, ctx.obj.get("verbose", False))
    return config


def _compile(ctx: typer.Context, paths: list[Path]):
    from .compiler import compile_plan
    from .loader import load_plan_fragments

    config = _load(ctx)
    fragments = load_plan_fragments(paths)
    return compile_plan(fragments, config)


def _label(source_file: str, number: str) -> str:
    return f"{os.path.basename(source_file)}:{number}" if source_file else number


# -------------------------------------------------------------------
# Commands
# -------------------------------------------------------------------

@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    ctx.obj = {"verbose": verbose}


@app.command()
def init():
    """Initialize planq configuration in the current project."""
    root = _get_project_root()

    config_dir = root / ".planq"
    config_dir.mkdir(exist_ok=True)

    config_path = config_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text(DEFAULT_CONFIG_TEMPLATE)
        typer.echo(f"  Created {config_path.relative_to(root)}")
    else:
        typer.echo(f"  Exists  {config_path.relative_to(root)}")

    local_path = config_dir / "local.config.yaml"
    if not local_path.exists():
        local_path.write_text(DEFAULT_LOCAL_CONFIG_TEMPLATE)
        typer.echo(f"  Created {local_path.relative_to(root)}")

    gitignore_path = root / ".gitignore"
    existing = gitignore_path.read_text() if gitignore_path.exists() else ""
    additions = [e for e in GITIGNORE_ENTRIES if e not in existing]
    if additions:
        with open(gitignore_path, "a") as f:
            if existing and not existing.endswith("\n"):
                f.write("\n")
            f.write("# planq\n")
            for entry in additions:
                f.write(f"{entry}\n")
        typer.echo("  Updated .gitignore")

    typer.echo("\n  planq initialized. Run `planq validate <plans>` to check a plan.")


@app.command()
def validate(ctx: typer.Context, paths: list[Path] = typer.Argument(..., help="Plan files or directories")):
    """Load, merge and validate plan files."""
    try:
        plan = _compile(ctx, paths)
    except PlanError as e:
        _fail(e)

    qc = plan.quality_control
    typer.echo("")
    typer.echo(f"  Plan: {plan.name}")
    typer.echo(
        f"  Files: {len(plan.file_to_task_map)} · Tasks: {len(plan.tasks)} · "
        f"Waves: {len(plan.waves)}"
    )
    if qc.enabled:
        typer.echo(f"  QC: enabled ({qc.agents.mode}, retry_on_red={qc.retry_on_red})")
    else:
        typer.echo("  QC: disabled")
    typer.echo("  Plan is valid.")
    typer.echo("")


@app.command()
def waves(ctx: typer.Context, paths: list[Path] = typer.Argument(..., help="Plan files or directories")):
    """Show the execution waves of the merged plan."""
    try:
        plan = _compile(ctx, paths)
    except PlanError as e:
        _fail(e)

    from .dag import wave_refs

    typer.echo("")
    for wave in plan.waves:
        typer.echo(f"  {wave.name} (max concurrency {wave.max_concurrency})")
        for source_file, number in wave_refs(wave):
            task = plan.get_task(number, source_file)
            name = task.name if task else ""
            typer.echo(f"    {_label(source_file, number):<24} {name}")
    typer.echo("")


@app.command()
def deps(ctx: typer.Context, paths: list[Path] = typer.Argument(..., help="Plan files or directories")):
    """Show each task's canonical dependency keys."""
    from .loader import load_plan_fragments
    from .merge import merge_plans

    try:
        _load(ctx)
        plan = merge_plans(load_plan_fragments(paths))
    except PlanError as e:
        _fail(e)

    typer.echo("\n  Dependencies")
    typer.echo("  " + "─" * 40)
    for task in plan.tasks:
        label = _label(task.source_file, task.number)
        if task.depends_on:
            typer.echo(f"  {label} ← {', '.join(task.depends_on)}")
        else:
            typer.echo(f"  {label} (root)")
    typer.echo("")


@app.command()
def config(ctx: typer.Context):
    """Show the merged configuration."""
    import yaml

    try:
        cfg = _load(ctx)
    except PlanError as e:
        _fail(e)
    typer.echo(yaml.safe_dump(asdict(cfg), sort_keys=False).rstrip())


if __name__ == "__main__":
    app()
