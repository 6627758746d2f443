"""
jiragate CLI entry point.

Commands:
  jiragate serve          run the MCP gateway over stdio
  jiragate config check   validate configuration and show the security posture
  jiragate config path    print the config file location
  jiragate tools          list the tools the gateway exposes
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.table import Table

from jiragate import __version__
from jiragate.core.constants import ExitCode
from jiragate.core.exceptions import ConfigError

if TYPE_CHECKING:
    from jiragate.core.config import GatewayConfig

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="jiragate %(version)s")
@click.option("--log-level", default=None, help="Log level (overrides config).")
@click.option("--log-json", is_flag=True, default=False, help="Emit JSON log lines.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.toml (default: $JIRAGATE_CONFIG or the platform config dir).",
)
@click.pass_context
def cli(
    ctx: click.Context, log_level: str | None, log_json: bool, config_path: str | None
) -> None:
    """jiragate: governed MCP gateway for Jira Cloud."""
    from jiragate.core.logging import configure_logging

    configure_logging(level=log_level or "WARNING", json_output=log_json)
    ctx.ensure_object(dict)
    ctx.obj.update(log_level=log_level, log_json=log_json, config_path=config_path)


def _load(ctx: click.Context) -> GatewayConfig:
    from jiragate.core.config import load_config

    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        raise SystemExit(ExitCode.CONFIG_ERROR) from exc


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Run the MCP gateway over stdio."""
    from jiragate.core.logging import configure_logging
    from jiragate.server import serve as run_server

    cfg = _load(ctx)
    missing = cfg.jira.missing_credentials()
    if missing:
        err_console.print(
            f"[red]Missing Jira credentials:[/red] {', '.join(missing)}\n"
            "Set them in the environment or in the [jira] section of the config file."
        )
        raise SystemExit(ExitCode.CONFIG_ERROR)

    configure_logging(
        level=ctx.obj.get("log_level") or cfg.logging.level,
        json_output=ctx.obj.get("log_json") or cfg.logging.format == "json",
    )
    try:
        asyncio.run(run_server(cfg))
    except KeyboardInterrupt:
        pass


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.group("config")
def config_group() -> None:
    """Inspect jiragate configuration."""


@config_group.command("check")
@click.option("--json", "as_json", is_flag=True, default=False)
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate configuration and print the effective security settings."""
    cfg = _load(ctx)
    summary = cfg.security_summary()
    missing = cfg.jira.missing_credentials()

    if as_json:
        click.echo(
            json.dumps(
                {"host": cfg.jira.host, "missing_credentials": missing, "security": summary},
                indent=2,
            )
        )
        return

    table = Table(title="jiragate security settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in summary.items():
        if isinstance(value, dict):
            value = ", ".join(f"{k}={v}" for k, v in value.items())
        table.add_row(key, str(value))
    console.print(f"Jira host: [bold]{cfg.jira.host or '(not set)'}[/bold]")
    console.print(table)
    if missing:
        console.print(f"[yellow]Missing credentials:[/yellow] {', '.join(missing)}")
    else:
        console.print("[green]Configuration OK[/green]")


@config_group.command("path")
@click.pass_context
def config_path_cmd(ctx: click.Context) -> None:
    """Print the configuration file location."""
    from jiragate.core.config import _config_file_path

    path = ctx.obj.get("config_path") or _config_file_path()[0]
    click.echo(str(path))


# ---------------------------------------------------------------------------
# tools
# ---------------------------------------------------------------------------


@cli.command("tools")
@click.option("--json", "as_json", is_flag=True, default=False)
@click.pass_context
def tools_cmd(ctx: click.Context, as_json: bool) -> None:
    """List the tools the gateway exposes and whether configuration enables them."""
    from jiragate.tools.registry import get_default_registry

    cfg = _load(ctx)
    registry = get_default_registry()
    rows = [
        {
            "name": t.name,
            "class": str(t.operation_class),
            "resource": t.resource,
            "enabled": cfg.is_operation_allowed(t.name),
            "confirmation": (
                cfg.confirmation_phrase_for(t.name)
                if "confirmation" in t.args_model.model_fields
                else None
            ),
        }
        for t in registry.list_all()
    ]

    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return

    table = Table(title=f"jiragate tools ({len(rows)})", show_header=True)
    table.add_column("Tool", style="cyan")
    table.add_column("Class")
    table.add_column("Resource")
    table.add_column("Enabled")
    table.add_column("Confirmation")
    for row in rows:
        table.add_row(
            row["name"],
            row["class"],
            row["resource"],
            "[green]yes[/green]" if row["enabled"] else "[red]no[/red]",
            row["confirmation"] or "",
        )
    console.print(table)


if __name__ == "__main__":
    cli()
