"""CLI entry point for planstream."""

from __future__ import annotations

import functools
import os
import sys
from pathlib import Path

import anyio
import click
from click.core import ParameterSource

from planstream import __version__
from planstream.commands import HotkeyCommands
from planstream.config import SessionConfig
from planstream.errors import PlanStreamError, SessionCancelled
from planstream.session import run_session
from planstream.session_log import new_session_log, write_summary
from planstream.store import PlanStore
from planstream.tokens import fmt_tokens
from planstream.transports import get_transport
from planstream.ui import get_ui


def _use_cli_value(ctx: click.Context, name: str) -> bool:
    return ctx.get_parameter_source(name) == ParameterSource.COMMANDLINE


def _resolve_root(root: Path | None) -> Path:
    if root is not None:
        return root.resolve()
    return Path.cwd()


def _resolve_path(root: Path, value: str | None, default: Path) -> Path:
    if value is None or value == "":
        return default
    path = Path(value)
    if path.is_absolute():
        return path
    return root / path


def _force_rich() -> bool:
    return os.environ.get("PLANSTREAM_FORCE_RICH") == "1"


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """planstream - Stream plan proposals into your terminal."""
    pass


@cli.command()
@click.argument("prompt", required=False)
@click.option(
    "--file", "-f", "prompt_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read the prompt from a file",
)
@click.option(
    "--root",
    type=click.Path(path_type=Path),
    help="Project root path (defaults to current directory)",
)
@click.option(
    "--plan-dir",
    type=str,
    help="Plan directory (default: .planstream)",
)
@click.option(
    "--server-cmd",
    help="Plan server command (request piped to stdin, chunks read from stdout)",
)
@click.option(
    "--ui",
    type=click.Choice(["auto", "rich", "plain"]),
    default="auto",
    help="UI mode",
)
@click.option(
    "--no-color",
    is_flag=True,
    help="Disable colors",
)
@click.option(
    "--ascii",
    is_flag=True,
    help="Use ASCII characters only",
)
@click.option(
    "--log-dir",
    type=str,
    help="Session log directory (default: <plan dir>/logs)",
)
@click.option(
    "--no-keys",
    is_flag=True,
    help="Disable hotkeys while streaming",
)
def tell(
    prompt: str | None,
    prompt_file: Path | None,
    root: Path | None,
    plan_dir: str | None,
    server_cmd: str | None,
    ui: str,
    no_color: bool,
    ascii: bool,
    log_dir: str | None,
    no_keys: bool,
) -> None:
    """Send a prompt and stream the proposed plan.

    PROMPT is the prompt text; use --file to read it from a file instead.
    """
    ctx = click.get_current_context()
    root_dir = _resolve_root(root if _use_cli_value(ctx, "root") else None)

    # Build config from environment defaults first.
    config = SessionConfig.from_env(root_dir)

    # Apply CLI overrides when explicitly provided.
    if _use_cli_value(ctx, "plan_dir"):
        config.plan_dir = _resolve_path(root_dir, plan_dir, config.plan_dir)
    if _use_cli_value(ctx, "server_cmd"):
        config.server_cmd = server_cmd
    if _use_cli_value(ctx, "ui"):
        config.ui_mode = ui
    if _use_cli_value(ctx, "no_color"):
        config.no_color = no_color
    if _use_cli_value(ctx, "ascii"):
        config.ascii_only = ascii
    if _use_cli_value(ctx, "log_dir"):
        config.log_dir = Path(log_dir) if log_dir else None
    if _use_cli_value(ctx, "no_keys"):
        config.listen_keys = not no_keys

    ui_impl = get_ui(
        config.ui_mode,
        config.no_color,
        config.ascii_only,
        force_rich=_force_rich(),
    )

    if prompt is not None and prompt_file is not None:
        ui_impl.err("Give the prompt as an argument or with --file, not both")
        sys.exit(2)
    if prompt_file is not None:
        prompt = prompt_file.read_text(encoding="utf-8")
    if not prompt or not prompt.strip():
        ui_impl.err("Prompt is empty")
        sys.exit(2)

    errors = config.validate()
    if errors:
        for error in errors:
            ui_impl.err(error)
        sys.exit(2)
    assert config.server_cmd is not None

    log_paths = new_session_log(config.resolved_log_dir, "tell")
    transport = get_transport(config.server_cmd, cwd=root_dir, log_path=log_paths.log_path)
    store = PlanStore(config.plan_dir)

    session = functools.partial(
        run_session,
        prompt,
        transport=transport,
        store=store,
        ui=ui_impl,
        config=config,
        key_handler=HotkeyCommands(transport),
    )
    try:
        result = anyio.run(session)
    except SessionCancelled as exc:
        write_summary(log_paths, outcome="cancelled", error=exc.to_payload())
        ui_impl.warn(exc.message)
        sys.exit(1)
    except PlanStreamError as exc:
        write_summary(log_paths, outcome="failed", error=exc.to_payload())
        ui_impl.err(exc.message)
        ui_impl.info(f"Session log: {log_paths.log_path}")
        sys.exit(1)

    write_summary(
        log_paths,
        outcome="completed",
        proposal_id=result.proposal_id,
        reply_tokens=result.reply_tokens,
        files=result.files,
    )


@cli.command()
@click.option(
    "--root",
    type=click.Path(path_type=Path),
    help="Project root path (defaults to current directory)",
)
@click.option(
    "--plan-dir",
    type=str,
    help="Plan directory (default: .planstream)",
)
@click.option(
    "--ui",
    type=click.Choice(["auto", "rich", "plain"]),
    default="auto",
    help="UI mode",
)
@click.option(
    "--no-color",
    is_flag=True,
    help="Disable colors",
)
def status(root: Path | None, plan_dir: str | None, ui: str, no_color: bool) -> None:
    """Show where the plan is in its proposal chain."""
    ctx = click.get_current_context()
    root_dir = _resolve_root(root if _use_cli_value(ctx, "root") else None)
    config = SessionConfig.from_env(root_dir)
    if _use_cli_value(ctx, "plan_dir"):
        config.plan_dir = _resolve_path(root_dir, plan_dir, config.plan_dir)
    if _use_cli_value(ctx, "ui"):
        config.ui_mode = ui
    if _use_cli_value(ctx, "no_color"):
        config.no_color = no_color

    ui_impl = get_ui(config.ui_mode, config.no_color, config.ascii_only, force_rich=_force_rich())
    store = PlanStore(config.plan_dir)
    try:
        plan_state = store.get_state()
        entries = store.read_conversation()
    except PlanStreamError as exc:
        ui_impl.err(exc.message)
        sys.exit(1)

    if not plan_state.proposal_id:
        ui_impl.info(f"No proposals yet in {config.plan_dir}")
        return

    ui_impl.section("Plan")
    ui_impl.kv("Proposal", plan_state.proposal_id)
    ui_impl.kv("Root", plan_state.root_id)
    ui_impl.kv("Updated", plan_state.updated_at or "<unknown>")
    ui_impl.kv("Exchanges", str(len(entries)))

    description = plan_state.description
    if description is not None:
        ui_impl.kv("Made plan", "yes" if description.made_plan else "no")
        ui_impl.kv("Files", ", ".join(description.files) if description.files else "<none>")

    if entries:
        last = entries[-1]
        ui_impl.kv("Prompt tokens", fmt_tokens(last.prompt_tokens))
        ui_impl.kv("Reply tokens", fmt_tokens(last.reply_tokens))


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
