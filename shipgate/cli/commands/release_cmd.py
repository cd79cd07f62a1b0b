from __future__ import annotations

from pathlib import Path

import typer

from shipgate.cli.commands._helpers import exit_on_error, exit_with
from shipgate.cli.commands.release_view import (
    print_evaluation,
    print_history,
    print_outcome,
    print_run,
)
from shipgate.cli.context import build_context
from shipgate.core.errors import ErrorCode
from shipgate.output.console import Style
from shipgate.services.release.changeset_file import read_changeset_file
from shipgate.services.release.service import (
    approve_release,
    cancel_release,
    evaluate_release,
    generate_release_notes,
    plan_release,
    publish_release,
    release_history,
    release_status,
    report_rollback,
    set_release_version,
)
from shipgate.services.release.versioning import parse_bump, parse_version_arg


release_app = typer.Typer(add_completion=False, no_args_is_help=True)


@release_app.command("plan")
def plan_cmd(
    changes: Path = typer.Option(..., "--changes", help="Classified change-set JSON file"),
    bump: str | None = typer.Option(None, "--bump", help="Force major/minor/patch/none"),
    current: str | None = typer.Option(
        None, "--current-version", help="Version being released from (default: last published)"
    ),
    branch: str | None = typer.Option(None, "--branch", help="Release branch"),
) -> None:
    """Start a release run from a classified change set."""
    ctx = build_context()

    change_set = exit_on_error(read_changeset_file(path=changes), ctx)
    bump_kind = exit_on_error(parse_bump(bump), ctx)
    current_version = exit_on_error(parse_version_arg(current), ctx) if current else None

    run = exit_on_error(
        plan_release(
            ctx.env,
            change_set=change_set,
            bump=bump_kind,
            current_version=current_version,
            branch=branch,
        ),
        ctx,
    )
    ctx.console.success(f"planned {run.run_id}")
    print_run(ctx.console, run)


@release_app.command("version")
def version_cmd(
    version: str | None = typer.Argument(None, help="Next version (default: suggested by bump)"),
    run_id: str | None = typer.Option(None, "--run", help="Run id (default: active run)"),
) -> None:
    """Set the next version of the active run."""
    ctx = build_context()

    target = exit_on_error(parse_version_arg(version), ctx) if version else None
    run = exit_on_error(set_release_version(ctx.env, version=target, run_id=run_id), ctx)
    ctx.console.success(f"version {run.next_version}")


@release_app.command("notes")
def notes_cmd(
    file: Path | None = typer.Option(None, "--file", help="Read release notes from a file"),
    text: str | None = typer.Option(None, "--text", help="Release notes text"),
    provider: str | None = typer.Option(
        None, "--provider", help="Name of the AI provider that wrote the notes"
    ),
    run_id: str | None = typer.Option(None, "--run", help="Run id (default: active run)"),
) -> None:
    """Attach release notes to the active run."""
    ctx = build_context()

    if (file is None) == (text is None):
        exit_with("pass exactly one of --file or --text", ctx, code=ErrorCode.USER_ERROR)

    body = text or ""
    if file is not None:
        try:
            body = file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            exit_with(f"failed to read notes file: {e}", ctx, code=ErrorCode.IO_ERROR)

    run = exit_on_error(
        generate_release_notes(
            ctx.env,
            text=body,
            ai_generated=provider is not None,
            provider=provider,
            run_id=run_id,
        ),
        ctx,
    )
    ctx.console.success(f"notes ready for {run.next_version}")


@release_app.command("evaluate")
def evaluate_cmd(
    run_id: str | None = typer.Option(None, "--run", help="Run id (default: active run)"),
) -> None:
    """Show the governance risk evaluation without changing the run."""
    ctx = build_context()

    evaluation = exit_on_error(evaluate_release(ctx.env, run_id=run_id), ctx)
    print_evaluation(ctx.console, evaluation)


@release_app.command("approve")
def approve_cmd(
    yes: bool = typer.Option(False, "--yes", "-y", help="Confirm the approval"),
    auto: bool = typer.Option(False, "--auto", help="Request auto-approval by governance"),
    run_id: str | None = typer.Option(None, "--run", help="Run id (default: active run)"),
) -> None:
    """Approve the active run for publishing."""
    ctx = build_context()

    run = exit_on_error(
        approve_release(ctx.env, auto_approve=auto, confirmed=yes, run_id=run_id),
        ctx,
    )
    approval = run.approval
    how = "auto-approved" if approval is not None and approval.auto_approved else "approved"
    ctx.console.success(f"{run.next_version} {how} by {ctx.env.actor.name}")
    if approval is not None and approval.risk_score is not None:
        ctx.console.print(f"risk {approval.risk_score:.2f} ({approval.decision})", Style.DIM)


@release_app.command("publish")
def publish_cmd(
    run_id: str | None = typer.Option(None, "--run", help="Run id (default: active run)"),
) -> None:
    """Publish the approved run."""
    ctx = build_context()

    run = exit_on_error(publish_release(ctx.env, run_id=run_id), ctx)
    ctx.console.success(f"published {run.next_version}")


@release_app.command("cancel")
def cancel_cmd(
    reason: str = typer.Option("", "--reason", help="Why the run is canceled"),
    run_id: str | None = typer.Option(None, "--run", help="Run id (default: active run)"),
) -> None:
    """Cancel the active run."""
    ctx = build_context()

    run = exit_on_error(cancel_release(ctx.env, reason=reason, run_id=run_id), ctx)
    ctx.console.success(f"canceled {run.run_id}")


@release_app.command("status")
def status_cmd(
    run_id: str | None = typer.Option(None, "--run", help="Run id (default: active or latest)"),
) -> None:
    """Show the active (or most recent) run."""
    ctx = build_context()

    run = exit_on_error(release_status(ctx.env, run_id=run_id), ctx)
    if run is None:
        ctx.console.print("no release runs yet", Style.DIM)
        return
    print_run(ctx.console, run)


@release_app.command("rollback")
def rollback_cmd(
    run_id: str | None = typer.Option(None, "--run", help="Run id (default: last published)"),
) -> None:
    """Record that a published release was rolled back."""
    ctx = build_context()

    outcome = exit_on_error(report_rollback(ctx.env, run_id=run_id), ctx)
    ctx.console.warning(f"rollback recorded for {outcome.version or outcome.release_id}")
    print_outcome(ctx.console, outcome)


@release_app.command("history")
def history_cmd(
    limit: int = typer.Option(20, "--limit", min=1, help="Number of runs to show"),
) -> None:
    """List recent release runs."""
    ctx = build_context()

    runs = exit_on_error(release_history(ctx.env, limit=limit), ctx)
    print_history(ctx.console, runs)
