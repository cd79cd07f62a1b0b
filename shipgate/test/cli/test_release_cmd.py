from __future__ import annotations

from pathlib import Path

import pytest
import typer

from shipgate.cli.context import CLIContext
from shipgate.core.errors import ErrorCode
from shipgate.core.result import Ok
from shipgate.output.console import MockConsole
from shipgate.services.governance.memory import InMemoryReleaseMemory
from shipgate.services.release.changeset_file import write_changeset_file
from shipgate.services.release.service import open_release_env
from shipgate.test._builders import change_set


def _ctx(tmp_path: Path, *, config: str | None = None, environ: dict[str, str] | None = None) -> CLIContext:
    if config is not None:
        (tmp_path / "shipgate.toml").write_text(config, encoding="utf-8")
    env = open_release_env(
        root=tmp_path,
        environ=environ or {"USER": "alice"},
        memory=InMemoryReleaseMemory(),
    )
    assert isinstance(env, Ok), env
    return CLIContext(env=env.value, console=MockConsole())


def _console(ctx: CLIContext) -> MockConsole:
    assert isinstance(ctx.console, MockConsole)
    return ctx.console


def _changes(tmp_path: Path, **counts: int) -> Path:
    path = tmp_path / "changes.json"
    assert isinstance(write_changeset_file(path=path, change_set=change_set(**counts)), Ok)
    return path


def _patch(monkeypatch: pytest.MonkeyPatch, ctx: CLIContext) -> None:
    import shipgate.cli.commands.release_cmd as release_cmd

    monkeypatch.setattr(release_cmd, "build_context", lambda: ctx)


def _plan(tmp_path: Path, **counts: int) -> None:
    import shipgate.cli.commands.release_cmd as release_cmd

    release_cmd.plan_cmd(changes=_changes(tmp_path, **counts), bump=None, current=None, branch=None)


def test_release_flow_end_to_end(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import shipgate.cli.commands.release_cmd as release_cmd

    ctx = _ctx(tmp_path)
    _patch(monkeypatch, ctx)
    console = _console(ctx)

    release_cmd.plan_cmd(changes=_changes(tmp_path, features=2), bump=None, current="1.0.0", branch=None)
    assert console.find("OK planned run-")
    assert console.find("suggested: 1.1.0 (minor)")

    release_cmd.version_cmd(version=None, run_id=None)
    release_cmd.notes_cmd(file=None, text="## 1.1.0", provider=None, run_id=None)
    release_cmd.approve_cmd(yes=True, auto=False, run_id=None)
    release_cmd.publish_cmd(run_id=None)

    assert "OK version 1.1.0" in console.messages
    assert "OK published 1.1.0" in console.messages
    assert not console.has_error()

    release_cmd.status_cmd(run_id=None)
    assert console.find("state: published")

    release_cmd.history_cmd(limit=5)
    assert console.find("published")


def test_plan_rejects_bad_bump(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import shipgate.cli.commands.release_cmd as release_cmd

    ctx = _ctx(tmp_path)
    _patch(monkeypatch, ctx)

    with pytest.raises(typer.Exit) as exc:
        release_cmd.plan_cmd(changes=_changes(tmp_path, fixes=1), bump="huge", current=None, branch=None)
    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
    assert _console(ctx).has_error()


def test_plan_empty_change_set(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ctx = _ctx(tmp_path)
    _patch(monkeypatch, ctx)

    with pytest.raises(typer.Exit) as exc:
        _plan(tmp_path)
    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
    assert _console(ctx).find("no commits")


def test_second_plan_conflicts(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ctx = _ctx(tmp_path)
    _patch(monkeypatch, ctx)
    _plan(tmp_path, fixes=1)

    with pytest.raises(typer.Exit) as exc:
        _plan(tmp_path, fixes=2)
    assert exc.value.exit_code == int(ErrorCode.CONFLICT)


def test_out_of_order_step_prints_hint(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import shipgate.cli.commands.release_cmd as release_cmd

    ctx = _ctx(tmp_path)
    _patch(monkeypatch, ctx)
    _plan(tmp_path, fixes=1)

    with pytest.raises(typer.Exit) as exc:
        release_cmd.publish_cmd(run_id=None)
    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
    assert "hint: run 'shipgate release version' first" in _console(ctx).messages


def test_notes_needs_exactly_one_source(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import shipgate.cli.commands.release_cmd as release_cmd

    ctx = _ctx(tmp_path)
    _patch(monkeypatch, ctx)

    with pytest.raises(typer.Exit) as exc:
        release_cmd.notes_cmd(file=None, text=None, provider=None, run_id=None)
    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)

    notes = tmp_path / "NOTES.md"
    notes.write_text("x", encoding="utf-8")
    with pytest.raises(typer.Exit):
        release_cmd.notes_cmd(file=notes, text="y", provider=None, run_id=None)


def test_notes_from_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import shipgate.cli.commands.release_cmd as release_cmd

    ctx = _ctx(tmp_path)
    _patch(monkeypatch, ctx)
    _plan(tmp_path, fixes=1)
    release_cmd.version_cmd(version="0.0.5", run_id=None)

    notes = tmp_path / "NOTES.md"
    notes.write_text("## 0.0.5\n\n- fixed things\n", encoding="utf-8")
    release_cmd.notes_cmd(file=notes, text=None, provider="claude", run_id=None)

    release_cmd.status_cmd(run_id=None)
    assert _console(ctx).find("notes: ## 0.0.5")


def test_notes_file_not_utf8(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import shipgate.cli.commands.release_cmd as release_cmd

    ctx = _ctx(tmp_path)
    _patch(monkeypatch, ctx)
    _plan(tmp_path, fixes=1)
    release_cmd.version_cmd(version=None, run_id=None)

    notes = tmp_path / "NOTES.md"
    notes.write_bytes(b"\xff\xfe release notes")
    with pytest.raises(typer.Exit) as exc:
        release_cmd.notes_cmd(file=notes, text=None, provider=None, run_id=None)
    assert exc.value.exit_code == int(ErrorCode.IO_ERROR)
    assert _console(ctx).find("failed to read notes file")


def test_governance_rejection_exit_code(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import shipgate.cli.commands.release_cmd as release_cmd

    config = (
        "[governance]\nenabled = true\nstrict_mode = true\n\n"
        "[[governance.rules]]\nname = \"freeze\"\nthen = [{ action = \"block\", reason = \"code freeze\" }]\n"
    )
    ctx = _ctx(tmp_path, config=config)
    _patch(monkeypatch, ctx)
    _plan(tmp_path, fixes=1)
    release_cmd.version_cmd(version=None, run_id=None)
    release_cmd.notes_cmd(file=None, text="notes", provider=None, run_id=None)

    release_cmd.evaluate_cmd(run_id=None)
    console = _console(ctx)
    assert console.find("decision: rejected")
    assert console.find("- rule freeze: blocked: code freeze")

    with pytest.raises(typer.Exit) as exc:
        release_cmd.approve_cmd(yes=True, auto=False, run_id=None)
    assert exc.value.exit_code == int(ErrorCode.GOVERNANCE_REJECTED)
    assert console.find("error: rejected:")


def test_evaluate_without_governance(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import shipgate.cli.commands.release_cmd as release_cmd

    ctx = _ctx(tmp_path)
    _patch(monkeypatch, ctx)
    _plan(tmp_path, fixes=1)

    with pytest.raises(typer.Exit) as exc:
        release_cmd.evaluate_cmd(run_id=None)
    assert exc.value.exit_code == int(ErrorCode.ENV_ERROR)


def test_cancel_and_empty_status(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import shipgate.cli.commands.release_cmd as release_cmd

    ctx = _ctx(tmp_path)
    _patch(monkeypatch, ctx)
    console = _console(ctx)

    release_cmd.status_cmd(run_id=None)
    assert "no release runs yet" in console.messages

    _plan(tmp_path, fixes=1)
    release_cmd.cancel_cmd(reason="oops", run_id=None)
    assert console.find("OK canceled run-")


def test_rollback(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import shipgate.cli.commands.release_cmd as release_cmd

    ctx = _ctx(tmp_path)
    _patch(monkeypatch, ctx)

    with pytest.raises(typer.Exit) as exc:
        release_cmd.rollback_cmd(run_id=None)
    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)

    _plan(tmp_path, fixes=1)
    release_cmd.version_cmd(version=None, run_id=None)
    release_cmd.notes_cmd(file=None, text="notes", provider=None, run_id=None)
    release_cmd.approve_cmd(yes=False, auto=False, run_id=None)
    release_cmd.publish_cmd(run_id=None)

    release_cmd.rollback_cmd(run_id=None)
    console = _console(ctx)
    assert console.find("warning: rollback recorded for 0.0.1")
    assert "outcome: rollback" in console.messages
