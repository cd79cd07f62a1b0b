"""File-backed persistence for release runs.

Layout under the repository root::

    .shipgate/runs/<run_id>.json   one document per run
    .shipgate/runs/latest          id of the most recently created run
    .shipgate/runs/lock            held while a run is created or saved

Each document carries a ``revision``. ``save`` only succeeds when the revision
on disk still equals the revision the caller loaded, so two processes racing
on the same run cannot silently overwrite each other.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import cast

from shipgate.core.result import Err, Ok, Result
from shipgate.core.structured import (
    StrDict,
    as_obj_list,
    as_str_dict,
    get_bool,
    get_float,
    get_int,
    get_str,
    get_table,
)
from shipgate.platform.files import LockTimeoutError, atomic_write_text, exclusive_lock
from shipgate.services.release.errors import ReleaseError
from shipgate.services.release.model import (
    BUMP_KINDS,
    COMMIT_CATEGORIES,
    Approval,
    BumpKind,
    ChangeSet,
    Commit,
    CommitCategory,
    ReleaseNotes,
    TransitionRecord,
)
from shipgate.services.release.run import ReleaseRun
from shipgate.services.release.semver import SemVer, parse_version
from shipgate.services.release.state import parse_state

logger = logging.getLogger(__name__)

RUN_SCHEMA = 1


def state_dir(root: Path) -> Path:
    return root / ".shipgate"


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(table: StrDict, key: str) -> datetime | None:
    raw = get_str(table, key)
    if raw is None:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def _raw_str(table: StrDict, key: str) -> str:
    value = table.get(key)
    return value if isinstance(value, str) else ""


def _version(table: StrDict, key: str) -> SemVer | None:
    raw = get_str(table, key)
    return parse_version(raw) if raw is not None else None


# -- encoding -----------------------------------------------------------------


def run_to_dict(run: ReleaseRun) -> dict[str, object]:
    change_set: dict[str, object] | None = None
    if run.change_set is not None:
        change_set = {
            "files_changed": run.change_set.files_changed,
            "commits": [
                {
                    "sha": c.sha,
                    "subject": c.subject,
                    "category": c.category,
                    "scope": c.scope,
                    "body": c.body,
                }
                for c in run.change_set.commits
            ],
        }

    notes: dict[str, object] | None = None
    if run.notes is not None:
        notes = {
            "text": run.notes.text,
            "ai_generated": run.notes.ai_generated,
            "provider": run.notes.provider,
            "generated_at": _dt(run.notes.generated_at),
        }

    approval: dict[str, object] | None = None
    if run.approval is not None:
        approval = {
            "approved_by": run.approval.approved_by,
            "auto_approved": run.approval.auto_approved,
            "timestamp": _dt(run.approval.timestamp),
            "risk_score": run.approval.risk_score,
            "decision": run.approval.decision,
        }

    return {
        "schema": RUN_SCHEMA,
        "run_id": run.run_id,
        "repo_path": run.repo_path,
        "branch": run.branch,
        "state": run.state,
        "current_version": str(run.current_version),
        "next_version": (str(run.next_version) if run.next_version is not None else None),
        "bump": run.bump,
        "change_set": change_set,
        "notes": notes,
        "approval": approval,
        "created_at": _dt(run.created_at),
        "updated_at": _dt(run.updated_at),
        "published_at": _dt(run.published_at),
        "last_error": run.last_error,
        "revision": run.revision,
        "history": [
            {
                "at": _dt(h.at),
                "from": h.from_state,
                "to": h.to_state,
                "event": h.event,
                "actor": h.actor,
                "reason": h.reason,
            }
            for h in run.history
        ],
    }


def _decode_change_set(obj: object) -> ChangeSet | None:
    table = as_str_dict(obj)
    if table is None:
        return None
    commits: list[Commit] = []
    for item in as_obj_list(table.get("commits")) or []:
        row = as_str_dict(item)
        if row is None:
            return None
        sha = get_str(row, "sha")
        subject = get_str(row, "subject")
        category = get_str(row, "category")
        if sha is None or subject is None or category not in COMMIT_CATEGORIES:
            return None
        commits.append(
            Commit(
                sha=sha,
                subject=subject,
                category=cast(CommitCategory, category),
                scope=get_str(row, "scope"),
                body=_raw_str(row, "body"),
            )
        )
    return ChangeSet(commits=tuple(commits), files_changed=get_int(table, "files_changed") or 0)


def run_from_dict(obj: object) -> ReleaseRun | None:
    d = as_str_dict(obj)
    if d is None or get_int(d, "schema") != RUN_SCHEMA:
        return None

    run_id = get_str(d, "run_id")
    repo_path = get_str(d, "repo_path")
    state = parse_state(get_str(d, "state"))
    current = _version(d, "current_version")
    created_at = _parse_dt(d, "created_at")
    updated_at = _parse_dt(d, "updated_at")
    revision = get_int(d, "revision")
    if (
        run_id is None
        or repo_path is None
        or state is None
        or current is None
        or created_at is None
        or updated_at is None
        or revision is None
    ):
        return None

    change_set: ChangeSet | None = None
    if d.get("change_set") is not None:
        change_set = _decode_change_set(d.get("change_set"))
        if change_set is None:
            return None

    notes: ReleaseNotes | None = None
    notes_t = get_table(d, "notes")
    if notes_t is not None:
        text = notes_t.get("text")
        if not isinstance(text, str):
            return None
        notes = ReleaseNotes(
            text=text,
            ai_generated=bool(get_bool(notes_t, "ai_generated")),
            provider=get_str(notes_t, "provider"),
            generated_at=_parse_dt(notes_t, "generated_at"),
        )

    approval: Approval | None = None
    approval_t = get_table(d, "approval")
    if approval_t is not None:
        approved_by = get_str(approval_t, "approved_by")
        timestamp = _parse_dt(approval_t, "timestamp")
        if approved_by is None or timestamp is None:
            return None
        approval = Approval(
            approved_by=approved_by,
            auto_approved=bool(get_bool(approval_t, "auto_approved")),
            timestamp=timestamp,
            risk_score=get_float(approval_t, "risk_score"),
            decision=get_str(approval_t, "decision"),
        )

    history: list[TransitionRecord] = []
    for item in as_obj_list(d.get("history")) or []:
        row = as_str_dict(item)
        if row is None:
            continue
        at = _parse_dt(row, "at")
        if at is None:
            continue
        history.append(
            TransitionRecord(
                at=at,
                from_state=get_str(row, "from") or "",
                to_state=get_str(row, "to") or "",
                event=get_str(row, "event") or "",
                actor=get_str(row, "actor") or "",
                reason=get_str(row, "reason") or "",
            )
        )

    bump_s = get_str(d, "bump")
    bump: BumpKind = cast(BumpKind, bump_s) if bump_s in BUMP_KINDS else "none"

    return ReleaseRun(
        run_id=run_id,
        repo_path=repo_path,
        branch=get_str(d, "branch") or "",
        state=state,
        current_version=current,
        created_at=created_at,
        updated_at=updated_at,
        change_set=change_set,
        next_version=_version(d, "next_version"),
        bump=bump,
        notes=notes,
        approval=approval,
        published_at=_parse_dt(d, "published_at"),
        last_error=get_str(d, "last_error"),
        revision=revision,
        history=tuple(history),
    )


# -- store --------------------------------------------------------------------


def _lock_error(e: OSError, path: Path) -> Err[ReleaseError]:
    if isinstance(e, LockTimeoutError):
        return Err(
            ReleaseError(
                kind="concurrent_modification",
                message="another shipgate process is writing release runs",
                hint=f"Retry, or remove {path} if no shipgate process is running.",
            )
        )
    return Err(
        ReleaseError(
            kind="io_failed",
            message=f"failed to lock release runs: {e}",
            hint=str(path),
        )
    )


class RunStore:
    """Run documents under ``.shipgate/runs``.

    ``create`` and ``save`` hold ``.shipgate/runs/lock`` while they check and
    write, so the one-active-run rule and the revision check see the same
    files they replace.
    """

    def __init__(self, root: Path, *, lock_timeout: float = 10.0) -> None:
        self._root = root
        self._lock_timeout = lock_timeout

    @property
    def runs_dir(self) -> Path:
        return state_dir(self._root) / "runs"

    def _path(self, run_id: str) -> Path:
        return self.runs_dir / f"{run_id}.json"

    @property
    def _latest_path(self) -> Path:
        return self.runs_dir / "latest"

    @property
    def lock_path(self) -> Path:
        return self.runs_dir / "lock"

    def _write(self, run: ReleaseRun) -> Result[None, ReleaseError]:
        path = self._path(run.run_id)
        try:
            atomic_write_text(path, json.dumps(run_to_dict(run), indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="io_failed",
                    message=f"failed to write release run: {e}",
                    hint=str(path),
                )
            )
        return Ok(None)

    def _read(self, path: Path) -> Result[ReleaseRun, ReleaseError]:
        try:
            obj: object = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            return Err(
                ReleaseError(
                    kind="io_failed",
                    message=f"failed to load release run: {e}",
                    hint=str(path),
                )
            )
        run = run_from_dict(obj)
        if run is None:
            return Err(
                ReleaseError(
                    kind="io_failed",
                    message="release run file is malformed or uses an unsupported schema",
                    hint=str(path),
                )
            )
        return Ok(run)

    def load(self, run_id: str) -> Result[ReleaseRun, ReleaseError]:
        path = self._path(run_id)
        if not path.exists():
            return Err(
                ReleaseError(
                    kind="run_not_found",
                    message=f"release run not found: {run_id}",
                    hint="run 'shipgate release history' to list runs",
                )
            )
        return self._read(path)

    def list_runs(self) -> Result[list[ReleaseRun], ReleaseError]:
        """All readable runs, newest first.

        Unreadable documents are logged and skipped; ``load`` still reports
        them by id.
        """
        if not self.runs_dir.is_dir():
            return Ok([])
        runs: list[ReleaseRun] = []
        for path in sorted(self.runs_dir.glob("run-*.json")):
            loaded = self._read(path)
            if isinstance(loaded, Err):
                logger.warning("skipping %s: %s", path.name, loaded.error.message)
                continue
            runs.append(loaded.value)
        runs.sort(key=lambda r: r.created_at, reverse=True)
        return Ok(runs)

    def find_active(self, repo_path: str | None = None) -> Result[ReleaseRun | None, ReleaseError]:
        listed = self.list_runs()
        if isinstance(listed, Err):
            return listed
        for run in listed.value:
            if run.is_terminal:
                continue
            if repo_path is not None and run.repo_path != repo_path:
                continue
            return Ok(run)
        return Ok(None)

    def find_latest(self) -> Result[ReleaseRun | None, ReleaseError]:
        pointer = self._latest_path
        if pointer.exists():
            try:
                run_id = pointer.read_text(encoding="utf-8").strip()
            except (OSError, ValueError) as e:
                return Err(
                    ReleaseError(
                        kind="io_failed",
                        message=f"failed to read latest run pointer: {e}",
                        hint=str(pointer),
                    )
                )
            if run_id and self._path(run_id).exists():
                return self._read(self._path(run_id))

        listed = self.list_runs()
        if isinstance(listed, Err):
            return listed
        return Ok(listed.value[0] if listed.value else None)

    def create(self, run: ReleaseRun) -> Result[ReleaseRun, ReleaseError]:
        """Persist a new run at revision 1."""
        try:
            with exclusive_lock(self.lock_path, timeout=self._lock_timeout):
                return self._create_locked(run)
        except OSError as e:
            return _lock_error(e, self.lock_path)

    def _create_locked(self, run: ReleaseRun) -> Result[ReleaseRun, ReleaseError]:
        active = self.find_active(run.repo_path)
        if isinstance(active, Err):
            return active
        if active.value is not None:
            return Err(
                ReleaseError(
                    kind="active_run_exists",
                    message=f"run {active.value.run_id} is still {active.value.state}",
                    hint="Finish it or run 'shipgate release cancel' first.",
                )
            )
        if self._path(run.run_id).exists():
            return Err(
                ReleaseError(
                    kind="concurrent_modification",
                    message=f"release run already exists: {run.run_id}",
                )
            )

        stored = run.with_revision(1)
        written = self._write(stored)
        if isinstance(written, Err):
            return written
        try:
            atomic_write_text(self._latest_path, stored.run_id + "\n", encoding="utf-8")
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="io_failed",
                    message=f"failed to update latest run pointer: {e}",
                    hint=str(self._latest_path),
                )
            )
        return Ok(stored)

    def save(self, run: ReleaseRun) -> Result[ReleaseRun, ReleaseError]:
        """Write ``run`` if nobody else saved it since it was loaded.

        Returns the run at its new revision.
        """
        try:
            with exclusive_lock(self.lock_path, timeout=self._lock_timeout):
                return self._save_locked(run)
        except OSError as e:
            return _lock_error(e, self.lock_path)

    def _save_locked(self, run: ReleaseRun) -> Result[ReleaseRun, ReleaseError]:
        on_disk = self.load(run.run_id)
        if isinstance(on_disk, Err):
            return on_disk
        if on_disk.value.revision != run.revision:
            return Err(
                ReleaseError(
                    kind="concurrent_modification",
                    message=(
                        f"run {run.run_id} changed on disk "
                        f"(revision {on_disk.value.revision}, expected {run.revision})"
                    ),
                    hint="Reload the run and retry.",
                )
            )
        stored = run.with_revision(run.revision + 1)
        written = self._write(stored)
        if isinstance(written, Err):
            return written
        return Ok(stored)

    def delete(self, run_id: str) -> Result[None, ReleaseError]:
        path = self._path(run_id)
        if not path.exists():
            return Ok(None)
        try:
            path.unlink()
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="io_failed",
                    message=f"failed to delete release run: {e}",
                    hint=str(path),
                )
            )
        return Ok(None)
