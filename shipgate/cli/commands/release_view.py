from __future__ import annotations

from shipgate.output.console import ConsoleProtocol, Style
from shipgate.services.governance.memory import Outcome
from shipgate.services.governance.model import RiskEvaluation
from shipgate.services.release.run import ReleaseRun
from shipgate.services.release.state import next_step_hint

_SEVERITY_STYLE = {"low": Style.SUCCESS, "medium": Style.WARNING, "high": Style.ERROR}


def print_run(console: ConsoleProtocol, run: ReleaseRun) -> None:
    console.header(f"Release {run.run_id}")
    console.detail("state", run.state)
    console.detail("branch", run.branch)
    console.detail("current", str(run.current_version))
    if run.next_version is not None:
        console.detail("next", str(run.next_version))
    elif run.change_set is not None:
        console.detail("suggested", f"{run.suggested_version} ({run.bump})")
    if run.change_set is not None:
        cs = run.change_set
        console.detail(
            "changes",
            f"{cs.total} commit(s): {cs.breaking} breaking, {cs.features} feature, "
            f"{cs.fixes} fix, {cs.perf} perf, {cs.other} other",
        )
    if run.notes is not None:
        first = run.notes.text.strip().splitlines()[0] if run.notes.text.strip() else ""
        console.detail("notes", first)
    if run.approval is not None:
        how = "auto" if run.approval.auto_approved else "manual"
        console.detail("approved by", f"{run.approval.approved_by} ({how})")
        if run.approval.risk_score is not None:
            console.detail("risk", f"{run.approval.risk_score:.2f} ({run.approval.decision})")
    if run.last_error:
        console.detail("error", run.last_error)
    if not run.is_terminal:
        console.newline()
        console.print(f"next: {next_step_hint(run.state)}", Style.DIM)


def print_evaluation(console: ConsoleProtocol, evaluation: RiskEvaluation) -> None:
    console.header("Governance evaluation")
    console.print(
        f"risk {evaluation.risk_score:.2f} ({evaluation.severity})",
        _SEVERITY_STYLE[evaluation.severity],
    )
    console.detail("decision", evaluation.decision)
    console.detail("auto-approve", "yes" if evaluation.can_auto_approve else "no")
    for factor in evaluation.risk_factors:
        console.detail(factor.name, f"{factor.score:.2f} x {factor.weight:.2f}  {factor.description}")
    history = evaluation.historical_context
    if history is not None and history.total > 0:
        console.detail(
            "history",
            f"{history.total} release(s), success {history.success_rate:.0%}, "
            f"failure {history.failure_rate:.0%}, rollback {history.rollback_rate:.0%}",
        )
    for action in evaluation.required_actions:
        console.print(f"required: {action}", Style.WARNING)
    for line in evaluation.rationale:
        console.print(f"- {line}", Style.DIM)


def print_history(console: ConsoleProtocol, runs: list[ReleaseRun]) -> None:
    console.header("Release runs")
    if not runs:
        console.print("no release runs yet", Style.DIM)
        return
    for run in runs:
        version = str(run.next_version) if run.next_version is not None else "-"
        console.print(
            f"{run.run_id}  {run.state:<12} {version:<12} {run.created_at:%Y-%m-%d %H:%M}"
        )


def print_outcome(console: ConsoleProtocol, outcome: Outcome) -> None:
    console.detail("release", outcome.release_id)
    console.detail("version", outcome.version or "-")
    console.detail("outcome", outcome.outcome)
