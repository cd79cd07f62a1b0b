"""Classified change-set files.

The commit classifier runs upstream; shipgate only reads its output::

    {
      "schema": 1,
      "files_changed": 12,
      "commits": [
        {"sha": "9f2c...", "subject": "feat(api): add export", "category": "feature",
         "scope": "api"}
      ]
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import cast

from shipgate.core.result import Err, Ok, Result
from shipgate.core.structured import as_str_dict, get_int, get_list, get_str
from shipgate.platform.files import atomic_write_text
from shipgate.services.release.errors import ReleaseError
from shipgate.services.release.model import COMMIT_CATEGORIES, ChangeSet, Commit, CommitCategory

CHANGESET_SCHEMA = 1


def _invalid(message: str, path: Path) -> Err[ReleaseError]:
    return Err(ReleaseError(kind="invalid_input", message=message, hint=str(path)))


def write_changeset_file(*, path: Path, change_set: ChangeSet) -> Result[None, ReleaseError]:
    payload: dict[str, object] = {
        "schema": CHANGESET_SCHEMA,
        "files_changed": change_set.files_changed,
        "commits": [
            {
                "sha": c.sha,
                "subject": c.subject,
                "category": c.category,
                "scope": c.scope,
                "body": c.body,
            }
            for c in change_set.commits
        ],
    }

    try:
        atomic_write_text(path, json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        return Err(
            ReleaseError(
                kind="io_failed",
                message=f"failed to write change-set file: {e}",
                hint=str(path),
            )
        )

    return Ok(None)


def read_changeset_file(*, path: Path) -> Result[ChangeSet, ReleaseError]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        return _invalid(f"failed to read change-set file: {e}", path)
    except UnicodeDecodeError as e:
        return _invalid(f"change-set file is not valid UTF-8: {e}", path)

    try:
        obj: object = json.loads(text)
    except json.JSONDecodeError as e:
        return _invalid(f"invalid JSON in change-set file: {e}", path)

    data = as_str_dict(obj)
    if data is None:
        return _invalid("change-set file root must be a JSON object", path)

    schema = get_int(data, "schema")
    if schema != CHANGESET_SCHEMA:
        return _invalid(f"unsupported change-set schema: {schema}", path)

    files_changed = get_int(data, "files_changed") if "files_changed" in data else 0
    if files_changed is None or files_changed < 0:
        return _invalid("files_changed must be a non-negative integer", path)

    items = get_list(data, "commits")
    if items is None:
        return _invalid("missing commits[] in change-set file", path)

    commits: list[Commit] = []
    seen: set[str] = set()
    for index, item in enumerate(items):
        d = as_str_dict(item)
        if d is None:
            return _invalid(f"commits[{index}] must be an object", path)
        sha = get_str(d, "sha")
        subject = get_str(d, "subject")
        category = get_str(d, "category")
        if sha is None or subject is None:
            return _invalid(f"commits[{index}] needs sha and subject", path)
        if category not in COMMIT_CATEGORIES:
            return _invalid(
                f"commits[{index}] has invalid category {category!r} "
                f"(expected one of: {', '.join(COMMIT_CATEGORIES)})",
                path,
            )
        if sha in seen:
            continue
        seen.add(sha)

        body = d.get("body")
        commits.append(
            Commit(
                sha=sha,
                subject=subject,
                category=cast(CommitCategory, category),
                scope=get_str(d, "scope"),
                body=(body if isinstance(body, str) else ""),
            )
        )

    return Ok(ChangeSet(commits=tuple(commits), files_changed=files_changed))
