from __future__ import annotations

from ._gate import require_arch_checks_enabled
from ._utils import iter_python_files, matches_prefix, parse_imports, shipgate_root

# Lower layers never reach up: core/platform <- services <- output <- cli.
FORBIDDEN: dict[str, tuple[str, ...]] = {
    "core": ("shipgate.platform", "shipgate.services", "shipgate.output", "shipgate.cli", "typer", "rich"),
    "platform": ("shipgate.services", "shipgate.output", "shipgate.cli", "typer", "rich"),
    "services": ("shipgate.output", "shipgate.cli", "typer", "rich"),
    "output": ("shipgate.cli", "typer"),
}


def test_layers_only_depend_downwards() -> None:
    require_arch_checks_enabled()

    root = shipgate_root()
    offenders: list[str] = []

    for layer, forbidden in FORBIDDEN.items():
        for file_path in iter_python_files(root / layer):
            rel = file_path.relative_to(root)
            for item in parse_imports(file_path):
                for prefix in forbidden:
                    if matches_prefix(item.module, prefix):
                        offenders.append(f"{rel}:{item.line}: {layer} must not import '{item.module}'")

    assert not offenders, "layering violations:\n" + "\n".join(offenders)


def test_services_do_not_read_process_environment() -> None:
    """Services take ``environ`` as an argument; only the CLI reads ``os.environ``."""
    require_arch_checks_enabled()

    root = shipgate_root()
    offenders: list[str] = []
    for file_path in iter_python_files(root / "services"):
        text = file_path.read_text(encoding="utf-8")
        if "os.environ" in text or "os.getenv" in text:
            offenders.append(str(file_path.relative_to(root)))

    assert not offenders, "services reading the process environment:\n" + "\n".join(offenders)
