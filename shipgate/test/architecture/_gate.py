from __future__ import annotations

import os

import pytest


def require_arch_checks_enabled() -> None:
    """Skip architecture checks when ``SHIPGATE_ARCH_CHECKS=0``."""

    if os.getenv("SHIPGATE_ARCH_CHECKS") == "0":
        pytest.skip("architecture checks disabled via SHIPGATE_ARCH_CHECKS=0")
