"""Helpers for launching the companion Eruption GUI applications."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

LOG = logging.getLogger(__name__)


class LaunchError(RuntimeError):
    """Raised when a companion application cannot be started."""


@dataclass(frozen=True)
class Companion:
    label: str
    path: str

    def is_available(self) -> bool:
        return is_executable_available(self.path)


COMPANIONS: Tuple[Companion, ...] = (
    Companion(label="Run Pyroclasm UI…", path="/usr/bin/pyroclasm"),
    Companion(label="Run Eruption GUI…", path="/usr/bin/eruption-gui-gtk3"),
)


def is_executable_available(path: str) -> bool:
    """Regular files and symlinks count as available; lookup errors do not."""

    candidate = Path(path)
    try:
        return candidate.is_symlink() or candidate.is_file()
    except OSError as err:
        LOG.debug("Probing %s failed: %s", path, err)
        return False


def launch(path: str) -> None:
    LOG.debug("Running command: %s", path)
    try:
        subprocess.Popen(
            [path],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as err:
        raise LaunchError(f"Could not start {path}: {err.strerror or err}") from err


__all__ = ["COMPANIONS", "Companion", "LaunchError", "is_executable_available", "launch"]
