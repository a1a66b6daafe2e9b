"""Message translations for log output."""

from __future__ import annotations

import os
import subprocess
import sys

_ZH: dict[str, str] = {}


def get(lang: str) -> dict[str, str] | None:
    """Return the translation table for ``lang``, or ``None`` when none applies."""
    if lang == "zh":
        if sys.platform.startswith("linux") and not is_terminal_support_chinese():
            return None
        return _ZH
    return None


def update(lang: str, key: str, value: str) -> None:
    if lang == "zh":
        _ZH[key] = value


def merge(lang: str, data: dict[str, str]) -> None:
    if lang == "zh":
        _ZH.update(data)


def is_terminal_support_chinese() -> bool:
    """Tell whether the terminal declares UTF-8 and can echo Chinese text."""
    supports_utf8 = any(
        "LANG" in entry and "UTF-8" in entry
        for entry in (f"{key}={value}" for key, value in os.environ.items())
    )
    if not supports_utf8:
        return False
    try:
        subprocess.run(["echo", "你好！"], capture_output=True, check=True)
    except (OSError, subprocess.CalledProcessError):
        return False
    return True