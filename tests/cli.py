"""Shared CLI testing utilities."""

from __future__ import annotations

import re
from typing import Any

from typer.testing import CliRunner

_ANSI_RE = re.compile(r"\x1B\[[0-9;?]*[ -/]*[@-~]")


def _decode(chunk: bytes | str | None) -> str:
    if not chunk:
        return ""
    if isinstance(chunk, bytes):
        return chunk.decode("utf-8", errors="replace")
    return chunk


def cli_text(result: Any, *, strip_ansi: bool = True) -> str:
    """Return combined CLI output (stdout + stderr) for assertions."""

    text = _decode(getattr(result, "stdout_bytes", b"")) or _decode(result.output)
    stderr_bytes = getattr(result, "stderr_bytes", None) or b""
    stderr_text = _decode(stderr_bytes)
    if stderr_text and stderr_text not in text:
        text += stderr_text
    if strip_ansi:
        text = _ANSI_RE.sub("", text)
    return text


__all__ = ["CliRunner", "cli_text"]
