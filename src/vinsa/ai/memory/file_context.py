"""Inline ``@path`` file references into user messages."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

__all__ = ["FILE_REFERENCE_RE", "MAX_INJECTED_FILE_BYTES", "FileInjection", "inject_file_context"]

LOGGER = logging.getLogger(__name__)

FILE_REFERENCE_RE = re.compile(r"@([\w./\\-]+\.\w+)")
MAX_INJECTED_FILE_BYTES = 50_000


@dataclass(slots=True, frozen=True)
class FileInjection:
    """User text plus the appended file blocks."""

    text: str
    injected: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.injected)


def inject_file_context(
    message: str,
    base_dir: Path | str | None = None,
    *,
    max_bytes: int = MAX_INJECTED_FILE_BYTES,
) -> FileInjection:
    """Append the content of every readable ``@file.ext`` referenced in ``message``.

    The original wording is kept verbatim as a prefix. Missing, oversized or
    unreadable files are skipped; each reference is injected at most once.
    """

    root = Path(base_dir) if base_dir is not None else Path.cwd()
    blocks: list[str] = []
    injected: list[str] = []
    for match in FILE_REFERENCE_RE.finditer(message):
        reference = match.group(1)
        if reference in injected:
            continue
        path = Path(reference).expanduser()
        if not path.is_absolute():
            path = root / path
        try:
            if not path.is_file() or path.stat().st_size >= max_bytes:
                continue
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            LOGGER.debug("Skipping file reference %s: %s", reference, exc)
            continue
        blocks.append(f"\n\n[Auto-injected content of {reference}]\n```\n{content}\n```")
        injected.append(reference)

    if injected:
        LOGGER.debug("Injected %d file(s) into user message: %s", len(injected), ", ".join(injected))
    return FileInjection(text=message + "".join(blocks), injected=tuple(injected))
