"""
Goal Tracker — Task Parser.

The LLM is an untrusted, schema-free text source. This module is the only
place that turns its plan text into structured tasks, and it never fails:
anything it cannot read is simply not a task.
"""

from __future__ import annotations

import logging
import re

from src.data.models import Task

logger = logging.getLogger(__name__)

# "<digits><. ) : or nothing><whitespace><rest>"
_TASK_LINE_RE = re.compile(r"^(\d+)[.):]?\s+(.+)$")

# Markup hugging the leading ordinal: "**3:**", "__1.__", "*2)"
_ORDINAL_MARKUP_RE = re.compile(r"^[*_]*(\d+[.):]?)[*_]*(?=\s|$)")

# Paired emphasis around a phrase: "**bold**", "__bold__", "*it*", "_it_".
# Markers glued to a word ("user_id", "3*4") are left alone.
_EMPHASIS_RE = re.compile(r"(?<![\w*])(\*\*|__|\*|_)(\S(?:.*?\S)?)\1(?![\w*])")


def _strip_emphasis(line: str) -> str:
    line = _ORDINAL_MARKUP_RE.sub(r"\1", line.strip())
    return _EMPHASIS_RE.sub(r"\2", line).strip()


def parse_tasks(text: str) -> list[Task]:
    """Extract numbered tasks from LLM plan text.

    Ordinals are taken from the text as-is: duplicates and gaps are kept,
    nothing is renumbered. Preamble, blank lines and the closing quote are
    dropped from the result but stay in the stored raw text.
    """
    tasks: list[Task] = []
    for raw_line in (text or "").splitlines():
        line = _strip_emphasis(raw_line)
        match = _TASK_LINE_RE.match(line)
        if match is None:
            continue
        body = match.group(2).strip()
        if not body:
            continue
        tasks.append(Task(id=int(match.group(1)), text=body))

    if not tasks:
        logger.warning("No numbered tasks found in plan text (%d chars)", len(text or ""))
    return tasks


def looks_like_task_line(line: str) -> bool:
    """Would parse_tasks() read this line as a task?"""
    return bool(_TASK_LINE_RE.match(_strip_emphasis(line)))


def closing_remark(content: str) -> str | None:
    """Return the plan's closing line (usually the motivational quote).

    Approximate by nature: the last non-blank line counts as a closing remark
    when it does not look like a numbered task.
    """
    lines = [ln.strip() for ln in (content or "").splitlines() if ln.strip()]
    if not lines:
        return None
    last = lines[-1]
    if looks_like_task_line(last):
        return None
    return _strip_emphasis(last)
