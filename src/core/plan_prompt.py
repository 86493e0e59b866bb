"""
Goal Tracker — Daily plan prompt.

Turns a user's goals (and yesterday's leftovers) into the request sent to the
LLM. Pure functions: the same inputs always produce the same prompt.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.data.models import Goal

PLAN_SYSTEM_PROMPT = """\
You are a practical productivity coach. You turn long-term goals into small, \
concrete tasks that can be finished today. Reply in plain text only."""


def _format_goal(goal: Goal) -> str:
    if goal.deadline:
        return f"- {goal.description} (Deadline: {goal.deadline})"
    return f"- {goal.description}"


def build_plan_prompt(goals: list[Goal], unfinished: list[str]) -> str:
    """Build the user prompt for today's plan.

    Args:
        goals: Active goals in display order.
        unfinished: Texts of yesterday's tasks that were not checked off.

    The caller must not invoke this with both lists empty.
    """
    sections: list[str] = []

    if goals:
        goals_text = "\n".join(_format_goal(g) for g in goals)
        sections.append(f"I have the following goals:\n{goals_text}")
    else:
        sections.append("I have no active goals right now.")

    if unfinished:
        leftovers = "\n".join(f"- {text}" for text in unfinished)
        sections.append(
            "These tasks from yesterday are still unfinished:\n"
            f"{leftovers}"
        )

    rules = [
        "Please generate a daily activity list for TODAY to help me move towards these goals.",
    ]
    if unfinished:
        rules.append(
            "- List the unfinished tasks from yesterday FIRST, before any new task, "
            "keeping their wording."
        )
    if goals:
        rules.append("- Create exactly ONE actionable task for EACH goal.")
        rules.append("- Prioritize goals with closer deadlines (if mentioned).")
    rules.extend([
        "- Each task should be achievable in 30-60 minutes.",
        '- Be specific and actionable (not vague like "work on X" but "complete Y for X").',
        "- Format the tasks as a strictly numbered list: 1. , 2. , 3. and so on, one task per line.",
        "- Do not use markdown bolding (**) on the numbers or anywhere else; plain text only.",
        "- End with one short motivational quote on its own line, without a number.",
    ])
    sections.append("\n".join(rules))

    return "\n\n".join(sections)
