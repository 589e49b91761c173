"""Progress reports rendered into the triggering comment.

Every report is the original comment body, a separator, and a section
written by the bot. Reports are a closed set of variants, each with its
own render function.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from src.constants import REPORT_SEPARATOR
from src.github.client import GithubComment


class PublishStep(IntEnum):
    blocked = 0
    pulling = 1
    verifying = 2
    uploading = 3
    updating_index = 4
    done = 5


_STEP_LINES: list[tuple[PublishStep, str]] = [
    (PublishStep.pulling, "- 🚢 Pulling repository"),
    (PublishStep.verifying, "- 🏭 Verifying package"),
    (PublishStep.uploading, "- 📦 Uploading package"),
    (PublishStep.updating_index, "- 📜 Updating index"),
    (PublishStep.done, "- ✔️ Done"),
]


@dataclass
class PublishReport:
    """Ephemeral state of one publish attempt. Steps only move forward."""

    source_url: str
    step: PublishStep = PublishStep.blocked
    name: str | None = None
    version: str | None = None
    error: str | None = None

    def advance(self, step: PublishStep) -> None:
        if step < self.step:
            raise ValueError(f"cannot move publish from {self.step.name} back to {step.name}")
        self.step = step


@dataclass(frozen=True)
class CommandErrorReport:
    bot_name: str


Report = PublishReport | CommandErrorReport


def render_report(report: Report, comment: GithubComment) -> str:
    if isinstance(report, PublishReport):
        title, body, msg = _render_publish(report)
    elif isinstance(report, CommandErrorReport):
        title, body, msg = _render_command_error(report)
    else:
        raise TypeError(f"unknown report type {type(report).__name__}")

    out = f"{comment.body}\n\n{REPORT_SEPARATOR}\n\n#### *{title}*\n\n"
    if body:
        out += f"{body}\n\n"
    out += f"@{comment.user.name} *{msg}*\n"
    return out


def _render_command_error(report: CommandErrorReport) -> tuple[str, str | None, str]:
    return "Command Error", None, f"{report.bot_name} was not able to understand your command."


def _render_publish(report: PublishReport) -> tuple[str, str | None, str]:
    if report.step == PublishStep.blocked:
        lines = ["- 🎅 Blocking waiting for previous tasks"]
    else:
        lines = [line for step, line in _STEP_LINES if report.step >= step]
    if report.error is not None:
        lines.append(f"  - ❌ *{report.error}*")
    body = "\n".join(lines)

    if report.error is not None:
        msg = "Publish failed due to the reason above."
    elif report.step == PublishStep.blocked:
        msg = "Publish process will be started soon."
    elif report.step == PublishStep.done:
        msg = f"Package `{report.name}|{report.version}` has been published. 🚀"
    else:
        msg = "Publish process will finish in minutes."
    return "Publish Package", body, msg
