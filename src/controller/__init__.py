"""Controller module: comment polling, command parsing and the publish pipeline."""

from src.controller.command import Command, PublishCommand, parse_command
from src.controller.controller import Controller
from src.controller.publish import PublishPipeline
from src.controller.report import (
    CommandErrorReport,
    PublishReport,
    PublishStep,
    Report,
    render_report,
)

__all__ = [
    "Command",
    "CommandErrorReport",
    "Controller",
    "PublishCommand",
    "PublishPipeline",
    "PublishReport",
    "PublishStep",
    "Report",
    "parse_command",
    "render_report",
]
