"""Caller-driven decisions for the acquisition run.

The orchestrator never picks retry, skip or cancel on its own; it asks a
Decider. The CLI supplies an interactive one, tests supply scripted ones.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import click

from branchstack.cli.output import user_output


class DecisionKind(Enum):
    LOW_DISK_SPACE = "low_disk_space"
    ACQUISITION_FAILED = "acquisition_failed"
    BRANCH_SWITCH_TIMEOUT = "branch_switch_timeout"


class Decision(Enum):
    PROCEED = "proceed"
    RETRY = "retry"
    SKIP = "skip"
    CANCEL = "cancel"


# Decisions the orchestrator accepts for each kind
ALLOWED_DECISIONS: dict[DecisionKind, tuple[Decision, ...]] = {
    DecisionKind.LOW_DISK_SPACE: (Decision.PROCEED, Decision.CANCEL),
    DecisionKind.ACQUISITION_FAILED: (Decision.RETRY, Decision.SKIP, Decision.CANCEL),
    DecisionKind.BRANCH_SWITCH_TIMEOUT: (Decision.RETRY, Decision.SKIP, Decision.CANCEL),
}


@dataclass(frozen=True)
class DecisionContext:
    """What the decider is told about the situation."""

    message: str
    branch: str | None = None
    attempt: int = 0
    log_path: Path | None = None


class Decider(ABC):
    """Answers the orchestrator's yes/no and retry/skip/cancel questions."""

    @abstractmethod
    def decide(self, kind: DecisionKind, context: DecisionContext) -> Decision:
        """Return one of ALLOWED_DECISIONS[kind]."""
        ...


class InteractiveDecider(Decider):
    """Prompts on the terminal via click."""

    def decide(self, kind: DecisionKind, context: DecisionContext) -> Decision:
        if kind == DecisionKind.LOW_DISK_SPACE:
            proceed = click.confirm(f"{context.message} Continue anyway?", default=False, err=True)
            return Decision.PROCEED if proceed else Decision.CANCEL

        user_output(click.style(context.message, fg="yellow"))
        if context.log_path is not None:
            user_output(f"Details: {context.log_path}")
        choices = [d.value for d in ALLOWED_DECISIONS[kind]]
        answer = click.prompt(
            "What next?",
            type=click.Choice(choices),
            default=Decision.RETRY.value,
            err=True,
        )
        return Decision(answer)


class AutoDecider(Decider):
    """Non-interactive answers for --yes runs.

    Proceeds past the disk space warning and skips failed branches, so one bad
    branch never blocks the others and nothing is retried unattended.
    """

    def decide(self, kind: DecisionKind, context: DecisionContext) -> Decision:
        if kind == DecisionKind.LOW_DISK_SPACE:
            return Decision.PROCEED
        return Decision.SKIP
