import json

import click

from branchstack.cli.ensure import Ensure
from branchstack.cli.output import machine_output, user_output
from branchstack.core.branches import KNOWN_BRANCHES, display_name
from branchstack.core.context import BranchstackContext


@click.group("launch-command")
def launch_command_group() -> None:
    """Manage the custom command used to launch each branch."""


@launch_command_group.command("show")
@click.argument("branch", required=False)
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON.")
@click.pass_obj
def show_launch_command(ctx: BranchstackContext, branch: str | None, as_json: bool) -> None:
    """Show the launch command of BRANCH, or of every branch that has one."""
    if branch is not None:
        Ensure.known_branches((branch,))
    commands = ctx.store.load().custom_launch_commands
    if branch is not None:
        commands = {k: v for k, v in commands.items() if k == branch}

    if as_json:
        machine_output(json.dumps(commands, indent=2))
        return

    if not commands:
        target = display_name(branch) if branch is not None else "any branch"
        user_output(f"No launch command set for {target}")
        return
    for name in sorted(commands, key=_branch_order):
        user_output(f"{name}: {commands[name]}")


@launch_command_group.command("set")
@click.argument("branch")
@click.argument("command")
@click.pass_obj
def set_launch_command(ctx: BranchstackContext, branch: str, command: str) -> None:
    """Launch BRANCH with COMMAND instead of the vendor client."""
    Ensure.known_branches((branch,))
    Ensure.invariant(bool(command.strip()), "Launch command must not be empty")
    ctx.store.update(lambda current: current.with_launch_command(branch, command.strip()))
    user_output(click.style("✓ ", fg="green") + f"{display_name(branch)}: {command.strip()}")


@launch_command_group.command("clear")
@click.argument("branch")
@click.pass_obj
def clear_launch_command(ctx: BranchstackContext, branch: str) -> None:
    Ensure.known_branches((branch,))
    ctx.store.update(lambda current: current.with_launch_command(branch, None))
    user_output(f"Cleared launch command for {display_name(branch)}")


def _branch_order(name: str) -> int:
    return KNOWN_BRANCHES.index(name) if name in KNOWN_BRANCHES else len(KNOWN_BRANCHES)
