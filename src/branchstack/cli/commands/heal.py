import click

from branchstack.cli.output import user_output
from branchstack.core.branches import display_name
from branchstack.core.context import BranchstackContext


@click.command("heal")
@click.pass_obj
def heal_cmd(ctx: BranchstackContext) -> None:
    """Drop broken or missing branches from the registry."""
    report = ctx.healer().validate_and_heal(ctx.store.load())

    if report.heal.removed:
        for branch in report.heal.removed:
            user_output(click.style("- ", fg="yellow") + f"Removed {display_name(branch)}")
    else:
        user_output("Nothing to heal")

    if not report.is_valid:
        for problem in report.problems:
            user_output(click.style("Error: ", fg="red") + problem)
        raise SystemExit(1)

    user_output(click.style("✓ ", fg="green") + "Environment is usable")
