from dataclasses import replace

import click
from rich.console import Console

from branchstack.cli.ensure import Ensure
from branchstack.cli.output import format_run_summary, user_output
from branchstack.core.acquisition.abc import AcquisitionMode
from branchstack.core.branches import display_name
from branchstack.core.context import BranchstackContext
from branchstack.core.decisions import AutoDecider
from branchstack.core.errors import BranchstackError
from branchstack.core.manifest import detect_current_branch, manifest_path_for_library
from branchstack.core.orchestrator import AcquisitionPlan, AcquisitionState


@click.command("acquire")
@click.argument("branches", nargs=-1, required=True)
@click.option(
    "--mode",
    type=click.Choice(["copy", "download"]),
    default="copy",
    show_default=True,
    help="Copy from the installed application or download with the external tool.",
)
@click.option(
    "-y",
    "--yes",
    is_flag=True,
    help="Don't prompt: continue on low disk space and skip branches that fail.",
)
@click.option("--description", default=None, help="Note stored with each new version.")
@click.pass_obj
def acquire_cmd(
    ctx: BranchstackContext,
    branches: tuple[str, ...],
    mode: AcquisitionMode,
    yes: bool,
    description: str | None,
) -> None:
    """Populate managed copies of BRANCHES, one at a time.

    In copy mode the first branch must be the one currently installed; for
    each following branch you are asked to switch the installed copy in the
    vendor client, and branchstack waits until the switch is detected.
    """
    Ensure.known_branches(branches)
    registry = ctx.store.load()
    Ensure.managed_root(registry)

    if mode == "copy":
        library = Ensure.not_none(
            registry.source_library_path, "No library configured. Run `branchstack init` first."
        )
        current = detect_current_branch(manifest_path_for_library(library, ctx.settings.app_id))
        if current is not None and current != branches[0]:
            user_output(
                click.style("Warning: ", fg="yellow")
                + f"installed copy is {display_name(current)}, "
                + f"but {display_name(branches[0])} is copied first without verification"
            )

    run_ctx = replace(ctx, decider=AutoDecider()) if yes else ctx
    try:
        orchestrator = run_ctx.orchestrator(mode)
    except ValueError as e:
        user_output(click.style("Error: ", fg="red") + str(e))
        raise SystemExit(1) from None

    plan = AcquisitionPlan(branches=branches, mode=mode, description=description)
    try:
        outcome = orchestrator.run(plan)
    except BranchstackError as e:
        user_output(click.style("Error: ", fg="red") + str(e))
        raise SystemExit(1) from None

    problems = [
        (display_name(b.branch), b.status, str(b.log_path) if b.log_path else None)
        for b in outcome.branches
        if b.status != "success"
    ]
    ok = outcome.state == AcquisitionState.COMPLETED and not problems
    if outcome.state == AcquisitionState.CANCELLED:
        title = "Acquisition Cancelled"
    elif ok:
        title = "Acquisition Complete"
    else:
        title = "Acquisition Finished With Problems"

    Console(stderr=True).print(
        format_run_summary(
            title=title,
            succeeded=[display_name(b) for b in outcome.succeeded],
            problems=problems,
            session_log=str(outcome.session_log_path) if outcome.session_log_path else None,
            ok=ok,
        )
    )
    if not ok:
        raise SystemExit(1)
