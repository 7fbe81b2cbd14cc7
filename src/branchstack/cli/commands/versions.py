import shutil
from dataclasses import replace

import click

from branchstack.cli.ensure import Ensure
from branchstack.cli.json_schemas import VersionInfo, VersionsCommandResponse
from branchstack.cli.output import format_bytes, machine_output, user_output
from branchstack.core.branches import display_name
from branchstack.core.context import BranchstackContext
from branchstack.core.decisions import AutoDecider
from branchstack.core.errors import BranchstackError
from branchstack.core.orchestrator import AcquisitionPlan


@click.group("versions")
def versions_group() -> None:
    """Inspect and switch tracked versions of a branch."""


@versions_group.command("list")
@click.argument("branch")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON.")
@click.pass_obj
def list_versions(ctx: BranchstackContext, branch: str, as_json: bool) -> None:
    """List tracked versions of BRANCH, oldest first."""
    registry = ctx.store.load()
    entry = Ensure.not_none(registry.get_branch(branch), f"Branch {branch} is not tracked")

    if as_json:
        response = VersionsCommandResponse(
            branch=branch,
            versions=[
                VersionInfo(
                    build_id=v.build_id,
                    manifest_id=v.manifest_id,
                    acquired_at=v.acquired_at,
                    size_bytes=v.size_bytes,
                    description=v.description,
                    is_active=v.is_active,
                    is_user_added=v.is_user_added,
                )
                for v in entry.versions
            ],
        )
        machine_output(response.model_dump_json(indent=2))
        return

    if not entry.versions:
        user_output(f"No versions tracked for {display_name(branch)}")
        return

    for version in entry.versions:
        marker = click.style("*", fg="green") if version.is_active else " "
        line = f"{marker} {version.key}  {version.acquired_at or '-'}  "
        line += format_bytes(version.size_bytes)
        if version.description:
            line += f"  {version.description}"
        user_output(line)


@versions_group.command("activate")
@click.argument("branch")
@click.argument("identifier")
@click.pass_obj
def activate_version(ctx: BranchstackContext, branch: str, identifier: str) -> None:
    """Make IDENTIFIER (manifest or build id) the active version of BRANCH."""
    registry = ctx.store.load()
    entry = Ensure.not_none(registry.get_branch(branch), f"Branch {branch} is not tracked")
    version = Ensure.not_none(
        entry.find(identifier), f"No version {identifier} tracked for {display_name(branch)}"
    )

    updated = ctx.store.update(lambda current: current.with_active_version(branch, identifier))
    folder = updated.branch_folder(branch)
    if folder is not None and not folder.is_dir():
        user_output(click.style("Warning: ", fg="yellow") + f"{folder} does not exist")
    user_output(
        click.style("✓ ", fg="green") + f"{display_name(branch)} now uses {version.dir_name}"
    )


@versions_group.command("add")
@click.argument("branch")
@click.argument("manifest_id")
@click.option("--description", default=None, help="Note stored with the version.")
@click.option("-y", "--yes", is_flag=True, help="Don't prompt on low disk space or failure.")
@click.pass_obj
def add_version(
    ctx: BranchstackContext,
    branch: str,
    manifest_id: str,
    description: str | None,
    yes: bool,
) -> None:
    """Download manifest MANIFEST_ID of BRANCH and keep it as an extra version.

    The version is pinned: it is never dropped by the recent-builds limit and
    only becomes active if BRANCH has no active version yet.
    """
    Ensure.known_branches((branch,))
    Ensure.invariant(manifest_id.isdigit(), f"Manifest id must be numeric, got {manifest_id!r}")
    registry = ctx.store.load()
    Ensure.managed_root(registry)
    entry = registry.get_branch(branch)
    Ensure.invariant(
        entry is None or entry.find(manifest_id) is None,
        f"Manifest {manifest_id} is already tracked for {display_name(branch)}",
    )

    run_ctx = replace(ctx, decider=AutoDecider()) if yes else ctx
    try:
        orchestrator = run_ctx.orchestrator("download")
    except ValueError as e:
        user_output(click.style("Error: ", fg="red") + str(e))
        raise SystemExit(1) from None

    plan = AcquisitionPlan(
        branches=(branch,),
        mode="download",
        description=description,
        manifest_ids={branch: manifest_id},
    )
    try:
        outcome = orchestrator.run(plan)
    except BranchstackError as e:
        user_output(click.style("Error: ", fg="red") + str(e))
        raise SystemExit(1) from None

    result = outcome.branches[0] if outcome.branches else None
    if result is None or result.status != "success":
        log = f" (log: {result.log_path})" if result is not None and result.log_path else ""
        user_output(
            click.style("Error: ", fg="red")
            + f"Manifest {manifest_id} of {display_name(branch)} was not added{log}"
        )
        raise SystemExit(1)
    user_output(
        click.style("✓ ", fg="green")
        + f"Added {display_name(branch)} manifest {manifest_id}"
    )


@versions_group.command("remove")
@click.argument("branch")
@click.argument("identifier")
@click.option("-y", "--yes", is_flag=True, help="Don't ask for confirmation.")
@click.pass_obj
def remove_version(ctx: BranchstackContext, branch: str, identifier: str, yes: bool) -> None:
    """Delete an inactive version of BRANCH and stop tracking it."""
    registry = ctx.store.load()
    entry = Ensure.not_none(registry.get_branch(branch), f"Branch {branch} is not tracked")
    version = Ensure.not_none(
        entry.find(identifier), f"No version {identifier} tracked for {display_name(branch)}"
    )
    Ensure.invariant(
        version != entry.active_version,
        f"{version.key} is the active version of {display_name(branch)}; "
        + "activate another version first",
    )
    branch_root = Ensure.not_none(
        registry.branch_root(branch),
        "No managed environment configured. Run `branchstack init` first.",
    )

    folder = branch_root / version.dir_name
    if not yes and not click.confirm(f"Delete {folder}?", default=False, err=True):
        user_output("Aborted")
        raise SystemExit(1)

    if folder.exists():
        try:
            shutil.rmtree(folder)
        except OSError as e:
            user_output(click.style("Error: ", fg="red") + f"Could not delete {folder}: {e}")
            raise SystemExit(1) from None

    ctx.store.update(lambda current: current.without_version(branch, identifier))
    user_output(
        click.style("✓ ", fg="green") + f"Removed {version.dir_name} from {display_name(branch)}"
    )
