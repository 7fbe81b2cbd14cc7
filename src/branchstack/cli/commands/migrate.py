import json

import click

from branchstack.cli.ensure import Ensure
from branchstack.cli.json_schemas import LegacyInstallationInfo
from branchstack.cli.output import machine_output, user_output
from branchstack.core.context import BranchstackContext
from branchstack.core.errors import BranchstackError, MigrationPartialFailure


@click.group("migrate")
def migrate_group() -> None:
    """Move version folders from build ids to manifest ids."""


@migrate_group.command("detect")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON.")
@click.pass_obj
def migrate_detect(ctx: BranchstackContext, as_json: bool) -> None:
    """List installations still stored by build id."""
    managed_root = Ensure.managed_root(ctx.store.load())
    installs = ctx.migrator().detect_legacy(managed_root)

    if as_json:
        payload = [
            LegacyInstallationInfo(
                branch=i.branch,
                build_id=i.build_id,
                path=str(i.path),
                manifest_id=i.manifest_id,
            ).model_dump()
            for i in installs
        ]
        machine_output(json.dumps(payload, indent=2))
        return

    if not installs:
        user_output("No legacy installations found")
        return

    for install in installs:
        target = install.manifest_id or click.style("no manifest id", fg="yellow")
        user_output(f"{install.branch}  build {install.build_id} -> {target}")


@migrate_group.command("run")
@click.pass_obj
def migrate_run(ctx: BranchstackContext) -> None:
    """Migrate every installation with a known manifest id."""
    managed_root = Ensure.managed_root(ctx.store.load())
    try:
        result = ctx.migrator().migrate(managed_root)
    except BranchstackError as e:
        user_output(click.style("Error: ", fg="red") + str(e))
        raise SystemExit(1) from None

    for install in result.migrated:
        user_output(
            click.style("✓ ", fg="green")
            + f"{install.branch}: build_{install.build_id} -> manifest_{install.manifest_id}"
        )
    for install in result.skipped:
        user_output(
            click.style("- ", fg="yellow")
            + f"{install.branch}: build_{install.build_id} skipped (no manifest id)"
        )
    try:
        result.raise_for_failures()
    except MigrationPartialFailure as e:
        user_output(click.style("Error: ", fg="red") + str(e))
    failed_paths = {str(f.installation.path) for f in result.failed}
    for error in result.errors:
        if not any(error.startswith(path) for path in failed_paths):
            user_output(click.style("Error: ", fg="red") + error)

    if not result.migrated and not result.failed:
        user_output("Nothing to migrate")
    if not result.success:
        raise SystemExit(1)


@migrate_group.command("validate")
@click.pass_obj
def migrate_validate(ctx: BranchstackContext) -> None:
    """Check that no build-id folders remain and the registry matches disk."""
    managed_root = Ensure.managed_root(ctx.store.load())
    result = ctx.migrator().validate(managed_root)

    if result.success:
        user_output(click.style("✓ ", fg="green") + "Layout is consistent")
        return
    for error in result.errors:
        user_output(click.style("Error: ", fg="red") + error)
    raise SystemExit(1)


@migrate_group.command("rollback")
@click.pass_obj
def migrate_rollback(ctx: BranchstackContext) -> None:
    """Undo a migration and restore the previous registry."""
    managed_root = Ensure.managed_root(ctx.store.load())
    try:
        result = ctx.migrator().rollback(managed_root)
    except BranchstackError as e:
        user_output(click.style("Error: ", fg="red") + str(e))
        raise SystemExit(1) from None

    if result.success:
        user_output(click.style("✓ ", fg="green") + "Rollback complete")
        return
    for error in result.errors:
        user_output(click.style("Error: ", fg="red") + error)
    raise SystemExit(1)
