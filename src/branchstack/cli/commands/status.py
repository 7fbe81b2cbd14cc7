import click
from rich.console import Console

from branchstack.cli.json_schemas import BranchStatusInfo, StatusCommandResponse
from branchstack.cli.output import format_bytes, format_status_table, machine_output, user_output
from branchstack.core.branches import display_name
from branchstack.core.context import BranchstackContext
from branchstack.core.validation import BranchHealth


def _to_info(health: BranchHealth) -> BranchStatusInfo:
    return BranchStatusInfo(
        branch=health.branch,
        display_name=display_name(health.branch),
        status=health.status.value,
        folder_path=str(health.folder_path) if health.folder_path else None,
        executable_path=str(health.executable_path) if health.executable_path else None,
        last_modified=health.last_modified,
        directory_size_bytes=health.directory_size_bytes,
        file_count=health.file_count,
        mod_count=health.mod_count,
        local_version_id=health.local_version_id,
        message=health.message,
    )


@click.command("status")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON.")
@click.pass_obj
def status_cmd(ctx: BranchstackContext, as_json: bool) -> None:
    """Show health of every managed branch."""
    registry = ctx.store.load()
    results = ctx.validator().validate_all(registry)

    if as_json:
        response = StatusCommandResponse(
            managed_root=str(registry.managed_root_path) if registry.managed_root_path else None,
            installed_branch=registry.installed_branch,
            branches=[_to_info(h) for h in results],
        )
        machine_output(response.model_dump_json(indent=2))
        return

    if not results:
        user_output("No branches selected. Run `branchstack init` or `branchstack acquire`.")
        return

    rows = [
        (
            display_name(h.branch),
            h.status.value.replace("_", " "),
            h.local_version_id or "-",
            format_bytes(h.directory_size_bytes),
            str(h.file_count),
            str(h.mod_count),
        )
        for h in results
    ]
    Console(stderr=True).print(format_status_table(rows, [h.status.value for h in results]))

    for health in results:
        if health.message:
            user_output(click.style(f"{display_name(health.branch)}: ", dim=True) + health.message)
