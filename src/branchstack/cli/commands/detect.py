import click

from branchstack.cli.ensure import Ensure
from branchstack.cli.output import machine_output, user_output
from branchstack.core.branches import display_name
from branchstack.core.context import BranchstackContext
from branchstack.core.errors import ManifestUnavailable
from branchstack.core.manifest import manifest_path_for_library, read_manifest


@click.command("detect")
@click.pass_obj
def detect_cmd(ctx: BranchstackContext) -> None:
    """Show which branch and build the vendor client has installed."""
    registry = ctx.store.load()
    library = Ensure.not_none(
        registry.source_library_path,
        "No library configured. Run `branchstack init` first.",
    )
    manifest = manifest_path_for_library(library, ctx.settings.app_id)

    try:
        fields = read_manifest(manifest)
    except ManifestUnavailable as e:
        user_output(click.style("Error: ", fg="red") + str(e))
        raise SystemExit(1) from None

    machine_output(fields.branch)
    user_output(f"Branch: {display_name(fields.branch)}")
    user_output(f"Branch key: {fields.branch_selector or '(none)'}")
    user_output(f"Build id: {fields.build_id or '(unknown)'}")
