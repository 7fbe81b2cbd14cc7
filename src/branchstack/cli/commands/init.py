from pathlib import Path

import click

from branchstack.cli.ensure import Ensure
from branchstack.cli.output import user_output
from branchstack.core.branches import MAIN_BRANCH, display_name
from branchstack.core.context import BranchstackContext
from branchstack.core.manifest import detect_current_branch, manifest_path_for_library
from branchstack.core.registry import Registry


@click.command("init")
@click.option(
    "--library",
    type=click.Path(path_type=Path, file_okay=False),
    required=True,
    help="Vendor library folder (the one containing steamapps/).",
)
@click.option(
    "--managed-root",
    type=click.Path(path_type=Path, file_okay=False),
    required=True,
    help="Folder that will hold the managed branch copies.",
)
@click.option(
    "--install-path",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Installed application folder (default: <library>/steamapps/common/<install_dir_name>).",
)
@click.option(
    "--branch",
    "branches",
    multiple=True,
    help="Branch to manage (repeatable). Defaults to the currently installed branch.",
)
@click.pass_obj
def init_cmd(
    ctx: BranchstackContext,
    library: Path,
    managed_root: Path,
    install_path: Path | None,
    branches: tuple[str, ...],
) -> None:
    """Point branchstack at the installed application and a managed root."""
    library = library.expanduser().resolve()
    managed_root = managed_root.expanduser().resolve()
    Ensure.path_is_dir(library, f"Library folder not found: {library}")

    if install_path is None:
        install_path = library / "steamapps" / "common" / ctx.settings.install_dir_name
    install_path = install_path.expanduser().resolve()
    Ensure.path_is_dir(install_path, f"Installed application not found: {install_path}")

    selected = list(branches)
    if not selected:
        manifest = manifest_path_for_library(library, ctx.settings.app_id)
        selected = [detect_current_branch(manifest) or MAIN_BRANCH]
    Ensure.known_branches(selected)

    managed_root.mkdir(parents=True, exist_ok=True)

    def configure(current: Registry) -> Registry:
        updated = current.with_paths(
            source_library_path=library,
            source_install_path=install_path,
            managed_root_path=managed_root,
        )
        return updated.with_selected_branches(list(current.selected_branches) + selected)

    registry = ctx.store.update(configure)
    if not ctx.settings_ops.exists():
        ctx.settings_ops.save(ctx.settings)

    user_output(click.style("✓ ", fg="green") + f"Registry written to {ctx.store.path()}")
    user_output(f"  Managed root: {managed_root}")
    user_output(
        "  Branches: " + ", ".join(display_name(b) for b in registry.selected_branches)
    )
