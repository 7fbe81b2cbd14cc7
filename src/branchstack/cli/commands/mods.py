import click

from branchstack.cli.ensure import Ensure
from branchstack.cli.output import user_output
from branchstack.core.branches import display_name, runtime_for_branch
from branchstack.core.context import BranchstackContext
from branchstack.core.errors import BranchInvalid
from branchstack.core.scaffold import install_default_mods


@click.command("default-mods")
@click.argument("branches", nargs=-1, required=True)
@click.pass_obj
def default_mods_cmd(ctx: BranchstackContext, branches: tuple[str, ...]) -> None:
    """Copy the shared Default Mods into the active version of BRANCHES.

    Main and beta branches get the Il2Cpp set, alternate branches the Mono set.
    """
    Ensure.known_branches(branches)
    registry = ctx.store.load()
    managed_root = Ensure.managed_root(registry)
    validator = ctx.validator()

    ok = True
    for branch in branches:
        try:
            health = validator.require_usable(branch, registry)
        except BranchInvalid as e:
            user_output(click.style("Error: ", fg="red") + str(e))
            ok = False
            continue

        assert health.folder_path is not None
        result = install_default_mods(managed_root, branch, health.folder_path)
        for path, error in result.failed:
            user_output(click.style("Warning: ", fg="yellow") + f"{path}: {error}")
            ok = False
        user_output(
            click.style("✓ ", fg="green")
            + f"{display_name(branch)}: copied {len(result.copied)} "
            + f"{runtime_for_branch(branch)} default mod files"
        )

    if not ok:
        raise SystemExit(1)
