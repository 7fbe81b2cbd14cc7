import logging
import os
from pathlib import Path

import click

from branchstack.cli.commands.acquire import acquire_cmd
from branchstack.cli.commands.config import config_group
from branchstack.cli.commands.detect import detect_cmd
from branchstack.cli.commands.heal import heal_cmd
from branchstack.cli.commands.init import init_cmd
from branchstack.cli.commands.launch import launch_command_group
from branchstack.cli.commands.migrate import migrate_group
from branchstack.cli.commands.mods import default_mods_cmd
from branchstack.cli.commands.status import status_cmd
from branchstack.cli.commands.versions import versions_group
from branchstack.cli.output import user_output
from branchstack.core.context import create_context

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])  # terse help flags
DEBUG_ENV_VAR = "BRANCHSTACK_DEBUG"


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="branchstack")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Settings file (default: ~/.branchstack/config.toml).",
)
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.option("-q", "--quiet", is_flag=True, help="Only print errors.")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, debug: bool, quiet: bool) -> None:
    """Manage local copies of every branch of an installed application."""
    if debug or os.getenv(DEBUG_ENV_VAR):
        logging.basicConfig(level=logging.DEBUG, format="[DEBUG %(name)s:%(lineno)d] %(message)s")

    # Only create context if not already provided (e.g., by tests)
    if ctx.obj is None:
        try:
            ctx.obj = create_context(config_path=config_path, quiet=quiet)
        except ValueError as e:
            user_output(click.style("Error: ", fg="red") + str(e))
            raise SystemExit(1) from None


cli.add_command(acquire_cmd)
cli.add_command(config_group)
cli.add_command(default_mods_cmd)
cli.add_command(detect_cmd)
cli.add_command(heal_cmd)
cli.add_command(init_cmd)
cli.add_command(launch_command_group)
cli.add_command(migrate_group)
cli.add_command(status_cmd)
cli.add_command(versions_group)


def main() -> None:
    """CLI entry point used by the `branchstack` console script."""
    cli()
