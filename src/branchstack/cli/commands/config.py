import click

from branchstack.cli.output import machine_output, user_output
from branchstack.core.context import BranchstackContext
from branchstack.core.settings import SETTING_KEYS, with_setting


def _format_value(value: object) -> str:
    return "" if value is None else str(value)


@click.group("config")
def config_group() -> None:
    """Manage branchstack settings."""


@config_group.command("list")
@click.pass_obj
def config_list(ctx: BranchstackContext) -> None:
    """Print every setting."""
    user_output(click.style(f"Settings ({ctx.settings_ops.path()}):", bold=True))
    for key in SETTING_KEYS:
        machine_output(f"{key}={_format_value(getattr(ctx.settings, key))}")


@config_group.command("get")
@click.argument("key")
@click.pass_obj
def config_get(ctx: BranchstackContext, key: str) -> None:
    """Print the value of KEY."""
    if key not in SETTING_KEYS:
        user_output(f"Invalid key: {key}")
        raise SystemExit(1)
    machine_output(_format_value(getattr(ctx.settings, key)))


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def config_set(ctx: BranchstackContext, key: str, value: str) -> None:
    """Set KEY to VALUE in the settings file."""
    try:
        updated = with_setting(ctx.settings, key, value)
    except KeyError:
        user_output(f"Invalid key: {key}")
        raise SystemExit(1) from None
    except ValueError as e:
        user_output(f"Invalid value for {key}: {e}")
        raise SystemExit(1) from None

    try:
        ctx.settings_ops.save(updated)
    except PermissionError as e:
        user_output(click.style("Error: ", fg="red") + str(e))
        raise SystemExit(1) from None
    user_output(f"Set {key}={_format_value(getattr(updated, key))}")
