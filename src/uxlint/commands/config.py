"""Config commands -- view and modify global configuration.

Provides the ``uxlint config`` sub-command group for reading, updating,
and resetting the user's global configuration file
(:class:`~uxlint.models.GlobalConfig`). Settings control the UXLint Cloud
OAuth client, the credential backend, and the log level.
"""

from __future__ import annotations

import typer

from uxlint.exceptions import ConfigError
from uxlint.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show current configuration.

    Prints the config directory path followed by the stored configuration.

    Example::

        uxlint config show
        uxlint --json config show
    """
    from uxlint.config import get_config_dir, load_global_config

    try:
        config = load_global_config()
    except ConfigError as exc:
        error(exc.message)
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'cloud.client_id')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys. The value is coerced to match the
    existing field's type (bool, int, list, or str) and validated against
    :class:`~uxlint.models.GlobalConfig` before saving. List values are
    space- or comma-separated.

    Raises:
        typer.Exit: With code 2 if the key path is invalid, the value
            cannot be coerced, or validation fails.

    Example::

        uxlint config set cloud.client_id my-client
        uxlint config set cloud.flow_timeout_seconds 120
        uxlint config set credential_backend file
    """
    from pydantic import ValidationError

    from uxlint.config import load_global_config, save_global_config
    from uxlint.models import GlobalConfig

    try:
        config = load_global_config()
    except ConfigError as exc:
        error(exc.message)
        raise typer.Exit(code=exc.exit_code) from None
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = target[final_key]
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, int):
        try:
            coerced = int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    elif isinstance(current, list):
        coerced = value.replace(",", " ").split()  # type: ignore[assignment]
    else:
        coerced = value  # type: ignore[assignment]

    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    ctx: typer.Context,
) -> None:
    """Reset configuration to defaults.

    Asks for confirmation unless ``--force`` is active.

    Example::

        uxlint config reset
        uxlint --force config reset
    """
    from uxlint.config import save_global_config
    from uxlint.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
