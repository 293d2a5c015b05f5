"""Config commands -- view and modify the connection settings.

Provides the ``trainerlink config`` sub-command group. Settings live in
``config.json`` under the trainerlink config directory and are validated
against :class:`~trainerlink.models.ClientConfig` before saving.
"""

from __future__ import annotations

import typer

from trainerlink.exceptions import InvalidUsageError
from trainerlink.output import emit, error, info, success

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration.

    Flags and environment overrides are applied, so this is what the
    ``auth`` commands will use.

    Example::

        trainerlink config show
        TRAINERLINK_TIMEOUT=5 trainerlink --json config show
    """
    from trainerlink.config import get_config_dir, get_store_dir, resolve_config
    from trainerlink.exceptions import ConfigError

    obj = ctx.obj or {}
    try:
        config = resolve_config(obj.get("base_url"), obj.get("timeout"))
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Config directory: {get_config_dir()}")
    data = config.model_dump(mode="json")
    data["store_dir"] = str(get_store_dir(config))
    emit(data, title="Configuration")


@config_app.command("set-url")
def config_set_url(
    url: str = typer.Argument(help="API base URL, e.g. https://api.example.com"),
) -> None:
    """Set the API base URL."""
    from trainerlink.config import load_config, save_config

    try:
        base_url = _validated_url(url)
    except InvalidUsageError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    config = load_config()
    config.base_url = base_url
    save_config(config)
    success(f"Set base_url = {config.base_url}")


@config_app.command("set-timeout")
def config_set_timeout(
    seconds: float = typer.Argument(help="Request timeout in seconds."),
) -> None:
    """Set the request timeout applied to every remote call."""
    from pydantic import ValidationError

    from trainerlink.config import load_config, save_config
    from trainerlink.models import ClientConfig

    config = load_config()
    try:
        config = ClientConfig.model_validate({**config.model_dump(), "timeout": seconds})
    except ValidationError as exc:
        usage = InvalidUsageError(f"Invalid timeout: {exc.errors()[0]['msg']}")
        error(str(usage))
        raise typer.Exit(code=usage.exit_code) from None

    save_config(config)
    success(f"Set timeout = {config.timeout:g}s")


def _validated_url(url: str) -> str:
    """Return *url* without a trailing slash, or raise :class:`InvalidUsageError`."""
    if not url.startswith(("http://", "https://")):
        raise InvalidUsageError(f"Base URL must start with http:// or https://, got: {url}")
    return url.rstrip("/")
