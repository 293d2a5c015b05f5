"""Auth commands -- sign in, sign out, and inspect the local session.

Provides the ``trainerlink auth`` sub-command group. Every command builds a
:class:`~trainerlink.auth.SessionManager` from the resolved configuration,
hydrates it from the on-disk store, runs one operation, and closes it.

Typical workflow::

    trainerlink auth login coach@example.com --remember
    trainerlink auth whoami
    trainerlink auth logout
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

import typer

from trainerlink.output import emit, error, info, success, suggest, warning

T = TypeVar("T")

auth_app = typer.Typer(no_args_is_help=True)


def _run(ctx: typer.Context, action: Callable[..., Awaitable[T]]) -> T:
    """Run *action(manager)* on a hydrated manager, mapping errors to exit codes."""
    from trainerlink.auth import create_session_manager
    from trainerlink.client.response import error_message
    from trainerlink.config import resolve_config
    from trainerlink.exceptions import TrainerlinkError

    obj = ctx.obj or {}

    def _on_session_lost() -> None:
        warning("Your session has expired.")
        suggest("Sign in again: trainerlink auth login <email>")

    async def _runner() -> T:
        config = resolve_config(obj.get("base_url"), obj.get("timeout"))
        async with create_session_manager(config, navigate_to_login=_on_session_lost) as manager:
            await manager.hydrate()
            return await action(manager)

    try:
        return asyncio.run(_runner())
    except TrainerlinkError as exc:
        error(error_message(exc))
        raise typer.Exit(code=exc.exit_code) from None


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    email: str = typer.Argument(help="Account email address."),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, help="Account password."
    ),
    remember: bool = typer.Option(
        False, "--remember", "-r", help="Add the email to the remembered list."
    ),
) -> None:
    """Sign in with email and password.

    The token pair and profile are stored in the local session store. With
    ``--remember`` the email moves to the front of the remembered list.

    Example::

        trainerlink auth login coach@example.com --remember
    """

    async def _login(manager):
        return await manager.login(email, password, remember_me=remember)

    data = _run(ctx, _login)
    success(f"Signed in as {data.user.email or data.user.id}.")
    emit(data.user.model_dump(mode="json"), title="Profile")


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Sign out and erase the stored session.

    The remote logout is best effort; the local session is cleared even if
    the server cannot be reached.
    """

    async def _logout(manager):
        await manager.logout()

    _run(ctx, _logout)
    success("Signed out.")


@auth_app.command("status")
def auth_status(ctx: typer.Context) -> None:
    """Show the stored session without contacting the server."""

    async def _status(manager):
        return manager.state

    session = _run(ctx, _status)
    user = session.user
    emit(
        {
            "authenticated": bool(session.authenticated),
            "email": user.email if user else None,
            "user_id": user.id if user else None,
            "role": user.role if user else None,
        },
        title="Session",
    )
    if not session.authenticated:
        suggest("Sign in: trainerlink auth login <email>")


@auth_app.command("whoami")
def auth_whoami(ctx: typer.Context) -> None:
    """Fetch the signed-in user's profile, falling back to the cached copy."""
    from trainerlink.auth import ProfileSource
    from trainerlink.client.response import error_message
    from trainerlink.exit_codes import EXIT_PROFILE_UNAVAILABLE

    async def _whoami(manager):
        return await manager.fetch_profile()

    result = _run(ctx, _whoami)
    if result.profile is None:
        error(f"Profile unavailable: {error_message(result.error)}")
        raise typer.Exit(code=EXIT_PROFILE_UNAVAILABLE)
    if result.source is ProfileSource.CACHE:
        warning(f"Showing cached profile ({error_message(result.error)}).")
    emit(result.profile.model_dump(mode="json"), title="Profile")


@auth_app.command("refresh")
def auth_refresh(ctx: typer.Context) -> None:
    """Renew the access token with the stored refresh token."""

    async def _refresh(manager):
        return await manager.renew_access_token()

    _run(ctx, _refresh)
    success("Access token renewed.")


@auth_app.command("emails")
def auth_emails(ctx: typer.Context) -> None:
    """List remembered emails, most recent first."""

    async def _emails(manager):
        return await manager.remembered_emails()

    emails = _run(ctx, _emails)
    if not emails:
        info("No remembered emails.")
        return
    emit(emails)


@auth_app.command("forget-email")
def auth_forget_email(
    ctx: typer.Context,
    email: str = typer.Argument(help="Email to remove from the remembered list."),
) -> None:
    """Remove an email from the remembered list."""

    async def _forget(manager):
        before = await manager.remembered_emails()
        await manager.forget_email(email)
        return len(before) != len(await manager.remembered_emails())

    removed: Optional[bool] = _run(ctx, _forget)
    if removed:
        success(f"Forgot {email.strip().lower()}.")
    else:
        info(f"{email.strip().lower()} was not remembered.")
