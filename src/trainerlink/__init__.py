"""trainerlink -- session-aware client for the trainer-booking marketplace API.

This package holds the authenticated session layer shared by every screen of
the marketplace client: it keeps the access/refresh token pair, injects the
bearer credential into outgoing requests, renews the access token exactly
once when the API answers ``401``, and persists the session across process
restarts.

Typical usage::

    from trainerlink.auth import create_session_manager

    manager = create_session_manager(navigate_to_login=show_login_screen)
    await manager.hydrate()
    await manager.login("user@example.com", "secret", remember_me=True)
    response = await manager.pipeline.get("/api/bookings/")

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration loading and precedence resolution.
    endpoints: Remote API paths and the public-endpoint allowlist.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.3.0"
