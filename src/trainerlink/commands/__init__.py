"""Built-in CLI sub-commands for trainerlink.

* :mod:`~trainerlink.commands.auth` -- sign in, sign out, and inspect the
  session and remembered emails.
* :mod:`~trainerlink.commands.config` -- view and modify connection settings.

Each module exports a :class:`typer.Typer` sub-application registered on the
root app in :mod:`trainerlink.app`.
"""
