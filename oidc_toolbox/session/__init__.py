"""Flask session interfaces."""

from oidc_toolbox.session.memory import MemorySessionInterface, ServerSideSession

__all__ = ["MemorySessionInterface", "ServerSideSession"]
