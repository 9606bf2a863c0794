"""IRC transport adapter."""

from llmirc.channels.irc import IRCConnection, connect

__all__ = ["IRCConnection", "connect"]
