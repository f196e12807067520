"""Built-in tools. Importing this package registers every handler."""

from pgchat.tools.builtin import introspection, query  # noqa: F401
