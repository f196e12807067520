"""pgchat: converse with a PostgreSQL database through a tool-using agent."""

__version__ = "0.1.0"
