"""Conversations, friendships, file uploads and API errors for a chat server, stored in SQLite."""

__version__ = "0.1.0"