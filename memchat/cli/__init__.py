"""CLI module for memchat."""
