"""memchat - bounded conversational memory for chat assistants."""

__version__ = "0.1.0"
