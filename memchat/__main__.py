"""
Entry point for running memchat as a module: python -m memchat
"""

from memchat.cli.commands import app

if __name__ == "__main__":
    app()
