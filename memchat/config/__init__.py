"""Configuration module for memchat."""

from memchat.config.loader import get_config_path, load_config
from memchat.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
