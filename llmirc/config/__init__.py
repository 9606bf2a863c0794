"""Configuration module for llmirc."""

from llmirc.config.loader import get_config_path, load_config, save_config
from llmirc.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
