"""Configuration module for astute."""

from astute.config.loader import get_config_path, load_config
from astute.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config"]
