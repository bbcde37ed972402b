"""Configuration module for birdlink."""

from birdlink.config.loader import get_config_path, load_config
from birdlink.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
