"""Configuration parsing for stackforge."""

from .build_config import BuildConfig

__all__ = ["BuildConfig"]
