"""Configuration management for PHP Reflector.

Loads environment variables (and a `.env` file) and provides centralized
config access.
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Version - Managed by tools/sync_version.py (DO NOT EDIT MANUALLY)
__version__ = "1.2.0"

DEFAULT_CACHE_TTL = 24 * 60 * 60


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self, env_path: Optional[str | Path] = None):
        """Initialize config by loading a .env file.

        Args:
            env_path: Explicit .env file; defaults to `.env` in the working directory
        """
        load_dotenv(env_path or Path.cwd() / ".env")

    @property
    def project_root(self) -> Path:
        """Root of the analyzed PHP project.

        Returns:
            REFLECTOR_PROJECT_ROOT, or the working directory
        """
        return Path(os.getenv("REFLECTOR_PROJECT_ROOT", ".")).resolve()

    @property
    def vendor_dir(self) -> str:
        """Directory name holding dependency code."""
        return os.getenv("REFLECTOR_VENDOR_DIR", "vendor")

    @property
    def cache_path(self) -> Path:
        """SQLite file of the vendor result cache for the configured project."""
        return self.cache_path_for(self.project_root)

    def cache_path_for(self, project_root: Path) -> Path:
        """SQLite cache file of a project; relative paths are taken from its root."""
        path = Path(os.getenv("REFLECTOR_CACHE_PATH", ".reflector_cache/usages.db"))
        if not path.is_absolute():
            path = Path(project_root) / path
        return path

    @property
    def cache_ttl(self) -> int:
        """Lifetime of vendor cache entries in seconds.

        Raises:
            ValueError: If REFLECTOR_CACHE_TTL is not an integer
        """
        raw = os.getenv("REFLECTOR_CACHE_TTL", str(DEFAULT_CACHE_TTL))
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"REFLECTOR_CACHE_TTL must be an integer, got '{raw}'")

    @property
    def default_scan_path(self) -> str:
        return os.getenv("REFLECTOR_SCAN_PATH", "app")

    @property
    def log_level(self) -> str:
        return os.getenv("REFLECTOR_LOG_LEVEL", "WARNING").upper()


# Singleton instance
_config = None


def get_config() -> Config:
    """Get or create singleton Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config():
    """Drop the singleton so the next get_config() re-reads the environment."""
    global _config
    _config = None
