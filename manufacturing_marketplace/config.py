"""
Configuration for the manufacturing marketplace.

Values come from the environment; a ``.env`` file in the working directory is
loaded first so local settings do not need to be exported by hand.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Default configuration."""

    APP_TITLE = "Manufacturing Marketplace"

    # SQLite file holding orders, offers, assemblies and specifications
    DATABASE_PATH = os.environ.get("MARKETPLACE_DATABASE_PATH", "marketplace.sqlite3")

    LOG_LEVEL = os.environ.get("MARKETPLACE_LOG_LEVEL", "INFO")
    LOG_DIR = os.environ.get("MARKETPLACE_LOG_DIR") or None
    ENABLE_FILE_LOGGING = _flag("MARKETPLACE_FILE_LOGGING", "0")

    # Populate an empty database with a demo order on startup
    SEED_DEMO_DATA = _flag("MARKETPLACE_SEED_DEMO_DATA", "0")

    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration."""

    LOG_LEVEL = os.environ.get("MARKETPLACE_LOG_LEVEL", "DEBUG")
    SEED_DEMO_DATA = _flag("MARKETPLACE_SEED_DEMO_DATA", "1")


class ProductionConfig(Config):
    """Production configuration."""

    ENABLE_FILE_LOGGING = _flag("MARKETPLACE_FILE_LOGGING", "1")
    SEED_DEMO_DATA = False


class TestingConfig(Config):
    """Testing configuration."""

    DATABASE_PATH = ":memory:"
    ENABLE_FILE_LOGGING = False
    SEED_DEMO_DATA = False
    TESTING = True


_CONFIGS = {
    "default": Config,
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}


def get_config(name: str = "") -> type:
    """Return the configuration class for ``name`` (or MARKETPLACE_ENV)."""
    key = (name or os.environ.get("MARKETPLACE_ENV", "default")).lower()
    try:
        return _CONFIGS[key]
    except KeyError as exc:
        raise ValueError(
            f"Unknown configuration {key!r}; expected one of {sorted(_CONFIGS)}"
        ) from exc
