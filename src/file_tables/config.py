"""Environment configuration for file tables.

Usage::

    from file_tables.config import load_config

    cfg = load_config()      # reads .env, then the process environment
    print(cfg.root)          # data
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

DEFAULT_ROOT = Path("data")
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True, slots=True)
class StoreConfig:
    """Immutable settings for a file table database."""

    root: Path
    log_level: str = DEFAULT_LOG_LEVEL


def load_config(env: Mapping[str, str] | None = None, dotenv: bool = True) -> StoreConfig:
    """Build a :class:`StoreConfig` from environment variables.

    ``FILE_TABLES_ROOT`` names the root directory directly. Otherwise the
    parent directory of ``DB_PATH`` is used, so a deployment that still points
    ``DB_PATH`` at ``data/bot.db`` keeps its tables under ``data/``.

    Parameters
    ----------
    env:
        Variables to read instead of ``os.environ``.
    dotenv:
        Load the nearest ``.env`` file (searching up from the working
        directory) into the process environment first. Variables already set
        are not overridden.
    """
    if dotenv:
        load_dotenv(find_dotenv(usecwd=True))
    if env is None:
        env = os.environ

    if env.get("FILE_TABLES_ROOT"):
        root = Path(env["FILE_TABLES_ROOT"])
    elif env.get("DB_PATH"):
        root = Path(env["DB_PATH"]).parent
    else:
        root = DEFAULT_ROOT

    return StoreConfig(
        root=root,
        log_level=env.get("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
    )
