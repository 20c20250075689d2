from pathlib import Path

"""Global constants and configuration path definitions for Git Trickle.

This module defines the application identifiers, configuration file locations
and the publishing defaults used across the application.
"""

# --- Identity ---
APP_NAME = "git-trickle"
"""str: The human-readable application name."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-trickle"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "trickle.toml"
"""str: Per-repository configuration file name."""

PYPROJECT_SECTION = "tool.trickle"
"""str: The pyproject.toml table read when no local config file exists."""

# --- Publishing Defaults ---
DEFAULT_REMOTE = "origin"
"""str: The remote that receives published branches and tags."""

DEFAULT_BATCH_SIZE = 1000
"""int: Maximum number of commits advanced by a single intermediate push."""

DEFAULT_INTER_BATCH_DELAY = 2.0
"""float: Seconds to wait after each intermediate push."""

HEADS_PREFIX = "refs/heads/"
"""str: The ref namespace of local and remote branches."""

# --- Discovery ---
DEFAULT_DISCOVERY_NAMES = ["LinuxMCE", "Ubuntu_Helpers_NoHardcode"]
"""list[str]: Repository directory names searched for by `discover` by default."""
