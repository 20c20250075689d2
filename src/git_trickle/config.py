import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_BATCH_SIZE,
    DEFAULT_INTER_BATCH_DELAY,
    DEFAULT_REMOTE,
    LOCAL_CONFIG_NAME,
    PYPROJECT_SECTION,
)

logger = logging.getLogger(APP_NAME)


def parse_duration(value: int | float | str) -> float:
    """Converts human-readable durations (e.g., '2s', '500ms', '1m') to seconds."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration format '{value}'")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        match = re.match(
            r"^(\d+(?:\.\d+)?)\s*(ms|s|sec|m|min|h|hr)?s?$", str(value).strip().lower()
        )
        if not match:
            raise ValueError(f"Invalid duration format '{value}'")
        num, unit = float(match.group(1)), match.group(2) or "s"
        multiplier = {
            "ms": 0.001,
            "s": 1,
            "sec": 1,
            "m": 60,
            "min": 60,
            "h": 3600,
            "hr": 3600,
        }
        seconds = num * multiplier[unit]
    if seconds < 0:
        raise ValueError(f"Duration must not be negative, got '{value}'")
    return seconds


def parse_batch_size(value: int | str) -> int:
    """Validates a batch size, which must be a positive integer."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid batch size '{value}'")
    try:
        size = int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid batch size '{value}'") from e
    if size != float(value) or size <= 0:
        raise ValueError(f"Batch size must be a positive integer, got '{value}'")
    return size


def parse_timeout(value: int | float | str | None) -> float | None:
    """Converts a push timeout to seconds. Zero (or None) disables the timeout."""
    if value is None:
        return None
    return parse_duration(value) or None


def parse_bool(value: bool) -> bool:
    """Accepts only real booleans; strings such as 'false' are rejected."""
    if not isinstance(value, bool):
        raise ValueError(f"Expected true or false, got '{value}'")
    return value


def parse_str(value: str) -> str:
    """Accepts only non-empty strings."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected a non-empty string, got '{value}'")
    return value.strip()


def parse_branch_list(value: str | list[str]) -> list[str]:
    """Normalizes a branch name or a list of branch names to a list."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"Expected a list of branch names, got '{value}'")
    return [v for v in value if v]


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        remote_name (str): The git remote that receives branches and tags.
    """

    remote_name: str = DEFAULT_REMOTE


@dataclass
class PublishConfig:
    """Incremental publishing settings.

    Attributes:
        batch_size (int): Max commits advanced per intermediate push.
        inter_batch_delay (float): Seconds to pause after each intermediate push.
        push_timeout (float | None): Seconds before a single push is aborted.
                                     None waits indefinitely.
        exclude (list[str]): Branch names that are never published.
        force (bool): Whether intermediate and final pushes are forced ('+').
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    inter_batch_delay: float = DEFAULT_INTER_BATCH_DELAY
    push_timeout: float | None = None
    exclude: list[str] = field(default_factory=list)
    force: bool = False


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        publish (PublishConfig): Publishing settings.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            repo_path (Path | None): The repository root to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Copy sections so local overrides never leak into the cache.
        cached = cls._global_cache
        instance = cls(
            core=replace(cached.core),
            publish=replace(cached.publish, exclude=list(cached.publish.exclude)),
        )

        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section=PYPROJECT_SECTION)

        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.trickle').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "publish" in data:
                # Extract exclude list so it extends rather than replaces.
                updates = dict(data["publish"])
                new_excludes = updates.pop("exclude", [])
                self.publish = self._update_dataclass("publish", self.publish, updates)
                try:
                    new_excludes = parse_branch_list(new_excludes)
                except ValueError as e:
                    logger.warning(
                        f"Config error in [publish].exclude: {e}. Ignoring."
                    )
                    new_excludes = []
                if new_excludes:
                    merged = [*self.publish.exclude, *new_excludes]
                    self.publish.exclude = list(dict.fromkeys(merged))

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "batch_size":
                    filtered_updates[k] = parse_batch_size(v)
                elif k == "inter_batch_delay":
                    filtered_updates[k] = parse_duration(v)
                elif k == "push_timeout":
                    filtered_updates[k] = parse_timeout(v)
                elif k == "force":
                    filtered_updates[k] = parse_bool(v)
                elif k == "remote_name":
                    filtered_updates[k] = parse_str(v)
                elif k == "exclude":
                    filtered_updates[k] = parse_branch_list(v)
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
