import logging
import os
from pathlib import Path

from .constants import APP_NAME
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


def _is_repository(path: Path) -> bool:
    """Returns True for a working copy (has `.git`) or a bare `*.git` repository."""
    if (path / ".git").exists():
        return True
    return path.name.endswith(".git") and GitRepo.is_bare(path)


def find_repositories(root: Path, names: list[str]) -> list[Path]:
    """Searches a directory tree for repositories with one of the given names.

    A directory matches when its name is in `names` (or is `<name>.git`) and it
    is a git working copy or a bare repository. Matched repositories are not
    searched further, and unreadable directories are skipped.

    Args:
        root (Path): The directory to search, e.g. the user's home.
        names (list[str]): Repository directory names to look for.

    Returns:
        list[Path]: Sorted paths of the repositories found.
    """
    wanted = set(names) | {f"{n}.git" for n in names}
    found: list[Path] = []

    def on_error(e: OSError) -> None:
        logger.debug(f"Skipping unreadable directory {e.filename}: {e.strerror}")

    for dirpath, dirnames, _ in os.walk(root, onerror=on_error):
        kept = []
        for name in dirnames:
            candidate = Path(dirpath) / name
            if name in wanted and _is_repository(candidate):
                logger.info(f"Found repository: {candidate}")
                found.append(candidate)
            elif name != ".git":
                kept.append(name)
        # Prune in place so os.walk does not descend into matches.
        dirnames[:] = kept

    return sorted(found)
