import logging
import subprocess
from pathlib import Path

from .constants import APP_NAME, HEADS_PREFIX

logger = logging.getLogger(APP_NAME)


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    This class provides the read-only history queries and the push operations
    the publisher needs, abstracting away command construction and output
    handling. Nothing here mutates the local repository.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the path is neither a working copy (contains .git)
                        nor a bare repository.
        """
        self.path = path
        if not (self.path / ".git").exists() and not self.is_bare(self.path):
            raise ValueError(f"Not a git repository: {self.path}")

    @staticmethod
    def is_bare(path: Path) -> bool:
        """Checks for the layout of a bare repository (HEAD, objects/, refs/).

        Args:
            path (Path): The directory to inspect.

        Returns:
            bool: True if the directory looks like a bare repository.
        """
        return (
            (path / "HEAD").is_file()
            and (path / "objects").is_dir()
            and (path / "refs").is_dir()
        )

    def _run(
        self,
        args: list[str],
        capture: bool = True,
        timeout: float | None = None,
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            timeout (float | None, optional): Seconds to wait before the command
                                              is killed. Defaults to None (wait
                                              indefinitely).

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code
                          or exceeds the timeout.
        """
        logger.debug(f"git {' '.join(args)}")
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
                timeout=timeout,
            )
            return res.stdout.strip() if capture else ""
        except subprocess.TimeoutExpired as e:
            raise RuntimeError(
                f"Git timed out after {timeout}s: git {' '.join(args)}"
            ) from e
        except subprocess.CalledProcessError as e:
            raise RuntimeError(f"Git error: {(e.stderr or '').strip() or e}") from e

    def list_branches(self) -> list[str]:
        """Lists the short names of all local branches in lexicographic order.

        Returns:
            list[str]: Branch names, e.g. ['feature/x', 'main'].
        """
        output = self._run(
            ["for-each-ref", "--format=%(refname:short)", HEADS_PREFIX]
        )
        return sorted(line for line in output.splitlines() if line)

    def list_remotes(self) -> list[str]:
        """Lists the configured remote aliases.

        Returns:
            list[str]: Remote names, e.g. ['origin'].
        """
        output = self._run(["remote"])
        return output.splitlines() if output else []

    def list_commits(self, ref: str) -> list[str]:
        """Lists the commits reachable from a reference, oldest first.

        The order is the topological order reported by `git rev-list --reverse`,
        not commit creation time.

        Args:
            ref (str): The branch or reference whose history is listed.

        Returns:
            list[str]: Full commit ids; empty if the reference has no history.
        """
        output = self._run(["rev-list", "--reverse", ref])
        return output.splitlines() if output else []

    def push(
        self,
        remote: str,
        refspec: str,
        dry_run: bool = False,
        timeout: float | None = None,
    ) -> None:
        """Pushes a single refspec to a remote.

        Args:
            remote (str): The remote name (e.g., 'origin').
            refspec (str): The refspec to push (e.g., '<sha>:refs/heads/main').
            dry_run (bool, optional): Pass `--dry-run` so the remote is not
                                      updated. Defaults to False.
            timeout (float | None, optional): Seconds before the push is aborted.

        Raises:
            RuntimeError: If the remote rejects the push or it times out.
        """
        cmd = ["push"]
        if dry_run:
            cmd.append("--dry-run")
        cmd.extend([remote, refspec])
        self._run(cmd, timeout=timeout)

    def push_tags(
        self, remote: str, dry_run: bool = False, timeout: float | None = None
    ) -> None:
        """Pushes every local tag to a remote in a single operation.

        Args:
            remote (str): The remote name.
            dry_run (bool, optional): Pass `--dry-run`. Defaults to False.
            timeout (float | None, optional): Seconds before the push is aborted.

        Raises:
            RuntimeError: If the remote rejects the push or it times out.
        """
        cmd = ["push"]
        if dry_run:
            cmd.append("--dry-run")
        cmd.extend([remote, "--tags"])
        self._run(cmd, timeout=timeout)
