"""Incremental publishing of branch histories to a remote.

A single `git push` of a very large history can exceed what a hosting endpoint
is willing to accept at once. The publisher instead walks each branch from its
first commit and advances the remote branch ref every `batch_size` commits,
pausing between pushes, then pushes the branch by name and finally all tags.

Every run re-walks each branch from the beginning. Pushing a commit the remote
already has is a no-op, so an interrupted run can simply be restarted.
"""

import logging
import time
from dataclasses import dataclass, field

from .config import Config
from .constants import (
    APP_NAME,
    DEFAULT_BATCH_SIZE,
    DEFAULT_INTER_BATCH_DELAY,
    DEFAULT_REMOTE,
    HEADS_PREFIX,
)
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


def batch_positions(total: int, batch_size: int) -> list[int]:
    """Returns the 1-based history positions that receive an intermediate push.

    Every multiple of `batch_size` up to `total` is a boundary, and so is `total`
    itself. When `total` is an exact multiple both rules name the same position,
    which appears once.

    Args:
        total (int): Number of commits in the branch history.
        batch_size (int): Maximum commits advanced per push.

    Returns:
        list[int]: Increasing positions; empty when `total` is 0.

    Raises:
        ValueError: If `batch_size` is not positive or `total` is negative.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    if total < 0:
        raise ValueError(f"total must not be negative, got {total}")

    positions = list(range(batch_size, total + 1, batch_size))
    if total and total % batch_size:
        positions.append(total)
    return positions


@dataclass
class BranchReport:
    """The outcome of publishing one branch.

    Attributes:
        branch (str): The local branch name.
        total (int): Number of commits in the branch history.
        pushes (list[tuple[int, str]]): (position, commit id) of every
            intermediate push, in the order issued.
        final_pushed (bool): Whether the final push by name was accepted.
    """

    branch: str
    total: int
    pushes: list[tuple[int, str]] = field(default_factory=list)
    final_pushed: bool = False


@dataclass
class PublishReport:
    """The outcome of a full run.

    Attributes:
        remote (str): The remote that was published to.
        branches (list[BranchReport]): Per-branch results in processing order.
        tags_pushed (bool): Whether the tag push was accepted.
    """

    remote: str
    branches: list[BranchReport] = field(default_factory=list)
    tags_pushed: bool = False

    @property
    def push_count(self) -> int:
        """Total number of intermediate pushes across all branches."""
        return sum(len(b.pushes) for b in self.branches)


class Publisher:
    """Publishes every local branch and all tags of a repository in batches.

    Branches are processed one at a time and, within a branch, pushes are
    issued in increasing history order. Each push target is an ancestor of the
    next one, so every remote ref update is a fast-forward.

    Any push failure aborts the run by propagating the `RuntimeError` raised by
    `GitRepo`. The only tolerated failure is the final push of a branch with no
    commits.
    """

    def __init__(
        self,
        repo: GitRepo,
        remote_name: str = DEFAULT_REMOTE,
        batch_size: int = DEFAULT_BATCH_SIZE,
        inter_batch_delay: float = DEFAULT_INTER_BATCH_DELAY,
        push_timeout: float | None = None,
        exclude: list[str] | None = None,
        force: bool = False,
        dry_run: bool = False,
    ):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if inter_batch_delay < 0:
            raise ValueError(
                f"inter_batch_delay must not be negative, got {inter_batch_delay}"
            )
        self.repo = repo
        self.remote_name = remote_name
        self.batch_size = batch_size
        self.inter_batch_delay = inter_batch_delay
        self.push_timeout = push_timeout or None
        self.exclude = set(exclude or [])
        self.force = force
        self.dry_run = dry_run

    @classmethod
    def from_config(
        cls, repo: GitRepo, config: Config, dry_run: bool = False
    ) -> "Publisher":
        """Builds a publisher from a loaded configuration."""
        return cls(
            repo,
            remote_name=config.core.remote_name,
            batch_size=config.publish.batch_size,
            inter_batch_delay=config.publish.inter_batch_delay,
            push_timeout=config.publish.push_timeout,
            exclude=config.publish.exclude,
            force=config.publish.force,
            dry_run=dry_run,
        )

    def _refspec(self, source: str, branch: str) -> str:
        prefix = "+" if self.force else ""
        return f"{prefix}{source}:{HEADS_PREFIX}{branch}"

    def _push(self, refspec: str) -> None:
        self.repo.push(
            self.remote_name,
            refspec,
            dry_run=self.dry_run,
            timeout=self.push_timeout,
        )

    def publish_branch(self, branch: str) -> BranchReport:
        """Pushes one branch's history in batches, then the branch by name.

        Args:
            branch (str): The local branch name.

        Returns:
            BranchReport: The pushes issued for this branch.

        Raises:
            RuntimeError: If any push is rejected or times out.
        """
        logger.info(f"Processing branch: {branch}")
        commits = self.repo.list_commits(f"{HEADS_PREFIX}{branch}")
        total = len(commits)
        logger.info(f"Total commits in {branch}: {total}")

        report = BranchReport(branch=branch, total=total)

        positions = batch_positions(total, self.batch_size)
        for batch, count in enumerate(positions, start=1):
            commit = commits[count - 1]
            logger.info(
                f"Pushing commit {count}/{total} in {branch} "
                f"(batch {batch}/{len(positions)})"
            )
            self._push(self._refspec(commit, branch))
            report.pushes.append((count, commit))

            if self.inter_batch_delay and not self.dry_run:
                time.sleep(self.inter_batch_delay)

        # The final push pins the remote ref to the local tip by name.
        logger.info(f"Final push for branch {branch}")
        try:
            self._push(self._refspec(f"{HEADS_PREFIX}{branch}", branch))
        except RuntimeError as e:
            if total:
                raise
            logger.warning(f"Nothing to publish for empty branch {branch}: {e}")
            return report

        report.final_pushed = True
        return report

    def publish_all(self) -> PublishReport:
        """Publishes every local branch in lexicographic order, then all tags.

        Returns:
            PublishReport: Per-branch results and the tag push outcome.

        Raises:
            RuntimeError: If any push is rejected or times out.
        """
        report = PublishReport(remote=self.remote_name)

        for branch in self.repo.list_branches():
            if branch in self.exclude:
                logger.info(f"Skipping excluded branch: {branch}")
                continue
            report.branches.append(self.publish_branch(branch))

        logger.info("Pushing tags...")
        self.repo.push_tags(
            self.remote_name, dry_run=self.dry_run, timeout=self.push_timeout
        )
        report.tags_pushed = True

        logger.info(
            f"Incremental push completed for {len(report.branches)} branch(es) "
            f"and tags ({report.push_count} batch push(es))."
        )
        return report
