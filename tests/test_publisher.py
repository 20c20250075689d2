"""Tests for the incremental branch publisher."""

import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, call

import pytest

from git_trickle.config import Config
from git_trickle.git_wrapper import GitRepo
from git_trickle.publisher import Publisher, batch_positions


def _commits(n: int) -> list[str]:
    return [f"c{i:05d}" for i in range(1, n + 1)]


@pytest.fixture
def repo(mocker: MagicMock) -> MagicMock:
    """A GitRepo double whose branches are configured per test."""
    return mocker.MagicMock(spec=GitRepo)


@pytest.fixture
def mock_sleep(mocker: MagicMock) -> MagicMock:
    return mocker.patch("git_trickle.publisher.time.sleep")


def test_batch_positions_concrete_cases() -> None:
    assert batch_positions(2500, 1000) == [1000, 2000, 2500]
    assert batch_positions(1000, 1000) == [1000]
    assert batch_positions(999, 1000) == [999]
    assert batch_positions(1, 1) == [1]
    assert batch_positions(0, 1000) == []


@pytest.mark.parametrize(("total", "batch_size"), [(10, 0), (10, -1), (-1, 10)])
def test_batch_positions_rejects_invalid_input(total: int, batch_size: int) -> None:
    with pytest.raises(ValueError):
        batch_positions(total, batch_size)


def test_publish_branch_2500_commits(repo: MagicMock, mock_sleep: MagicMock) -> None:
    """Verifies pushes at 1000, 2000 and 2500 followed by the named final push."""
    commits = _commits(2500)
    repo.list_commits.return_value = commits

    report = Publisher(repo).publish_branch("main")

    repo.list_commits.assert_called_once_with("refs/heads/main")
    assert repo.push.call_args_list == [
        call("origin", f"{commits[999]}:refs/heads/main", dry_run=False, timeout=None),
        call("origin", f"{commits[1999]}:refs/heads/main", dry_run=False, timeout=None),
        call("origin", f"{commits[2499]}:refs/heads/main", dry_run=False, timeout=None),
        call("origin", "refs/heads/main:refs/heads/main", dry_run=False, timeout=None),
    ]
    assert [pos for pos, _ in report.pushes] == [1000, 2000, 2500]
    assert report.total == 2500
    assert report.final_pushed

    # One pause per intermediate push, none after the final push.
    assert mock_sleep.call_args_list == [call(2.0)] * 3


def test_publish_branch_exact_multiple_pushes_once_at_tip(
    repo: MagicMock, mock_sleep: MagicMock
) -> None:
    """Verifies the batch boundary and the last commit coincide on one push."""
    commits = _commits(1000)
    repo.list_commits.return_value = commits

    report = Publisher(repo).publish_branch("main")

    assert report.pushes == [(1000, commits[-1])]
    assert repo.push.call_count == 2
    repo.push.assert_called_with(
        "origin", "refs/heads/main:refs/heads/main", dry_run=False, timeout=None
    )


def test_publish_branch_empty_history_only_final_push(
    repo: MagicMock, mock_sleep: MagicMock
) -> None:
    repo.list_commits.return_value = []

    report = Publisher(repo).publish_branch("orphan")

    repo.push.assert_called_once_with(
        "origin", "refs/heads/orphan:refs/heads/orphan", dry_run=False, timeout=None
    )
    assert report.pushes == []
    assert report.final_pushed
    mock_sleep.assert_not_called()


def test_publish_branch_empty_history_tolerates_failed_final_push(
    repo: MagicMock, mock_sleep: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies an empty branch reports 'nothing to publish' instead of aborting."""
    repo.list_commits.return_value = []
    repo.push.side_effect = RuntimeError("Git error: src refspec does not match")

    report = Publisher(repo).publish_branch("orphan")

    assert not report.final_pushed
    assert "Nothing to publish for empty branch orphan" in caplog.text


def test_publish_branch_push_failure_is_fatal(
    repo: MagicMock, mock_sleep: MagicMock
) -> None:
    repo.list_commits.return_value = _commits(3000)
    repo.push.side_effect = [None, RuntimeError("Git error: rejected")]

    with pytest.raises(RuntimeError, match="rejected"):
        Publisher(repo).publish_branch("main")

    assert repo.push.call_count == 2


def test_publish_branch_rerun_issues_same_pushes(
    repo: MagicMock, mock_sleep: MagicMock
) -> None:
    """Verifies a second run re-walks history and issues the same push sequence."""
    repo.list_commits.return_value = _commits(2100)
    publisher = Publisher(repo, batch_size=700)

    publisher.publish_branch("main")
    first = list(repo.push.call_args_list)
    repo.push.reset_mock()
    publisher.publish_branch("main")

    assert repo.push.call_args_list == first


def test_publish_branch_options(repo: MagicMock, mock_sleep: MagicMock) -> None:
    """Verifies remote, force, timeout and zero delay are forwarded."""
    commits = _commits(5)
    repo.list_commits.return_value = commits

    publisher = Publisher(
        repo,
        remote_name="github",
        batch_size=2,
        inter_batch_delay=0,
        push_timeout=30.0,
        force=True,
    )
    report = publisher.publish_branch("dev")

    assert [pos for pos, _ in report.pushes] == [2, 4, 5]
    repo.push.assert_any_call(
        "github", f"+{commits[1]}:refs/heads/dev", dry_run=False, timeout=30.0
    )
    repo.push.assert_called_with(
        "github", "+refs/heads/dev:refs/heads/dev", dry_run=False, timeout=30.0
    )
    mock_sleep.assert_not_called()


def test_zero_push_timeout_means_no_timeout(
    repo: MagicMock, mock_sleep: MagicMock
) -> None:
    """Verifies a timeout of 0 waits indefinitely instead of killing every push."""
    repo.list_commits.return_value = _commits(1)

    publisher = Publisher(repo, push_timeout=0)
    assert publisher.push_timeout is None

    publisher.publish_branch("main")
    assert all(c.kwargs["timeout"] is None for c in repo.push.call_args_list)


def test_publish_branch_dry_run_does_not_sleep(
    repo: MagicMock, mock_sleep: MagicMock
) -> None:
    repo.list_commits.return_value = _commits(3)

    Publisher(repo, batch_size=1, dry_run=True).publish_branch("main")

    assert repo.push.call_count == 4
    assert all(c.kwargs["dry_run"] for c in repo.push.call_args_list)
    mock_sleep.assert_not_called()


def test_publish_branch_logs_progress(
    repo: MagicMock, mock_sleep: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    import logging

    caplog.set_level(logging.INFO)
    repo.list_commits.return_value = _commits(3)

    Publisher(repo, batch_size=2).publish_branch("main")

    assert "Total commits in main: 3" in caplog.text
    assert "Pushing commit 2/3 in main (batch 1/2)" in caplog.text
    assert "Pushing commit 3/3 in main (batch 2/2)" in caplog.text
    assert "Final push for branch main" in caplog.text


def test_publish_all_orders_branches_and_pushes_tags_last(
    repo: MagicMock, mock_sleep: MagicMock
) -> None:
    repo.list_branches.return_value = ["feature", "main", "release"]
    repo.list_commits.return_value = _commits(3)

    report = Publisher(repo, batch_size=2, exclude=["release"]).publish_all()

    assert [b.branch for b in report.branches] == ["feature", "main"]
    assert report.tags_pushed
    assert report.push_count == 4
    repo.push_tags.assert_called_once_with("origin", dry_run=False, timeout=None)

    # Tags go out after every branch push.
    names = [c[0] for c in repo.mock_calls if c[0] in ("push", "push_tags")]
    assert names[-1] == "push_tags"
    assert names.count("push_tags") == 1


def test_publish_all_without_branches_still_pushes_tags(
    repo: MagicMock, mock_sleep: MagicMock
) -> None:
    repo.list_branches.return_value = []

    report = Publisher(repo).publish_all()

    assert report.branches == []
    repo.push.assert_not_called()
    repo.push_tags.assert_called_once()


def test_publish_all_aborts_before_tags_on_failure(
    repo: MagicMock, mock_sleep: MagicMock
) -> None:
    repo.list_branches.return_value = ["a", "b"]
    repo.list_commits.return_value = _commits(1)
    repo.push.side_effect = RuntimeError("Git error: auth failed")

    with pytest.raises(RuntimeError):
        Publisher(repo).publish_all()

    repo.list_commits.assert_called_once_with("refs/heads/a")
    repo.push_tags.assert_not_called()


def test_from_config(repo: MagicMock) -> None:
    conf = Config()
    conf.core.remote_name = "mirror"
    conf.publish.batch_size = 50
    conf.publish.inter_batch_delay = 0.5
    conf.publish.exclude = ["wip"]

    publisher = Publisher.from_config(repo, conf, dry_run=True)

    assert publisher.remote_name == "mirror"
    assert publisher.batch_size == 50
    assert publisher.inter_batch_delay == 0.5
    assert publisher.exclude == {"wip"}
    assert publisher.dry_run


@pytest.mark.parametrize(
    "kwargs", [{"batch_size": 0}, {"batch_size": -5}, {"inter_batch_delay": -1}]
)
def test_publisher_rejects_invalid_settings(repo: MagicMock, kwargs: dict) -> None:
    with pytest.raises(ValueError):
        Publisher(repo, **kwargs)


def _git(cwd: Path, *args: str) -> str:
    res = subprocess.run(
        [
            "git",
            "-c",
            "user.name=Trickle Test",
            "-c",
            "user.email=trickle@example.com",
            "-c",
            "commit.gpgsign=false",
            *args,
        ],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return res.stdout.strip()


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_publish_all_against_bare_remote(tmp_path: Path, mock_sleep: MagicMock) -> None:
    """Publishes a real repository into a bare remote and compares the refs."""
    remote = tmp_path / "remote.git"
    work = tmp_path / "work"
    work.mkdir()
    _git(tmp_path, "init", "--bare", str(remote))
    _git(work, "init", "-b", "main")
    _git(work, "remote", "add", "origin", str(remote))

    for i in range(5):
        _git(work, "commit", "--allow-empty", "-m", f"commit {i}")
    _git(work, "tag", "v1")
    _git(work, "branch", "feature", "HEAD~2")

    report = Publisher(GitRepo(work), batch_size=2).publish_all()

    assert [(b.branch, b.total) for b in report.branches] == [
        ("feature", 3),
        ("main", 5),
    ]
    for branch in ("main", "feature"):
        local = _git(work, "rev-parse", f"refs/heads/{branch}")
        assert _git(remote, "rev-parse", f"refs/heads/{branch}") == local
    assert _git(remote, "rev-parse", "refs/tags/v1") == _git(work, "rev-parse", "v1")
