"""Git Trickle: incremental publishing of large git histories.

This package provides the command-line interface, the git adapter and the
batching publisher that pushes every branch of a repository to a remote a
bounded number of commits at a time, followed by all tags.
"""

from . import (
    cli,
    config,
    constants,
    discovery,
    git_wrapper,
    publisher,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "discovery",
    "git_wrapper",
    "publisher",
]
