"""Git interfaces and implementation."""

import os
import shlex
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from ..typing import (
    CommitHash, GitInterface, GitError, RebaseConflictError, PushRejectedError
)
from ..config.models import GstackConfig

__all__ = ['RealGit', 'GitInterface', 'preserve_checkout']

# Get module logger
logger = logging.getLogger(__name__)

# Fragments git prints when a push loses its lease or is not a fast-forward
PUSH_REJECTED_MARKERS = ("[rejected]", "stale info", "non-fast-forward", "failed to push")

class RealGit:
    """Git implementation backed by GitPython."""
    def __init__(self, config: GstackConfig):
        """Initialize with config."""
        self.config: GstackConfig = config

    def _repo(self) -> git.Repo:
        try:
            return git.Repo(os.getcwd(), search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError):
            raise GitError("Not in a git repository")

    def run_cmd(self, command: str) -> str:
        """Run git command."""
        cmd_str = command.strip()
        log = logger.info if self.config.user.log_git_commands else logger.debug

        if self.config.tool.pretend and cmd_str.startswith('push'):
            # Pretend mode - just log
            logger.info(f"> git {cmd_str} (pretend)")
            return ""

        log(f"> git {cmd_str}")
        cmd_parts = shlex.split(cmd_str)
        git_command = cmd_parts[0]
        git_args = cmd_parts[1:]
        try:
            method = getattr(self._repo().git, git_command.replace('-', '_'))
            result = method(*git_args)
        except GitCommandError as e:
            stderr = (e.stderr or "").strip()
            raise GitError(f"git {cmd_str} failed: {stderr or e}", cmd_str) from e
        return result if isinstance(result, str) else str(result)

    def must_git(self, command: str) -> str:
        """Run git command, failing on error."""
        return self.run_cmd(command)

    def current_branch(self) -> str:
        branch = self.must_git("rev-parse --abbrev-ref HEAD").strip()
        if branch == "HEAD":
            raise GitError("HEAD is detached, check out a branch first")
        return branch

    def switch_branch(self, name: str) -> None:
        self.must_git(f"checkout {name}")

    def create_branch(self, name: str, start_point: str) -> None:
        self.must_git(f"branch {name} {start_point}")

    def branch_exists(self, name: str) -> bool:
        try:
            self.run_cmd(f"rev-parse --verify --quiet refs/heads/{name}")
        except GitError:
            return False
        return True

    def check_branch_name(self, name: str) -> bool:
        """Check name with git check-ref-format --branch."""
        try:
            self.run_cmd(f"check-ref-format --branch {shlex.quote(name)}")
        except GitError:
            return False
        return True

    def delete_branch(self, name: str, force: bool = False) -> None:
        flag = "-D" if force else "-d"
        self.must_git(f"branch {flag} {name}")

    def rebase(self, branch: str, onto: str, update_refs: bool = True) -> None:
        """Check out branch and rebase it onto onto.

        On conflicts the rebase is left in progress and RebaseConflictError is raised.
        """
        self.switch_branch(branch)
        flags = "--update-refs " if update_refs else ""
        try:
            self.must_git(f"rebase {flags}{onto}")
        except GitError as e:
            if self.rebase_in_progress():
                raise RebaseConflictError(branch, onto) from e
            raise

    def rebase_in_progress(self) -> bool:
        git_dir = self._repo().git_dir
        return any(os.path.isdir(os.path.join(git_dir, d)) for d in ("rebase-merge", "rebase-apply"))

    def pull(self, remote: str, branch: str, rebase: bool = True) -> None:
        """Check out branch and pull it from remote.

        A pull that stops on conflicts is aborted so the branch is left as it was.
        """
        self.switch_branch(branch)
        flags = "--rebase " if rebase else ""
        try:
            self.must_git(f"pull {flags}{remote} {branch}")
        except GitError:
            if self.rebase_in_progress():
                logger.warning(f"Pull of {branch} stopped on conflicts, aborting it")
                self.must_git("rebase --abort")
            raise

    def push(self, remote: str, branch: str, force_with_lease: Optional[str] = None,
             set_upstream: bool = False) -> None:
        """Push branch to remote.

        force_with_lease is the remote hash we expect to overwrite. The push is
        refused if the remote moved since.
        """
        args = ["push"]
        if set_upstream:
            args.append("-u")
        if force_with_lease is not None:
            args.append(f"--force-with-lease={branch}:{force_with_lease}")
        args += [remote, branch]
        try:
            self.must_git(" ".join(args))
        except GitError as e:
            message = str(e)
            if any(marker in message for marker in PUSH_REJECTED_MARKERS):
                raise PushRejectedError(branch, message) from e
            raise

    def resolve_commit_hash(self, ref: str) -> CommitHash:
        return CommitHash(self.must_git(f"rev-parse --verify {ref}").strip())

    def remote_tracking_hash(self, remote: str, branch: str) -> Optional[CommitHash]:
        try:
            output = self.run_cmd(f"rev-parse --verify --quiet refs/remotes/{remote}/{branch}")
        except GitError:
            return None
        output = output.strip()
        return CommitHash(output) if output else None

    def remote_url(self, remote: str) -> str:
        return self.must_git(f"remote get-url {remote}").strip()

    def git_dir(self) -> str:
        """Absolute path of the repository's .git directory."""
        return self._repo().git_dir

@contextmanager
def preserve_checkout(git_cmd: GitInterface) -> Iterator[str]:
    """Return to the branch checked out on entry when the block exits.

    A rebase stopped on conflicts is left alone so the user can resolve it
    on the conflicted branch. A branch deleted inside the block is not restored.
    """
    original = git_cmd.current_branch()
    try:
        yield original
    finally:
        if git_cmd.rebase_in_progress():
            logger.warning(f"Rebase in progress, staying on the conflicted branch instead of {original}")
        else:
            try:
                if git_cmd.branch_exists(original) and git_cmd.current_branch() != original:
                    logger.debug(f"Restoring branch {original}")
                    git_cmd.switch_branch(original)
            except GitError as e:
                logger.error(f"Failed to restore branch {original}: {e}")
