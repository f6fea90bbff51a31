"""Common types used across the codebase."""

from typing import Optional, Protocol, NewType

# Commit identifiers
CommitHash = NewType('CommitHash', str)


class GitInterface(Protocol):
    """Protocol for the git operations the stack engine relies on.

    Implemented by RealGit on top of GitPython, and by in-memory fakes in tests.
    """
    def run_cmd(self, command: str) -> str:
        """Run a raw git command and return its output."""
        ...

    def must_git(self, command: str) -> str:
        """Run a raw git command, failing on error."""
        ...

    def current_branch(self) -> str:
        """Name of the checked out branch."""
        ...

    def switch_branch(self, name: str) -> None:
        """Check out an existing branch."""
        ...

    def create_branch(self, name: str, start_point: str) -> None:
        """Create a branch at start_point without checking it out."""
        ...

    def branch_exists(self, name: str) -> bool:
        """Whether a local branch with this name exists."""
        ...

    def check_branch_name(self, name: str) -> bool:
        """Whether name is a valid branch name."""
        ...

    def delete_branch(self, name: str, force: bool = False) -> None:
        """Delete a local branch."""
        ...

    def rebase(self, branch: str, onto: str, update_refs: bool = True) -> None:
        """Check out branch and rebase it onto another branch."""
        ...

    def rebase_in_progress(self) -> bool:
        """Whether a rebase stopped and is waiting for the user."""
        ...

    def pull(self, remote: str, branch: str, rebase: bool = True) -> None:
        """Check out branch and pull it from the remote."""
        ...

    def push(self, remote: str, branch: str, force_with_lease: Optional[str] = None,
             set_upstream: bool = False) -> None:
        """Push branch, optionally guarded by the expected remote hash."""
        ...

    def resolve_commit_hash(self, ref: str) -> CommitHash:
        """Resolve a ref to its commit hash."""
        ...

    def remote_tracking_hash(self, remote: str, branch: str) -> Optional[CommitHash]:
        """Hash of the remote tracking ref, or None if there is none."""
        ...

    def remote_url(self, remote: str) -> str:
        """URL configured for the remote."""
        ...


class GstackError(Exception):
    """Base class for errors reported to the user."""


class NotInStackError(GstackError):
    """Raised when the current branch is not part of any tracked stack."""

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"Branch {branch} is not part of a stack")


class BranchNotFoundError(GstackError):
    """Raised when a branch is expected to exist but does not."""

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"Branch {branch} not found")


class BranchAlreadyTrackedError(GstackError):
    """Raised when a branch is already a member of a stack."""

    def __init__(self, branch: str, prefix: Optional[str] = None):
        self.branch = branch
        self.prefix = prefix
        where = f" in stack {prefix}" if prefix else ""
        super().__init__(f"Branch {branch} is already tracked{where}")


class BranchExistsError(GstackError):
    """Raised when creating a branch whose name is taken."""

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"Branch {branch} already exists")


class InvalidBranchNameError(GstackError):
    """Raised when git refuses a branch name."""

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"Invalid branch name: {branch}")


class GitError(GstackError):
    """A git command failed."""

    def __init__(self, message: str, command: Optional[str] = None):
        self.command = command
        super().__init__(message)


class RebaseConflictError(GitError):
    """A rebase stopped on conflicts and was left for the user to resolve."""

    def __init__(self, branch: str, onto: str):
        self.branch = branch
        self.onto = onto
        super().__init__(
            f"Rebase of {branch} onto {onto} stopped on conflicts. "
            f"Resolve them and run 'git rebase --continue', then sync again")


class PushRejectedError(GitError):
    """The remote refused a push, usually because the lease was stale."""

    def __init__(self, branch: str, detail: str = ""):
        self.branch = branch
        message = f"Push of {branch} was rejected"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class GitHubError(GstackError):
    """A GitHub API call failed."""

    def __init__(self, message: str, number: Optional[int] = None):
        self.number = number
        super().__init__(message)


class MergeSettleError(GitHubError):
    """A merged pull request never reported itself as merged."""

    def __init__(self, number: int, attempts: int):
        self.attempts = attempts
        super().__init__(f"PR #{number} was not reported as merged after {attempts} checks", number)
