"""GitHub interfaces and implementation."""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

import yaml
from github import GithubException

from ..config.models import GstackConfig, MergeMethod
from ..typing import CommitHash, GitHubError

# Get module logger
logger = logging.getLogger(__name__)

# Line that separates the author's text from the generated stack list
STACK_SENTINEL = "---"
THIS_PR_MARKER = " (This PR)"
STACK_FOOTER = "**Created by gstack**"

@dataclass
class PullRequest:
    """Pull request info."""
    number: int
    head_sha: CommitHash
    head_ref: str
    base_ref: str
    title: str = ""
    body: str = ""
    url: str = ""
    merged: bool = False
    state: str = "open"

    def __str__(self) -> str:
        return f"PR #{self.number} - {self.title}"

    @classmethod
    def from_github(cls, pr: 'GitHubPullRequestProtocol') -> 'PullRequest':
        return cls(
            number=pr.number,
            head_sha=CommitHash(pr.head.sha),
            head_ref=pr.head.ref,
            base_ref=pr.base.ref,
            title=pr.title,
            body=pr.body or "",
            url=pr.html_url or "",
            merged=bool(pr.merged),
            state=pr.state,
        )

# Define protocols for GitHub objects
@runtime_checkable
class GitHubRefProtocol(Protocol):
    """Protocol for GitHub ref objects (base/head references)."""
    @property
    def ref(self) -> str:
        """Get the ref name (e.g., 'main', 'feature-branch')."""
        ...

    @property
    def sha(self) -> str:
        """Get the commit SHA."""
        ...

@runtime_checkable
class GitHubPullRequestProtocol(Protocol):
    """Protocol for GitHub pull request objects (real or fake)."""
    @property
    def number(self) -> int:
        ...

    @property
    def title(self) -> str:
        ...

    @property
    def body(self) -> Optional[str]:
        ...

    @property
    def state(self) -> str:
        """Get the PR state (open, closed)."""
        ...

    @property
    def html_url(self) -> str:
        ...

    @property
    def base(self) -> GitHubRefProtocol:
        ...

    @property
    def head(self) -> GitHubRefProtocol:
        ...

    @property
    def merged(self) -> bool:
        ...

    def edit(self, title: Optional[str] = None, body: Optional[str] = None, state: Optional[str] = None,
             base: Optional[str] = None) -> None:
        """Edit the pull request."""
        ...

    def merge(self, commit_title: str = "", commit_message: str = "",
              sha: str = "", merge_method: str = "merge") -> None:
        """Merge the pull request."""
        ...

@runtime_checkable
class GitHubRepoProtocol(Protocol):
    """Protocol for GitHub repository objects (real or fake)."""
    def get_pull(self, number: int) -> GitHubPullRequestProtocol:
        """Get a pull request by number."""
        ...

    def get_pulls(self, state: str = "open", sort: str = "",
                  direction: str = "", head: str = "", base: str = "") -> List[GitHubPullRequestProtocol]:
        """Get pull requests with optional filtering."""
        ...

    def create_pull(self, title: str, body: str, base: str, head: str,
                    maintainer_can_modify: bool = True, draft: bool = False) -> GitHubPullRequestProtocol:
        """Create a new pull request."""
        ...

@runtime_checkable
class PyGithubProtocol(Protocol):
    """Protocol for PyGithub implementations (real or fake).

    Both the adapter around the real PyGithub library and the fake used in
    tests satisfy it.
    """
    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        """Get a repository by full name or ID."""
        ...

def find_github_token(host: str = "github.com") -> Optional[str]:
    """Find GitHub token from env var, gstack user config, or gh CLI config."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    # ~/.gstack/config.yaml: personal_access_token
    from ..config.config_parser import user_config_file_path
    user_config_path = user_config_file_path()
    try:
        if user_config_path.exists():
            with open(user_config_path, "r") as f:
                user_config = yaml.safe_load(f) or {}
            token = user_config.get("personal_access_token") if isinstance(user_config, dict) else None
            if isinstance(token, str) and token:
                return token
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error reading {user_config_path}: {e}")

    # gh CLI config at ~/.config/gh/hosts.yml
    gh_config_path = Path.home() / ".config" / "gh" / "hosts.yml"
    try:
        if gh_config_path.exists():
            with open(gh_config_path, "r") as f:
                gh_config = yaml.safe_load(f)
            if gh_config and host in gh_config:
                host_config: Dict[str, object] = gh_config[host]
                token = host_config.get("oauth_token")
                if isinstance(token, str) and token:
                    return token
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error reading gh CLI config: {e}")
    return None

def strip_stack_section(body: Optional[str]) -> str:
    """Keep the text that precedes the stack sentinel line."""
    kept: List[str] = []
    for line in (body or "").splitlines():
        if STACK_SENTINEL in line:
            break
        kept.append(line)
    return "\n".join(kept)

def format_stack_markdown(numbers: Sequence[int], current: int) -> str:
    """List the stack's PRs, top of stack first, marking the current one.

    numbers is ordered bottom of stack first.
    """
    lines = []
    for number in reversed(numbers):
        marker = THIS_PR_MARKER if number == current else ""
        lines.append(f"- #{number}{marker}\n")
    return "".join(lines)

def format_body(body: Optional[str], numbers: Sequence[int], current: int) -> str:
    """Rebuild a PR body: the author's text, the sentinel, the stack list and the footer."""
    return (strip_stack_section(body)
            + f"\n{STACK_SENTINEL}\n"
            + format_stack_markdown(numbers, current)
            + f"\n{STACK_FOOTER}")

class GitHubClient:
    """GitHub client implementation."""
    def __init__(self, config: GstackConfig, github_client: PyGithubProtocol):
        """Initialize with config and GitHub client implementation (real or fake)."""
        self.config = config
        self.client = github_client
        self._repo: Optional[GitHubRepoProtocol] = None

    @property
    def repo(self) -> GitHubRepoProtocol:
        """Get GitHub repository."""
        if self._repo is None:
            owner = self.config.repo.github_repo_owner
            name = self.config.repo.github_repo_name
            if not owner or not name:
                raise GitHubError("GitHub repository owner/name are not configured. "
                                  "Set repo.github_repo_owner and repo.github_repo_name in .gstack.yaml")
            try:
                self._repo = self.client.get_repo(f"{owner}/{name}")
            except GithubException as e:
                raise GitHubError(f"Failed to open repository {owner}/{name}: {e}") from e
        return self._repo

    @repo.setter
    def repo(self, value: GitHubRepoProtocol) -> None:
        """Set the GitHub repository."""
        self._repo = value

    def list_open_pull_requests(self) -> List[PullRequest]:
        """Open pull requests, oldest first."""
        logger.info("> github list open pull requests")
        try:
            pulls = self.repo.get_pulls(state="open", sort="created", direction="asc")
            result = [PullRequest.from_github(pr) for pr in pulls]
        except GithubException as e:
            raise GitHubError(f"Failed to list pull requests: {e}") from e
        logger.debug(f"Found {len(result)} open pull requests")
        return result

    def list_merged_pull_requests(self, head: str) -> List[PullRequest]:
        """Merged pull requests whose head branch is head, oldest first."""
        logger.info(f"> github list merged pull requests of {head}")
        owner = self.config.repo.github_repo_owner
        try:
            pulls = self.repo.get_pulls(state="closed", sort="created", direction="asc", head=f"{owner}:{head}")
            result = [PullRequest.from_github(pr) for pr in pulls]
        except GithubException as e:
            raise GitHubError(f"Failed to list merged pull requests of {head}: {e}") from e
        return [pr for pr in result if pr.merged]

    def get_pull_request(self, number: int) -> PullRequest:
        logger.debug(f"> github get #{number}")
        try:
            return PullRequest.from_github(self.repo.get_pull(number))
        except GithubException as e:
            raise GitHubError(f"Failed to fetch PR #{number}: {e}", number) from e

    def create_pull_request(self, title: str, head: str, base: str,
                            draft: bool = False, body: str = STACK_SENTINEL) -> PullRequest:
        logger.info(f"> github create {head} -> {base} : {title}")
        try:
            gh_pr = self.repo.create_pull(title=title, body=body, base=base, head=head, draft=draft)
        except GithubException as e:
            raise GitHubError(f"Failed to create pull request for {head}: {e}") from e
        pr = PullRequest.from_github(gh_pr)
        logger.debug(f"Created PR #{pr.number} for {head}")
        return pr

    def update_pull_request_base(self, number: int, base: str) -> None:
        logger.info(f"> github update #{number} base -> {base}")
        if self.config.tool.pretend:
            return
        try:
            self.repo.get_pull(number).edit(base=base)
        except GithubException as e:
            raise GitHubError(f"Failed to retarget PR #{number} to {base}: {e}", number) from e

    def update_pull_request_body(self, number: int, body: str) -> None:
        logger.info(f"> github update #{number} body")
        if self.config.tool.pretend:
            return
        try:
            self.repo.get_pull(number).edit(body=body)
        except GithubException as e:
            raise GitHubError(f"Failed to update description of PR #{number}: {e}", number) from e

    def merge_pull_request(self, number: int, merge_method: MergeMethod) -> None:
        logger.info(f"> github merge #{number} ({merge_method})")
        try:
            self.repo.get_pull(number).merge(merge_method=merge_method)
        except GithubException as e:
            raise GitHubError(f"Failed to merge PR #{number}: {e}", number) from e
