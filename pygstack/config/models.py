"""Pydantic models for config types."""

from typing import Literal, Optional
from pydantic import BaseModel, Field

MergeMethod = Literal['merge', 'squash', 'rebase']

class RepoConfig(BaseModel):
    """Repository configuration."""
    github_remote: str = "origin"
    github_host: str = "github.com"
    github_repo_owner: Optional[str] = None
    github_repo_name: Optional[str] = None
    merge_method: MergeMethod = "merge"

    class Config:
        """Pydantic config."""
        extra = "allow"

class UserConfig(BaseModel):
    """User configuration."""
    log_git_commands: bool = True
    create_drafts: bool = False

    class Config:
        """Pydantic config."""
        extra = "allow"

class ToolConfig(BaseModel):
    """Tool configuration."""
    pretend: bool = False
    # Polling for the merged flag after a merge request
    merge_settle_interval: float = 3.0
    merge_settle_attempts: int = 10
    # Re-listing open pull requests before deciding one is missing
    pr_lookup_interval: float = 1.0
    pr_lookup_attempts: int = 2
    # None means <git dir>/gstack/state.yaml
    state_path: Optional[str] = None

    class Config:
        """Pydantic config."""
        extra = "allow"

class GstackConfig(BaseModel):
    """Full gstack configuration."""
    repo: RepoConfig = Field(default_factory=RepoConfig)
    user: UserConfig = Field(default_factory=UserConfig)
    tool: ToolConfig = Field(default_factory=ToolConfig)

    class Config:
        """Pydantic config."""
        extra = "allow"
