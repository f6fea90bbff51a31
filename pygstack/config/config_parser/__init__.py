"""Config parser logic."""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import logging
import yaml

from ...typing import GitInterface, GitError

# Get module logger
logger = logging.getLogger(__name__)

RepoConfig = Dict[str, Any]  # yaml can return various types
Config = Dict[str, RepoConfig]

REPO_CONFIG_FILE = '.gstack.yaml'
SECTIONS = ('repo', 'user', 'tool')

def parse_remote_url(url: str) -> Optional[Tuple[str, str]]:
    """Extract (owner, name) from a git remote URL.

    Handles SSH (git@github.com:owner/repo.git), ssh:// and https:// forms.
    Returns None when the URL has no owner/name pair.
    """
    url = url.strip()
    if not url:
        return None
    if "://" in url:
        # https://github.com/owner/repo.git, ssh://git@host/owner/repo.git
        path = url.split("://", 1)[1]
        path = path.split("/", 1)[1] if "/" in path else ""
    elif "@" in url and ":" in url:
        # git@github.com:owner/repo.git
        path = url.split(":", 1)[1]
    else:
        path = url

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[:-len(".git")]
    parts = [p for p in path.split("/") if p]
    if len(parts) < 2:
        return None
    return parts[-2], parts[-1]

def load_repo_config_file(path: str = REPO_CONFIG_FILE) -> Dict[str, Any]:
    """Load the repository config file, returning {} if it is missing."""
    try:
        with open(path, 'r') as f:
            logger.debug(f"Found {path}, loading...")
            data = yaml.safe_load(f)
    except FileNotFoundError:
        logger.debug(f"No {path} found, using defaults")
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {path}: expected a mapping, got {type(data).__name__}")
        return {}
    return data

def parse_config(git_cmd: GitInterface, path: str = REPO_CONFIG_FILE) -> Config:
    """Parse config from defaults, the repository config file and the git remote."""
    config: Config = {
        'repo': {
            'github_remote': 'origin',
            'github_host': 'github.com',
            'merge_method': 'merge',
        },
        'user': {},
        'tool': {},
    }

    repo_config = load_repo_config_file(path)
    for section in SECTIONS:
        values = repo_config.get(section)
        if isinstance(values, dict):
            logger.debug(f"Config [{section}] from {path}: {values}")
            config[section].update(values)

    # Fill in owner/name from the remote if the file did not set them
    if not config['repo'].get('github_repo_owner') or not config['repo'].get('github_repo_name'):
        remote = config['repo']['github_remote']
        try:
            parsed = parse_remote_url(git_cmd.remote_url(remote))
        except GitError as e:
            logger.warning(f"Failed to read git remote {remote}: {e}")
            parsed = None
        if parsed:
            owner, name = parsed
            if not config['repo'].get('github_repo_owner'):
                config['repo']['github_repo_owner'] = owner
            if not config['repo'].get('github_repo_name'):
                config['repo']['github_repo_name'] = name

    return config

def user_config_file_path() -> Path:
    """Path of the per-user config file holding credentials."""
    return Path.home() / ".gstack" / "config.yaml"
