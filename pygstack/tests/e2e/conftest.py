"""Fixtures for end to end tests against real git repositories."""

import os
import logging

import pytest

from pygstack.config import Config
from pygstack.tests.e2e.sandbox import MIN_GIT_VERSION, Sandbox, git_version, run_cmd

logger = logging.getLogger(__name__)


@pytest.fixture
def sandbox(tmp_path, monkeypatch: pytest.MonkeyPatch) -> Sandbox:
    """Working repository on main, with one commit, pushed to a bare remote."""
    version = git_version()
    if version is None or version < MIN_GIT_VERSION:
        pytest.skip(f"git {'.'.join(map(str, MIN_GIT_VERSION))} or newer is required, found {version}")

    # Keep the user's git config out of the tests
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", os.devnull)
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for kind in ("AUTHOR", "COMMITTER"):
        monkeypatch.setenv(f"GIT_{kind}_NAME", "Test User")
        monkeypatch.setenv(f"GIT_{kind}_EMAIL", "test@example.com")

    root = str(tmp_path)
    remote_dir = os.path.join(root, "remote.git")
    work_dir = os.path.join(root, "work")
    run_cmd(["git", "init", "-q", "--bare", "-b", "main", remote_dir])
    run_cmd(["git", "init", "-q", "-b", "main", work_dir])
    with open(os.path.join(work_dir, "README"), "w") as f:
        f.write("widgets\n")
    with open(os.path.join(work_dir, "shared.txt"), "w") as f:
        f.write("base\n")
    run_cmd(["git", "add", "README", "shared.txt"], cwd=work_dir)
    run_cmd(["git", "commit", "-q", "-m", "Initial commit"], cwd=work_dir)
    run_cmd(["git", "remote", "add", "origin", remote_dir], cwd=work_dir)
    run_cmd(["git", "push", "-q", "-u", "origin", "main"], cwd=work_dir)
    monkeypatch.chdir(work_dir)

    config = Config({
        'repo': {
            'github_repo_owner': 'acme',
            'github_repo_name': 'widgets',
        },
        'user': {
            'log_git_commands': False,
        },
        'tool': {
            'merge_settle_interval': 0.0,
            'pr_lookup_interval': 0.0,
        },
    })
    logger.info(f"Sandbox at {root}")
    return Sandbox(root, remote_dir, work_dir, config)


@pytest.fixture
def stacked(sandbox: Sandbox) -> Sandbox:
    """feat/a, feat/b and feat/c stacked on main, one commit each, not pushed yet."""
    engine = sandbox.engine
    engine.new_stack("feat", "a")
    sandbox.commit("a.txt", "a", "Add a")
    engine.add_to_stack("b")
    sandbox.commit("b.txt", "b", "Add b")
    engine.add_to_stack("c")
    sandbox.commit("c.txt", "c", "Add c")
    return sandbox
