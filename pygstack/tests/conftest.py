"""Shared fixtures for the engine unit tests."""

import io
from typing import List

import pytest

from pygstack.config import Config
from pygstack.github import GitHubClient
from pygstack.stack import StackEngine
from pygstack.state import Registry, RegistryStore, Stack
from pygstack.tests.fake_git import FakeGit
from pygstack.tests.fake_pygithub import FakeGithub, FakeRepository

STACK = ["feat/a", "feat/b", "feat/c"]


@pytest.fixture
def config() -> Config:
    return Config({
        'repo': {
            'github_repo_owner': 'acme',
            'github_repo_name': 'widgets',
        },
        'tool': {
            'merge_settle_interval': 0.5,
            'merge_settle_attempts': 5,
            'pr_lookup_interval': 0.25,
            'pr_lookup_attempts': 2,
        },
    })


@pytest.fixture
def stack_git() -> FakeGit:
    """main with feat/a, feat/b and feat/c stacked on it, all pushed, feat/c checked out."""
    git_cmd = FakeGit({
        "main": ["m0"],
        "feat/a": ["m0", "A"],
        "feat/b": ["m0", "A", "B"],
        "feat/c": ["m0", "A", "B", "C"],
    }, current="feat/c")
    git_cmd.publish("main", *STACK)
    return git_cmd


@pytest.fixture
def fake_github(stack_git: FakeGit) -> FakeGithub:
    gh = FakeGithub()

    def resolve_head(ref: str) -> str:
        if ref not in stack_git.remote_branches:
            return ""
        return stack_git.remote_hash(ref)

    gh.add_repo("acme/widgets", resolve_head, stack_git.merge_on_remote)
    return gh


@pytest.fixture
def gh_repo(fake_github: FakeGithub) -> FakeRepository:
    return fake_github.repos["acme/widgets"]


@pytest.fixture
def registry() -> Registry:
    return Registry(stacks=[Stack(prefix="feat", base_branch="main", branches=list(STACK))])


@pytest.fixture
def store(tmp_path) -> RegistryStore:
    return RegistryStore(str(tmp_path / "gstack" / "state.yaml"))


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def engine(config: Config, stack_git: FakeGit, fake_github: FakeGithub, registry: Registry,
           store: RegistryStore, sleeps: List[float]) -> StackEngine:
    stack_engine = StackEngine(config, GitHubClient(config, fake_github), stack_git, registry, store)
    stack_engine.sleep = sleeps.append
    stack_engine.output = io.StringIO()
    return stack_engine
