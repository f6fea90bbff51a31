"""Tests for the GitHub client and PR description formatting."""

import pytest

from pygstack.config import Config
from pygstack.github import (
    GitHubClient, format_body, format_stack_markdown, strip_stack_section,
)
from pygstack.tests.fake_git import FakeGit
from pygstack.tests.fake_pygithub import FakeGithub, FakeRepository
from pygstack.typing import GitHubError


class TestDescriptionFormat:
    """Tests for building PR bodies."""

    def test_stack_list_is_top_first(self) -> None:
        assert format_stack_markdown([4, 7, 9], 7) == "- #9\n- #7 (This PR)\n- #4\n"

    def test_text_before_the_sentinel_is_kept(self) -> None:
        assert strip_stack_section("Intro\n\nDetails\n---\n- #1\n") == "Intro\n\nDetails"

    def test_any_line_containing_the_sentinel_starts_the_stack_section(self) -> None:
        assert strip_stack_section("Intro\nsee a --- b\nrest") == "Intro"

    def test_empty_bodies(self) -> None:
        assert strip_stack_section(None) == ""
        assert strip_stack_section("") == ""
        assert format_body(None, [1], 1) == "\n---\n- #1 (This PR)\n\n**Created by gstack**"

    def test_format_body(self) -> None:
        body = format_body("Adds the parser.", [1, 2], 1)
        assert body == "Adds the parser.\n---\n- #2\n- #1 (This PR)\n\n**Created by gstack**"

    def test_format_body_is_stable(self) -> None:
        body = format_body("Adds the parser.", [1, 2], 2)
        assert format_body(body, [1, 2], 2) == body

    def test_old_list_is_replaced(self) -> None:
        body = format_body("Adds the parser.", [1, 2, 3], 2)
        assert format_body(body, [2, 3], 2) == "Adds the parser.\n---\n- #3\n- #2 (This PR)\n\n**Created by gstack**"


class TestGitHubClient:
    """Tests for GitHubClient against the fake PyGithub."""

    @pytest.fixture
    def client(self, config: Config, fake_github: FakeGithub) -> GitHubClient:
        return GitHubClient(config, fake_github)

    def test_open_pull_requests_carry_the_head_commit(self, client: GitHubClient, gh_repo: FakeRepository,
                                                      stack_git: FakeGit) -> None:
        gh_repo.open_pull("feat/a", "main", title="Parser")
        gh_repo.open_pull("feat/b", "feat/a")
        gh_repo.pulls[2].state = "closed"

        pulls = client.list_open_pull_requests()
        assert [pr.number for pr in pulls] == [1]
        assert pulls[0].head_sha == stack_git.hash("feat/a")
        assert pulls[0].base_ref == "main"
        assert pulls[0].title == "Parser"
        assert str(pulls[0]) == "PR #1 - Parser"

    def test_create_starts_with_the_sentinel(self, client: GitHubClient, gh_repo: FakeRepository) -> None:
        pr = client.create_pull_request("feat (#0) - a", head="feat/a", base="main", draft=True)
        assert pr.number == 1
        assert pr.url == "https://github.com/acme/widgets/pull/1"
        assert gh_repo.pulls[1].body == "---"
        assert gh_repo.pulls[1].draft

    def test_duplicate_pr_is_an_error(self, client: GitHubClient) -> None:
        client.create_pull_request("a", head="feat/a", base="main")
        with pytest.raises(GitHubError):
            client.create_pull_request("a", head="feat/a", base="main")

    def test_missing_pr(self, client: GitHubClient) -> None:
        with pytest.raises(GitHubError) as exc_info:
            client.get_pull_request(42)
        assert exc_info.value.number == 42

    def test_merge_of_closed_pr_is_an_error(self, client: GitHubClient, gh_repo: FakeRepository) -> None:
        gh_repo.open_pull("feat/a", "main")
        client.merge_pull_request(1, "merge")
        assert client.get_pull_request(1).merged
        with pytest.raises(GitHubError) as exc_info:
            client.merge_pull_request(1, "merge")
        assert exc_info.value.number == 1

    def test_merged_pull_requests_of_a_branch(self, client: GitHubClient, gh_repo: FakeRepository,
                                              stack_git: FakeGit) -> None:
        gh_repo.open_pull("feat/a", "main")
        gh_repo.open_pull("feat/b", "feat/a")
        gh_repo.pulls[2].state = "closed"
        assert client.list_merged_pull_requests("feat/a") == []

        client.merge_pull_request(1, "merge")
        merged = client.list_merged_pull_requests("feat/a")
        assert [pr.number for pr in merged] == [1]
        assert merged[0].head_sha == stack_git.hash("feat/a")
        # Closed without merging
        assert client.list_merged_pull_requests("feat/b") == []

    def test_edits(self, client: GitHubClient, gh_repo: FakeRepository) -> None:
        gh_repo.open_pull("feat/b", "feat/a")
        client.update_pull_request_base(1, "main")
        client.update_pull_request_body(1, "new body")
        assert gh_repo.pulls[1].base_ref == "main"
        assert gh_repo.pulls[1].body == "new body"

    def test_pretend_skips_edits(self, client: GitHubClient, config: Config, gh_repo: FakeRepository) -> None:
        gh_repo.open_pull("feat/b", "feat/a")
        config.tool.pretend = True
        client.update_pull_request_base(1, "main")
        client.update_pull_request_body(1, "new body")
        assert gh_repo.pulls[1].base_ref == "feat/a"
        assert gh_repo.events == []

    def test_unconfigured_repository(self, fake_github: FakeGithub) -> None:
        client = GitHubClient(Config({}), fake_github)
        with pytest.raises(GitHubError) as exc_info:
            client.list_open_pull_requests()
        assert "github_repo_owner" in str(exc_info.value)

    def test_unknown_repository(self, fake_github: FakeGithub) -> None:
        config = Config({'repo': {'github_repo_owner': 'acme', 'github_repo_name': 'gadgets'}})
        client = GitHubClient(config, fake_github)
        with pytest.raises(GitHubError):
            client.list_open_pull_requests()
