"""Tests for CLI output formatting."""

import io

import click

from pygstack.pretty import format_stack, format_stacks, header, print_header, stack_choices
from pygstack.state import Stack

STACK = Stack(prefix="feat", base_branch="main", branches=["feat/a", "feat/b", "feat/c"])


def test_format_stack_lists_top_first() -> None:
    lines = click.unstyle(format_stack(STACK)).splitlines()
    assert [line.strip() for line in lines] == [
        "(2): feat/c", "↓", "(1): feat/b", "↓", "(0): feat/a", "↓", "main"]


def test_format_stack_centers_lines() -> None:
    lines = click.unstyle(format_stack(STACK, width=20)).splitlines()
    assert lines[-1] == "main".center(20).rstrip()
    assert lines[1] == "↓".center(20).rstrip()


def test_current_branch_is_highlighted() -> None:
    plain = format_stack(STACK)
    marked = format_stack(STACK, current="feat/b")
    assert plain != marked
    assert click.unstyle(plain) == click.unstyle(marked)


def test_format_stacks() -> None:
    other = Stack(base_branch="release", branches=["hotfix"])
    assert click.unstyle(format_stacks([STACK, other])) == "(0): feat\n(1): hotfix"


def test_stack_choices() -> None:
    assert stack_choices(STACK) == ["(2): feat/c", "(1): feat/b", "(0): feat/a"]


def test_header() -> None:
    out = io.StringIO()
    print_header("Merged Pull Requests", file=out)
    lines = out.getvalue().splitlines()
    assert len(lines) == 3
    assert "Merged Pull Requests" in lines[1]
    assert lines[0].startswith("┌") and lines[2].endswith("┘")
    assert len(lines[0]) == len(lines[1]) == len(lines[2])
    assert header("x").count("\n") == 2
