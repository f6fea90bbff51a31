"""Pretty formatting utilities for CLI output."""

import shutil
import sys
from typing import IO, List, Optional, Sequence

import click

from ..state import Stack

ARROW_DOWN = "↓"
LIST_WIDTH = 20

def get_term_width() -> int:
    """Get terminal width, default to 80 if can't detect."""
    try:
        return shutil.get_terminal_size().columns
    except (OSError, ValueError):
        return 80

def _centered(text: str, width: int, **style: object) -> str:
    # Pad before styling so escape codes do not count towards the width
    padded = text.center(width)
    left = len(padded) - len(padded.lstrip(" "))
    return " " * left + click.style(text, **style) + " " * (len(padded) - left - len(text))

def format_stack(stack: Stack, current: Optional[str] = None, width: int = LIST_WIDTH) -> str:
    """Render a stack top first, with arrows down to its base branch."""
    lines: List[str] = []
    for index in reversed(range(len(stack.branches))):
        branch = stack.branches[index]
        lines.append(_centered(f"({index}): {branch}", width, fg="cyan", bold=branch == current))
        lines.append(_centered(ARROW_DOWN, width, fg="magenta"))
    lines.append(_centered(stack.base_branch, width, fg="cyan"))
    return "\n".join(line.rstrip() for line in lines)

def format_stacks(stacks: Sequence[Stack]) -> str:
    """One line per stack: its index and prefix."""
    return "\n".join(f"({i}): {click.style(stack.label, fg='cyan')}" for i, stack in enumerate(stacks))

def stack_choices(stack: Stack) -> List[str]:
    """Branch labels of a stack, top first, as offered by the change prompt."""
    return [f"({i}): {stack.branches[i]}" for i in reversed(range(len(stack.branches)))]

def header(text: str) -> str:
    """Create a boxed header."""
    width = max(get_term_width(), len(text) + 4)
    h_line = "─" * (width - 2)
    v_line = "│"
    result = [
        f"┌{h_line}┐",
        f"{v_line} {text}{' ' * (width - len(text) - 3)}{v_line}",
        f"└{h_line}┘"
    ]
    return "\n".join(result)

def print_header(text: str, file: Optional[IO[str]] = None) -> None:
    """Print a header to file (default stdout)."""
    if file is None:
        file = sys.stdout
    print(header(text), file=file)
