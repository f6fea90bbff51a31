"""Stack registry: the tracked stacks and where they are stored."""

import os
import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..typing import BranchAlreadyTrackedError, GstackError

logger = logging.getLogger(__name__)

class Stack(BaseModel):
    """An ordered chain of branches on top of a base branch.

    branches[0] is the bottom of the stack, the branch closest to the base.
    """
    prefix: Optional[str] = None
    base_branch: str
    branches: List[str] = Field(default_factory=list)

    def index_of(self, branch: str) -> Optional[int]:
        """Index of branch in the stack, or None if it is not a member."""
        try:
            return self.branches.index(branch)
        except ValueError:
            return None

    def parent_of(self, index: int) -> str:
        """Branch the entry at index is built on."""
        if index == 0:
            return self.base_branch
        return self.branches[index - 1]

    def branch_name(self, name: str) -> str:
        """Full branch name for a new entry called name."""
        if self.prefix:
            return f"{self.prefix}/{name}"
        return name

    @property
    def bottom(self) -> Optional[str]:
        return self.branches[0] if self.branches else None

    @property
    def top(self) -> Optional[str]:
        return self.branches[-1] if self.branches else None

    @property
    def label(self) -> str:
        return self.prefix or self.bottom or self.base_branch

class Registry(BaseModel):
    """All stacks tracked in a repository, in creation order."""
    stacks: List[Stack] = Field(default_factory=list)

    def stack_for(self, branch: str) -> Optional[Stack]:
        """Stack the branch belongs to, if any."""
        for stack in self.stacks:
            if branch in stack.branches:
                return stack
        return None

    def tracked_branches(self) -> Iterator[str]:
        for stack in self.stacks:
            yield from stack.branches

    def add_stack(self, stack: Stack) -> None:
        """Track a new stack. It must have at least one branch."""
        if not stack.branches:
            raise ValueError("A stack needs at least one branch")
        for branch in stack.branches:
            self.check_untracked(branch)
        self.stacks.append(stack)

    def add_branch(self, stack: Stack, branch: str) -> None:
        """Push branch onto the top of stack."""
        self.check_untracked(branch)
        stack.branches.append(branch)

    def remove_branch(self, branch: str) -> Optional[Stack]:
        """Drop branch from its stack, dropping the stack once it is empty.

        Returns the stack the branch was removed from, or None if the
        branch was not tracked.
        """
        stack = self.stack_for(branch)
        if stack is None:
            return None
        stack.branches.remove(branch)
        if not stack.branches:
            self.stacks = [s for s in self.stacks if s is not stack]
        return stack

    def check_untracked(self, branch: str) -> None:
        owner = self.stack_for(branch)
        if owner is not None:
            raise BranchAlreadyTrackedError(branch, owner.prefix)

@dataclass
class ChainPosition:
    """Where a branch sits in its stack.

    Derived from the current checkout, so recompute it after switching branches.
    """
    stack: Stack
    index: int

    @property
    def branch(self) -> str:
        return self.stack.branches[self.index]

    @property
    def parent(self) -> str:
        return self.stack.parent_of(self.index)

    @property
    def is_bottom(self) -> bool:
        return self.index == 0

    @property
    def is_top(self) -> bool:
        return self.index == len(self.stack.branches) - 1

def resolve_position(current_branch: str, registry: Registry) -> Optional[ChainPosition]:
    """Find the stack and index of current_branch.

    Returns None when the branch is not part of any stack.
    """
    for stack in registry.stacks:
        index = stack.index_of(current_branch)
        if index is not None:
            return ChainPosition(stack, index)
    return None

class RegistryStore:
    """Reads and writes the registry as YAML."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Registry:
        """Load the registry, returning an empty one if nothing was saved yet."""
        if not os.path.exists(self.path):
            logger.debug(f"No stack state at {self.path}, starting empty")
            return Registry()
        try:
            with open(self.path, 'r') as f:
                data = yaml.safe_load(f)
            if not data:
                return Registry()
            registry = Registry.model_validate(data)
        except (yaml.YAMLError, ValidationError) as e:
            raise GstackError(f"Stack state at {self.path} is corrupt: {e}") from e
        logger.debug(f"Loaded {len(registry.stacks)} stacks from {self.path}")
        return registry

    def save(self, registry: Registry) -> None:
        """Write the registry, replacing the previous file."""
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w') as f:
            yaml.safe_dump(registry.model_dump(), f, sort_keys=False)
        os.replace(tmp_path, self.path)
        logger.debug(f"Saved {len(registry.stacks)} stacks to {self.path}")
