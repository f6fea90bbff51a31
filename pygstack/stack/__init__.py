"""Stack engine: building, syncing, publishing and merging stacks of branches."""

import sys
import time
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from ..config.models import GstackConfig, MergeMethod
from ..git import preserve_checkout
from ..github import GitHubClient, PullRequest, format_body
from ..state import ChainPosition, Registry, RegistryStore, Stack, resolve_position
from ..typing import (
    BranchExistsError, BranchNotFoundError, CommitHash, GitError, GitInterface,
    GstackError, InvalidBranchNameError, MergeSettleError, NotInStackError,
)
from ..util import ensure, last_path_segment

logger = logging.getLogger(__name__)

class MergeState(Enum):
    """Progress of one pull request through the merge train."""
    PENDING = "pending"
    RETARGETED = "retargeted"
    SYNCED = "synced"
    MERGE_REQUESTED = "merge requested"
    SETTLING = "settling"
    RETIRED = "retired"

@dataclass
class TrainStep:
    """A branch and its pull request, queued for the merge train."""
    branch: str
    number: int
    state: MergeState = MergeState.PENDING

def match_pull_request(open_pulls: Sequence[PullRequest], head_sha: str) -> Optional[PullRequest]:
    """Pull request whose head commit is head_sha.

    The head commit, not the branch name, links a branch to its PR.
    """
    for pr in open_pulls:
        if pr.head_sha == head_sha:
            return pr
    return None

class StackEngine:
    """Operations on the tracked stacks of one repository.

    The registry is loaded by the caller and written back through store
    after every change to its structure.
    """

    def __init__(self, config: GstackConfig, github: GitHubClient, git_cmd: GitInterface,
                 registry: Registry, store: RegistryStore):
        """Initialize with config, GitHub and git clients, and the stack registry."""
        self.config = config
        self.github = github
        self.git_cmd = git_cmd
        self.registry = registry
        self.store = store
        self.output = sys.stdout
        self.sleep: Callable[[float], None] = time.sleep

    @property
    def remote(self) -> str:
        return self.config.repo.github_remote

    def save(self) -> None:
        self.store.save(self.registry)

    def say(self, message: str) -> None:
        print(message, file=self.output)

    # Position

    def position(self) -> Optional[ChainPosition]:
        """Position of the checked out branch, or None outside a stack."""
        return resolve_position(self.git_cmd.current_branch(), self.registry)

    def require_position(self) -> ChainPosition:
        branch = self.git_cmd.current_branch()
        position = resolve_position(branch, self.registry)
        if position is None:
            raise NotInStackError(branch)
        return position

    # Building stacks

    def _check_new_branch(self, branch: str) -> None:
        if not self.git_cmd.check_branch_name(branch):
            raise InvalidBranchNameError(branch)
        # Raises BranchAlreadyTrackedError
        self.registry.check_untracked(branch)
        if self.git_cmd.branch_exists(branch):
            raise BranchExistsError(branch)

    def new_stack(self, prefix: str, name: str) -> Stack:
        """Start a stack on top of the current branch with one branch, prefix/name."""
        base = self.git_cmd.current_branch()
        branch = f"{prefix}/{name}" if prefix else name
        self._check_new_branch(branch)

        self.git_cmd.create_branch(branch, base)
        self.git_cmd.switch_branch(branch)
        stack = Stack(prefix=prefix or None, base_branch=base, branches=[branch])
        self.registry.add_stack(stack)
        self.save()
        logger.info(f"Created stack {stack.label} on {base}")
        self.say(f"Created new stack with bottom branch: {branch}")
        return stack

    def add_to_stack(self, name: str) -> str:
        """Create prefix/name on top of the current stack and check it out."""
        position = self.require_position()
        stack = position.stack
        branch = stack.branch_name(name)
        self._check_new_branch(branch)

        top = ensure(stack.top)
        if not position.is_top:
            logger.info(f"{position.branch} is not the top of {stack.label}, stacking on {top}")
        self.git_cmd.create_branch(branch, top)
        self.git_cmd.switch_branch(branch)
        self.registry.add_branch(stack, branch)
        self.save()
        self.say(f"Stacked a new branch with name: {branch}")
        return branch

    # Navigation

    def checkout_base(self) -> Optional[str]:
        position = self.position()
        if position is None:
            return None
        self.git_cmd.switch_branch(position.stack.base_branch)
        return position.stack.base_branch

    def checkout_above(self) -> Optional[str]:
        position = self.position()
        if position is None or position.is_top:
            return None
        branch = position.stack.branches[position.index + 1]
        self.git_cmd.switch_branch(branch)
        return branch

    def checkout_below(self) -> Optional[str]:
        position = self.position()
        if position is None or position.is_bottom:
            return None
        branch = position.stack.branches[position.index - 1]
        self.git_cmd.switch_branch(branch)
        return branch

    def change_to_branch(self, index: int) -> str:
        """Check out the branch at index in the current stack."""
        stack = self.require_position().stack
        if not 0 <= index < len(stack.branches):
            raise GstackError(f"No branch ({index}) in stack {stack.label}")
        branch = stack.branches[index]
        self.git_cmd.switch_branch(branch)
        return branch

    def change_to_stack(self, index: int) -> str:
        """Check out the bottom branch of the stack at index."""
        if not 0 <= index < len(self.registry.stacks):
            raise GstackError(f"No stack ({index})")
        branch = self.registry.stacks[index].branches[0]
        self.git_cmd.switch_branch(branch)
        return branch

    # Sync

    def sync(self, describe: bool = True, stack: Optional[Stack] = None) -> List[str]:
        """Rebase every branch of the stack onto its parent and publish it.

        Returns the branches that were pushed. A rebase conflict stops the
        sync and leaves the repository on the conflicted branch.
        """
        if stack is None:
            stack = self.require_position().stack
        published: List[str] = []
        with preserve_checkout(self.git_cmd):
            self._pull_all(stack)
            for index, branch in enumerate(list(stack.branches)):
                self._verify_branch(branch)
                onto = stack.parent_of(index)
                logger.debug(f"Rebasing {branch} onto {onto}")
                self.git_cmd.rebase(branch, onto, update_refs=True)
                if self.publish_branch(branch):
                    published.append(branch)
        if describe:
            self.update_pr_descriptions(stack)
        return published

    def _pull_all(self, stack: Stack) -> None:
        """Pull the base and every branch of the stack, ignoring failures."""
        for branch in [stack.base_branch] + stack.branches:
            try:
                self.git_cmd.pull(self.remote, branch, rebase=True)
            except GitError as e:
                logger.warning(f"Could not pull {branch}, continuing: {e}")

    def publish_branch(self, branch: str) -> bool:
        """Push branch unless the remote already has its tip.

        A branch the remote has never seen is pushed with an upstream. Otherwise
        the push is forced, leased on the last remote hash we saw.
        Returns whether a push happened.
        """
        local = self.git_cmd.resolve_commit_hash(branch)
        tracked = self.git_cmd.remote_tracking_hash(self.remote, branch)
        if tracked is None:
            self.git_cmd.push(self.remote, branch, set_upstream=True)
            return True
        if tracked == local:
            logger.debug(f"{branch} is up to date on {self.remote}")
            return False
        self.git_cmd.push(self.remote, branch, force_with_lease=tracked)
        return True

    # Pull requests

    def _branch_head(self, branch: str) -> Optional[CommitHash]:
        try:
            return self.git_cmd.resolve_commit_hash(branch)
        except GitError:
            return None

    def find_pr_for_branch(self, open_pulls: Sequence[PullRequest], branch: str) -> Optional[PullRequest]:
        head = self._branch_head(branch)
        if head is None:
            return None
        return match_pull_request(open_pulls, head)

    def has_own_commits(self, stack: Stack, index: int) -> bool:
        """Whether the branch at index has moved past its parent."""
        return self._branch_head(stack.branches[index]) != self._branch_head(stack.parent_of(index))

    def _chain_matches(self, stack: Stack,
                       open_pulls: Sequence[PullRequest]) -> List[Tuple[int, str, Optional[PullRequest]]]:
        """(index, branch, open PR or None) for every branch with commits of its own.

        A branch without commits shares its head with the branch below, so it
        would match that branch's PR.
        """
        result: List[Tuple[int, str, Optional[PullRequest]]] = []
        for index, branch in enumerate(stack.branches):
            if not self.has_own_commits(stack, index):
                logger.info(f"{branch} has no commits of its own yet, skipping it")
                continue
            result.append((index, branch, self.find_pr_for_branch(open_pulls, branch)))
        return result

    def stack_pull_requests(self, stack: Stack,
                            open_pulls: Optional[Sequence[PullRequest]] = None) -> List[Tuple[str, PullRequest]]:
        """Open pull requests of the stack as (branch, PR), bottom first."""
        if open_pulls is None:
            open_pulls = self.github.list_open_pull_requests()
        return [(branch, pr) for _, branch, pr in self._chain_matches(stack, open_pulls) if pr is not None]

    def list_pull_requests(self) -> List[PullRequest]:
        stack = self.require_position().stack
        return [pr for _, pr in self.stack_pull_requests(stack)]

    def create_pull_requests(self, draft: bool = False) -> List[PullRequest]:
        """Sync the current stack, open the missing PRs and describe them all."""
        stack = self.require_position().stack
        self.sync(describe=False, stack=stack)

        matches = self._chain_matches(stack, self.github.list_open_pull_requests())
        # A PR whose head was just pushed can take a moment to show the new hash
        attempt = 0
        while any(pr is None for _, _, pr in matches) and attempt < self.config.tool.pr_lookup_attempts:
            attempt += 1
            logger.debug(f"Some branches of {stack.label} have no PR, listing again ({attempt})")
            self.sleep(self.config.tool.pr_lookup_interval)
            matches = self._chain_matches(stack, self.github.list_open_pull_requests())

        chain: List[PullRequest] = []
        for index, branch, pr in matches:
            if pr is None:
                base = stack.parent_of(index)
                title = f"{stack.label} (#{index}) - {last_path_segment(branch)}"
                pr = self.github.create_pull_request(title, head=branch, base=base, draft=draft)
                self.say(f"#{pr.number}: {pr.url}")
            else:
                logger.debug(f"Reusing PR #{pr.number} for {branch}")
            chain.append(pr)

        self._describe(chain)
        return chain

    def update_pr_descriptions(self, stack: Stack) -> List[int]:
        """Rewrite the stack list in the body of every open PR of the stack."""
        chain = [pr for _, pr in self.stack_pull_requests(stack)]
        return self._describe(chain)

    def _describe(self, chain: Sequence[PullRequest]) -> List[int]:
        numbers = [pr.number for pr in chain]
        updated: List[int] = []
        for pr in chain:
            body = format_body(pr.body, numbers, pr.number)
            if body == pr.body:
                logger.debug(f"Description of PR #{pr.number} is current")
                continue
            self.github.update_pull_request_body(pr.number, body)
            pr.body = body
            updated.append(pr.number)
        return updated

    # Merge train

    def merge_pull_requests(self, merge_method: Optional[MergeMethod] = None) -> List[TrainStep]:
        """Merge the stack's PRs into the base one at a time, bottom first.

        Bottom branches whose PR was already merged by an earlier, interrupted
        run are retired first. Then only the run of branches with open PRs
        starting at the bottom is merged. Each merged branch leaves the stack
        before the next PR is handled.
        """
        stack = self.require_position().stack
        method: MergeMethod = merge_method or self.config.repo.merge_method
        open_pulls = self.github.list_open_pull_requests()
        self._retire_merged_branches(stack, open_pulls)

        steps: List[TrainStep] = []
        for _, branch, pr in self._chain_matches(stack, open_pulls):
            if pr is None:
                logger.info(f"{branch} has no open PR, stopping the merge train below it")
                break
            steps.append(TrainStep(branch, pr.number))
        if not steps:
            logger.warning(f"No open PRs to merge in stack {stack.label}")
            return steps

        for step in steps:
            self._run_train_step(stack, step, method)
        self.say("Successfully merged stack!")
        return steps

    def _retire_merged_branches(self, stack: Stack, open_pulls: Sequence[PullRequest]) -> List[str]:
        """Drop bottom branches whose PR is already merged.

        Matched on the head commit, like open PRs. Stops at the first branch
        that has an open PR or no merged one.
        """
        retired: List[str] = []
        for branch in list(stack.branches):
            if self.find_pr_for_branch(open_pulls, branch) is not None:
                break
            head = self._branch_head(branch)
            merged = [pr for pr in self.github.list_merged_pull_requests(branch) if pr.head_sha == head]
            if head is None or not merged:
                break
            self.say(f"PR #{merged[0].number} of {branch} is already merged")
            self.remove_branch_from_stack(branch)
            retired.append(branch)
        return retired

    def _run_train_step(self, stack: Stack, step: TrainStep, method: MergeMethod) -> None:
        self.github.update_pull_request_base(step.number, stack.base_branch)
        step.state = MergeState.RETARGETED

        self.sync(describe=False, stack=stack)
        step.state = MergeState.SYNCED

        self.say(f"Merging PR #{step.number}...")
        self.github.merge_pull_request(step.number, method)
        step.state = MergeState.MERGE_REQUESTED

        step.state = MergeState.SETTLING
        self._wait_for_merge(step.number)

        self.remove_branch_from_stack(step.branch)
        step.state = MergeState.RETIRED

    def _wait_for_merge(self, number: int) -> None:
        """Poll the PR until GitHub reports it merged."""
        attempts = max(1, self.config.tool.merge_settle_attempts)
        for attempt in range(1, attempts + 1):
            if self.github.get_pull_request(number).merged:
                logger.debug(f"PR #{number} merged after {attempt} check(s)")
                return
            logger.debug(f"PR #{number} not merged yet ({attempt}/{attempts})")
            if attempt < attempts:
                self.sleep(self.config.tool.merge_settle_interval)
        raise MergeSettleError(number, attempts)

    # Removal

    def remove_branch_from_stack(self, branch: str) -> bool:
        """Stop tracking branch. Returns False if it was not tracked.

        If branch is checked out, the new bottom of its stack is checked out,
        or the base once the stack is empty.
        """
        if self.registry.stack_for(branch) is None:
            logger.info(f"{branch} is not part of a stack, not removing")
            return False
        current = self.git_cmd.current_branch()
        stack = ensure(self.registry.remove_branch(branch))
        self.save()
        if not stack.branches:
            logger.info(f"Stack {stack.label} is empty, dropped it")

        if current == branch:
            target = stack.bottom or stack.base_branch
            self.git_cmd.switch_branch(target)
        self.say(f"Removed branch {branch}")
        return True

    def remove_current_branch(self, delete_local: bool = False) -> str:
        """Drop the checked out branch from its stack and sync what is left."""
        branch = self.git_cmd.current_branch()
        if self.registry.stack_for(branch) is None:
            raise NotInStackError(branch)
        self.remove_branch_from_stack(branch)
        if delete_local:
            self.delete_local_branches([branch])
        position = self.position()
        if position is not None:
            self.sync(describe=True, stack=position.stack)
        return branch

    def delete_local_branches(self, branches: Sequence[str], force: bool = False) -> List[str]:
        """Delete local branches, reporting the ones git refuses to delete."""
        deleted: List[str] = []
        for branch in branches:
            try:
                self.git_cmd.delete_branch(branch, force=force)
            except GitError as e:
                logger.error(f"Failed to delete {branch}: {e}")
                continue
            deleted.append(branch)
            self.say(f"Deleted branch {branch}")
        return deleted

    def reset(self) -> List[str]:
        """Delete every tracked branch and forget all stacks."""
        current = self.git_cmd.current_branch()
        owner = self.registry.stack_for(current)
        if owner is not None:
            self.git_cmd.switch_branch(owner.base_branch)
        deleted = self.delete_local_branches(list(self.registry.tracked_branches()))
        self.registry.stacks = []
        self.save()
        self.say(f"Deleted {len(deleted)} branches.")
        return deleted

    def _verify_branch(self, branch: str) -> None:
        if not self.git_cmd.branch_exists(branch):
            raise BranchNotFoundError(branch)
