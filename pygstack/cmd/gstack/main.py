"""CLI entry point."""

import os
import sys
import click
import logging
from typing import Any, Callable, Dict, NoReturn, Optional, Tuple, TypeVar, cast
from click import Context

from ...config import Config, MergeMethod, default_config
from ...config.config_parser import parse_config
from ...git import RealGit
from ...github import GitHubClient, find_github_token
from ...github.adapters import connect
from ...pretty import format_stack, format_stacks, print_header, stack_choices
from ...stack import StackEngine
from ...state import RegistryStore
from ...typing import GstackError

# Get module logger
logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])

def check(err: Exception) -> NoReturn:
    """Report an error and exit."""
    logger.error(f"{err}")
    sys.exit(1)

class AliasedGroup(click.Group):
    """Command group with support for aliases."""

    def __init__(self, name: Optional[str] = None, commands: Optional[Dict[str, click.Command]] = None, **attrs: Any) -> None:
        """Initialize with aliases map."""
        super().__init__(name, commands, **attrs)
        self.aliases: Dict[str, str] = {}

    def add_alias(self, alias: str, command: str) -> None:
        """Add an alias for a command."""
        self.aliases[alias] = command

    def get_command(self, ctx: Context, cmd_name: str) -> Optional[click.Command]:
        """Get a command by name, supporting aliases."""
        if cmd_name in self.aliases:
            cmd_name = self.aliases[cmd_name]
        return super().get_command(ctx, cmd_name)

def common_options(f: F) -> F:
    """Options every command takes: -C DIRECTORY and -v."""
    f = click.option('-v', '--verbose', count=True,
                     help="Increase verbosity (can be used multiple times for more verbosity)")(f)
    f = click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
                     help='Run as if gstack was started in DIRECTORY instead of the current working directory')(f)
    return f

def setup_engine(directory: Optional[str] = None, verbose: int = 0,
                 need_github: bool = False) -> Tuple[Config, RealGit, StackEngine]:
    """Load config and stack state and build the engine."""
    from ... import setup_logging
    setup_logging(verbose)

    if directory:
        os.chdir(directory)

    git_cmd = RealGit(default_config())
    try:
        git_cmd.must_git("rev-parse --git-dir")
    except GstackError as e:
        check(e)

    config = Config(parse_config(git_cmd))
    git_cmd = RealGit(config)

    token = find_github_token(config.repo.github_host)
    if need_github and not token:
        check(GstackError(
            "No GitHub token found. Try one of:\n"
            "1. Set GITHUB_TOKEN env var\n"
            "2. Put personal_access_token in ~/.gstack/config.yaml\n"
            "3. Log in with 'gh auth login'"))
    github = GitHubClient(config, connect(token, config.repo.github_host))

    state_path = config.tool.state_path or os.path.join(git_cmd.git_dir(), "gstack", "state.yaml")
    store = RegistryStore(state_path)
    try:
        registry = store.load()
    except GstackError as e:
        check(e)

    engine = StackEngine(config, github, git_cmd, registry, store)
    return config, git_cmd, engine

@click.group(cls=AliasedGroup)
@click.pass_context
def cli(ctx: Context) -> None:
    """gstack - stacked branches and pull request chains on GitHub."""
    ctx.obj = {}

@cli.command(name="new", help="Start a new stack on top of the current branch")
@common_options
@click.option('-p', '--prefix', help="Prefix shared by the stack's branch names")
@click.option('-n', '--name', help="Name of the bottom branch")
def new(directory: Optional[str], verbose: int, prefix: Optional[str], name: Optional[str]) -> None:
    _, _, engine = setup_engine(directory, verbose)
    if prefix is None:
        prefix = click.prompt("Stack Prefix")
    if name is None:
        name = click.prompt("Bottom Branch Name")
    try:
        engine.new_stack(prefix, name)
    except GstackError as e:
        check(e)

@cli.command(name="add", help="Stack a new branch on top of the current stack")
@common_options
@click.option('-n', '--name', help="Name of the new branch")
def add(directory: Optional[str], verbose: int, name: Optional[str]) -> None:
    _, _, engine = setup_engine(directory, verbose)
    if name is None:
        name = click.prompt("Branch Name")
    try:
        engine.add_to_stack(name)
    except GstackError as e:
        check(e)

@cli.command(name="remove", help="Remove the current branch from its stack")
@common_options
@click.option('--delete/--keep', 'delete_local', default=None,
              help="Delete the local branch afterwards (asks when not given)")
def remove(directory: Optional[str], verbose: int, delete_local: Optional[bool]) -> None:
    _, _, engine = setup_engine(directory, verbose, need_github=True)
    try:
        engine.require_position()
        if delete_local is None:
            delete_local = click.confirm("Delete local branch?", default=False)
        engine.remove_current_branch(delete_local=delete_local)
    except GstackError as e:
        check(e)

@cli.command(name="list", help="List the current stack, or all stacks outside of one")
@common_options
def list_stacks(directory: Optional[str], verbose: int) -> None:
    _, git_cmd, engine = setup_engine(directory, verbose)
    try:
        position = engine.position()
        if position is not None:
            click.echo(format_stack(position.stack, current=git_cmd.current_branch()))
        elif engine.registry.stacks:
            click.echo(format_stacks(engine.registry.stacks))
        else:
            click.echo("No stacks yet. Run 'gstack new' to start one.")
    except GstackError as e:
        check(e)

@cli.command(name="change", help="Switch to another branch of the stack, or to another stack")
@common_options
def change(directory: Optional[str], verbose: int) -> None:
    _, _, engine = setup_engine(directory, verbose)
    try:
        position = engine.position()
        if position is not None:
            choices = stack_choices(position.stack)
            click.echo("\n".join(choices))
            index = click.prompt("Select Stack Branch", type=click.IntRange(0, len(choices) - 1),
                                 default=position.index)
            branch = engine.change_to_branch(index)
        else:
            if not engine.registry.stacks:
                click.echo("No stacks yet. Run 'gstack new' to start one.")
                return
            click.echo(format_stacks(engine.registry.stacks))
            index = click.prompt("Select Stack", type=click.IntRange(0, len(engine.registry.stacks) - 1),
                                 default=0)
            branch = engine.change_to_stack(index)
        click.echo(f"Moved to {branch}")
    except GstackError as e:
        check(e)

@cli.command(name="sync", help="Rebase the stack onto its base, push it and refresh PR descriptions")
@common_options
@click.option('--pretend', is_flag=True, help="Don't push or edit pull requests, just show what would happen")
def sync(directory: Optional[str], verbose: int, pretend: bool) -> None:
    config, _, engine = setup_engine(directory, verbose, need_github=True)
    config.tool.pretend = pretend
    try:
        published = engine.sync(describe=True)
    except GstackError as e:
        check(e)
    if published:
        click.echo(f"Pushed {', '.join(published)}")
    else:
        click.echo("Stack is up to date")

@cli.command(name="base", help="Check out the base branch of the stack")
@common_options
def base(directory: Optional[str], verbose: int) -> None:
    _, _, engine = setup_engine(directory, verbose)
    try:
        engine.checkout_base()
    except GstackError as e:
        check(e)

@cli.command(name="up", help="Check out the branch above the current one")
@common_options
def up(directory: Optional[str], verbose: int) -> None:
    _, _, engine = setup_engine(directory, verbose)
    try:
        engine.checkout_above()
    except GstackError as e:
        check(e)

@cli.command(name="down", help="Check out the branch below the current one")
@common_options
def down(directory: Optional[str], verbose: int) -> None:
    _, _, engine = setup_engine(directory, verbose)
    try:
        engine.checkout_below()
    except GstackError as e:
        check(e)

@cli.command(name="reset", help="Delete all tracked branches and forget every stack")
@common_options
@click.option('--yes', is_flag=True, help="Don't ask for confirmation")
def reset(directory: Optional[str], verbose: int, yes: bool) -> None:
    _, _, engine = setup_engine(directory, verbose)
    if not yes and not click.confirm("Delete all tracked local branches and reset state?", default=False):
        return
    try:
        engine.reset()
    except GstackError as e:
        check(e)
    click.echo("Deleted all stacks and reset state.")

@cli.group(name="pr", cls=AliasedGroup, help="Pull requests of the current stack")
def pr() -> None:
    pass

@pr.command(name="new", help="Sync the stack and open pull requests for branches without one")
@common_options
@click.option('--draft/--ready', default=None, help="Open new pull requests as drafts (asks when not given)")
def pr_new(directory: Optional[str], verbose: int, draft: Optional[bool]) -> None:
    config, _, engine = setup_engine(directory, verbose, need_github=True)
    try:
        engine.require_position()
        if draft is None:
            draft = click.confirm("Create as draft?", default=config.user.create_drafts)
        pulls = engine.create_pull_requests(draft=draft)
    except GstackError as e:
        check(e)
    for pull in pulls:
        click.echo(f"#{pull.number}: {click.style(pull.url, fg='blue')}")

@pr.command(name="list", help="List the open pull requests of the stack, bottom first")
@common_options
def pr_list(directory: Optional[str], verbose: int) -> None:
    _, _, engine = setup_engine(directory, verbose, need_github=True)
    try:
        pulls = engine.list_pull_requests()
    except GstackError as e:
        check(e)
    for pull in pulls:
        click.echo(f"#{pull.number}: {pull.url}")

@pr.command(name="merge", help="Merge the stack's pull requests into the base, bottom first")
@common_options
@click.option('--method', type=click.Choice(['merge', 'squash', 'rebase']), default=None,
              help="Merge method (defaults to repo.merge_method)")
@click.option('--delete-branches/--keep-branches', default=None,
              help="Delete the merged local branches afterwards (asks when not given)")
def pr_merge(directory: Optional[str], verbose: int, method: Optional[str],
             delete_branches: Optional[bool]) -> None:
    _, _, engine = setup_engine(directory, verbose, need_github=True)
    try:
        steps = engine.merge_pull_requests(cast(Optional[MergeMethod], method))
    except GstackError as e:
        check(e)
    if not steps:
        click.echo("Nothing to merge")
        return

    print_header("Merged Pull Requests")
    for step in steps:
        click.echo(f"   #{step.number} {step.branch} ({step.state.value})")

    if delete_branches is None:
        delete_branches = click.confirm("Delete local branches?", default=False)
    if delete_branches:
        engine.delete_local_branches([step.branch for step in steps])

cli.add_alias('ls', 'list')
cli.add_alias('c', 'change')
cli.add_alias('ss', 'sync')
pr.add_alias('ls', 'list')

def main() -> None:
    """Main entry point."""
    cli(obj={})

if __name__ == "__main__":
    main()
