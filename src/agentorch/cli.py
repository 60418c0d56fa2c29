"""Command-line interface for agentorch.

Hook commands are meant to be installed as agent hooks (e.g. Claude Code
``UserPromptSubmit`` / ``Stop`` hooks). They read the workspace id from the
environment of the terminal that launched the agent and are silent no-ops
outside a workspace terminal.

    agentorch hook start                 # agent began working
    agentorch hook stop                  # agent finished (marker only)
    agentorch hook notify                # agent finished, flag the workspace
    agentorch status                     # show active and waiting workspaces
    agentorch watch --focus WS           # follow transitions live
    agentorch worktree create REPO NAME BRANCH
    agentorch worktree list REPO
"""

from __future__ import annotations

import argparse
import asyncio
import os
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.table import Table

from agentorch import __version__
from agentorch.activity.kinds import AgentKind, agent_kinds_from_config, find_kind
from agentorch.activity.markers import (
    ActivityStatus,
    clear_marker,
    clear_workspace_markers,
    read_snapshot,
    write_marker,
)
from agentorch.activity.poller import ActivityPoller
from agentorch.activity.reconciler import ActivityReconciler, Transition, TransitionKind
from agentorch.activity.signals import NotifyReason, write_notify_signal
from agentorch.config import Config, load_config
from agentorch.config.paths import get_activity_dir, get_notify_dir
from agentorch.logging import get_logger, setup_logging
from agentorch.workspace.directory import WorkspaceDirectory
from agentorch.worktree import WorktreeError, create_worktree, list_worktrees

log = get_logger("cli")

_TRANSITION_STYLES = {
    TransitionKind.STARTED: "green",
    TransitionKind.STOPPED: "yellow",
    TransitionKind.UNREAD: "bold magenta",
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="agentorch",
        description="Run coding agents side by side in isolated workspaces",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=None,
        help="Increase verbosity (can be repeated, up to -vvvv)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Extra config file layered over the standard locations",
    )
    parser.add_argument(
        "--project",
        type=Path,
        help="Project root for project-level config (default: none)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Hook commands
    hook_parser = subparsers.add_parser("hook", help="Report agent activity (for agent hooks)")
    hook_parser.add_argument(
        "--workspace",
        help="Workspace id (default: from the terminal environment)",
    )
    hook_sub = hook_parser.add_subparsers(dest="hook_command", required=True)

    start_parser = hook_sub.add_parser("start", help="Mark the workspace active")
    stop_parser = hook_sub.add_parser("stop", help="Clear this agent's activity marker")
    notify_parser = hook_sub.add_parser(
        "notify", help="Signal completion and clear the agent's markers"
    )
    for sub in (start_parser, stop_parser, notify_parser):
        sub.add_argument("--kind", default="claude", help="Agent kind (default: claude)")
    for sub in (start_parser, stop_parser):
        sub.add_argument(
            "--instance",
            help="Instance token for multi-instance kinds (default: parent pid)",
        )
    notify_parser.add_argument(
        "--instance",
        help="Instance marker to clear for multi-instance kinds (default: all of the kind)",
    )
    stop_parser.add_argument(
        "--all",
        action="store_true",
        help="Clear every marker of this kind for the workspace",
    )
    notify_parser.add_argument(
        "--reason",
        choices=[r.value for r in NotifyReason],
        default=NotifyReason.COMPLETED.value,
        help="Why the workspace needs attention",
    )

    # Status
    subparsers.add_parser("status", help="Show workspaces with active agents")

    # Watch
    watch_parser = subparsers.add_parser("watch", help="Follow activity transitions")
    watch_parser.add_argument("--focus", help="Workspace id to treat as focused")
    watch_parser.add_argument(
        "--interval",
        type=float,
        help="Poll interval in seconds (default: from config)",
    )

    # Worktree
    worktree_parser = subparsers.add_parser("worktree", help="Manage workspace worktrees")
    worktree_sub = worktree_parser.add_subparsers(dest="worktree_command", required=True)
    worktree_create = worktree_sub.add_parser("create", help="Create a workspace worktree")
    worktree_create.add_argument("repo", type=Path, help="Repository path")
    worktree_create.add_argument("name", help="Workspace name")
    worktree_create.add_argument("branch", help="Branch to check out or create")
    worktree_create.add_argument("--base", help="Base branch for a new branch")
    worktree_create.add_argument(
        "--force", action="store_true", help="Replace an existing worktree directory"
    )
    worktree_list = worktree_sub.add_parser("list", help="List the worktrees of a repository")
    worktree_list.add_argument("repo", type=Path, help="Repository path")

    return parser


def _resolve_kind(config: Config, name: str) -> AgentKind | None:
    try:
        kinds = agent_kinds_from_config(config.activity.agent_kinds)
    except ValueError as e:
        log.warning("Invalid agent kind config: %s", e)
        return None
    try:
        return find_kind(kinds, name)
    except KeyError:
        log.warning("Unknown agent kind %r", name)
        return None


def _instance_token(kind: AgentKind, explicit: str | None) -> str | None:
    if not kind.multi_instance:
        return None
    return explicit or str(os.getppid())


def _clear_finished(
    activity_dir: Path, kind: AgentKind, workspace_id: str, instance: str | None
) -> None:
    if not kind.multi_instance:
        clear_marker(activity_dir, kind, workspace_id)
    elif instance:
        clear_marker(activity_dir, kind, workspace_id, instance)
    else:
        clear_workspace_markers(activity_dir, kind, workspace_id)


def run_hook(args: argparse.Namespace, config: Config) -> int:
    """Run a hook command. Always succeeds: hooks must never break the agent."""
    workspace_id = args.workspace or os.environ.get(config.terminal.workspace_env_var, "")
    if not workspace_id:
        return 0

    kind = _resolve_kind(config, args.kind)
    if kind is None:
        return 0

    activity = config.activity
    activity_dir = get_activity_dir(activity.app_name, activity.signal_root)
    notify_dir = get_notify_dir(activity.app_name, activity.signal_root)

    try:
        if args.hook_command == "start":
            write_marker(activity_dir, kind, workspace_id, _instance_token(kind, args.instance))
        elif args.hook_command == "stop":
            if args.all:
                clear_workspace_markers(activity_dir, kind, workspace_id)
            else:
                clear_marker(
                    activity_dir, kind, workspace_id, _instance_token(kind, args.instance)
                )
        elif args.hook_command == "notify":
            reason = NotifyReason(args.reason)
            write_notify_signal(notify_dir, workspace_id, reason)
            # A waiting agent is still alive; only a completion takes its markers
            if reason is NotifyReason.COMPLETED:
                _clear_finished(activity_dir, kind, workspace_id, args.instance)
    except OSError as e:
        log.debug("Hook %s failed for %s: %s", args.hook_command, workspace_id, e)
    return 0


def run_status(config: Config, console: Console) -> int:
    activity = config.activity
    activity_dir = get_activity_dir(activity.app_name, activity.signal_root)
    try:
        kinds = agent_kinds_from_config(activity.agent_kinds)
    except ValueError as e:
        console.print(f"[red]error:[/red] {e}")
        return 1
    snapshot = read_snapshot(activity_dir, kinds)

    if not snapshot.statuses:
        console.print("[dim]No active agents[/dim]")
        return 0

    table = Table(
        title=f"Active agents ({activity_dir})",
        caption=f"{snapshot.running_agent_count} running marker(s)",
    )
    table.add_column("Workspace")
    table.add_column("Status")
    table.add_column("Markers", justify="right")
    for workspace_id in sorted(snapshot.statuses):
        status = snapshot.status(workspace_id)
        style = "green" if status is ActivityStatus.ACTIVE else "yellow"
        table.add_row(
            workspace_id,
            f"[{style}]{status.value}[/{style}]",
            str(snapshot.instance_counts.get(workspace_id, 0)),
        )
    console.print(table)
    return 0


def format_transition(transition: Transition) -> str:
    style = _TRANSITION_STYLES[transition.kind]
    text = f"[{style}]{transition.kind.value:>7}[/{style}] {transition.workspace_id}"
    if transition.forced or transition.reason is NotifyReason.WAITING_INPUT:
        text += f" [dim]({transition.reason.value})[/dim]"
    return text


async def _watch(config: Config, focus: str | None, console: Console) -> None:
    activity = config.activity
    directory = WorkspaceDirectory()
    directory.on_focus_changed(focus)
    poller = ActivityPoller(
        get_activity_dir(activity.app_name, activity.signal_root),
        get_notify_dir(activity.app_name, activity.signal_root),
        directory,
        reconciler=ActivityReconciler(dedupe_window=activity.dedupe_window),
        kinds=agent_kinds_from_config(activity.agent_kinds),
        poll_interval=activity.poll_interval,
    )
    poller.add_listener(lambda t: console.print(format_transition(t)))

    console.print(f"[dim]Watching {poller.activity_dir} (Ctrl+C to stop)[/dim]")
    async with poller:
        while True:
            await asyncio.sleep(3600)


def run_watch(args: argparse.Namespace, config: Config, console: Console) -> int:
    if args.interval is not None:
        config.activity.poll_interval = args.interval
    try:
        asyncio.run(_watch(config, args.focus, console))
    except KeyboardInterrupt:
        console.print("[dim]Stopped[/dim]")
    except ValueError as e:
        console.print(f"[red]error:[/red] {e}")
        return 1
    return 0


def _create_worktree(args: argparse.Namespace, config: Config, console: Console) -> int:
    path = asyncio.run(
        create_worktree(
            args.repo,
            args.name,
            args.branch,
            force=args.force,
            base_branch=args.base,
            fetch_remote=config.worktree.fetch_remote,
        )
    )
    console.print(str(path))
    return 0


def _list_worktrees(args: argparse.Namespace, console: Console) -> int:
    worktrees = asyncio.run(list_worktrees(args.repo))
    table = Table(title=f"Worktrees of {args.repo}")
    table.add_column("Path")
    table.add_column("Branch")
    table.add_column("HEAD")
    for info in worktrees:
        branch = info.branch or ("[dim](bare)[/dim]" if info.bare else "[dim](detached)[/dim]")
        table.add_row(str(info.path), branch, (info.head or "")[:12])
    console.print(table)
    return 0


def run_worktree(args: argparse.Namespace, config: Config, console: Console) -> int:
    try:
        if args.worktree_command == "list":
            return _list_worktrees(args, console)
        return _create_worktree(args, config, console)
    except WorktreeError as e:
        console.print(f"[red]error:[/red] {e}")
        return 1


def main(argv: Sequence[str] | None = None, console: Console | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    config = load_config(
        project_root=str(args.project) if args.project else None,
        config_file=args.config,
    )
    if args.verbose is not None:
        config.logging.verbose = min(args.verbose + 1, 4)
    setup_logging(config.logging)

    console = console or Console()

    if args.command == "hook":
        return run_hook(args, config)
    if args.command == "status":
        return run_status(config, console)
    if args.command == "watch":
        return run_watch(args, config, console)
    if args.command == "worktree":
        return run_worktree(args, config, console)

    parser.print_help()
    return 1
