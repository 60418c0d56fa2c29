"""Git worktree plumbing: one worktree per workspace.

Worktrees are created next to the repository as ``<repo>-ws-<name>``.
"""

from __future__ import annotations

import asyncio
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from agentorch.logging import get_logger

log = get_logger("worktree")

BRANCH_CHECKED_OUT = "BRANCH_CHECKED_OUT"
BRANCH_ALREADY_EXISTS = "BRANCH_ALREADY_EXISTS"
WORKTREE_PATH_EXISTS = "WORKTREE_PATH_EXISTS"


class WorktreeError(Exception):
    """A git worktree operation failed.

    ``code`` is one of the module constants when the failure is recognized.
    """

    def __init__(self, message: str, code: str | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.code = code
        self.stderr = stderr


class GitCommandError(WorktreeError):
    """A git subprocess exited non-zero."""


@dataclass(frozen=True)
class WorktreeInfo:
    """One entry of ``git worktree list``."""

    path: Path
    head: str | None = None
    branch: str | None = None
    bare: bool = False


async def git(args: list[str], cwd: Path | str) -> str:
    """Run git and return stripped stdout.

    Raises:
        GitCommandError: On a non-zero exit.
        WorktreeError: If git is not installed.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd),
        )
    except FileNotFoundError:
        raise WorktreeError("git executable not found") from None

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        err_text = stderr.decode("utf-8", errors="replace")
        raise GitCommandError(
            f"git {' '.join(args)} failed: {err_text.strip()}",
            stderr=err_text,
        )
    return stdout.decode("utf-8", errors="replace").rstrip()


def friendly_git_error(stderr: str, fallback: str) -> tuple[str, str | None]:
    """Map git stderr to a (message, code) pair."""
    if not stderr:
        return fallback, None
    if re.search(r"fatal: '[^']+' is already (?:checked out|used by worktree) at", stderr):
        return "Branch is already checked out in another worktree", BRANCH_CHECKED_OUT
    match = re.search(r"invalid reference: (.+)", stderr)
    if match:
        return f'Branch "{match.group(1).strip()}" not found', None
    if "a branch named" in stderr:
        return "Branch already exists", BRANCH_ALREADY_EXISTS
    if "already exists" in stderr:
        return "Worktree path already exists", WORKTREE_PATH_EXISTS
    if "not a git repository" in stderr:
        return "Not a git repository", None
    match = re.search(r"fatal: (.+)", stderr)
    if match:
        return match.group(1).strip(), None
    return fallback, None


def sanitize_branch_name(name: str) -> str:
    """Turn free text into a name git accepts as a branch."""
    name = name.strip()
    name = re.sub(r"\s+", "-", name)
    name = re.sub(r"\.{2,}", "-", name)
    name = re.sub(r"[\x00-\x1f\x7f~^:?*\[\]\\]", "-", name)
    name = re.sub(r"/{2,}", "/", name)
    name = re.sub(r"/\.", "/-", name)
    name = name.replace("@{", "-")
    name = re.sub(r"\.lock(/|$)", r"-lock\1", name)
    name = re.sub(r"^[.\-/]+", "", name)
    return re.sub(r"[.\-/]+$", "", name)


def worktree_path_for(repo_path: Path, name: str) -> Path:
    repo_path = repo_path.resolve()
    return repo_path.parent / f"{repo_path.name}-ws-{name}"


async def _succeeds(args: list[str], cwd: Path) -> bool:
    try:
        await git(args, cwd)
    except GitCommandError:
        return False
    return True


async def branch_exists(repo_path: Path, branch: str) -> bool:
    return await _succeeds(["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"], repo_path)


async def has_remote(repo_path: Path, remote: str = "origin") -> bool:
    try:
        remotes = await git(["remote"], repo_path)
    except GitCommandError:
        return False
    return remote in remotes.split()


async def create_worktree(
    repo_path: Path,
    name: str,
    branch: str,
    force: bool = False,
    base_branch: str | None = None,
    *,
    new_branch: bool = True,
    fetch_remote: bool = True,
) -> Path:
    """Create the worktree for a workspace.

    Args:
        repo_path: Main repository checkout.
        name: Workspace name; becomes part of the worktree directory.
        branch: Branch to check out (sanitized first).
        force: Replace an existing directory and pass --force to git.
        base_branch: Start point when the branch has to be created.
        new_branch: Create the branch if it does not exist yet.
        fetch_remote: Fetch ``origin`` first when the repo has one.

    Returns:
        Path of the new worktree.

    Raises:
        WorktreeError: With ``code`` set for recognized failures.
    """
    repo_path = Path(repo_path)
    sanitized = sanitize_branch_name(branch)
    if not sanitized:
        raise WorktreeError("Branch name is empty after sanitization")

    worktree_path = worktree_path_for(repo_path, name)

    # Stale refs from deleted worktree directories
    await _succeeds(["worktree", "prune"], repo_path)

    if fetch_remote and await has_remote(repo_path, "origin"):
        try:
            await git(["fetch", "--prune", "origin"], repo_path)
        except GitCommandError as e:
            log.warning("Fetching origin failed, continuing with local refs: %s", e)

    if worktree_path.exists():
        if not force:
            raise WorktreeError(
                f"Worktree path already exists: {worktree_path}",
                code=WORKTREE_PATH_EXISTS,
            )
        shutil.rmtree(worktree_path, ignore_errors=True)

    exists = await branch_exists(repo_path, sanitized)

    args = ["worktree", "add"]
    if force:
        args.append("--force")
    if new_branch and not exists:
        args.extend(["-b", sanitized, str(worktree_path)])
        if base_branch:
            args.append(base_branch)
    else:
        args.extend([str(worktree_path), sanitized])

    try:
        await git(args, repo_path)
    except GitCommandError as e:
        message, code = friendly_git_error(e.stderr, "Failed to create worktree")
        raise WorktreeError(message, code=code, stderr=e.stderr) from e

    if exists and fetch_remote:
        # Fast-forward existing branches to their upstream when there is one
        await _succeeds(["pull", "--ff-only"], worktree_path)

    log.info("Created worktree %s on branch %s", worktree_path, sanitized)
    return worktree_path


async def remove_worktree(repo_path: Path, worktree_path: Path) -> None:
    """Remove a worktree and its directory. Missing worktrees are ignored."""
    repo_path = Path(repo_path).resolve()
    worktree_path = Path(worktree_path).resolve()
    if repo_path == worktree_path:
        return

    try:
        await git(["worktree", "remove", str(worktree_path), "--force"], repo_path)
    except GitCommandError as e:
        if "is not a working tree" not in e.stderr and worktree_path.exists():
            message, code = friendly_git_error(e.stderr, "Failed to remove worktree")
            raise WorktreeError(message, code=code, stderr=e.stderr) from e

    shutil.rmtree(worktree_path, ignore_errors=True)
    log.info("Removed worktree %s", worktree_path)


async def list_worktrees(repo_path: Path) -> list[WorktreeInfo]:
    """Every worktree of the repository, main checkout first."""
    output = await git(["worktree", "list", "--porcelain"], repo_path)
    worktrees: list[WorktreeInfo] = []
    for block in output.split("\n\n"):
        info: dict[str, str] = {}
        bare = False
        for line in block.splitlines():
            key, _, value = line.partition(" ")
            if key in ("worktree", "HEAD", "branch"):
                info[key] = value
            elif key == "bare":
                bare = True
        if "worktree" not in info:
            continue
        branch = info.get("branch")
        worktrees.append(
            WorktreeInfo(
                path=Path(info["worktree"]),
                head=info.get("HEAD"),
                branch=branch.removeprefix("refs/heads/") if branch else None,
                bare=bare,
            )
        )
    return worktrees
