"""Managed git checkout - clone, status, update check and pull.

Runs the git binary as a subprocess. Commit counts come straight from
`git rev-list --count`; output is never line-counted.
"""

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from config import GIT_REPOSITORY_URL, GITHUB_TOKEN, REPO_PATH
from logger import logger
from utils.log_sanitizer import sanitize_log

GIT_TIMEOUT = 120  # seconds per git command
GITHUB_PREFIX = "https://github.com/"


class GitError(Exception):
    """A git operation failed. Message is already scrubbed of credentials."""

    def __init__(self, message: str, code: str = "GIT_ERROR"):
        message = sanitize_log(message)
        super().__init__(message)
        self.message = message
        self.code = code


@dataclass
class GitStatus:
    branch: str
    clean: bool
    modified: list[str] = field(default_factory=list)
    tracking: Optional[str] = None


@dataclass
class GitUpdateInfo:
    has_updates: bool
    behind: int
    ahead: int


@dataclass
class GitPullResult:
    updated: bool
    summary: str
    files: list[str] = field(default_factory=list)


def build_authenticated_url(repo_url: str, token: str) -> str:
    """Inject a GitHub token into an https://github.com/ clone URL."""
    if token and repo_url.startswith(GITHUB_PREFIX):
        return repo_url.replace(GITHUB_PREFIX, f"https://{token}@github.com/", 1)
    return repo_url


def parse_status(output: str) -> GitStatus:
    """Parse `git status --porcelain --branch` output.

    First line looks like:
        ## main...origin/main [behind 2]
        ## No commits yet on main
        ## HEAD (no branch)
    """
    lines = output.splitlines()
    branch = "unknown"
    tracking = None

    if lines and lines[0].startswith("## "):
        header = lines[0][3:].split(" [", 1)[0].strip()
        lines = lines[1:]

        if header.startswith("No commits yet on "):
            branch = header[len("No commits yet on "):]
        elif header.startswith("HEAD (no branch)"):
            branch = "HEAD"
        elif "..." in header:
            branch, tracking = header.split("...", 1)
        else:
            branch = header

    modified = []
    for line in lines:
        if len(line) < 4:
            continue
        path = line[3:]
        # Renames are reported as "old -> new"
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        modified.append(path.strip('"'))

    return GitStatus(branch=branch, clean=not modified, modified=modified, tracking=tracking)


class GitRepository:
    """The checkout the bot keeps in sync with its remote."""

    def __init__(
        self,
        repo_url: str = GIT_REPOSITORY_URL,
        token: str = GITHUB_TOKEN,
        path: Path = REPO_PATH,
        timeout: float = GIT_TIMEOUT,
    ):
        self.repo_url = repo_url
        self.token = token
        self.path = Path(path)
        self.timeout = timeout

    async def _git(self, *args: str, cwd: Optional[Path] = None) -> str:
        """Run a git command and return stripped stdout.

        Raises:
            GitError: missing binary, timeout or non-zero exit
        """
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}

        try:
            proc = await asyncio.create_subprocess_exec(
                "git", *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd or self.path),
                env=env,
            )
        except FileNotFoundError as e:
            workdir = Path(cwd or self.path)
            if not workdir.is_dir():
                raise GitError(f"git working directory not found: {workdir}", "GIT_COMMAND_ERROR") from e
            raise GitError("git binary not found", "GIT_MISSING") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            raise GitError(f"git {args[0]} timed out after {self.timeout}s", "GIT_TIMEOUT")

        if proc.returncode != 0:
            detail = (stderr.decode("utf-8", errors="replace").strip()
                      or stdout.decode("utf-8", errors="replace").strip()
                      or f"exit {proc.returncode}")
            raise GitError(f"git {args[0]} failed: {detail}", "GIT_COMMAND_ERROR")

        return stdout.decode("utf-8", errors="replace").strip()

    async def initialize(self) -> None:
        """Clone the repository unless a checkout already exists.

        Raises:
            GitError: GIT_INIT_ERROR
        """
        if (self.path / ".git").exists():
            logger.info(f"Repository already present at {self.path}, skipping clone")
            return

        url = build_authenticated_url(self.repo_url, self.token)
        logger.info(f"Cloning {self.repo_url} into {self.path}")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            await self._git("clone", url, str(self.path), cwd=self.path.parent)
        except (GitError, OSError) as e:
            logger.error(f"Failed to initialize repository: {e}")
            raise GitError(str(e), "GIT_INIT_ERROR") from e

        logger.info("Repository cloned successfully")

    async def get_status(self) -> GitStatus:
        """Branch, tracking branch and working-tree state.

        Raises:
            GitError: GIT_STATUS_ERROR
        """
        try:
            output = await self._git("status", "--porcelain", "--branch")
        except GitError as e:
            logger.error(f"Failed to get git status: {e}")
            raise GitError(e.message, "GIT_STATUS_ERROR") from e
        return parse_status(output)

    async def check_for_updates(self) -> GitUpdateInfo:
        """Fetch and compare HEAD with origin/<current branch>.

        Raises:
            GitError: GIT_CHECK_ERROR
        """
        logger.info("Checking for git updates")
        try:
            await self._git("fetch")
            branch = await self._git("rev-parse", "--abbrev-ref", "HEAD")
            counts = await self._git(
                "rev-list", "--left-right", "--count", f"HEAD...origin/{branch}"
            )
            ahead, behind = (int(n) for n in counts.split())
        except (GitError, ValueError) as e:
            logger.error(f"Failed to check for updates: {e}")
            raise GitError(str(e), "GIT_CHECK_ERROR") from e

        info = GitUpdateInfo(has_updates=behind > 0, behind=behind, ahead=ahead)
        logger.info(f"Git update check: behind={behind} ahead={ahead}")
        return info

    async def pull_changes(self) -> GitPullResult:
        """Pull from the tracking branch and summarise what changed.

        Raises:
            GitError: GIT_PULL_ERROR
        """
        logger.info("Pulling git changes")
        try:
            head_before = await self._git("rev-parse", "HEAD")
            count_before = int(await self._git("rev-list", "--count", "HEAD"))

            await self._git("pull")

            head_after = await self._git("rev-parse", "HEAD")
            count_after = int(await self._git("rev-list", "--count", "HEAD"))

            files = []
            if head_after != head_before:
                diff = await self._git("diff", "--name-only", head_before, head_after)
                files = [f for f in diff.splitlines() if f]
        except (GitError, ValueError) as e:
            logger.error(f"Failed to pull changes: {e}")
            raise GitError(str(e), "GIT_PULL_ERROR") from e

        new_commits = count_after - count_before
        updated = bool(files) or new_commits > 0
        if updated:
            summary = f"Updated: {new_commits} commits, {len(files)} files changed"
        else:
            summary = "Already up to date"

        logger.info(f"Git pull complete: {summary}")
        return GitPullResult(updated=updated, summary=summary, files=files)
