"""Orchestrator - runs one command through the relay pipeline.

Chat: resolve thread -> typing -> [new thread: repo sync] -> fetch history
      -> assemble -> Claude -> deliver
Status: resolve thread -> status report -> deliver

process_command() is the only entry point and never raises, so one failed
message can't stop the bot handling the next.
"""

from claude_client import BaseCompletionClient, CompletionError, ErrorKind
from logger import logger
from .config import DEFAULT_MAX_HISTORY
from .conversation import ConversationAssembler
from .git_sync import GitError, GitRepository
from .router import Command, CommandKind
from .status import StatusService
from .threads import ThreadError, ThreadManager

HISTORY_FAILED_MESSAGE = "Error: failed to fetch thread history."
EMPTY_PROMPT_MESSAGE = "Mention me with a message and I'll reply in this thread."
EMPTY_REPLY_MESSAGE = "(Claude returned an empty response)"


def format_completion_error(error: CompletionError) -> str:
    """User-facing text for a failed Claude request."""
    if error.kind == ErrorKind.AUTH:
        return (
            f"Authentication error: {error.message}\n\n"
            "Check CLAUDE_CODE_OAUTH_TOKEN or ANTHROPIC_API_KEY."
        )
    if error.kind == ErrorKind.TIMEOUT:
        return f"Timeout: {error.message}\n\nPlease try again."
    if error.kind == ErrorKind.RATE_LIMIT:
        return f"Rate limited: {error.message}\n\nPlease wait a moment and try again."
    if error.kind == ErrorKind.SERVER:
        return f"Claude is having problems: {error.message}\n\nPlease try again later."
    return f"Claude error: {error.message}"


class Orchestrator:
    """Sequences router output through threads, Claude and delivery."""

    def __init__(
        self,
        threads: ThreadManager,
        assembler: ConversationAssembler,
        completion: BaseCompletionClient,
        repo: GitRepository,
        status: StatusService,
        max_history: int = DEFAULT_MAX_HISTORY,
    ):
        self.threads = threads
        self.assembler = assembler
        self.completion = completion
        self.repo = repo
        self.status = status
        self.max_history = max_history

    async def process_command(self, command: Command) -> None:
        """Handle one command. Errors are logged, never raised."""
        try:
            if command.kind == CommandKind.STATUS:
                await self.process_status_command(command)
            else:
                await self.process_chat_command(command)
        except Exception as e:
            logger.exception(
                f"Error processing message {command.message.id} ({command.kind.value}): {e}"
            )

    async def process_chat_command(self, command: Command) -> None:
        message = command.message

        try:
            thread = command.thread or await self.threads.resolve_thread(message)
        except ThreadError as e:
            logger.error(f"No thread for message {message.id} ({e.kind.value}): {e.message}")
            return

        await self.threads.send_typing(thread)

        # Only a fresh thread triggers a sync; replies inside a thread don't
        if command.thread is None:
            await self.sync_repository(thread)

        try:
            history = await self.threads.fetch_history(thread)
        except ThreadError as e:
            logger.error(f"History fetch failed for thread {thread.id}: {e.message}")
            await self.threads.deliver(thread, HISTORY_FAILED_MESSAGE)
            return

        # The triggering message is already in a thread's history; count it once
        history = [m for m in history if m.id != message.id]

        turns = self.assembler.assemble(history, command.content, self.max_history)
        if not turns:
            await self.threads.deliver(thread, EMPTY_PROMPT_MESSAGE)
            return

        try:
            result = await self.completion.send(turns)
        except CompletionError as e:
            await self.threads.deliver(thread, format_completion_error(e))
            return

        await self.threads.deliver(thread, result.content or EMPTY_REPLY_MESSAGE)
        logger.info(f"Replied in thread {thread.id} ({len(result.content)} chars)")

    async def process_status_command(self, command: Command) -> None:
        try:
            thread = command.thread or await self.threads.resolve_thread(command.message)
        except ThreadError as e:
            logger.error(f"No thread for status command {command.message.id}: {e.message}")
            return

        try:
            report = await self.status.get_status_report()
        except Exception as e:
            logger.error(f"Status report failed: {e}")
            await self.threads.deliver(thread, f"Status error: {e}")
            return

        await self.threads.deliver(thread, report)

    async def sync_repository(self, thread) -> None:
        """Pull remote changes if there are any. Never fatal to the command."""
        try:
            await self._sync_repository(thread)
        except Exception as e:
            logger.warning(f"Repository sync failed, continuing with current checkout: {e}")

    async def _sync_repository(self, thread) -> None:
        try:
            info = await self.repo.check_for_updates()
        except GitError as e:
            logger.warning(f"Git update check failed: {e.message}")
            return

        if not info.has_updates:
            logger.info("Git repository is up to date")
            return

        logger.info(f"Pulling git changes (behind={info.behind}, ahead={info.ahead})")

        try:
            pull = await self.repo.pull_changes()
        except GitError as e:
            await self.threads.deliver(
                thread,
                f"Git update error: {e.message}\n\nContinuing with the current checkout.",
            )
            return

        if pull.updated:
            await self.threads.deliver(thread, f"📥 **Repository updated**\n{pull.summary}\n")
