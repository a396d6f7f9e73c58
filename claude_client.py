"""Claude completion client with retry/backoff.

Two transports share one retry loop:
- ClaudeClient: Anthropic SDK (messages API)
- ClaudeCliClient: `claude -p --output-format json` subprocess

Failures are classified into an ErrorKind; only transient kinds are retried,
with 2**attempt second delays between attempts.
"""

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import anthropic

from config import (
    ANTHROPIC_API_KEY,
    CLAUDE_CLI_PATH,
    CLAUDE_CODE_OAUTH_TOKEN,
    CLAUDE_MAX_TOKENS,
    CLAUDE_MODEL,
    REPO_PATH,
    resolve_backend,
)
from domains.relay.conversation import ConversationTurn, USER
from logger import logger
from utils.log_sanitizer import sanitize_for_log

MAX_RETRIES = 3
REQUEST_TIMEOUT = 180  # seconds, per attempt
CLI_VERSION_TIMEOUT = 10
CLI_STREAM_LIMIT = 10 * 1024 * 1024

# Substrings in CLI output that mean the credential was rejected
CLI_AUTH_MARKERS = (
    "not authenticated",
    "login",
    "api key",
    "unauthorized",
    "authentication failed",
)


class ErrorKind(Enum):
    """Completion failure categories."""
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    SERVER = "server"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"  # CLI process failed to run/exit cleanly
    CLI_ERROR = "cli_error"              # CLI ran but returned an error/garbled result
    UNKNOWN = "unknown"


class CompletionError(Exception):
    """Classified completion failure."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: Optional[int] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.stderr = stderr

    def __repr__(self) -> str:
        return f"CompletionError({self.kind.value}, {self.message!r}, status_code={self.status_code})"


@dataclass
class TokenUsage:
    input_tokens: int
    output_tokens: int


@dataclass
class CompletionResult:
    content: str
    usage: Optional[TokenUsage] = None


class UsageAccumulator:
    """Process-wide token totals, read by the status report."""

    def __init__(self):
        self.input_tokens = 0
        self.output_tokens = 0
        self.total_tokens = 0

    def add(self, usage: TokenUsage) -> None:
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens
        self.total_tokens += usage.input_tokens + usage.output_tokens

    def snapshot(self) -> dict:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


# Global accumulator shared by all clients
usage = UsageAccumulator()


def classify_error(error: Exception) -> CompletionError:
    """Map an SDK/transport exception to a CompletionError."""
    if isinstance(error, CompletionError):
        return error

    if isinstance(error, (asyncio.TimeoutError, anthropic.APITimeoutError)):
        return CompletionError(ErrorKind.TIMEOUT, f"Claude request timed out: {error}")

    message = str(error) or error.__class__.__name__
    status = getattr(error, "status_code", None)

    if isinstance(status, int):
        if status == 429:
            return CompletionError(ErrorKind.RATE_LIMIT, f"Rate limit reached: {message}", status)
        if status == 401:
            return CompletionError(ErrorKind.AUTH, f"Authentication failed, API key rejected: {message}", status)
        if 500 <= status < 600:
            return CompletionError(ErrorKind.SERVER, f"Claude API server error: {message}", status)
        return CompletionError(ErrorKind.UNKNOWN, f"Claude API error ({status}): {message}", status)

    lowered = message.lower()
    if "timeout" in lowered or "timed out" in lowered:
        return CompletionError(ErrorKind.TIMEOUT, f"Claude request timed out: {message}")

    return CompletionError(ErrorKind.UNKNOWN, message)


class BaseCompletionClient:
    """Retry loop shared by both transports. Subclasses implement _complete()."""

    transport = "base"
    retryable = frozenset({ErrorKind.RATE_LIMIT, ErrorKind.TIMEOUT})

    def __init__(self, usage_accumulator: Optional[UsageAccumulator] = None):
        self.usage = usage_accumulator if usage_accumulator is not None else usage

    async def send(self, turns: Sequence[ConversationTurn]) -> CompletionResult:
        """Send a conversation to Claude, retrying transient failures.

        Args:
            turns: Alternating turns ending with a user turn

        Returns:
            CompletionResult with the reply text and token usage

        Raises:
            CompletionError: the last classified error once retries are exhausted,
                or immediately for non-retryable kinds
        """
        if not turns or turns[-1].role != USER:
            raise CompletionError(ErrorKind.UNKNOWN, "No user message to send")

        logger.info(f"Claude request via {self.transport}: {len(turns)} turns")

        error = None
        for attempt in range(MAX_RETRIES):
            try:
                result = await self._complete(turns)
            except Exception as e:
                error = classify_error(e)
            else:
                if result.usage:
                    self.usage.add(result.usage)
                    logger.info(
                        f"Claude response: {len(result.content)} chars, "
                        f"tokens in={result.usage.input_tokens} out={result.usage.output_tokens}"
                    )
                else:
                    logger.info(f"Claude response: {len(result.content)} chars")
                return result

            if error.kind not in self.retryable:
                break

            if attempt < MAX_RETRIES - 1:
                delay = 2 ** attempt
                logger.warning(
                    f"Claude {error.kind.value} error, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                await asyncio.sleep(delay)

        logger.error(
            f"Claude request failed: kind={error.kind.value} status={error.status_code} "
            f"attempt={attempt + 1}: {error.message}"
        )
        raise error

    async def _complete(self, turns: Sequence[ConversationTurn]) -> CompletionResult:
        raise NotImplementedError


class ClaudeClient(BaseCompletionClient):
    """Anthropic messages API transport."""

    transport = "api"

    def __init__(
        self,
        api_key: str,
        model: str = CLAUDE_MODEL,
        max_tokens: int = CLAUDE_MAX_TOKENS,
        usage_accumulator: Optional[UsageAccumulator] = None,
    ):
        super().__init__(usage_accumulator)
        # SDK retries off: the loop in send() owns the retry policy
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=REQUEST_TIMEOUT,
            max_retries=0,
        )
        self.model = model
        self.max_tokens = max_tokens
        logger.info(f"ClaudeClient initialized (model={model})")

    async def _complete(self, turns: Sequence[ConversationTurn]) -> CompletionResult:
        # Ensure conversation starts with user message
        messages = [turn.to_api() for turn in turns]
        while messages[0]["role"] != USER:
            messages = messages[1:]

        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=messages,
        )

        text_blocks = [b.text for b in response.content if b.type == "text"]

        token_usage = None
        if response.usage:
            token_usage = TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            )

        return CompletionResult(content="\n".join(text_blocks), usage=token_usage)


def render_transcript(turns: Sequence[ConversationTurn]) -> str:
    """Flatten turns into a single prompt for the CLI's stdin."""
    if len(turns) == 1:
        return turns[0].content

    labels = {"user": "User", "assistant": "Assistant"}
    history = "\n\n".join(f"{labels[t.role]}: {t.content}" for t in turns[:-1])
    return f"## Conversation History\n\n{history}\n\n## Current Message\n\n{turns[-1].content}"


def parse_cli_output(returncode: int, stdout: str, stderr: str) -> CompletionResult:
    """Turn a finished `claude -p --output-format json` run into a result.

    Raises:
        CompletionError: auth/rate_limit/transport_error for a failed process,
            cli_error for an error or unreadable result
    """
    if returncode != 0:
        combined = f"{stderr}\n{stdout}".lower()
        if any(marker in combined for marker in CLI_AUTH_MARKERS):
            raise CompletionError(
                ErrorKind.AUTH,
                "Claude CLI authentication failed. Set CLAUDE_CODE_OAUTH_TOKEN or ANTHROPIC_API_KEY",
                stderr=stderr[:500],
            )
        if "rate limit" in combined or "429" in combined:
            raise CompletionError(ErrorKind.RATE_LIMIT, "Claude CLI hit a rate limit", stderr=stderr[:500])
        raise CompletionError(
            ErrorKind.TRANSPORT_ERROR,
            f"Claude CLI exited with code {returncode}",
            stderr=stderr[:500],
        )

    try:
        payload = json.loads(stdout)
    except json.JSONDecodeError:
        raise CompletionError(
            ErrorKind.CLI_ERROR,
            f"Claude CLI returned non-JSON output: {sanitize_for_log(stdout, 100)}",
            stderr=stderr[:500],
        )

    # Newer CLI versions emit the whole event list; the result event is last
    if isinstance(payload, list):
        results = [e for e in payload if isinstance(e, dict) and e.get("type") == "result"]
        payload = results[-1] if results else {}

    if not isinstance(payload, dict) or not payload:
        raise CompletionError(ErrorKind.CLI_ERROR, "Claude CLI produced no result event")

    if payload.get("is_error") or payload.get("subtype", "success") != "success":
        detail = str(payload.get("result") or payload.get("subtype") or "unknown error")
        raise CompletionError(ErrorKind.CLI_ERROR, f"Claude CLI error: {detail[:200]}")

    content = str(payload.get("result") or "").strip()
    if not content:
        raise CompletionError(ErrorKind.CLI_ERROR, "Claude CLI returned an empty result")

    token_usage = None
    usage_data = payload.get("usage") or {}
    if usage_data:
        token_usage = TokenUsage(
            input_tokens=int(usage_data.get("input_tokens", 0)),
            output_tokens=int(usage_data.get("output_tokens", 0)),
        )

    return CompletionResult(content=content, usage=token_usage)


class ClaudeCliClient(BaseCompletionClient):
    """Claude Code CLI transport (`claude -p`).

    Each request is an independent process; the conversation is piped via
    stdin. Process failures are treated as transient and retried.
    """

    transport = "cli"
    retryable = frozenset({
        ErrorKind.RATE_LIMIT,
        ErrorKind.TIMEOUT,
        ErrorKind.SERVER,
        ErrorKind.TRANSPORT_ERROR,
    })

    def __init__(
        self,
        cli_path: str = CLAUDE_CLI_PATH,
        working_dir=REPO_PATH,
        model: Optional[str] = None,
        timeout: float = REQUEST_TIMEOUT,
        usage_accumulator: Optional[UsageAccumulator] = None,
    ):
        super().__init__(usage_accumulator)
        self.cli_path = cli_path
        self.working_dir = working_dir
        self.model = model
        self.timeout = timeout
        logger.info(f"ClaudeCliClient initialized (working_dir={working_dir})")

    def _build_command(self) -> list[str]:
        cmd = [self.cli_path, "-p", "--output-format", "json"]
        if self.model:
            cmd += ["--model", self.model]
        return cmd

    async def verify(self) -> bool:
        """Check the CLI is installed; logs the version and credential in use."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.cli_path, "--version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=CLI_VERSION_TIMEOUT)
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"Claude CLI verification failed: {e} - check it is installed and authenticated")
            return False

        if CLAUDE_CODE_OAUTH_TOKEN:
            auth_method = "OAuth (CLAUDE_CODE_OAUTH_TOKEN)"
        elif ANTHROPIC_API_KEY:
            auth_method = "API key (ANTHROPIC_API_KEY)"
        else:
            auth_method = "unknown"

        logger.info(f"Claude CLI ready: {stdout.decode('utf-8', errors='replace').strip()} (auth: {auth_method})")
        return True

    async def _complete(self, turns: Sequence[ConversationTurn]) -> CompletionResult:
        prompt = render_transcript(turns)
        logger.debug(f"Executing Claude CLI: {len(prompt)} chars in {self.working_dir}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *self._build_command(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.working_dir),
                limit=CLI_STREAM_LIMIT,
            )
        except OSError as e:
            raise CompletionError(ErrorKind.TRANSPORT_ERROR, f"Could not start Claude CLI: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(prompt.encode("utf-8")),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass  # Already exited
            await proc.wait()
            raise CompletionError(ErrorKind.TIMEOUT, f"Claude CLI timed out after {self.timeout}s")

        stderr_text = stderr.decode("utf-8", errors="replace")
        if stderr_text.strip() and proc.returncode == 0:
            logger.warning(f"Claude CLI stderr: {sanitize_for_log(stderr_text, 500)}")

        return parse_cli_output(
            proc.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr_text,
        )


def make_completion_client(
    usage_accumulator: Optional[UsageAccumulator] = None,
) -> BaseCompletionClient:
    """Build the client for the configured backend."""
    if resolve_backend() == "api":
        return ClaudeClient(api_key=ANTHROPIC_API_KEY, usage_accumulator=usage_accumulator)
    return ClaudeCliClient(usage_accumulator=usage_accumulator)
