"""Chunker - splits Claude replies into Discord-safe message segments.

Discord rejects messages over 2000 characters. Replies are split so that
fenced code blocks stay intact where possible; a block too long for one
message is closed at the cut and re-opened in the next chunk.
"""

import re
from typing import Optional


DISCORD_MESSAGE_LIMIT = 2000

# First fenced block, non-greedy so adjacent blocks are matched separately
CODE_BLOCK_PATTERN = re.compile(r"```[\s\S]*?```")

CLOSE_FENCE = "\n```"
OPEN_FENCE = "```\n"


def split_message(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> list[str]:
    """Split text into chunks of at most `limit` characters.

    Args:
        text: Reply text to send
        limit: Max characters per chunk

    Returns:
        Ordered list of chunks, never empty
    """
    if limit <= len(CLOSE_FENCE) + len(OPEN_FENCE):
        raise ValueError(f"limit too small to split safely: {limit}")

    if len(text) <= limit:
        return [text]

    chunks = []
    remaining = text

    while remaining:
        if len(remaining) <= limit:
            chunks.append(remaining)
            break

        split_point = find_split_point(remaining, limit)

        if split_point is None:
            cut = limit - len(CLOSE_FENCE)

            # Opening fence would straddle the cut: end the chunk before it
            block = CODE_BLOCK_PATTERN.search(remaining)
            if block and block.start() > cut - len("```"):
                chunks.append(remaining[:block.start()])
                remaining = remaining[block.start():]
                continue

            # Code block straddles the limit with no line break before it:
            # cut inside the block and keep both halves well-formed
            chunks.append(remaining[:cut] + CLOSE_FENCE)
            remaining = OPEN_FENCE + remaining[cut:]
            continue

        chunks.append(remaining[:split_point])
        remaining = remaining[split_point:]

    return chunks


def find_split_point(text: str, limit: int) -> Optional[int]:
    """Find where to end the next chunk of `text`.

    Returns:
        Index to split at (chunk is text[:index]), or None when the split
        has to be forced inside a code block
    """
    block = CODE_BLOCK_PATTERN.search(text)

    if block and block.start() < limit:
        # Whole block fits: end the chunk right after its closing fence
        if block.end() <= limit:
            return block.end()

        # Block runs past the limit: end the chunk on the line before it
        newline = text.rfind("\n", 0, block.start())
        if newline > 0:
            return newline + 1
        return None

    # No code block in the way - prefer a line break in the back half
    newline = text.rfind("\n", 0, limit)
    if newline > limit / 2:
        return newline + 1

    return limit
