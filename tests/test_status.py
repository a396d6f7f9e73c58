"""Tests for the status report."""

import time
from unittest.mock import AsyncMock, Mock

import pytest

from claude_client import TokenUsage, UsageAccumulator
from domains.relay.git_sync import GitError, GitStatus
from domains.relay.status import StatusService, format_uptime


@pytest.mark.parametrize("seconds,expected", [
    (3, "3s"),
    (65, "1m 5s"),
    (3600, "1h 0m 0s"),
    (7503, "2h 5m 3s"),
])
def test_format_uptime(seconds, expected):
    assert format_uptime(seconds) == expected


def make_service(git_status=None, git_error=None, usage=None, started_ago=0):
    repo = Mock()
    repo.get_status = AsyncMock(return_value=git_status, side_effect=git_error)
    return StatusService(repo, usage or UsageAccumulator(), start_time=time.time() - started_ago)


@pytest.mark.asyncio
async def test_clean_repo_report():
    usage = UsageAccumulator()
    usage.add(TokenUsage(1200, 34))
    service = make_service(GitStatus("main", True, [], "origin/main"), usage=usage, started_ago=65)

    report = await service.get_status_report()

    assert report.startswith("# Bot Status\n")
    assert "## Git Information" in report
    assert "**Branch:** main" in report
    assert "**Tracking:** origin/main" in report
    assert "**Status:** Clean" in report
    assert "**Input Tokens:** 1,200" in report
    assert "**Output Tokens:** 34" in report
    assert "**Total Tokens:** 1,234" in report
    assert "**Uptime:** 1m 5s" in report
    assert report.endswith("\n")


@pytest.mark.asyncio
async def test_modified_files_listed():
    service = make_service(GitStatus("dev", False, ["a.py", "b.py"]))

    report = await service.get_status_report()

    assert "**Status:** Modified (2 files)" in report
    assert "**Modified Files:**\n- a.py\n- b.py" in report
    assert "**Tracking:**" not in report


@pytest.mark.asyncio
async def test_no_usage_hides_total():
    report = await make_service(GitStatus("main", True)).get_status_report()

    assert "**Input Tokens:** 0" in report
    assert "**Total Tokens:**" not in report


@pytest.mark.asyncio
async def test_git_error_still_reports_rest():
    service = make_service(git_error=GitError("not a git repository", "GIT_STATUS_ERROR"))

    report = await service.get_status_report()

    assert "**Git:** Error: not a git repository" in report
    assert "## Git Information" not in report
    assert "## Claude API Usage" in report
    assert "## Bot Uptime" in report
