"""
Pull-request status widget client.

Backed by the GitHub CLI (`gh`) instead of an HTTP API: the CLI already holds
the user's credentials. The four sub-calls run concurrently; if any of them
fails the whole fetch fails, there is no partial result.
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from taskboard.clients.base import FetchResult, UpstreamClient
from taskboard.errors import UpstreamError, UpstreamUnavailable
from taskboard.models import WidgetType

logger = logging.getLogger(__name__)

GH_HINT = "GitHub CLI unavailable. Install gh and run 'gh auth login'."
PR_FIELDS = "number,title,url,repository,updatedAt,isDraft"
PR_LIMIT = "30"
MERGED_WINDOW_DAYS = 30


def normalize_pr(raw: Mapping[str, Any]) -> dict[str, Any]:
    repo = raw.get("repository") or {}
    return {
        "number": raw.get("number"),
        "title": raw.get("title", ""),
        "url": raw.get("url", ""),
        "repo": repo.get("nameWithOwner") or repo.get("name", ""),
        "updated_at": raw.get("updatedAt"),
        "is_draft": bool(raw.get("isDraft", False)),
    }


async def _reap(proc: asyncio.subprocess.Process):
    """Kill a still-running gh process and wait for it to exit."""
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()


class PullRequestClient(UpstreamClient):
    widget_type = WidgetType.PR_STATUS.value
    default_refresh_seconds = 300
    cache_settings = ("refresh_period",)

    def __init__(self, gh_binary: str = "gh", timeout: float = 10.0):
        self.gh_binary = gh_binary
        self.timeout = timeout

    async def _run_gh(self, *args: str) -> str:
        """Run gh and return stdout; any failure is UpstreamUnavailable."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.gh_binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning(f"无法启动 {self.gh_binary}: {e}")
            raise UpstreamUnavailable(GH_HINT) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            await _reap(proc)
            logger.warning(f"gh {' '.join(args)} 超时 ({self.timeout}s)")
            raise UpstreamUnavailable(GH_HINT) from e
        except asyncio.CancelledError:
            await _reap(proc)
            raise

        if proc.returncode != 0:
            logger.warning(
                f"gh {' '.join(args)} 退出码 {proc.returncode}: {stderr.decode(errors='replace').strip()}"
            )
            raise UpstreamUnavailable(GH_HINT)
        return stdout.decode()

    async def _search_prs(self, *filters: str) -> list[dict[str, Any]]:
        out = await self._run_gh("search", "prs", *filters, "--json", PR_FIELDS, "--limit", PR_LIMIT)
        try:
            rows = json.loads(out or "[]")
        except json.JSONDecodeError as e:
            raise UpstreamError("Invalid output from gh search") from e
        return [normalize_pr(r) for r in rows]

    async def fetch(self, settings: Mapping[str, str]) -> FetchResult:
        since = (datetime.now(timezone.utc) - timedelta(days=MERGED_WINDOW_DAYS)).date().isoformat()

        tasks = [
            asyncio.ensure_future(self._run_gh("api", "user", "--jq", ".login")),
            asyncio.ensure_future(self._search_prs("--author=@me", "--state=open")),
            asyncio.ensure_future(self._search_prs("--review-requested=@me", "--state=open")),
            asyncio.ensure_future(self._search_prs("--author=@me", "--merged", f"--merged-at=>={since}")),
        ]
        try:
            username, authored, review_requested, merged = await asyncio.gather(*tasks)
        except Exception:
            # one failed sub-call aborts the rest, their subprocesses are reaped
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return FetchResult(data={
            "username": username.strip(),
            "authored": authored,
            "review_requested": review_requested,
            "merged": merged,
        })
