"""Resilient async GitHub client for activity and candidate discovery."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from signal_now.config.settings import settings
from signal_now.sources.contracts import FetchResult, FetchState

logger = logging.getLogger(__name__)

_REDACTED_VALUE = "***REDACTED***"
# Log fields whose values are credentials, and fields that carry model text.
_CREDENTIAL_FIELDS = ("authorization", "token", "api_key", "secret")
_MODEL_TEXT_FIELDS = ("prompt", "raw", "trace")
# Credentials that SDK and HTTP error messages can echo back.
_CREDENTIAL_PATTERNS = (
    re.compile(r"(?i)bearer\s+[^\s,;]+"),
    re.compile(r"\b(?:gh[pousr]_|github_pat_)[A-Za-z0-9_]{20,}"),
    re.compile(r"\bsk-(?:ant-)?[A-Za-z0-9_-]{16,}"),
    re.compile(r"\bAIza[0-9A-Za-z_-]{30,}"),
    re.compile(r"(?i)(?<=[?&]key=)[^&\s]+"),
)


def sanitize_for_log(value: Any, *, key: Optional[str] = None) -> Any:
    """Recursively strip credentials and model text from log payloads."""

    field = (key or "").lower()
    if any(name in field for name in _CREDENTIAL_FIELDS):
        return _REDACTED_VALUE

    if isinstance(value, dict):
        return {str(name): sanitize_for_log(item, key=str(name)) for name, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(item, key=key) for item in value]
    if not isinstance(value, str):
        return value

    if any(name in field for name in _MODEL_TEXT_FIELDS):
        return f"<redacted payload ({len(value)} chars)>" if value.strip() else ""
    for pattern in _CREDENTIAL_PATTERNS:
        value = pattern.sub(_REDACTED_VALUE, value)
    return value


def sanitize_log_extra(**kwargs: Any) -> dict[str, Any]:
    """Helper for `extra=` payloads in structured logging."""

    return {key: sanitize_for_log(value, key=key) for key, value in kwargs.items()}


class _RateLimitRetryableError(Exception):
    """Retryable rate-limit signal for tenacity."""


class GitHubClient:
    """Typed GitHub REST client with bounded rate-limit retries."""

    BASE_URL = "https://api.github.com"
    API_VERSION = "2022-11-28"
    ACCEPT_JSON = "application/vnd.github+json"

    def __init__(
        self,
        *,
        token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        rate_limit_buffer_seconds: Optional[int] = None,
        base_url: Optional[str] = None,
        transport: Optional[Any] = None,
    ) -> None:
        self._token = token or settings.GITHUB_TOKEN
        self._timeout_seconds = timeout_seconds or settings.GITHUB_TIMEOUT_SECONDS
        self._max_retries = max_retries or settings.GITHUB_MAX_RETRIES
        self._backoff_base_seconds = (
            backoff_base_seconds if backoff_base_seconds is not None else settings.GITHUB_BACKOFF_BASE_SECONDS
        )
        self._backoff_max_seconds = (
            backoff_max_seconds if backoff_max_seconds is not None else settings.GITHUB_BACKOFF_MAX_SECONDS
        )
        self._rate_limit_buffer_seconds = (
            rate_limit_buffer_seconds
            if rate_limit_buffer_seconds is not None
            else settings.GITHUB_RATE_LIMIT_BUFFER_SECONDS
        )
        self._base_url = base_url or self.BASE_URL
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "GitHubClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def list_user_events(self, handle: str) -> FetchResult[list[dict[str, Any]]]:
        """Public events for a user or organization, most recent first."""
        return await self._fetch_list(f"/users/{handle}/events")

    async def list_repo_events(self, owner: str, repo: str, *, per_page: int = 30) -> FetchResult[list[dict[str, Any]]]:
        return await self._fetch_list(f"/repos/{owner}/{repo}/events", params={"per_page": per_page})

    async def list_repo_commits(self, owner: str, repo: str, *, per_page: int = 30) -> FetchResult[list[dict[str, Any]]]:
        return await self._fetch_list(f"/repos/{owner}/{repo}/commits", params={"per_page": per_page})

    async def list_org_repos(self, org: str, *, per_page: int = 3) -> FetchResult[list[dict[str, Any]]]:
        """Organization repositories ordered by most recent push."""
        return await self._fetch_list(
            f"/orgs/{org}/repos",
            params={"sort": "pushed", "direction": "desc", "per_page": per_page},
        )

    async def get_user(self, handle: str) -> FetchResult[dict[str, Any]]:
        response = await self._request(f"/users/{handle}")
        if response.state != FetchState.OK:
            return response
        if not isinstance(response.data, dict):
            return FetchResult(
                state=FetchState.FAILED,
                error="Unexpected GitHub payload shape (expected object)",
                status_code=response.status_code,
            )
        return response

    async def _fetch_list(
        self,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
    ) -> FetchResult[list[dict[str, Any]]]:
        response = await self._request(path, params=params)
        if response.state != FetchState.OK:
            return response

        payload = response.data
        if not isinstance(payload, list):
            return FetchResult(
                state=FetchState.FAILED,
                error="Unexpected GitHub payload shape (expected list)",
                status_code=response.status_code,
            )
        if not payload:
            return FetchResult(state=FetchState.EMPTY, data=[], etag=response.etag, status_code=response.status_code)
        return FetchResult(
            state=FetchState.OK,
            data=[item for item in payload if isinstance(item, dict)],
            etag=response.etag,
            status_code=response.status_code,
        )

    async def _request(
        self,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
    ) -> FetchResult[Any]:
        client = await self._ensure_client()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_retries),
                wait=wait_exponential(multiplier=self._backoff_base_seconds, max=self._backoff_max_seconds),
                retry=retry_if_exception_type(_RateLimitRetryableError),
                reraise=True,
            ):
                with attempt:
                    response = await client.get(path, params=params)

                    if response.status_code == 429 or (
                        response.status_code == 403 and self._is_rate_limit_response(response)
                    ):
                        wait_seconds = self._compute_rate_limit_wait(response.headers)
                        logger.warning(
                            "GitHub API rate limit encountered",
                            extra=sanitize_log_extra(
                                path=path,
                                params=params,
                                status_code=response.status_code,
                                retry_after_seconds=wait_seconds,
                            ),
                        )
                        if wait_seconds > 0:
                            await asyncio.sleep(wait_seconds)
                        raise _RateLimitRetryableError(
                            f"GitHub rate limit encountered ({response.status_code})"
                        )

                    response.raise_for_status()
                    return FetchResult(
                        state=FetchState.OK,
                        data=response.json(),
                        etag=response.headers.get("etag"),
                        status_code=response.status_code,
                    )
        except _RateLimitRetryableError as exc:
            logger.warning(
                "GitHub request failed after rate-limit retries",
                extra=sanitize_log_extra(path=path, params=params, error=str(exc), status_code=429),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=429)
        except httpx.HTTPError as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            log = logger.info if status_code == 404 else logger.warning
            log(
                "GitHub request failed",
                extra=sanitize_log_extra(path=path, params=params, error=str(exc), status_code=status_code),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=status_code)

        return FetchResult(state=FetchState.FAILED, error="Unknown GitHub request failure")

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client

        headers = {
            "Accept": self.ACCEPT_JSON,
            "User-Agent": settings.USER_AGENT,
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        return self._client

    @staticmethod
    def _is_rate_limit_response(response: httpx.Response) -> bool:
        if response.headers.get("x-ratelimit-remaining") == "0":
            return True
        if response.headers.get("retry-after") is not None:
            return True
        return "rate limit" in response.text.lower()

    def _compute_rate_limit_wait(self, headers: httpx.Headers) -> float:
        retry_after = headers.get("retry-after")
        if retry_after is not None:
            try:
                return min(max(float(retry_after), 0.0), self._backoff_max_seconds)
            except ValueError:
                pass

        reset_raw = headers.get("x-ratelimit-reset")
        if reset_raw is not None:
            try:
                reset_epoch = int(reset_raw)
                wait_seconds = reset_epoch - int(time.time()) + self._rate_limit_buffer_seconds
                # Quota windows can be an hour away; defer long waits to the caller.
                return float(min(max(wait_seconds, 0), self._backoff_max_seconds))
            except ValueError:
                pass

        return self._backoff_base_seconds
