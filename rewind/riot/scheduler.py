# riot/scheduler.py – file d'attente sérialisée vers l'API Riot
# -----------------------------------------------------------------------------
#  Une seule boucle de drainage → au plus UN appel upstream en vol.
#  Par requête : admission (monitor) → espacement min → routage → clé → appel.
#    • 2xx          → succès, on résout le future
#    • 401/403      → clé suivante, même position (≤ 3 clés distinctes)
#    • 429          → Retry-After, puis retour EN TÊTE de file (≤ 3 fois)
#    • timeout/5xx  → backoff exponentiel, retour en tête (≤ 3 fois)
#    • autre 4xx    → échec terminal
# -----------------------------------------------------------------------------

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional

import aiohttp

from rewind.riot.credentials import CredentialRotator
from rewind.riot.errors import (
    NetworkError,
    NoCredentialsAvailable,
    RateLimitError,
    RequestTimeout,
    RiotAPIError,
    UpstreamError,
    ValidationError,
)
from rewind.riot.monitor import UsageMonitor
from rewind.riot.routing import ApiFamily, FALLBACK_REGION, resolve_for

log = logging.getLogger(__name__)

AUTH_STATUSES = frozenset({401, 403})


@dataclass(frozen=True)
class RetryPolicy:
    """Retry bounds and backoff schedule applied to every queued request."""

    max_rate_limit_retries: int = 3
    max_transient_retries: int = 3
    max_credential_attempts: int = 3
    backoff_base: float = 1.0
    backoff_cap: float = 5.0
    default_retry_after: float = 1.0

    def backoff(self, attempt: int) -> float:
        # 1s, 2s, 4s … plafonné
        return min(self.backoff_base * 2 ** (attempt - 1), self.backoff_cap)


@dataclass
class Response:
    status: int
    headers: Mapping[str, str]
    body: Any


@dataclass
class QueuedRequest:
    family: ApiFamily
    path: str
    params: Dict[str, Any]
    region: Optional[str]
    future: asyncio.Future
    rate_limit_retries: int = 0
    transient_retries: int = 0
    attempts: List[str] = field(default_factory=list)


def effective_status(response: Response) -> int:
    """HTTP status, or the one Riot embeds in ``{"status": {"status_code": …}}`` bodies."""
    body = response.body
    if isinstance(body, dict) and isinstance(body.get("status"), dict):
        code = body["status"].get("status_code")
        if isinstance(code, int):
            return code
    return response.status


def parse_retry_after(headers: Mapping[str, str], default: float) -> float:
    raw = headers.get("Retry-After") or headers.get("retry-after")
    try:
        return max(float(raw), 0.0)
    except (TypeError, ValueError):
        return default


def _upstream_message(body: Any) -> str:
    if isinstance(body, dict) and isinstance(body.get("status"), dict):
        return str(body["status"].get("message") or "")
    return ""


class RequestScheduler:
    """Async Riot API request queue with rate limiting, retries and key rotation."""

    def __init__(
        self,
        rotator: CredentialRotator,
        monitor: UsageMonitor,
        default_region: str = FALLBACK_REGION,
        requests_per_second: int = 20,
        timeout: float = 30.0,
        policy: RetryPolicy = RetryPolicy(),
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._rotator = rotator
        self._monitor = monitor
        self.default_region = default_region
        self.min_interval = 1.0 / requests_per_second
        self.timeout = timeout
        self.policy = policy
        self._clock = clock
        self._sleep = sleep

        self._queue: Deque[QueuedRequest] = deque()
        self._draining = False
        self._drain_task: Optional[asyncio.Task] = None
        self._last_dispatch: Optional[float] = None
        self._session: Optional[aiohttp.ClientSession] = None

    # ─── Session HTTP ─────────────────────────────────────────────────────
    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self):
        """Stop draining, reject whatever is still queued and close the session."""
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        while self._queue:
            req = self._queue.popleft()
            self._reject(req, NetworkError("Request scheduler closed", endpoint=req.path))
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def pending(self) -> int:
        return len(self._queue)

    # ─── Entrée publique ──────────────────────────────────────────────────
    async def request(
        self,
        family: ApiFamily,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        region: Optional[str] = None,
    ) -> Any:
        """
        Enqueue one upstream GET and wait for its terminal outcome.

        Args:
            family: API family, decides platform vs regional host
            path: absolute path, e.g. ``/lol/match/v5/matches/EUW1_1``
            params: query string parameters (None values are dropped)
            region: per-request routing hint overriding the default

        Returns:
            Decoded JSON payload

        Raises:
            RateLimitError, RequestTimeout, NetworkError, UpstreamError,
            NoCredentialsAvailable
        """
        if not path or not path.startswith("/"):
            raise ValidationError(f"Invalid endpoint: {path!r}")

        future = asyncio.get_running_loop().create_future()
        clean = {k: v for k, v in (params or {}).items() if v is not None}
        self._queue.append(QueuedRequest(family, path, clean, region, future))
        self._ensure_draining()
        return await future

    def _ensure_draining(self) -> None:
        if self._draining:
            return
        self._draining = True
        self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._queue:
                req = self._queue.popleft()
                try:
                    await self._process(req)
                except asyncio.CancelledError:
                    # Requête en vol (ou en attente de retry) au moment de close()
                    self._reject(req, NetworkError("Request scheduler closed", endpoint=req.path))
                    raise
                except RiotAPIError as e:
                    self._reject(req, e)
                except Exception as e:
                    log.exception("Critical error while processing %s", req.path)
                    self._reject(req, UpstreamError(f"Request processing failed: {e}", endpoint=req.path))
        finally:
            self._draining = False

    # ─── Issue d'une requête ──────────────────────────────────────────────
    def _resolve(self, req: QueuedRequest, payload: Any) -> None:
        if not req.future.done():
            req.future.set_result(payload)

    def _reject(self, req: QueuedRequest, error: Exception) -> None:
        if not req.future.done():
            req.future.set_exception(error)

    # ─── Throttling ───────────────────────────────────────────────────────
    async def _wait_for_admission(self) -> None:
        while True:
            admission = self._monitor.can_admit()
            if admission.allowed:
                return
            log.warning("Per-minute budget spent, holding the queue for %.1fs", admission.retry_after)
            await self._sleep(admission.retry_after)

    async def _wait_for_slot(self) -> None:
        if self._last_dispatch is not None:
            wait = self.min_interval - (self._clock() - self._last_dispatch)
            if wait > 0:
                await self._sleep(wait)
        self._last_dispatch = self._clock()

    async def _send(self, url: str, secret: str, params: Dict[str, Any]) -> Response:
        session = await self._get_session()
        async with session.get(url, params=params or None, headers={"X-Riot-Token": secret}) as resp:
            try:
                body = await resp.json(content_type=None)
            except (aiohttp.ContentTypeError, ValueError):
                body = None
            return Response(resp.status, resp.headers, body)

    async def _process(self, req: QueuedRequest) -> None:
        route = resolve_for(req.family, req.region, self.default_region)
        url = route.host_for(req.family) + req.path
        tried: List[str] = []

        while True:
            try:
                credential = self._rotator.next_credential(exclude=tried)
            except NoCredentialsAvailable as e:
                e.endpoint = req.path
                self._reject(req, e)
                return
            tried.append(credential.id)
            req.attempts.append(credential.id)

            await self._wait_for_admission()
            await self._wait_for_slot()
            started = self._clock()

            try:
                response = await self._send(url, credential.secret, req.params)
            except asyncio.TimeoutError:
                self._monitor.record(credential.id, req.path, 0, duration_ms=(self._clock() - started) * 1000)
                await self._retry_transient(
                    req, RequestTimeout("Request timeout: the API server did not respond in time", endpoint=req.path)
                )
                return
            except aiohttp.ClientError as e:
                self._monitor.record(credential.id, req.path, 0, duration_ms=(self._clock() - started) * 1000)
                await self._retry_transient(req, NetworkError(f"Network error: {e}", endpoint=req.path))
                return

            status = effective_status(response)
            self._monitor.record(credential.id, req.path, status, duration_ms=(self._clock() - started) * 1000)

            if 200 <= status < 300:
                if response.body is None:
                    self._reject(req, UpstreamError(
                        "Malformed payload", status=status, endpoint=req.path, credential_id=credential.id,
                    ))
                    return
                self._rotator.record_success(credential.id)
                self._resolve(req, response.body)
                return

            if status in AUTH_STATUSES:
                self._rotator.record_error(credential.id, status)
                if len(tried) < self.policy.max_credential_attempts and self._rotator.has_alternative(tried):
                    log.warning("%s rejected API key %s (%d), trying another key", req.path, credential.id, status)
                    continue
                log.error("%s: authentication failed with %d key(s) (last status %d)", req.path, len(tried), status)
                self._reject(req, UpstreamError(
                    _upstream_message(response.body) or f"HTTP {status}",
                    status=status, body=response.body, endpoint=req.path, credential_id=credential.id,
                ))
                return

            if status == 429:
                self._rotator.record_error(credential.id, status)
                await self._retry_rate_limited(req, response)
                return

            if status >= 500:
                await self._retry_transient(req, UpstreamError(
                    f"Server error {status}", status=status, body=response.body, endpoint=req.path,
                ))
                return

            log.debug("%s → %d (terminal)", req.path, status)
            self._reject(req, UpstreamError(
                _upstream_message(response.body) or f"HTTP {status}",
                status=status, body=response.body, endpoint=req.path, credential_id=credential.id,
            ))
            return

    async def _retry_rate_limited(self, req: QueuedRequest, response: Response) -> None:
        req.rate_limit_retries += 1
        limit = self.policy.max_rate_limit_retries
        if req.rate_limit_retries > limit:
            log.error("%s: rate limit exceeded after %d retries", req.path, limit)
            self._reject(req, RateLimitError(
                "Rate limit exceeded. Maximum retries reached.",
                status=429, body=response.body, endpoint=req.path,
            ))
            return

        delay = parse_retry_after(response.headers, self.policy.default_retry_after)
        log.warning("429 on %s, waiting %.1fs (attempt %d/%d)", req.path, delay, req.rate_limit_retries, limit)
        await self._sleep(delay)
        self._queue.appendleft(req)

    async def _retry_transient(self, req: QueuedRequest, error: RiotAPIError) -> None:
        req.transient_retries += 1
        limit = self.policy.max_transient_retries
        if req.transient_retries > limit:
            log.error("%s failed after %d retries: %s", req.path, limit, error)
            self._reject(req, error)
            return

        delay = self.policy.backoff(req.transient_retries)
        log.warning("%s on %s, retrying in %.0fs (attempt %d/%d)", error, req.path, delay, req.transient_retries, limit)
        await self._sleep(delay)
        self._queue.appendleft(req)
