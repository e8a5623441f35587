"""Token lifecycle: expiry checks, refresh with backoff, per-account refresh serialization

Both the upload pre-flight check and the periodic token monitor go through
TokenLifecycleManager, so concurrent refreshes of the same account are
serialized by a per-account lock and the loser of the race reuses the
winner's tokens instead of calling the provider again.
"""
import asyncio
import inspect
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Optional, Tuple, Type

import httpx

from videohop.core.config import settings
from videohop.core.logging import token_logger
from videohop.core.metrics import token_refresh_counter
from videohop.schemas.account import Account, TokenSet
from videohop.services.upload.errors import parse_error_payload

PersistCallback = Callable[[Account], None]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_token_expired(expires_at: Optional[datetime], now: Optional[datetime] = None,
                     skew_seconds: Optional[int] = None) -> bool:
    """True when ``now >= expires_at - skew`` (tokens are refreshed one minute early)

    A token without an expiry is never considered expired.
    """
    if expires_at is None:
        return False
    if skew_seconds is None:
        skew_seconds = settings.TOKEN_EXPIRY_SKEW_SECONDS
    now = now or utcnow()
    return now >= expires_at - timedelta(seconds=skew_seconds)


def backoff_delay(attempt: int, base_delay: float = 1.0, jitter: float = 1.0,
                  rng: Callable[[], float] = random.random) -> float:
    """Delay before retry ``attempt`` (0-indexed): ``base * 2^attempt + U[0, jitter)`` seconds"""
    return base_delay * (2 ** attempt) + rng() * jitter


async def retry_with_backoff(operation: Callable[[], Awaitable], max_retries: int = 3,
                             base_delay: float = 1.0, jitter: float = 1.0,
                             sleep: Callable[[float], Awaitable] = asyncio.sleep,
                             rng: Callable[[], float] = random.random,
                             retry_on: Tuple[Type[BaseException], ...] = (Exception,)):
    """Run ``operation`` up to ``max_retries + 1`` times, sleeping with backoff in between

    Only exceptions in ``retry_on`` are retried; anything else propagates at
    once. The last exception is re-raised once attempts are exhausted.
    """
    last_error = None
    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except retry_on as e:
            last_error = e
            if attempt < max_retries:
                delay = backoff_delay(attempt, base_delay, jitter, rng)
                token_logger.debug(f"Attempt {attempt + 1} failed ({e}); retrying in {delay:.2f}s")
                await sleep(delay)
    raise last_error


class TokenRefreshError(Exception):
    """A single refresh request failed (HTTP error, error body or network failure)"""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


@dataclass
class TokenRefreshResult:
    ok: bool
    tokens: Optional[TokenSet] = None
    error: Optional[str] = None
    attempts: int = 0


class TokenLifecycleManager:
    """Determines token expiry and refreshes tokens against the provider token endpoints"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, *,
                 skew_seconds: Optional[int] = None,
                 max_retries: Optional[int] = None,
                 base_delay: Optional[float] = None,
                 jitter: Optional[float] = None,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep,
                 clock: Callable[[], datetime] = utcnow,
                 rng: Callable[[], float] = random.random):
        self._client = client
        self.skew_seconds = settings.TOKEN_EXPIRY_SKEW_SECONDS if skew_seconds is None else skew_seconds
        self.max_retries = settings.TOKEN_REFRESH_MAX_RETRIES if max_retries is None else max_retries
        self.base_delay = settings.TOKEN_REFRESH_BASE_DELAY if base_delay is None else base_delay
        self.jitter = settings.TOKEN_REFRESH_JITTER if jitter is None else jitter
        self._sleep = sleep
        self._clock = clock
        self._rng = rng
        self._locks: Dict[str, asyncio.Lock] = {}
        # Last successful refresh per account, consulted inside the lock
        self._recent: Dict[str, Account] = {}

    def now(self) -> datetime:
        return self._clock()

    def is_expired(self, expires_at: Optional[datetime]) -> bool:
        return is_token_expired(expires_at, now=self.now(), skew_seconds=self.skew_seconds)

    def expires_within(self, expires_at: Optional[datetime], seconds: float) -> bool:
        """True when the token expires less than ``seconds`` from now"""
        if expires_at is None:
            return False
        return expires_at - self.now() < timedelta(seconds=seconds)

    # ------------------------------------------------------------------
    # Provider calls
    # ------------------------------------------------------------------

    async def _post_form(self, url: str, data: dict) -> httpx.Response:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        if self._client is not None:
            return await self._client.post(url, data=data, headers=headers)
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as client:
            return await client.post(url, data=data, headers=headers)

    async def _request_refresh(self, platform: str, refresh_token: str) -> TokenSet:
        if platform == "youtube":
            url = settings.GOOGLE_TOKEN_URL
            data = {
                "client_id": settings.GOOGLE_CLIENT_ID,
                "client_secret": settings.GOOGLE_CLIENT_SECRET,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }
        elif platform == "tiktok":
            url = settings.TIKTOK_TOKEN_URL
            data = {
                "client_key": settings.TIKTOK_CLIENT_KEY,
                "client_secret": settings.TIKTOK_CLIENT_SECRET,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        else:
            raise ValueError(f"Unsupported platform: {platform}")

        try:
            response = await self._post_form(url, data)
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"Network error during token refresh: {type(e).__name__}: {e}")

        if response.status_code != 200:
            code, message, _ = parse_error_payload(response)
            raise TokenRefreshError(f"Token refresh failed: {code or response.status_code} - {message}", code=code)

        try:
            token_json = response.json()
        except ValueError:
            raise TokenRefreshError("Token refresh returned a non-JSON body")

        if not isinstance(token_json, dict):
            raise TokenRefreshError("Token refresh returned an unexpected body")

        # TikTok reports some failures with a 200 and an error body
        if token_json.get("error"):
            code, message, _ = parse_error_payload(response)
            raise TokenRefreshError(f"Token refresh failed: {code} - {message}", code=code)

        access_token = token_json.get("access_token")
        if not access_token:
            raise TokenRefreshError("Token refresh response did not include an access_token")

        expires_at = None
        expires_in = token_json.get("expires_in")
        if expires_in:
            try:
                expires_at = self.now() + timedelta(seconds=int(expires_in))
            except (TypeError, ValueError):
                raise TokenRefreshError(f"Token refresh returned an invalid expires_in: {expires_in!r}")

        return TokenSet(
            access_token=access_token,
            # Google omits the refresh token on refresh; TikTok may rotate it
            refresh_token=token_json.get("refresh_token") or None,
            expires_at=expires_at,
        )

    async def refresh(self, platform: str, refresh_token: str,
                      max_retries: Optional[int] = None,
                      base_delay: Optional[float] = None) -> TokenRefreshResult:
        """Refresh an access token, retrying failures with exponential backoff and jitter

        Makes at most ``max_retries + 1`` requests. Never raises for provider or
        network failures; the result carries the last error message instead.
        """
        max_retries = self.max_retries if max_retries is None else max_retries
        base_delay = self.base_delay if base_delay is None else base_delay

        attempts = 0

        async def attempt_refresh() -> TokenSet:
            nonlocal attempts
            attempts += 1
            try:
                return await self._request_refresh(platform, refresh_token)
            except TokenRefreshError as e:
                token_logger.warning(
                    f"{platform} token refresh attempt {attempts}/{max_retries + 1} failed: {e}",
                    extra={"platform": platform, "attempt": attempts, "error_code": e.code}
                )
                raise

        try:
            tokens = await retry_with_backoff(
                attempt_refresh, max_retries=max_retries, base_delay=base_delay,
                jitter=self.jitter, sleep=self._sleep, rng=self._rng,
                retry_on=(TokenRefreshError,)
            )
        except TokenRefreshError as e:
            token_refresh_counter.labels(platform=platform, status="failure").inc()
            token_logger.error(
                f"{platform} token refresh failed after {attempts} attempts: {e}",
                extra={"platform": platform}
            )
            return TokenRefreshResult(ok=False, error=str(e), attempts=attempts)

        token_refresh_counter.labels(platform=platform, status="success").inc()
        token_logger.info(f"Refreshed {platform} access token", extra={"platform": platform})
        return TokenRefreshResult(ok=True, tokens=tokens, attempts=attempts)

    # ------------------------------------------------------------------
    # Account-level operations
    # ------------------------------------------------------------------

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def ensure_valid(self, account: Account, persist: Optional[PersistCallback] = None) -> Optional[str]:
        """Return a usable access token for ``account``, refreshing it first if it is expiring

        Returns None when the account needs reauthorization: the refresh
        failed, or the token has expired and there is no refresh token.
        """
        if account.expires_at is None or not self.is_expired(account.expires_at):
            return account.access_token
        if not account.can_refresh:
            token_logger.warning(
                f"{account.platform} token expired and no refresh token is available",
                extra={"platform": account.platform}
            )
            return None
        return await self.refresh_account(account, persist)

    async def refresh_account(self, account: Account, persist: Optional[PersistCallback] = None) -> Optional[str]:
        """Refresh ``account`` unconditionally (serialized per account)

        Merges the new tokens into the account, hands the merged account to
        ``persist`` and returns the new access token, or None on failure.
        """
        if not account.can_refresh:
            return None

        key = f"{account.platform}:{account.id}"
        async with self._lock_for(key):
            # Double-check: another caller may have refreshed while we waited
            recent = self._recent.get(key)
            if (recent is not None and recent.access_token != account.access_token
                    and not self.is_expired(recent.expires_at)):
                token_logger.info(
                    f"Using {account.platform} token refreshed by a concurrent caller",
                    extra={"platform": account.platform}
                )
                return recent.access_token

            result = await self.refresh(account.platform, account.refresh_token)
            if not result.ok:
                return None

            updated = account.with_tokens(result.tokens)
            self._recent[key] = updated
            if persist is not None:
                outcome = persist(updated)
                if inspect.isawaitable(outcome):
                    await outcome
            return updated.access_token
