"""Background task that refreshes tokens before they expire"""
import asyncio
import contextlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from videohop.core.config import settings
from videohop.core.logging import token_logger
from videohop.schemas.account import Account
from videohop.services.session_context import SessionContext
from videohop.services.token_service import TokenLifecycleManager

# check_account outcomes
SKIPPED = "skipped"        # no expiry or no refresh token
FRESH = "fresh"            # outside the refresh window
REFRESHED = "refreshed"
FAILED = "failed"
BACKING_OFF = "backing_off"
GAVE_UP = "gave_up"        # too many consecutive failures for this account


@dataclass
class RefreshFailureState:
    identity: str
    failures: int = 0
    last_failure: Optional[datetime] = None


def account_identity(account: Account) -> str:
    # A reconnect yields a new refresh token even for the same account id
    return f"{account.id}:{account.refresh_token or ''}"


def failure_backoff(failures: int) -> timedelta:
    """Wait after ``failures`` consecutive failures: 2^min(failures, 5) minutes"""
    return timedelta(minutes=2 ** min(failures, 5))


class TokenMonitor:
    """Every ``interval`` seconds, refresh connected accounts expiring within ``threshold`` seconds

    Keeps a failure counter and last-failure time per platform. After a
    failure, the next attempt waits ``failure_backoff(failures)``; after
    ``max_failures`` consecutive failures the account is left alone until it
    is reconnected.
    """

    def __init__(self, session: SessionContext, tokens: TokenLifecycleManager,
                 interval: Optional[float] = None, threshold: Optional[float] = None,
                 max_failures: Optional[int] = None,
                 sleep=asyncio.sleep):
        self.session = session
        self.tokens = tokens
        self.interval = settings.TOKEN_CHECK_INTERVAL if interval is None else interval
        self.threshold = settings.TOKEN_REFRESH_THRESHOLD if threshold is None else threshold
        self.max_failures = settings.TOKEN_MONITOR_MAX_FAILURES if max_failures is None else max_failures
        self._sleep = sleep
        self._states: Dict[str, RefreshFailureState] = {}
        self._task: Optional[asyncio.Task] = None

    def state(self, platform: str) -> Optional[RefreshFailureState]:
        return self._states.get(platform)

    def _state_for(self, platform: str, account: Account) -> RefreshFailureState:
        identity = account_identity(account)
        state = self._states.get(platform)
        if state is None or state.identity != identity:
            if state is not None and state.failures:
                token_logger.info(f"{platform} account changed; resetting refresh failure count")
            state = self._states[platform] = RefreshFailureState(identity=identity)
        return state

    async def check_account(self, platform: str, account: Account) -> str:
        state = self._state_for(platform, account)

        if not account.can_refresh or account.expires_at is None:
            return SKIPPED
        if not self.tokens.expires_within(account.expires_at, self.threshold):
            return FRESH
        if state.failures >= self.max_failures:
            return GAVE_UP

        now = self.tokens.now()
        if state.failures and state.last_failure is not None:
            if now - state.last_failure < failure_backoff(state.failures):
                return BACKING_OFF

        minutes_left = (account.expires_at - now).total_seconds() / 60
        token_logger.info(f"{platform} token expires in {minutes_left:.1f} minutes, refreshing proactively",
                          extra={"platform": platform})

        access_token = await self.tokens.refresh_account(account, persist=self.session.save_account)
        if access_token:
            state.failures = 0
            state.last_failure = None
            return REFRESHED

        state.failures += 1
        state.last_failure = self.tokens.now()
        if state.failures >= self.max_failures:
            token_logger.error(
                f"{platform} token refresh failed {state.failures} times in a row; "
                f"stopping until the account is reconnected",
                extra={"platform": platform, "failures": state.failures}
            )
        else:
            token_logger.warning(
                f"{platform} token refresh failed ({state.failures}/{self.max_failures}), "
                f"next attempt in {failure_backoff(state.failures).total_seconds() / 60:.0f} minutes",
                extra={"platform": platform, "failures": state.failures}
            )
        return FAILED

    async def check_once(self) -> Dict[str, str]:
        """Check every connected account once; returns the outcome per platform"""
        results = {}
        for platform, account in self.session.connected_accounts().items():
            results[platform] = await self.check_account(platform, account)
        return results

    async def run(self):
        """Check, then sleep ``interval`` seconds, forever"""
        while True:
            try:
                await self.check_once()
            except Exception as e:
                token_logger.error(f"Error in token monitor: {e}", exc_info=True)
            await self._sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
            token_logger.info(
                f"Token monitor started (every {self.interval:.0f}s, refresh window {self.threshold:.0f}s)"
            )
        return self._task

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            token_logger.info("Token monitor stopped")
