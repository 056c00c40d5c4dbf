"""
Refresh-token cleanup.

- TokenSweeper: per-user, global and age-based sweeps, plus statistics
- SweepScheduler: a background thread running the global and age sweeps on a
  fixed interval, started and stopped with the application
- CleanupDispatcher: bounded fire-and-forget per-user sweeps requested by the
  access guard

Sweeps are hygiene, not a security boundary: a skipped run only delays the
reclaiming of dead records, since refresh still requires exact membership.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Set

from models.base_model import utcnow
from models.credential_store import CredentialStore
from utils.errors import TokenError
from utils.tokens import TokenCodec

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(days=30)


@dataclass(frozen=True)
class SweepReport:
    total_cleaned: int = 0
    users_processed: int = 0
    skipped: bool = False


@dataclass(frozen=True)
class AgeSweepReport:
    tokens_removed: int = 0
    users_affected: int = 0


@dataclass(frozen=True)
class TokenStats:
    total_users: int
    total_tokens: int
    valid_tokens: int
    expired_tokens: int

    @property
    def cleanup_needed(self) -> bool:
        return self.expired_tokens > 0


class TokenSweeper:
    def __init__(self, codec: TokenCodec, store: CredentialStore, max_age: timedelta = DEFAULT_MAX_AGE):
        self.codec = codec
        self.store = store
        self.max_age = max_age
        self._global_lock = threading.Lock()

    def _is_valid(self, token: str) -> bool:
        try:
            self.codec.verify_refresh(token)
        except TokenError:
            return False
        return True

    def sweep_user(self, user_id: str) -> int:
        """Drop every record of user_id whose token no longer verifies."""
        invalid = [r.id for r in self.store.list_refresh_tokens(user_id) if not self._is_valid(r.token)]
        if not invalid:
            return 0
        # only the invalid rows are deleted, so records appended meanwhile survive
        removed = self.store.delete_refresh_tokens(invalid)
        logger.info("Cleaned %d expired refresh tokens for user %s", removed, user_id)
        return removed

    def sweep_all(self) -> SweepReport:
        if not self._global_lock.acquire(blocking=False):
            logger.warning("Global refresh token sweep already running, skipping")
            return SweepReport(skipped=True)
        try:
            logger.info("Starting global refresh token cleanup")
            total_cleaned = 0
            users_processed = 0
            for user_id in self.store.users_with_refresh_tokens():
                try:
                    total_cleaned += self.sweep_user(user_id)
                except Exception:
                    logger.exception("Error cleaning tokens for user %s", user_id)
                    self.store.storage.rollback()
                    continue
                users_processed += 1
            logger.info(
                "Cleanup completed: %d tokens removed from %d users", total_cleaned, users_processed
            )
            return SweepReport(total_cleaned=total_cleaned, users_processed=users_processed)
        finally:
            self._global_lock.release()

    def sweep_older_than(self, max_age: Optional[timedelta] = None) -> AgeSweepReport:
        """Remove records created before now - max_age, valid or not."""
        max_age = max_age if max_age is not None else self.max_age
        cutoff = utcnow() - max_age
        logger.info("Cleaning refresh tokens created before %s", cutoff.isoformat())
        removed, users_affected = self.store.delete_refresh_tokens_created_before(cutoff)
        logger.info("Cleaned %d old tokens from %d users", removed, users_affected)
        return AgeSweepReport(tokens_removed=removed, users_affected=users_affected)

    def stats(self, user_id: Optional[str] = None) -> TokenStats:
        user_ids = [user_id] if user_id else self.store.users_with_refresh_tokens()
        total = valid = 0
        for uid in user_ids:
            for record in self.store.list_refresh_tokens(uid):
                total += 1
                if self._is_valid(record.token):
                    valid += 1
        return TokenStats(
            total_users=len(user_ids),
            total_tokens=total,
            valid_tokens=valid,
            expired_tokens=total - valid,
        )

    def run_scheduled(self) -> None:
        self.sweep_all()
        self.sweep_older_than()


class SweepScheduler:
    """Runs sweeper.run_scheduled() after initial_delay, then every interval."""

    def __init__(
        self,
        sweeper: TokenSweeper,
        interval: timedelta = timedelta(hours=24),
        initial_delay: timedelta = timedelta(minutes=1),
        on_finish=None,
    ):
        self.sweeper = sweeper
        self.interval = interval
        self.initial_delay = initial_delay
        # releases per-thread resources (the scoped DB session) after each run
        self.on_finish = on_finish
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="token-sweep-scheduler", daemon=True)
        self._thread.start()
        logger.info(
            "Scheduling refresh token cleanup every %s (first run in %s)", self.interval, self.initial_delay
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> None:
        try:
            self.sweeper.run_scheduled()
        except Exception:
            logger.exception("Scheduled refresh token cleanup failed")
        finally:
            if self.on_finish is not None:
                self.on_finish()

    def _run(self) -> None:
        delay = self.initial_delay.total_seconds()
        while not self._stop.wait(delay):
            self.run_once()
            delay = self.interval.total_seconds()


class CleanupDispatcher:
    """Fire-and-forget per-user sweeps with at most one pending task per user."""

    def __init__(self, sweeper: TokenSweeper, max_workers: int = 2, on_finish=None):
        self.sweeper = sweeper
        self.on_finish = on_finish
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="token-sweep")
        self._pending: Set[str] = set()
        self._lock = threading.Lock()

    def submit(self, user_id: str) -> Optional[Future]:
        with self._lock:
            if user_id in self._pending:
                return None
            self._pending.add(user_id)
        try:
            return self._executor.submit(self._sweep, user_id)
        except RuntimeError:
            # executor already shut down
            with self._lock:
                self._pending.discard(user_id)
            logger.warning("Cleanup dispatcher is shut down, dropping sweep for user %s", user_id)
            return None

    def _sweep(self, user_id: str) -> int:
        try:
            return self.sweeper.sweep_user(user_id)
        except Exception:
            logger.exception("Auto cleanup failed for user %s", user_id)
            return 0
        finally:
            with self._lock:
                self._pending.discard(user_id)
            if self.on_finish is not None:
                self.on_finish()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
