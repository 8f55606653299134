"""Fixed-interval bounded polling used for every readiness wait.

The external daemons this tool waits on (snapd seeding, the multipass
daemon, guest networking) take a roughly constant amount of time to come up,
so polling uses a fixed interval and a hard attempt budget rather than
exponential backoff. Progress is reported every ``progress_every`` attempts
so long waits stay visible without flooding the log.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from .errors import AttemptsExhaustedError
from .util import CmdError

log = logger


class PollOutcome(enum.Enum):
    READY = 'ready'
    TIMED_OUT = 'timed_out'

    @property
    def ready(self) -> bool:
        return self is PollOutcome.READY


@dataclass
class InstallAttempt:
    """Bounded retry context: counts evaluations and refuses to exceed the budget."""

    label: str
    interval_s: float
    max_attempts: int
    attempts: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    @property
    def budget_s(self) -> float:
        return self.interval_s * self.max_attempts

    def record(self) -> int:
        if self.exhausted:
            raise AttemptsExhaustedError(
                f'{self.label}: all {self.max_attempts} attempts already used'
            )
        self.attempts += 1
        return self.attempts


def wait_until(
    predicate: Callable[[], bool],
    *,
    interval_s: float,
    max_attempts: int,
    label: str,
    progress_every: int = 10,
) -> PollOutcome:
    attempt = InstallAttempt(
        label=label, interval_s=interval_s, max_attempts=max_attempts
    )
    while not attempt.exhausted:
        n = attempt.record()
        try:
            ok = bool(predicate())
        except CmdError as ex:
            log.debug('{}: probe raised {}', label, ex)
            ok = False
        if ok:
            log.debug('{}: ready after {} attempt(s)', label, n)
            return PollOutcome.READY
        if (n - 1) % max(progress_every, 1) == 0:
            log.info(
                'Still waiting for {}... (attempt {}/{})',
                label,
                n,
                max_attempts,
            )
        if not attempt.exhausted:
            time.sleep(interval_s)
    log.warning(
        '{}: not ready after {} attempts (~{:g}s)',
        label,
        attempt.attempts,
        attempt.budget_s,
    )
    return PollOutcome.TIMED_OUT
