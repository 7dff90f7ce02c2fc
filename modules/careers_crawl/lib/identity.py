"""
Identity pool: a bounded set of request fingerprints (headers, cookie jar,
proxy endpoint) handed out with exclusive checkout.

Identities are retired on usage/error thresholds or immediately when the target
served a challenge, and are never handed out again afterwards. When every
identity is retired the pool mints replacements until its mint budget runs out,
at which point acquire() raises PoolExhausted.
"""

from __future__ import annotations

import itertools
import logging
import random
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from requests.cookies import RequestsCookieJar

log = logging.getLogger(__name__)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
)

ACCEPT_LANGUAGES = ("en-US,en;q=0.9", "en-US,en;q=0.5", "en-GB,en;q=0.9,en-US;q=0.8")

# Browser-like navigation headers; the target fingerprints bare clients quickly.
_BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Encoding": "gzip, deflate, br",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Cache-Control": "max-age=0",
}

# error_score increments per failure class; success decays the score.
ERROR_WEIGHTS = {
    "challenge": 10.0,
    "rate_limited": 2.0,
    "server_error": 0.5,
    "timeout": 0.5,
    "connection_error": 1.0,
    "unknown": 1.0,
}
SUCCESS_DECAY = 0.5


class PoolExhausted(RuntimeError):
    """No identity can be handed out any more; fatal to the run."""


class IdentityState(str, Enum):
    ACTIVE = "active"
    RETIRED = "retired"


@dataclass(eq=False)
class Identity:
    id: int
    headers: dict[str, str]
    cookies: RequestsCookieJar = field(default_factory=RequestsCookieJar, repr=False)
    proxy: str | None = None
    usage_count: int = 0
    error_score: float = 0.0
    state: IdentityState = IdentityState.ACTIVE
    last_used: float = 0.0
    retire_reason: str | None = None

    @property
    def active(self) -> bool:
        return self.state is IdentityState.ACTIVE

    @property
    def user_agent(self) -> str:
        return self.headers.get("User-Agent", "")


def build_header_profile(rng: random.Random) -> dict[str, str]:
    headers = dict(_BASE_HEADERS)
    headers["User-Agent"] = rng.choice(USER_AGENTS)
    headers["Accept-Language"] = rng.choice(ACCEPT_LANGUAGES)
    return headers


class IdentityPool:
    """
    Contract:
      - acquire() returns an ACTIVE identity not checked out by anyone else
        (least-recently-used first), blocking while all live ones are busy.
      - release(identity, failure) updates counters and retires on thresholds.
      - retire(identity) forces retirement.
    All three are atomic w.r.t. each other (single condition variable).
    """

    def __init__(
        self,
        size: int,
        *,
        proxies: Sequence[str] = (),
        max_uses: int = 50,
        max_errors: float = 3.0,
        mint_budget: int | None = None,
        acquire_timeout: float = 60.0,
        rng: random.Random | None = None,
        clock=time.monotonic,
    ):
        if size <= 0:
            raise ValueError("IdentityPool size must be >= 1")
        self.size = int(size)
        self.max_uses = int(max_uses)
        self.max_errors = float(max_errors)
        self.mint_budget = int(mint_budget or size * 10)
        self.acquire_timeout = float(acquire_timeout)
        self._proxies = list(proxies)
        self._rng = rng or random.Random()
        self._clock = clock
        self._cond = threading.Condition()
        self._ids = itertools.count(1)
        self._minted = 0
        self._live: list[Identity] = []
        self._checked_out: set[int] = set()
        self._retired: list[Identity] = []
        for _ in range(self.size):
            self._live.append(self._mint())

    # ---- internals (call with the lock held) ----
    def _mint(self) -> Identity:
        self._minted += 1
        proxy = self._proxies[(self._minted - 1) % len(self._proxies)] if self._proxies else None
        ident = Identity(id=next(self._ids), headers=build_header_profile(self._rng), proxy=proxy)
        log.debug("Identity #%d minted (proxy=%s)", ident.id, bool(proxy))
        return ident

    def _retire_locked(self, identity: Identity, reason: str) -> None:
        if identity.state is IdentityState.RETIRED:
            return
        identity.state = IdentityState.RETIRED
        identity.retire_reason = reason
        if identity in self._live:
            self._live.remove(identity)
        self._retired.append(identity)
        log.info(
            "Identity #%d retired (%s) after %d uses, error_score=%.1f",
            identity.id,
            reason,
            identity.usage_count,
            identity.error_score,
        )
        # Keep the pool at its configured size while budget remains.
        if len(self._live) < self.size and self._minted < self.mint_budget:
            self._live.append(self._mint())
        self._cond.notify_all()

    def _pick_locked(self) -> Identity | None:
        free = [i for i in self._live if i.active and i.id not in self._checked_out]
        if not free:
            return None
        return min(free, key=lambda i: (i.last_used, i.id))

    # ---- public API ----
    def acquire(self, timeout: float | None = None) -> Identity:
        wait_for = self.acquire_timeout if timeout is None else timeout
        deadline = self._clock() + wait_for
        with self._cond:
            while True:
                ident = self._pick_locked()
                if ident is not None:
                    self._checked_out.add(ident.id)
                    ident.last_used = self._clock()
                    return ident
                if not self._live:
                    raise PoolExhausted(
                        f"All {self._minted} identities retired (mint budget {self.mint_budget} spent)."
                    )
                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise PoolExhausted(f"No identity became free within {wait_for:.0f}s.")
                self._cond.wait(timeout=remaining)

    def release(self, identity: Identity, failure: str | None = None, *, rotate: bool = False) -> None:
        with self._cond:
            self._checked_out.discard(identity.id)
            identity.usage_count += 1
            if failure is None:
                identity.error_score = max(0.0, identity.error_score - SUCCESS_DECAY)
            else:
                identity.error_score += ERROR_WEIGHTS.get(str(failure), 1.0)

            if identity.active:
                if rotate:
                    self._retire_locked(identity, f"rotate:{failure}")
                elif identity.error_score >= self.max_errors:
                    self._retire_locked(identity, "error_score")
                elif identity.usage_count >= self.max_uses:
                    self._retire_locked(identity, "max_uses")
            self._cond.notify_all()

    def retire(self, identity: Identity, reason: str = "forced") -> None:
        with self._cond:
            self._retire_locked(identity, reason)

    def stats(self) -> dict[str, int]:
        with self._cond:
            return {
                "live": len(self._live),
                "checked_out": len(self._checked_out),
                "retired": len(self._retired),
                "minted": self._minted,
            }
