"""
Post-commit side effects.

Role sync, Discord announcements and operator alerts talk to
the network and may fail or hang. None of them may hold up or
undo a committed payment. Services collect them in an Outbox
while they work and hand the outbox to an OutboxDispatcher
only after the database commit succeeded.

Each side effect runs on its own: one failing does not stop
the others, and failures are logged and dropped. There is no
retry queue.
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from donation_ledger.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class SideEffect:
    name: str
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)

    def run(self) -> bool:
        """Run the side effect, logging instead of raising."""
        try:
            self.func(*self.args, **self.kwargs)
        except Exception:
            logger.exception("Side effect '%s' failed", self.name)
            return False
        logger.debug("Side effect '%s' completed", self.name)
        return True


class Outbox:
    """Ordered list of side effects waiting for a commit."""

    def __init__(self) -> None:
        self._effects: list[SideEffect] = []

    def add(self, name: str, func: Callable[..., Any], *args, **kwargs) -> None:
        self._effects.append(SideEffect(name, func, args, kwargs))

    def clear(self) -> None:
        self._effects.clear()

    def __iter__(self) -> Iterator[SideEffect]:
        return iter(list(self._effects))

    def __len__(self) -> int:
        return len(self._effects)


class OutboxDispatcher:
    """
    Runs an outbox's side effects.

    With an executor the effects are submitted and dispatch()
    returns immediately; without one they run inline, which is
    what tests and one-off scripts want.
    """

    def __init__(self, executor: Executor | None = None):
        self.executor = executor

    def dispatch(self, outbox: Outbox) -> list[Future]:
        futures: list[Future] = []
        for effect in outbox:
            if self.executor is None:
                effect.run()
                continue
            try:
                futures.append(self.executor.submit(effect.run))
            except RuntimeError:
                # Executor already shut down
                logger.exception("Could not schedule side effect '%s'", effect.name)
        outbox.clear()
        return futures

    def shutdown(self, wait: bool = True) -> None:
        if self.executor is not None:
            self.executor.shutdown(wait=wait)


def build_dispatcher(settings: Settings) -> OutboxDispatcher:
    """Create the application's background dispatcher."""
    executor = ThreadPoolExecutor(
        max_workers=settings.FANOUT_WORKERS,
        thread_name_prefix="donation-fanout",
    )
    return OutboxDispatcher(executor)
