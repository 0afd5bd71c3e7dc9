"""Lifecycle state of a single test subscription."""

from __future__ import annotations

import itertools
import threading
from collections import deque
from typing import Callable

from graphql_testkit.exceptions import GraphQLTestFailure
from graphql_testkit.response import GraphQLResponse

IdSequence = Callable[[], int]

_id_counter = itertools.count(1)
_id_lock = threading.Lock()


def next_subscription_id() -> int:
    """Return the next process-wide subscription id."""
    with _id_lock:
        return next(_id_counter)


class SubscriptionState:
    """
    Flags and buffered responses of one subscription attempt.

    Lifecycle flags only ever move from ``False`` to ``True``. The response
    buffer and the flags are guarded by ``lock``: the transport thread writes,
    the test thread reads and drains.
    """

    def __init__(self, id_sequence: IdSequence | None = None) -> None:
        self.id: int = (id_sequence or next_subscription_id)()
        self.lock = threading.Lock()
        self.responses: deque[GraphQLResponse] = deque()
        self._initialized = False
        self._acknowledged = False
        self._started = False
        self._stopped = False
        self._completed = False
        self._failure: GraphQLTestFailure | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def acknowledged(self) -> bool:
        return self._acknowledged

    @property
    def started(self) -> bool:
        return self._started

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def failure(self) -> GraphQLTestFailure | None:
        return self._failure

    def mark_initialized(self) -> None:
        with self.lock:
            self._initialized = True

    def mark_acknowledged(self) -> None:
        with self.lock:
            self._acknowledged = True

    def mark_started(self) -> None:
        with self.lock:
            if not self._initialized:
                raise RuntimeError("A subscription cannot start before it is initialized.")
            self._started = True

    def mark_stopped(self) -> None:
        with self.lock:
            self._stopped = True

    def mark_completed(self) -> None:
        with self.lock:
            self._completed = True

    def record_failure(self, failure: GraphQLTestFailure) -> None:
        """Keep the first failure raised outside the test thread."""
        with self.lock:
            if self._failure is None:
                self._failure = failure

    def append_response(self, response: GraphQLResponse) -> bool:
        """
        Buffer ``response`` unless the subscription already ended.

        Returns:
            bool: ``True`` if the response was buffered, ``False`` if it arrived
            after the subscription was stopped or completed and was discarded.
        """
        with self.lock:
            if self._stopped or self._completed:
                return False
            self.responses.append(response)
            return True

    def buffered_count(self) -> int:
        with self.lock:
            return len(self.responses)

    def drain(self, count: int | None = None) -> list[GraphQLResponse]:
        """
        Remove and return up to ``count`` responses from the front of the buffer.

        ``None`` drains everything currently buffered.
        """
        with self.lock:
            return self.take_locked(count)

    def take_locked(self, count: int | None) -> list[GraphQLResponse]:
        """Pop up to ``count`` responses; the caller must hold ``lock``."""
        available = len(self.responses)
        to_poll = available if count is None else min(count, available)
        return [self.responses.popleft() for _ in range(to_poll)]

    def __repr__(self) -> str:
        return (
            f"SubscriptionState(id={self.id}, initialized={self._initialized}, "
            f"acknowledged={self._acknowledged}, started={self._started}, "
            f"stopped={self._stopped}, completed={self._completed}, "
            f"responses={len(self.responses)})"
        )
