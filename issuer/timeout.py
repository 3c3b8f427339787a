# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
This module contains functions for periodical cleaning up after an offer is expired
"""

import datetime
import threading
import logging
from typing import Callable, Generator
import contextlib

import common.config
import common.db.postgres as db
from common.clock import Clock, SystemClock

import issuer.db.credential as db_cred

_logger = logging.getLogger(__name__)


@contextlib.contextmanager
def midnight_cleanup_lifespan() -> contextlib.AbstractContextManager:
    """
    Lifespan managing a midnight cleanup timer.
    Runs once shortly after starting to achieve a clean state.
    """
    timeout_manager = MidnightCleanupTimer()
    timeout_manager.set_immediate_timer()
    yield
    timeout_manager.stop()


class MidnightCleanupTimer:
    """Timer, once started will run every midnight, rescheduling itself afterwards"""

    _timer: threading.Timer | None = None

    def __init__(
        self,
        session_function: Callable[..., Generator[db.Session, None, None]] = db.env_session,
        clock: Clock | None = None,
    ) -> None:
        """* session_function: a generator to call using contextlib to get a session."""
        # FastAPI does something similar internally, to use the same function
        # we have to create the context manager from the generator
        self._session_function = contextlib.contextmanager(session_function)
        self._clock = clock or SystemClock()
        self._stopped = False

    def _next_trigger_seconds(self) -> float:
        now = datetime.datetime.fromtimestamp(self._clock.now())
        next_midnight = datetime.datetime.combine(now.date() + datetime.timedelta(days=1), datetime.time.min)
        return (next_midnight - now).total_seconds()

    def expire_offers(self, session: db.Session) -> int:
        """Removes the claims of offers past their expiration, returns the number of offers expired"""
        expired_offers = db_cred.get_new_expired_offers(session, self._clock.now())
        for offer in expired_offers:
            offer.validity_check(self._clock.now())
        session.commit()
        _logger.info(f"Expired total of {len(expired_offers)} credential offers")
        return len(expired_offers)

    def _delete_expired_offer_data(self) -> None:
        try:
            with self._session_function(common.config.DBConfig()) as session:
                self.expire_offers(session)
        except Exception:
            _logger.exception("Cleanup of expired credential offers failed")
        self.set_midnight_timer()

    def set_timer(self, time: float) -> None:
        """Starts the timer. Cancels other instances of the timer"""
        self.cancel_timer()
        if self._stopped:
            return
        _logger.info(f"Next offer cleanup in {time=}")
        self._timer = threading.Timer(time, self._delete_expired_offer_data)
        self._timer.daemon = True
        self._timer.start()

    def set_midnight_timer(self) -> None:
        self.set_timer(self._next_trigger_seconds())

    def set_immediate_timer(self) -> None:
        """Runs the action of the timer almost immediately. Reschedules it after normally"""
        self.set_timer(1)

    def cancel_timer(self) -> None:
        if self._timer:
            self._timer.cancel()

    def stop(self) -> None:
        """Cancels the timer for good, a running cleanup does not reschedule"""
        self._stopped = True
        self.cancel_timer()
