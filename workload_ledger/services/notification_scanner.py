"""Background re-evaluation of every active user's notification feed."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from sqlalchemy.orm import Session

from workload_ledger.repositories.workload_repository import WorkloadRepository
from workload_ledger.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class NotificationScanner:
    """Runs ``NotificationService.evaluate_for_user`` on a fixed interval.

    Each pass opens its own session. A failure for one user is logged and the
    pass moves on to the next user.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        interval_seconds: float,
        service_factory: Callable[[Session], NotificationService] = NotificationService,
    ) -> None:
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.service_factory = service_factory
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="notification-scanner", daemon=True)
        self._thread.start()
        logger.info("Notification scanner started (every %ss)", self.interval_seconds)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Notification scanner stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Notification scan pass failed")
            self._stop.wait(self.interval_seconds)

    def run_once(self) -> dict[str, int]:
        """Evaluate every active user once and return pass counters."""

        start = time.monotonic()
        evaluated = 0
        failed = 0
        db = self.session_factory()
        try:
            service = self.service_factory(db)
            user_ids = [user.id for user in WorkloadRepository(db).list_users(active_only=True)]
            for user_id in user_ids:
                try:
                    service.evaluate_for_user(user_id)
                    evaluated += 1
                except Exception:
                    db.rollback()
                    failed += 1
                    logger.exception(
                        "Notification evaluation failed for %s",
                        user_id,
                        extra={"recipient_id": user_id},
                    )
        finally:
            db.close()

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info("Notification scan: %d users evaluated, %d failed in %dms", evaluated, failed, duration_ms)
        return {"evaluated": evaluated, "failed": failed}
