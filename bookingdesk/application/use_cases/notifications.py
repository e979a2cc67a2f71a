from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime, timezone

from bookingdesk.application.records import BookingRecords
from bookingdesk.application.ports.mail_sender import MailSenderPort
from bookingdesk.application.utils.ids import generate_id
from bookingdesk.application.utils.row_mapping import outcome_to_row
from bookingdesk.domain.entities.notification import DispatchOutcome, NotificationMessage


class _Batch:
    """Collects the outcomes of one dispatch_all call and logs once all have settled."""

    def __init__(self, total: int, logger: logging.Logger) -> None:
        self._total = total
        self._outcomes: list[DispatchOutcome] = []
        self._lock = threading.Lock()
        self._logger = logger

    def settle(self, future: Future) -> None:
        outcome = future.result()
        with self._lock:
            self._outcomes.append(outcome)
            if len(self._outcomes) < self._total:
                return
            sent = sum(1 for o in self._outcomes if o.success)
        self._logger.info(
            "Notification batch settled",
            extra={"reason": f"{sent}/{self._total} sent"},
        )


class NotificationDispatcher:
    """Fire-and-forget delivery with per-recipient retries.

    ``dispatch`` never raises: every failure becomes a failed ``DispatchOutcome``
    that is logged with recipient, template and error, and appended to the
    email log when a record store is available. ``dispatch_all`` runs each
    message as its own task so one recipient cannot hold up another.
    """

    def __init__(
        self,
        sender: MailSenderPort,
        records: BookingRecords | None = None,
        max_retries: int = 2,
        retry_delay_seconds: float = 1.0,
        executor: Executor | None = None,
        max_workers: int = 4,
        sleep: Callable[[float], None] = time.sleep,
        history_limit: int = 100,
        logger: logging.Logger | None = None,
    ) -> None:
        self._sender = sender
        self._records = records
        self._max_retries = max(0, max_retries)
        self._retry_delay_seconds = retry_delay_seconds
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")
        self._sleep = sleep
        self._history: deque[DispatchOutcome] = deque(maxlen=history_limit)
        self._history_lock = threading.Lock()
        self._logger = logger or logging.getLogger(__name__)

    def dispatch(self, message: NotificationMessage) -> DispatchOutcome:
        attempts = 0
        last_error: str | None = None
        max_attempts = self._max_retries + 1

        while attempts < max_attempts:
            attempts += 1
            try:
                message_id = self._sender.send(message.recipient, message.template_id, dict(message.data))
            except Exception as e:
                last_error = f"{type(e).__name__}: {e}"
                self._logger.warning(
                    "Notification attempt failed",
                    extra={
                        "recipient": message.recipient,
                        "template": message.template_id,
                        "error": last_error,
                        "reason": f"attempt {attempts}/{max_attempts}",
                    },
                )
                if attempts < max_attempts and self._retry_delay_seconds > 0:
                    self._sleep(self._retry_delay_seconds)
                continue

            outcome = DispatchOutcome(
                recipient=message.recipient,
                template_id=message.template_id,
                success=True,
                attempts=attempts,
                sent_at=_utcnow(),
                message_id=message_id,
            )
            self._logger.info(
                "Notification sent",
                extra={"recipient": message.recipient, "template": message.template_id},
            )
            self._record(outcome)
            return outcome

        outcome = DispatchOutcome(
            recipient=message.recipient,
            template_id=message.template_id,
            success=False,
            attempts=attempts,
            sent_at=_utcnow(),
            reason=last_error,
        )
        self._logger.error(
            "Notification failed; manual resend required",
            extra={
                "recipient": message.recipient,
                "template": message.template_id,
                "error": last_error,
                "reason": message.audience,
            },
        )
        self._record(outcome)
        return outcome

    def dispatch_all(self, messages: Iterable[NotificationMessage]) -> list[Future]:
        batch_messages = list(messages)
        if not batch_messages:
            return []
        batch = _Batch(len(batch_messages), self._logger)
        futures: list[Future] = []
        for message in batch_messages:
            try:
                future = self._executor.submit(self.dispatch, message)
            except RuntimeError as e:
                # Executor already shut down; settle inline as a failure.
                future = Future()
                outcome = DispatchOutcome(
                    recipient=message.recipient,
                    template_id=message.template_id,
                    success=False,
                    attempts=0,
                    sent_at=_utcnow(),
                    reason=f"not scheduled: {e}",
                )
                self._logger.error(
                    "Notification not scheduled",
                    extra={"recipient": message.recipient, "template": message.template_id, "error": str(e)},
                )
                self._record(outcome)
                future.set_result(outcome)
            future.add_done_callback(batch.settle)
            futures.append(future)
        return futures

    def recent_outcomes(self) -> list[DispatchOutcome]:
        with self._history_lock:
            return list(self._history)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def _record(self, outcome: DispatchOutcome) -> None:
        with self._history_lock:
            self._history.append(outcome)
        if self._records is None:
            return
        try:
            self._records.log_email(outcome_to_row(outcome, generate_id("M")))
        except Exception as e:
            self._logger.warning(
                "Could not write email log row",
                extra={"recipient": outcome.recipient, "template": outcome.template_id, "error": str(e)},
            )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
