"""Best-effort notification fan-out.

Publication and rejection notices are handed to a ``NotificationDispatcher``
which runs each fan-out job on a bounded worker pool. A job attempts every
recipient exactly once; individual failures are logged and counted, never
raised back to the request that triggered the job.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol

import httpx
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from campus_notes.core.observability import (
    notification_fanouts_pending,
    notifications_failed_total,
    notifications_sent_total,
)
from campus_notes.models.notification_pref import UserNotificationPreference
from campus_notes.models.user import User
from campus_notes.services.email import HTTP_TIMEOUT_SECONDS, send_email

logger = logging.getLogger("notifications")


@dataclass(frozen=True)
class NotificationMessage:
    recipient: str
    subject: str
    html: str
    text: str
    recipient_user_id: Optional[int] = None


class NotificationChannel(Protocol):
    def send(self, message: NotificationMessage) -> None: ...


class EmailChannel:
    """Delivers messages through the configured email provider.

    One pooled HTTP client is shared by every worker thread until ``close``.
    """

    def __init__(self, from_address: Optional[str]) -> None:
        self.from_address = from_address
        self._client = httpx.Client(timeout=HTTP_TIMEOUT_SECONDS)

    def send(self, message: NotificationMessage) -> None:
        send_email(
            to_address=message.recipient,
            subject=message.subject,
            html=message.html,
            text=message.text,
            from_address=self.from_address,
            client=self._client,
        )

    def close(self) -> None:
        self._client.close()


@dataclass
class FanoutResult:
    event: str
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class NotificationDispatcher:
    def __init__(self, channel: NotificationChannel, *, max_workers: int = 4, max_pending: int = 100) -> None:
        self.channel = channel
        self._executor = ThreadPoolExecutor(max_workers=max(max_workers, 1), thread_name_prefix="notify")
        self._slots = threading.BoundedSemaphore(max(max_pending, 1))
        self._lock = threading.Lock()
        self._futures: set[Future] = set()
        self._closed = False

    def submit(self, messages: Iterable[NotificationMessage], *, event: str) -> Optional[Future]:
        """Schedule a fan-out job and return immediately.

        Returns ``None`` when there is nothing to send or when the queue is full;
        dropped jobs are logged, the caller is never blocked.
        """
        batch = list(messages)
        if not batch:
            return None
        if self._closed or not self._slots.acquire(blocking=False):
            logger.warning("fanout_dropped", extra={"event": event, "recipients": len(batch)})
            return None
        try:
            future = self._executor.submit(self.deliver_all, batch, event=event)
        except RuntimeError:
            self._slots.release()
            logger.warning("fanout_dropped", extra={"event": event, "recipients": len(batch)})
            return None

        with self._lock:
            self._futures.add(future)
        notification_fanouts_pending.inc()
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)
        notification_fanouts_pending.dec()
        self._slots.release()

    def deliver_all(self, messages: Iterable[NotificationMessage], *, event: str) -> FanoutResult:
        result = FanoutResult(event=event)
        for message in messages:
            try:
                self.channel.send(message)
            except Exception as exc:
                result.failed.append(message.recipient)
                notifications_failed_total.labels(event=event).inc()
                logger.warning(
                    "notification_failed",
                    extra={
                        "event": event,
                        "recipient": message.recipient,
                        "user_id": message.recipient_user_id,
                        "error": str(exc),
                    },
                )
            else:
                result.sent.append(message.recipient)
                notifications_sent_total.labels(event=event).inc()

        logger.log(
            logging.WARNING if result.failed else logging.INFO,
            "fanout_complete",
            extra={"event": event, "sent": len(result.sent), "failed": len(result.failed)},
        )
        return result

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        with self._lock:
            pending = list(self._futures)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_jobs: bool = True) -> None:
        self._closed = True
        self._executor.shutdown(wait=wait_for_jobs)
        close = getattr(self.channel, "close", None)
        if close is not None:
            close()


def find_interested_recipients(db: Session, *, department: str, preference_attr: str, exclude_user_id: int) -> list[User]:
    """Active users of the department who opted into this content category.

    A user without a preference row gets every notice.
    """
    pref = UserNotificationPreference
    return (
        db.query(User)
        .outerjoin(pref, pref.user_id == User.id)
        .filter(
            User.department == department,
            User.is_active.is_(True),
            User.id != exclude_user_id,
            or_(
                pref.user_id.is_(None),
                and_(pref.email_enabled.is_(True), getattr(pref, preference_attr).is_(True)),
            ),
        )
        .order_by(User.id.asc())
        .all()
    )
