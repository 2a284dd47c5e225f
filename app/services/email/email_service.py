"""
SMTP email delivery and the in-memory retry queue.

Sending is skipped with a warning when ``SMTP_HOST`` is not set, so local
development and tests never need a mail server.
"""

import asyncio
import random
import smtplib
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from email.message import EmailMessage
from typing import Any, Dict, List, Optional, Union

from email_validator import EmailNotValidError, validate_email

from app.config import get_settings
from app.services.email.templates import render_template
from app.utils.exceptions import EmailDeliveryError
from app.utils.logger import get_logger

logger = get_logger(__name__)

MAX_ATTEMPTS = 3
RETRY_DELAY = timedelta(minutes=5)
BULK_BATCH_SIZE = 10
BULK_BATCH_PAUSE_SECONDS = 1.0

Recipients = Union[str, List[str]]


def _as_list(to: Recipients) -> List[str]:
    return [to] if isinstance(to, str) else list(to)


def _is_valid_recipient(address: str) -> bool:
    try:
        validate_email(address, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


class EmailService:
    """Renders templates and sends them over SMTP."""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()

    def _build_message(self, recipients: List[str], rendered: Dict[str, str]) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = rendered["subject"]
        message["From"] = self.settings.smtp_from
        message["To"] = ", ".join(recipients)
        message.set_content(rendered["text"])
        message.add_alternative(rendered["html"], subtype="html")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        s = self.settings
        try:
            with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=30) as smtp:
                if s.smtp_use_tls:
                    smtp.starttls()
                if s.smtp_user:
                    smtp.login(s.smtp_user, s.smtp_password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(str(e), details={"host": s.smtp_host}) from e

    async def send_email(self, to: Recipients, template: str, data: Dict[str, Any]) -> bool:
        """
        Render and send a templated email.

        Args:
            to: One address or a list of addresses.
            template: Template name, see ``app.services.email.templates``.
            data: Template variables.

        Returns:
            True if the message was handed to the SMTP server.
        """
        recipients = _as_list(to)
        invalid = [r for r in recipients if not _is_valid_recipient(r)]
        if not recipients or invalid:
            logger.warning(f"Refusing to send '{template}' email to invalid recipients: {invalid}")
            return False

        try:
            rendered = render_template(template, data)
        except KeyError as e:
            logger.error(f"Cannot render email template '{template}': {e}")
            return False

        if not self.settings.smtp_configured:
            logger.warning(f"SMTP_HOST not set, skipping '{template}' email to {len(recipients)} recipient(s)")
            return False

        try:
            await asyncio.to_thread(self._deliver, self._build_message(recipients, rendered))
        except EmailDeliveryError as e:
            logger.warning(f"Email '{template}' failed: {e.message}")
            return False

        logger.info(f"Email sent: {rendered['subject']} -> {len(recipients)} recipient(s)")
        return True

    async def send_bulk_email(self, recipients: List[str], template: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send the same email to many recipients in batches.

        Returns:
            Dict with ``success`` and ``failed`` counts plus an ``errors`` list.
        """
        result: Dict[str, Any] = {"success": 0, "failed": 0, "errors": []}
        for start in range(0, len(recipients), BULK_BATCH_SIZE):
            batch = recipients[start:start + BULK_BATCH_SIZE]
            outcomes = await asyncio.gather(*(self.send_email(r, template, data) for r in batch))
            for recipient, ok in zip(batch, outcomes):
                if ok:
                    result["success"] += 1
                else:
                    result["failed"] += 1
                    result["errors"].append(f"Failed to send to {recipient}")
            if start + BULK_BATCH_SIZE < len(recipients):
                await asyncio.sleep(BULK_BATCH_PAUSE_SECONDS)
        return result


@dataclass
class QueuedEmail:
    id: str
    to: List[str]
    template: str
    data: Dict[str, Any]
    scheduled_for: datetime
    attempts: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)


class EmailQueue:
    """
    In-memory delayed-send queue with retries.

    Items are lost on restart.
    """

    def __init__(self, service: Optional[EmailService] = None):
        self.service = service or EmailService()
        self.items: List[QueuedEmail] = []
        self.is_processing = False

    @staticmethod
    def _new_id() -> str:
        suffix = "".join(random.choices("abcdefghijklmnopqrstuvwxyz0123456789", k=9))
        return f"email_{int(time.time() * 1000)}_{suffix}"

    def enqueue(
        self,
        to: Recipients,
        template: str,
        data: Dict[str, Any],
        delay_seconds: float = 0,
    ) -> str:
        """
        Queue an email for delivery.

        Args:
            to: One address or a list of addresses.
            template: Template name.
            data: Template variables.
            delay_seconds: Earliest send time, relative to now.

        Returns:
            Queue item id.
        """
        item = QueuedEmail(
            id=self._new_id(),
            to=_as_list(to),
            template=template,
            data=data,
            scheduled_for=datetime.utcnow() + timedelta(seconds=delay_seconds),
        )
        self.items.append(item)
        logger.debug(f"Queued '{template}' email {item.id}")
        return item.id

    def _ready(self, now: datetime) -> List[QueuedEmail]:
        return [item for item in self.items if item.scheduled_for <= now]

    async def process_once(self, now: Optional[datetime] = None) -> int:
        """
        Attempt every item whose send time has arrived.

        Returns:
            Number of items attempted.
        """
        now = now or datetime.utcnow()
        ready = self._ready(now)
        for item in ready:
            item.attempts += 1
            sent = await self.service.send_email(item.to, item.template, item.data)
            if sent:
                self.items.remove(item)
            elif item.attempts >= MAX_ATTEMPTS:
                self.items.remove(item)
                logger.error(
                    f"Dropping email {item.id} ('{item.template}') after {item.attempts} attempts"
                )
            else:
                item.scheduled_for = now + RETRY_DELAY
                logger.warning(f"Email {item.id} failed, retry {item.attempts}/{MAX_ATTEMPTS} in 5 minutes")
        return len(ready)

    async def process_loop(self) -> None:
        """Run until cancelled; sleeps when nothing is ready."""
        poll = get_settings().email_queue_poll_seconds
        self.is_processing = True
        logger.info("Email queue processor started")
        try:
            while True:
                try:
                    attempted = await self.process_once()
                except Exception as e:
                    logger.warning(f"Email queue pass failed: {e}")
                    attempted = 0
                if not attempted:
                    await asyncio.sleep(poll)
        finally:
            self.is_processing = False
            logger.info("Email queue processor stopped")

    def status(self) -> Dict[str, Any]:
        oldest = min((item.created_at for item in self.items), default=None)
        return {
            "queue_length": len(self.items),
            "is_processing": self.is_processing,
            "oldest_item": oldest.isoformat() if oldest else None,
        }


_email_queue: Optional[EmailQueue] = None


def get_email_queue() -> EmailQueue:
    """Get the process-wide email queue."""
    global _email_queue
    if _email_queue is None:
        _email_queue = EmailQueue()
    return _email_queue
