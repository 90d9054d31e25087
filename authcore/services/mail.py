"""
Mail capability used by the account flows.

Delivery is fire-and-forget: the core hands the message off and moves on.
A failure to enqueue is logged and never surfaced to the caller.
"""

from abc import ABC, abstractmethod

from authcore.helpers.getters import isDebugMode
from authcore.logging import get_logger
from authcore.mycelery import worker

logger = get_logger("auth.mail")


class MailService(ABC):
    @abstractmethod
    async def send_verification_email(self, email: str, first_name: str, token: str) -> None:
        ...

    @abstractmethod
    async def send_password_reset_email(self, email: str, first_name: str, token: str) -> None:
        ...

    @abstractmethod
    async def send_welcome_email(self, email: str, first_name: str) -> None:
        ...


class CeleryMailService(MailService):
    """Enqueues the SMTP tasks, or their logging-only variants when `local` is set."""

    def __init__(self, local: bool = None):
        self.local = isDebugMode() if local is None else local

    def _dispatch(self, task_name: str, *args) -> None:
        task = getattr(worker, f"{task_name}_local" if self.local else task_name)
        try:
            task.delay(*args)
        except Exception as e:
            logger.error("Could not enqueue email", exc_info=False, task=task_name, error=str(e))

    async def send_verification_email(self, email: str, first_name: str, token: str) -> None:
        self._dispatch("send_verification_email", email, first_name, token)

    async def send_password_reset_email(self, email: str, first_name: str, token: str) -> None:
        self._dispatch("send_password_reset_email", email, first_name, token)

    async def send_welcome_email(self, email: str, first_name: str) -> None:
        self._dispatch("send_welcome_email", email, first_name)
