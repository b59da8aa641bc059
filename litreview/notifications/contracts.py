"""Contracts for user notification delivery."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class EmailNotification:
  """Represents an email notification payload."""

  to_address: str
  to_name: str | None
  subject: str
  text: str


class NotificationError(Exception):
  """Base class for notification delivery failures."""


class EmailSender(Protocol):
  """Delivery contract for sending email notifications."""

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    """Send an email notification synchronously and return provider identifiers."""
