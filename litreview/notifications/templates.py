"""Plain-text bodies for pipeline completion emails."""

from __future__ import annotations

from dataclasses import dataclass

from litreview.jobs.models import NotificationType


@dataclass(frozen=True)
class RenderedEmail:
  subject: str
  text: str


def render_notification(notification_type: NotificationType, *, first_name: str | None, project_name: str, paper_count: int = 0, frontend_url: str | None = None) -> RenderedEmail:
  """Render the subject and body for a notification type."""
  name = first_name or "there"
  link = f"\n\nOpen your project: {frontend_url.rstrip('/')}/projects" if frontend_url else ""

  if notification_type == NotificationType.PROJECT_INIT_COMPLETE:
    subject = f"Your project \"{project_name}\" is ready"
    text = f"Hi {name},\n\nWe finished analysing the research idea for \"{project_name}\" and generated search queries for it.{link}"
    return RenderedEmail(subject=subject, text=text)

  if notification_type == NotificationType.PROJECT_SCORING_COMPLETE:
    subject = f"Scoring complete for \"{project_name}\""
    text = f"Hi {name},\n\nAll {paper_count} candidate papers for \"{project_name}\" have been scored against your idea.{link}"
    return RenderedEmail(subject=subject, text=text)

  raise ValueError(f"Unknown notification type: {notification_type}")
