"""
Notification gateway.

Sends e-mails through Django's mail framework. Delivery is best-effort:
failures are logged and reported as ``False``, never raised to the caller.
"""

import logging

from django.conf import settings
from django.core.mail import send_mail
from django.utils.html import format_html

logger = logging.getLogger(__name__)


class NotificationService:
    """Fire-and-forget e-mail notifications."""

    def send(self, to, subject, body, html_body=None) -> bool:
        """
        Send one message.

        Args:
            to: Recipient e-mail address
            subject: Subject line
            body: Plain text body
            html_body: Optional HTML alternative

        Returns:
            bool: True if the mail backend accepted the message
        """
        try:
            send_mail(
                subject,
                body,
                settings.DEFAULT_FROM_EMAIL,
                [to],
                html_message=html_body,
                fail_silently=False,
            )
        except Exception as e:
            logger.error(
                "Notification delivery failed",
                extra={
                    "recipient": to,
                    "subject": subject,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "notification_failed",
                    "component": "NotificationService",
                    "severity": "medium",
                },
                exc_info=True,
            )
            return False

        logger.info(
            "Notification sent",
            extra={
                "recipient": to,
                "subject": subject,
                "action": "notification_sent",
                "component": "NotificationService",
            },
        )
        return True

    @staticmethod
    def build_invitation_link(project_id, invitation_id) -> str:
        host = getattr(settings, "FRONTEND_HOST", "").rstrip("/")
        return f"{host}/projects/{project_id}/join?invitation={invitation_id}"

    def send_invitation(self, email, project, invitation_id, inviter) -> bool:
        """Invite ``email`` to ``project`` with a join link."""
        link = self.build_invitation_link(project.id, invitation_id)
        project_name = project.project_name or "a project"
        inviter_name = inviter.display_name

        body = (
            f"{inviter_name} invited you to join {project_name}.\n\n"
            f"Open the link below to accept the invitation:\n{link}\n"
        )
        html_body = format_html(
            "<p>{} invited you to join <strong>{}</strong>.</p>"
            '<p><a href="{}">Accept the invitation</a></p>',
            inviter_name,
            project_name,
            link,
        )
        return self.send(email, "Invitation to a project", body, html_body)
