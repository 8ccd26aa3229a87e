"""
Email Service using Resend

Sends reminder notifications raised by background jobs.
"""

import asyncio
import logging
from datetime import datetime
from html import escape

import resend

from studyhub.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

_STYLES = """
            body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
            .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
            .header { color: #1e3a8a; margin-bottom: 24px; }
            .notice { background-color: #fef3c7; border: 1px solid #f59e0b; padding: 16px; border-radius: 8px; margin: 16px 0; }
            .button { display: inline-block; background-color: #1e3a8a; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
            .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def _format_due(value: datetime) -> str:
    return value.strftime("%a %d %b %Y, %H:%M UTC")


def _render(title: str, greeting_name: str, body_html: str, link: str, link_label: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_STYLES}</style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{title}</h1>

            <p>Hello {escape(greeting_name)},</p>

            {body_html}

            <a href="{link}" class="button">{link_label}</a>

            <div class="footer">
                <p>You receive these reminders because they are enabled on your account.</p>
                <p>StudyHub</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent (or logged, when no API key is configured)
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Resend's client is synchronous
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_task_reminder(
    to_email: str,
    student_name: str,
    task_title: str,
    due_date: datetime,
    message: str,
) -> bool:
    """Remind a student about an upcoming task deadline."""
    safe_title = escape(task_title)
    body = f"""
            <div class="notice">
                <strong>{escape(message)}</strong>
            </div>

            <p>Your task <strong>{safe_title}</strong> is due on {_format_due(due_date)}.</p>
    """
    html_content = _render(
        title="Task Reminder",
        greeting_name=student_name,
        body_html=body,
        link=f"{settings.frontend_url}/student/tasks",
        link_label="Open My Tasks",
    )
    return await send_email(
        to_email=to_email,
        subject=f"Reminder: {safe_title} is due soon",
        html_content=html_content,
    )


async def send_worker_reminder(
    to_email: str,
    worker_name: str,
    reminder_title: str,
    due_date: datetime,
    category: str,
) -> bool:
    """Notify a worker that one of their reminders is due."""
    safe_title = escape(reminder_title)
    body = f"""
            <div class="notice">
                <strong>{safe_title}</strong> ({escape(category)})
            </div>

            <p>This reminder was due on {_format_due(due_date)}.</p>
    """
    html_content = _render(
        title="Reminder",
        greeting_name=worker_name,
        body_html=body,
        link=f"{settings.frontend_url}/worker/reminders",
        link_label="View Reminders",
    )
    return await send_email(
        to_email=to_email,
        subject=f"Reminder: {safe_title}",
        html_content=html_content,
    )


async def send_goal_deadline_reminder(
    to_email: str,
    worker_name: str,
    goal_title: str,
    target_date: datetime,
    progress_percentage: int,
) -> bool:
    """Warn a worker that a goal's target date is close."""
    safe_title = escape(goal_title)
    body = f"""
            <div class="notice">
                <strong>Your goal "{safe_title}" is due on {_format_due(target_date)}.</strong>
            </div>

            <p>Current progress: {progress_percentage}%. A final push gets it over the line.</p>
    """
    html_content = _render(
        title="Goal Deadline Approaching",
        greeting_name=worker_name,
        body_html=body,
        link=f"{settings.frontend_url}/worker/goals",
        link_label="Update Progress",
    )
    return await send_email(
        to_email=to_email,
        subject=f"Your goal '{safe_title}' is due soon",
        html_content=html_content,
    )
