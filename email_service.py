"""
Email delivery for parent-facing messages.

EMAIL_BACKEND selects the transport:
  - "log" (default): write the message to the application log
  - "smtp": send through MAIL_* settings, queued via tasks.enqueue
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app
from markupsafe import escape

from tasks import enqueue

logger = logging.getLogger(__name__)

LEAVE_STATUS_LABELS = {"approved": "approved", "rejected": "rejected"}


class EmailService:
    @staticmethod
    def send(to: str, subject: str, body_html: str) -> bool:
        """Send one message. Returns True when delivered, logged or enqueued."""
        if not to:
            logger.info("Skipping email without recipient (subject=%s)", subject)
            return False

        backend = current_app.config.get("EMAIL_BACKEND", "log")
        if backend == "log":
            logger.info("EMAIL [to=%s] subject=%s\n%s", to, subject, body_html)
            return True

        config = {
            "mail_from": current_app.config.get("MAIL_FROM", "noreply@educonnect.local"),
            "mail_server": current_app.config.get("MAIL_SERVER", "localhost"),
            "mail_port": current_app.config.get("MAIL_PORT", 587),
            "mail_username": current_app.config.get("MAIL_USERNAME", ""),
            "mail_password": current_app.config.get("MAIL_PASSWORD", ""),
        }
        enqueue(deliver_smtp, to, subject, body_html, config)
        return True


def deliver_smtp(to: str, subject: str, body_html: str, config: dict) -> bool:
    """SMTP send; runs in an RQ worker without a Flask context."""
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = config["mail_from"]
    msg["To"] = to
    msg.attach(MIMEText(body_html, "html"))
    try:
        with smtplib.SMTP(config["mail_server"], config["mail_port"]) as smtp:
            smtp.starttls()
            if config["mail_username"] and config["mail_password"]:
                smtp.login(config["mail_username"], config["mail_password"])
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("SMTP send to %s failed: %s", to, e)
        return False
    return True


def _footer(school: str, path: str) -> str:
    base = current_app.config.get("BASE_URL", "").rstrip("/")
    link = f'<p><a href="{escape(base + path)}">Open {escape(school)}</a></p>' if base else ""
    return f"{link}<p>{escape(school)}</p>"


def send_feedback_digest(parent: dict, student_name: str, items: list[dict]) -> bool:
    school = current_app.config.get("SCHOOL_NAME", "EduConnect")
    rows = "".join(
        f"<li><strong>{escape(i.get('subject_name', ''))}</strong>: {escape(i['feedback_text'])}"
        + (f" ({i['rating']}/5)" if i.get("rating") else "") + "</li>"
        for i in items
    )
    body = (
        f"<p>Dear {escape(parent['full_name'])},</p>"
        f"<p>Teachers left the following feedback for {escape(student_name)}:</p>"
        f"<ul>{rows}</ul>"
        + _footer(school, "/dashboard/parent/feedback")
    )
    return EmailService.send(parent.get("email", ""), f"[{school}] Lesson feedback for {student_name}", body)


def send_leave_response(application: dict) -> bool:
    school = current_app.config.get("SCHOOL_NAME", "EduConnect")
    status = LEAVE_STATUS_LABELS.get(application["status"], application["status"])
    body = (
        f"<p>Dear {escape(application['parent_name'])},</p>"
        f"<p>The leave application for {escape(application['student_name'])} "
        f"({escape(application['start_date'])} to {escape(application['end_date'])}) was <strong>{status}</strong>.</p>"
    )
    if application.get("teacher_response"):
        body += f"<p>Teacher's note: {escape(application['teacher_response'])}</p>"
    body += _footer(school, "/dashboard/parent/leave")
    return EmailService.send(application.get("parent_email", ""), f"[{school}] Leave application {status}", body)


def send_student_report(parent: dict, report: dict) -> bool:
    school = current_app.config.get("SCHOOL_NAME", "EduConnect")
    body = (
        f"<p>Dear {escape(parent['full_name'])},</p>"
        f"<p>{escape(report['homeroom_teacher_name'])} has sent the report for "
        f"{escape(report['student_name'])} ({escape(report['class_name'])}, {escape(report['period_name'])}).</p>"
        f"<p><strong>Strengths:</strong> {escape(report['strengths'])}</p>"
        f"<p><strong>Needs work:</strong> {escape(report['weaknesses'])}</p>"
        "<p>Please read the full report and let the teacher know whether you agree.</p>"
        + _footer(school, "/dashboard/parent/reports")
    )
    return EmailService.send(parent.get("email", ""), f"[{school}] Report for {report['student_name']}", body)
