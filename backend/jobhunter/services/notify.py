"""New-job notifications for saved queries (HTML + plain-text email)."""
from __future__ import annotations

import html
import logging
import smtplib
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional

from jobhunter.core.config import RuntimeConfig

logger = logging.getLogger("notify")


class NotificationGateway(ABC):
    @abstractmethod
    def notify(self, user: Dict[str, Any], saved_query: Dict[str, Any], new_count: int) -> None:
        """Best-effort; must not raise into the caller."""
        pass

    def shutdown(self, wait: bool = True) -> None:
        pass


def _plural(n: int) -> str:
    return "s" if n > 1 else ""


def build_subject(saved_query: Dict[str, Any], new_count: int) -> str:
    return f"{new_count} New Job{_plural(new_count)} Found: {saved_query.get('query', '')}"


def build_plain_body(user: Dict[str, Any], saved_query: Dict[str, Any], new_count: int, app_url: str) -> str:
    name = user.get("first_name") or user.get("username") or "there"
    return (
        f"Hi {name},\n\n"
        f"We found {new_count} new job posting{_plural(new_count)} that match your saved search.\n\n"
        f"Job title: {saved_query.get('query', '')}\n"
        f"Location:  {saved_query.get('location', '')}\n"
        f"Distance:  {saved_query.get('distance', '')} miles\n\n"
        f"View jobs: {app_url}\n"
    )


def build_html_body(user: Dict[str, Any], saved_query: Dict[str, Any], new_count: int, app_url: str) -> str:
    name = html.escape(str(user.get("first_name") or user.get("username") or "there"))
    query = html.escape(str(saved_query.get("query", "")))
    location = html.escape(str(saved_query.get("location", "")))
    distance = html.escape(str(saved_query.get("distance", "")))
    url = html.escape(app_url, quote=True)
    return f"""<div style="font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;max-width:600px;margin:0 auto;padding:16px;color:#333">
<h1 style="margin:0 0 8px;color:#2c3e50">New Jobs Found!</h1>
<p><strong>{new_count} New Job{_plural(new_count)}</strong></p>
<p>Hi {name},</p>
<p>We've found <strong>{new_count} new job posting{_plural(new_count)}</strong> that match your saved search.</p>
<table style="border-collapse:collapse;font-size:14px;margin:8px 0">
<tr><td style="padding:6px 8px;font-weight:600">Job Title:</td><td style="padding:6px 8px">{query}</td></tr>
<tr><td style="padding:6px 8px;font-weight:600">Location:</td><td style="padding:6px 8px">{location}</td></tr>
<tr><td style="padding:6px 8px;font-weight:600">Distance:</td><td style="padding:6px 8px">{distance} miles</td></tr>
</table>
<p><a href="{url}" style="color:#1a73e8">View Jobs Now</a></p>
<hr style="border:none;border-top:1px solid #e0e0e0;margin:20px 0 8px">
<p style="font-size:11px;color:#999">This is an automated notification from your saved search.</p>
</div>"""


class LogNotifier(NotificationGateway):
    def notify(self, user: Dict[str, Any], saved_query: Dict[str, Any], new_count: int) -> None:
        logger.info(
            "Email notifications are disabled. %s new jobs for user %s (query id %s)",
            new_count,
            user.get("id"),
            saved_query.get("id"),
        )


class EmailNotifier(NotificationGateway):
    """Sends on a single background worker so the scheduled run never waits on SMTP."""

    def __init__(self, cfg: RuntimeConfig, executor: Optional[ThreadPoolExecutor] = None):
        self.cfg = cfg
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="notify")

    def notify(self, user: Dict[str, Any], saved_query: Dict[str, Any], new_count: int) -> None:
        to_addr = (user.get("email") or "").strip()
        if not to_addr:
            logger.warning("User %s has no email address; skipping notification", user.get("id"))
            return
        future = self.executor.submit(self._send, user, saved_query, new_count)
        future.add_done_callback(self._log_unexpected_failure)

    @staticmethod
    def _log_unexpected_failure(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Notification worker crashed", exc_info=(type(exc), exc, exc.__traceback__))

    def _build_message(self, user: Dict[str, Any], saved_query: Dict[str, Any], new_count: int) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = build_subject(saved_query, new_count)
        msg["From"] = self.cfg.from_email
        msg["To"] = user["email"]
        msg.attach(MIMEText(build_plain_body(user, saved_query, new_count, self.cfg.app_url), "plain", "utf-8"))
        msg.attach(MIMEText(build_html_body(user, saved_query, new_count, self.cfg.app_url), "html", "utf-8"))
        return msg

    def _send(self, user: Dict[str, Any], saved_query: Dict[str, Any], new_count: int) -> bool:
        cfg = self.cfg
        if not all([cfg.smtp_host, cfg.smtp_user, cfg.smtp_password]):
            logger.warning("SMTP not configured (set SMTP_HOST, SMTP_USER, SMTP_PASSWORD); skipping email")
            return False

        try:
            msg = self._build_message(user, saved_query, new_count)
            with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port) as server:
                server.starttls()
                server.login(cfg.smtp_user, cfg.smtp_password)
                server.sendmail(cfg.from_email, [user["email"]], msg.as_string())
            logger.info("Job notification email sent to %s for query %r", user["email"], saved_query.get("query"))
            return True
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", user.get("email"), exc)
            return False

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)


def build_notifier(cfg: RuntimeConfig) -> NotificationGateway:
    if not cfg.email_enabled:
        return LogNotifier()
    return EmailNotifier(cfg)
