import logging
import smtplib
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Dict

from fastapi import Request
from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import Settings

log = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


def template_environment(directory: Path = TEMPLATE_DIR) -> Environment:
    """Built once at start-up; loaded templates are cached for the life of the process."""
    return Environment(
        loader=FileSystemLoader(str(directory)),
        autoescape=select_autoescape(["html"]),
    )


def render_template(templates: Environment, name: str, context: Dict[str, Any] | None = None) -> str:
    return templates.get_template(name).render(**(context or {}))


def get_templates(request: Request) -> Environment:
    return request.app.state.templates


class Mailer:
    """SMTP transport, built once at start-up and shared by the routers."""

    def __init__(self, settings: Settings, templates: Environment | None = None):
        self.settings = settings
        self.templates = templates or template_environment()

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        if s.smtp_port == 465:
            conn = smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=30)
        else:
            conn = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=30)
            conn.starttls()
        if s.smtp_user:
            conn.login(s.smtp_user, s.smtp_password)
        return conn

    def deliver(self, message: EmailMessage):
        with self._connect() as conn:
            conn.send_message(message)

    def send(self, to: str, subject: str, template: str, context: Dict[str, Any] | None = None):
        html = render_template(self.templates, template, context)
        if not self.settings.mail_enabled:
            log.info("Mail disabled, not sending %r to %s", subject, to)
            return
        message = EmailMessage()
        message["From"] = self.settings.mail_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")
        self.deliver(message)
        log.info("Email %r sent to %s", subject, to)

    def send_quietly(self, to: str, subject: str, template: str, context: Dict[str, Any] | None = None) -> bool:
        try:
            self.send(to, subject, template, context)
            return True
        except Exception:
            log.exception("Email %r to %s failed", subject, to)
            return False


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer
