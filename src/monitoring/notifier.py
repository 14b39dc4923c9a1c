"""Notification transports used by alert actions.

Provides:
- Notifier: abstract capability (email / SMS / webhook / chat message)
- ChannelNotifier: SMTP for email, Twilio Messages API for SMS, and JSON
  POSTs over httpx for webhooks and Slack

Every send raises :class:`~src.monitoring.errors.DispatchError` on failure
or when the channel is not configured; the alert engine catches and logs it
per action.
"""

from __future__ import annotations

import abc
import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

import httpx
import structlog

from src.core.config import Settings
from src.monitoring.errors import DispatchError

logger = structlog.get_logger(__name__)


class Notifier(abc.ABC):
    """Channel-agnostic message delivery capability."""

    @abc.abstractmethod
    async def send_email(self, recipients: list[str], subject: str, body: str) -> None:
        """Send an HTML email to every recipient."""

    @abc.abstractmethod
    async def send_sms(self, recipients: list[str], body: str) -> None:
        """Send a text message to every phone number."""

    @abc.abstractmethod
    async def send_webhook(
        self, url: str, payload: dict[str, Any], auth_token: str | None = None
    ) -> None:
        """POST *payload* as JSON, with an optional bearer token."""

    @abc.abstractmethod
    async def send_chat_message(self, webhook_url: str, payload: dict[str, Any]) -> None:
        """POST a chat-formatted payload (Slack incoming webhook)."""

    async def aclose(self) -> None:
        """Release transport resources. Default: nothing to release."""


class ChannelNotifier(Notifier):
    """Concrete notifier configured from :class:`~src.core.config.Settings`.

    Parameters:
        settings: SMTP, Twilio and timeout configuration.
        client: Optional pre-built ``httpx.AsyncClient``; one is created
            lazily otherwise and closed by :meth:`aclose`.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._client = client
        self._owns_client = client is None
        self._timeout = httpx.Timeout(settings.notifier_timeout_seconds)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Email
    # ------------------------------------------------------------------

    async def send_email(self, recipients: list[str], subject: str, body: str) -> None:
        cfg = self._settings
        if not cfg.smtp_host:
            raise DispatchError("email", "SMTP_HOST not set")
        if not recipients:
            raise DispatchError("email", "no recipients")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = cfg.email_from
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(body, "html"))

        try:
            await asyncio.to_thread(self._smtp_send, msg, recipients)
        except (smtplib.SMTPException, OSError) as exc:
            raise DispatchError("email", str(exc)) from exc

        logger.info("email_sent", recipients=len(recipients), subject=subject)

    def _smtp_send(self, msg: MIMEMultipart, recipients: list[str]) -> None:
        cfg = self._settings
        with smtplib.SMTP(
            cfg.smtp_host, cfg.smtp_port, timeout=cfg.notifier_timeout_seconds
        ) as server:
            if cfg.smtp_port == 587:
                server.starttls()
            if cfg.smtp_user and cfg.smtp_password:
                server.login(cfg.smtp_user, cfg.smtp_password)
            server.sendmail(msg["From"], recipients, msg.as_string())

    # ------------------------------------------------------------------
    # SMS
    # ------------------------------------------------------------------

    async def send_sms(self, recipients: list[str], body: str) -> None:
        cfg = self._settings
        if not (cfg.sms_account_sid and cfg.sms_auth_token and cfg.sms_from_number):
            raise DispatchError("sms", "Twilio credentials not set")

        url = f"{cfg.twilio_api_base}/Accounts/{cfg.sms_account_sid}/Messages.json"
        for number in recipients:
            await self._post(
                "sms",
                url,
                data={"From": cfg.sms_from_number, "To": number, "Body": body},
                auth=(cfg.sms_account_sid, cfg.sms_auth_token),
            )
        logger.info("sms_sent", recipients=len(recipients))

    # ------------------------------------------------------------------
    # Webhook / chat
    # ------------------------------------------------------------------

    async def send_webhook(
        self, url: str, payload: dict[str, Any], auth_token: str | None = None
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        await self._post("webhook", url, json=payload, headers=headers)
        logger.info("webhook_sent", url=url)

    async def send_chat_message(self, webhook_url: str, payload: dict[str, Any]) -> None:
        if not webhook_url:
            raise DispatchError("slack", "webhook URL not set")
        await self._post("slack", webhook_url, json=payload)
        logger.info("slack_sent")

    async def _post(self, channel: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.post(url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DispatchError(
                channel, f"HTTP {exc.response.status_code} from {url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DispatchError(channel, f"{type(exc).__name__}: {exc}") from exc
        return response
