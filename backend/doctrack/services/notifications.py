"""
Outbound webhooks: translation submission and user/staff notifications.

Delivery is best effort. notify() reports success as a bool and never raises;
retrying is the outbox's job.
"""
import logging

import httpx

from doctrack.config import Settings, settings

logger = logging.getLogger(__name__)

TRANSLATION_SUBMISSION = "translation_submission"
PAYMENT_APPROVED = "payment_approved"
PAYMENT_REJECTED = "payment_rejected"
AUTHENTICATOR_PENDING = "authenticator_pending"

EVENT_TYPES = (TRANSLATION_SUBMISSION, PAYMENT_APPROVED, PAYMENT_REJECTED, AUTHENTICATOR_PENDING)


class NotificationDispatcher:
    def __init__(
        self,
        endpoints: dict[str, str | None],
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ):
        self._endpoints = endpoints
        self._timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, cfg: Settings = settings, client: httpx.Client | None = None) -> "NotificationDispatcher":
        return cls(
            endpoints={
                TRANSLATION_SUBMISSION: cfg.translation_webhook_url,
                PAYMENT_APPROVED: cfg.notification_webhook_url,
                PAYMENT_REJECTED: cfg.notification_webhook_url,
                AUTHENTICATOR_PENDING: cfg.authenticator_webhook_url,
            },
            timeout=cfg.webhook_timeout_seconds,
            client=client,
        )

    def notify(self, event_type: str, recipient_user_id: str | None, payload: dict) -> bool:
        url = self._endpoints.get(event_type)
        if not url:
            logger.warning("No endpoint configured for %s; not delivered", event_type)
            return False

        try:
            resp = self._client.post(url, json=payload, timeout=self._timeout)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "%s webhook for user %s rejected: HTTP %d - %s",
                event_type, recipient_user_id, exc.response.status_code, exc.response.text[:200],
            )
            return False
        except httpx.HTTPError as exc:
            logger.warning("%s webhook for user %s failed: %s", event_type, recipient_user_id, exc)
            return False

        logger.info("%s webhook delivered for user %s", event_type, recipient_user_id)
        return True

    def close(self):
        self._client.close()
