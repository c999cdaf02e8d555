"""Notification utilities for critical errors."""

import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class NotificationService:
    """Sends a webhook notification when a sync run fails as a whole."""

    def __init__(self):
        """Initialize notification service."""
        self.notification_enabled = os.getenv("ENABLE_NOTIFICATIONS", "false").lower() == "true"
        self.notification_webhook = os.getenv("NOTIFICATION_WEBHOOK_URL")

    async def send_critical_error_notification(
        self,
        run_id: str,
        error_message: str,
        context: Optional[dict] = None
    ):
        """
        Send notification for a run-level failure.

        Args:
            run_id: The sync run ID
            error_message: The error message
            context: Optional additional context, e.g. the phase the run failed in
        """
        if not self.notification_enabled:
            logger.info(f"Notifications disabled, skipping notification for run {run_id}")
            return

        notification_message = (
            f"Critical Error in Sync Run\n"
            f"Run ID: {run_id}\n"
            f"Error: {error_message}\n"
        )

        if context:
            notification_message += f"Context: {context}\n"

        logger.warning(f"CRITICAL ERROR NOTIFICATION: {notification_message}")

        if not self.notification_webhook:
            return

        try:
            async with httpx.AsyncClient() as client:
                await client.post(
                    self.notification_webhook,
                    json={
                        "text": notification_message,
                        "run_id": run_id,
                        "error": error_message
                    },
                    timeout=10.0
                )
            logger.info(f"Notification sent for run {run_id}")
        except httpx.HTTPError as e:
            logger.error(f"Failed to send notification: {e}")
