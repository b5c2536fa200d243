import asyncio
import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import NotifyFailure
from .settings import Settings

logger = logging.getLogger(__name__)


class SnsNotifier:
    """
    Fire-and-forget SMS/topic alerts over SNS.
    `notify` never raises: failures are logged and reported as False.
    """

    def __init__(self, client, recipient: str):
        self.client = client
        self.recipient = recipient

    def _publish_sync(self, message: str, recipient: str) -> str:
        params = {"Message": message}
        if recipient.startswith("arn:"):
            params["TopicArn"] = recipient
        else:
            params["PhoneNumber"] = recipient
        try:
            resp = self.client.publish(**params)
        except (ClientError, BotoCoreError) as e:
            raise NotifyFailure(recipient, str(e)) from e
        return resp.get("MessageId", "")

    async def notify(self, message: str, recipient: Optional[str] = None) -> bool:
        to = recipient or self.recipient
        try:
            msg_id = await asyncio.to_thread(self._publish_sync, message, to)
        except NotifyFailure as e:
            logger.error(f"[SNS][ERROR] {e}")
            return False
        logger.info(f"[SNS] alert sent to {to} message_id={msg_id}")
        return True


class LogNotifier:
    """Used when no recipient is configured; alerts only reach the log."""

    async def notify(self, message: str, recipient: Optional[str] = None) -> bool:
        logger.warning(f"[SNS] no recipient configured; alert not sent: {message}")
        return False


def build_notifier(settings: Settings):
    if not settings.alert_phone_number:
        return LogNotifier()
    cfg = Config(
        region_name=settings.aws_region,
        connect_timeout=settings.fetch_timeout_secs,
        read_timeout=settings.fetch_timeout_secs,
        retries={"max_attempts": 1},
    )
    client = boto3.client("sns", config=cfg)
    return SnsNotifier(client, settings.alert_phone_number)
