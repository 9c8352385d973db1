"""
SQS integration for outbound marketplace messages.

Queues are FIFO: every message carries a group id (one per supplier and
message type) and uses its queueMessageId for deduplication.
"""

from functools import lru_cache
from typing import Optional
import json

import boto3
from botocore.exceptions import BotoCoreError, ClientError
import structlog

from config import settings

logger = structlog.get_logger(__name__)


class QueueError(Exception):
    """SQS send failure."""
    pass


@lru_cache()
def get_sqs_client():
    """
    Get cached SQS client.

    Credentials fall back to the default boto3 chain when not configured.
    """
    return boto3.client(
        "sqs",
        region_name=settings.sqs_region,
        aws_access_key_id=settings.sqs_access_key_id,
        aws_secret_access_key=settings.sqs_secret_access_key,
    )


def send_message(queue_url: Optional[str], body: dict, group_id: str) -> bool:
    """
    Send one JSON message to a FIFO queue.

    Args:
        queue_url: Target queue URL
        body: Message envelope (must contain queueMessageId)
        group_id: FIFO message group

    Returns:
        True if sent, False if queues are not configured

    Raises:
        QueueError: If the send fails
    """
    if not queue_url or not settings.sqs_region:
        logger.warning("sqs_not_configured_skipping_send", group_id=group_id)
        return False

    try:
        response = get_sqs_client().send_message(
            QueueUrl=queue_url,
            MessageBody=json.dumps(body),
            MessageGroupId=group_id,
            MessageDeduplicationId=body["queueMessageId"],
        )

        logger.info(
            "sqs_message_sent",
            group_id=group_id,
            message_type=body.get("type"),
            message_id=response.get("MessageId")
        )
        return True

    except (BotoCoreError, ClientError) as e:
        logger.error("sqs_send_failed", group_id=group_id, error=str(e))
        raise QueueError(f"Failed to send SQS message: {str(e)}")
