import os
import json
import logging
from datetime import datetime, timezone

from . import core

logger = logging.getLogger(__name__)

PIN_EMAIL_TOPIC = os.getenv('PIN_EMAIL_TOPIC', 'email-notifications-queue')


async def publish(topic: str, data: dict, key: str | None = None) -> bool:
    """Send one JSON event; returns False when no producer is running"""
    producer = core.KAFKA_PRODUCER
    if not producer:
        logger.warning({'msg': 'kafka_unavailable', 'topic': topic})
        return False
    await producer.send_and_wait(
        topic,
        json.dumps(data).encode('utf-8'),
        key=key.encode('utf-8') if key else None,
    )
    return True


async def send_registration_pin(user_id: str, email: str, pin: str) -> bool:
    """Hand the verification PIN to the email worker"""
    event = {
        'type': 'registration_pin',
        'userId': user_id,
        'email': email,
        'pin': pin,
        'created_at': datetime.now(timezone.utc).isoformat(),
    }
    try:
        sent = await publish(PIN_EMAIL_TOPIC, event, key=user_id)
    except Exception as e:
        # a lost PIN does not undo the registration
        logger.error({'msg': 'pin_publish_failed', 'userId': user_id, 'error': str(e)})
        return False
    if sent:
        logger.info({'msg': 'pin_published', 'userId': user_id})
    return sent
