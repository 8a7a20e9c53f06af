import json
from typing import Optional

import redis

from restobook.config import settings


class RedisClient:
    """Session-scoped wizard token: which booking a browser session is working on."""

    def __init__(self, client=None):
        self.client = client or redis.from_url(
            settings.REDIS_URL,
            decode_responses=True
        )

    def get_active_booking(self, session_id: str) -> Optional[dict]:
        data = self.client.get(f"booking:{session_id}")
        return json.loads(data) if data else None

    def set_active_booking(self, session_id: str, booking_id: str, stage: str):
        self.client.setex(
            f"booking:{session_id}",
            settings.REDIS_TTL,
            json.dumps({"booking_id": booking_id, "stage": stage})
        )

    def clear_active_booking(self, session_id: str):
        self.client.delete(f"booking:{session_id}")


redis_client = RedisClient()
