# ═══════════════════════════════════════════════════════════════
# MLM Back-Office — Live Update Channel
# At-most-once fan-out to connected WebSocket clients.
# A client whose send fails is dropped; nothing is queued or retried.
# ═══════════════════════════════════════════════════════════════
import json
import logging

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class EventPublisher:
    def __init__(self):
        self.clients: list = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.clients.append(websocket)
        logger.info(f"WebSocket client connected ({len(self.clients)} open)")
        await websocket.send_json({"type": "connected", "message": "WebSocket connected"})

    def disconnect(self, websocket: WebSocket):
        if websocket in self.clients:
            self.clients.remove(websocket)
            logger.info(f"WebSocket client disconnected ({len(self.clients)} open)")

    async def publish(self, event_type: str, data) -> int:
        """Send one event to every open client. Returns how many it reached."""
        message = json.dumps({"type": event_type, "data": jsonable_encoder(data)})
        delivered = 0
        for client in list(self.clients):
            try:
                await client.send_text(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping WebSocket client after failed send of {event_type}: {e}")
                self.disconnect(client)
        return delivered


publisher = EventPublisher()
