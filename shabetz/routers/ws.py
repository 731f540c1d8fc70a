from __future__ import annotations
import logging
import uuid
from typing import Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

log = logging.getLogger(__name__)

router = APIRouter()


class WebSocketRegistry:
    """Open relay WebSockets keyed by connection id."""

    def __init__(self):
        self.sockets: Dict[str, WebSocket] = {}

    def __contains__(self, conn_id: str) -> bool:
        return conn_id in self.sockets

    def add(self, websocket: WebSocket) -> str:
        conn_id = f'ws-{uuid.uuid4().hex[:12]}'
        self.sockets[conn_id] = websocket
        return conn_id

    def remove(self, conn_id: str) -> None:
        self.sockets.pop(conn_id, None)

    async def send(self, conn_id: str, message: dict) -> None:
        websocket = self.sockets.get(conn_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError) as e:
            log.debug('Send to %s failed: %s', conn_id, e)

    async def close(self, conn_id: str) -> None:
        websocket = self.sockets.pop(conn_id, None)
        if websocket is None:
            return
        try:
            await websocket.close()
        except RuntimeError as e:
            log.debug('Close of %s failed: %s', conn_id, e)


@router.websocket('/ws/{game_id}')
async def relay_socket(websocket: WebSocket, game_id: str):
    relay = websocket.app.state.relay
    registry: WebSocketRegistry = websocket.app.state.websockets
    await websocket.accept()
    conn_id = registry.add(websocket)
    try:
        # The relay closes rejected and replaced connections by dropping them from the registry
        while conn_id in registry:
            try:
                data = await websocket.receive_json()
            except ValueError:
                log.warning('Dropping undecodable frame from %s', conn_id)
                continue
            if not isinstance(data, dict):
                log.warning('Dropping non-object frame from %s', conn_id)
                continue
            await relay.handle(conn_id, data, game_id)
    except WebSocketDisconnect:
        pass
    finally:
        registry.remove(conn_id)
        await relay.leave(conn_id)
