from __future__ import annotations
import asyncio
import logging
from typing import Optional
from urllib.parse import quote

import socketio

from .managers.session import ChannelClosed

log = logging.getLogger(__name__)

_CLOSED = object()


class SocketIOChannel:
    """Relay connection over Socket.IO, for use by a `ReplicationSession`.

    Reconnection is left to the session, so the underlying client never
    reconnects on its own.
    """

    EVENTS = ('presence', 'state', 'action', 'error')

    def __init__(self, url: str, client: Optional[socketio.AsyncClient] = None):
        self.url = url.rstrip('/')
        self.sio = client or socketio.AsyncClient(reconnection=False)
        self._inbox: asyncio.Queue = asyncio.Queue()
        for event in self.EVENTS:
            self.sio.on(event, self._handler(event))
        self.sio.on('disconnect', self._on_disconnect)

    def _handler(self, event: str):
        async def handler(data):
            if not isinstance(data, dict):
                data = {'type': event, 'payload': data}
            await self._inbox.put(data)
        return handler

    async def _on_disconnect(self, *args):
        await self._inbox.put(_CLOSED)

    async def connect(self, game_id: str) -> None:
        self._inbox = asyncio.Queue()
        url = f'{self.url}?gameId={quote(game_id)}'
        try:
            await self.sio.connect(url, transports=['websocket'])
        except socketio.exceptions.ConnectionError as e:
            raise ChannelClosed(f'cannot connect to {self.url}: {e}') from e
        log.debug('Connected to %s', url)

    async def send(self, message: dict) -> None:
        if not self.sio.connected:
            raise ChannelClosed('not connected')
        await self.sio.emit(message['type'], message)

    async def receive(self) -> dict:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise ChannelClosed('disconnected')
        return item

    async def close(self) -> None:
        if self.sio.connected:
            await self.sio.disconnect()
        await self._inbox.put(_CLOSED)
