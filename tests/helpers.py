from __future__ import annotations
import asyncio
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from shabetz.managers.game import RoomManager
from shabetz.managers.session import ChannelClosed
from shabetz.schemas import Placement, Position

WORDS = {'שלום', 'בית', 'אבא', 'אמא', 'ספר', 'מים', 'דג', 'גן', 'לב', 'אור', 'ילד', 'יום', 'שמש', 'אבגדה'}


def place(row: int, col: int, letter: str, index: int = 0, joker: bool = False) -> Placement:
    return Placement(position=Position(row=row, col=col), letter=letter, sourceTileIndex=index, isJoker=joker)


def across(word: str, row: int, col: int, first_index: int = 0) -> List[Placement]:
    return [place(row, col + i, ch, first_index + i) for i, ch in enumerate(word)]


def down(word: str, row: int, col: int, first_index: int = 0) -> List[Placement]:
    return [place(row + i, col, ch, first_index + i) for i, ch in enumerate(word)]


async def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError('condition not reached in time')
        await asyncio.sleep(0.01)


class RecordingTransport:
    def __init__(self):
        self.sent: Dict[str, List[dict]] = defaultdict(list)
        self.closed: List[str] = []

    async def send(self, conn_id: str, message: dict) -> None:
        self.sent[conn_id].append(message)

    async def close(self, conn_id: str) -> None:
        self.closed.append(conn_id)

    def last(self, conn_id: str) -> Optional[dict]:
        return self.sent[conn_id][-1] if self.sent[conn_id] else None


class LoopbackRelay:
    """A relay hub in the same event loop, reached through in-memory channels."""

    def __init__(self):
        self.inboxes: Dict[str, asyncio.Queue] = {}
        self.manager = RoomManager(self)
        self._counter = 0

    async def send(self, conn_id: str, message: dict) -> None:
        inbox = self.inboxes.get(conn_id)
        if inbox is not None:
            await inbox.put(message)

    async def close(self, conn_id: str) -> None:
        inbox = self.inboxes.pop(conn_id, None)
        if inbox is not None:
            await inbox.put(None)

    def channel(self) -> 'LoopbackChannel':
        return LoopbackChannel(self)

    def next_id(self) -> str:
        self._counter += 1
        return f'conn-{self._counter}'


class LoopbackChannel:
    def __init__(self, relay: LoopbackRelay):
        self.relay = relay
        self.conn_id: Optional[str] = None
        self.game_id = ''
        self.connects = 0
        self.inbox: asyncio.Queue = asyncio.Queue()

    async def connect(self, game_id: str) -> None:
        self.connects += 1
        self.game_id = game_id
        self.conn_id = self.relay.next_id()
        self.inbox = asyncio.Queue()
        self.relay.inboxes[self.conn_id] = self.inbox

    async def send(self, message: dict) -> None:
        if self.conn_id not in self.relay.inboxes:
            raise ChannelClosed('not connected')
        await self.relay.manager.handle(self.conn_id, message, self.game_id)

    async def receive(self) -> dict:
        message = await self.inbox.get()
        if message is None:
            raise ChannelClosed('closed by relay')
        return message

    async def close(self) -> None:
        # Also what a dropped network connection looks like to the relay
        conn_id = self.conn_id
        await self.relay.close(conn_id)
        await self.relay.manager.leave(conn_id)

    drop = close
