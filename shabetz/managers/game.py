from __future__ import annotations
import logging
import time
from typing import Dict, List, Optional, Protocol

from pydantic import ValidationError

from ..logging_setup import GAME_ID_VAR
from ..schemas import (
    COMMIT_ACTIONS,
    Envelope,
    ErrorPayload,
    Participant,
    Presence,
    envelope,
    parse_action,
)

log = logging.getLogger(__name__)

MAX_PARTICIPANTS = 2
GAME_FULL = 'Game is full'

class Transport(Protocol):
    """Delivers relay messages to one connection of a concrete transport."""

    async def send(self, conn_id: str, message: dict) -> None: ...

    async def close(self, conn_id: str) -> None: ...

class Room:
    def __init__(self, game_id: str):
        self.id = game_id
        # conn_id -> participant, in join order
        self.members: Dict[str, Participant] = {}
        self.last_state: Optional[dict] = None
        self.last_update: float = time.time()

    def presence(self) -> Presence:
        return Presence(count=len(self.members), participants=list(self.members.values()))

    def conn_for_role(self, role: str) -> Optional[str]:
        return next((cid for cid, p in self.members.items() if p.role == role), None)

    def others(self, conn_id: str) -> List[str]:
        return [cid for cid in self.members if cid != conn_id]

class RoomManager:
    """Session membership and message forwarding for the relay.

    The relay holds no game logic. It admits at most two participants per
    game, replaces a participant's old connection on reconnect, and routes
    messages by role: snapshots only flow from the host, commit requests
    only flow to it.
    """

    def __init__(self, transport: Transport, max_participants: int = MAX_PARTICIPANTS):
        self.transport = transport
        self.max_participants = max_participants
        self.rooms: Dict[str, Room] = {}
        self._conn_room: Dict[str, str] = {}

    def get_or_create(self, game_id: str) -> Room:
        if game_id not in self.rooms:
            self.rooms[game_id] = Room(game_id)
        return self.rooms[game_id]

    def room_of(self, conn_id: str) -> Optional[Room]:
        game_id = self._conn_room.get(conn_id)
        return self.rooms.get(game_id) if game_id else None

    async def _reject(self, conn_id: str, game_id: str, message: str) -> None:
        await self.transport.send(conn_id, envelope('error', game_id, ErrorPayload(message=message)))
        await self.transport.close(conn_id)

    async def _broadcast_presence(self, room: Room) -> None:
        message = envelope('presence', room.id, room.presence())
        for cid in list(room.members):
            await self.transport.send(cid, message)

    async def join(self, conn_id: str, game_id: str, participant: Participant) -> bool:
        GAME_ID_VAR.set(game_id)
        previous = self.room_of(conn_id)
        if previous is not None and previous.id != game_id:
            await self.leave(conn_id)
        room = self.get_or_create(game_id)
        holder = room.conn_for_role(participant.role)
        replaced: Optional[str] = None

        if holder is not None and holder != conn_id:
            if room.members[holder].name == participant.name:
                # Same participant reconnecting: the new connection wins
                replaced = holder
                del room.members[holder]
                self._conn_room.pop(holder, None)
            elif len(room.members) >= self.max_participants:
                log.info('Rejecting %s (%s): game is full', participant.name, participant.role)
                await self._reject(conn_id, game_id, GAME_FULL)
                return False
            else:
                log.info('Rejecting %s: role %s is taken', participant.name, participant.role)
                await self._reject(conn_id, game_id, f'Role {participant.role} is already taken')
                return False
        elif conn_id not in room.members and len(room.members) >= self.max_participants:
            log.info('Rejecting %s (%s): game is full', participant.name, participant.role)
            await self._reject(conn_id, game_id, GAME_FULL)
            return False

        room.members[conn_id] = participant
        room.last_update = time.time()
        self._conn_room[conn_id] = game_id
        log.info('%s (%s) joined, %d in game', participant.name, participant.role, len(room.members))
        await self._broadcast_presence(room)
        if replaced is not None:
            log.info('Closing stale connection of %s', participant.name)
            await self.transport.close(replaced)
        return True

    async def leave(self, conn_id: str) -> None:
        room = self.room_of(conn_id)
        self._conn_room.pop(conn_id, None)
        if room is None or conn_id not in room.members:
            return
        GAME_ID_VAR.set(room.id)
        participant = room.members.pop(conn_id)
        log.info('%s (%s) left', participant.name, participant.role)
        if not room.members:
            del self.rooms[room.id]
            log.info('Game %s closed, no participants left', room.id)
            return
        await self._broadcast_presence(room)

    async def relay(self, conn_id: str, message: Envelope) -> None:
        room = self.room_of(conn_id)
        if room is None:
            log.warning('Dropping %s from %s: not joined', message.type, conn_id)
            return
        GAME_ID_VAR.set(room.id)
        sender = room.members[conn_id]
        room.last_update = time.time()

        if message.type == 'state':
            if sender.role != 'host':
                log.warning('Dropping state from %s: only the host broadcasts state', sender.name)
                return
            room.last_state = message.payload
            targets = room.others(conn_id)
        elif message.type == 'action':
            try:
                action = parse_action(message.payload)
            except ValidationError as e:
                log.warning('Dropping malformed action from %s: %s', sender.name, e)
                return
            if action.type in COMMIT_ACTIONS:
                host = room.conn_for_role('host')
                if sender.role == 'host' or host is None:
                    log.warning('Dropping %s from %s: no host to commit to', action.type, sender.name)
                    return
                targets = [host]
            else:
                targets = room.others(conn_id)
        else:
            log.warning('Dropping unexpected %s message from %s', message.type, sender.name)
            return

        out = envelope(message.type, room.id, message.payload)
        for cid in targets:
            await self.transport.send(cid, out)

    async def handle(self, conn_id: str, raw: dict, game_id: Optional[str] = None) -> None:
        """Entry point for transports that deliver whole envelopes."""
        try:
            message = Envelope.model_validate(raw)
        except ValidationError as e:
            log.warning('Dropping malformed envelope from %s: %s', conn_id, e)
            return
        if message.type == 'join':
            target = game_id or message.gameId
            try:
                participant = Participant.model_validate(message.payload)
            except ValidationError as e:
                log.warning('Dropping malformed join from %s: %s', conn_id, e)
                return
            if not target:
                await self._reject(conn_id, '', 'gameId is required')
                return
            await self.join(conn_id, target, participant)
        else:
            await self.relay(conn_id, message)

    def summary(self, game_id: str) -> Optional[dict]:
        room = self.rooms.get(game_id)
        if room is None:
            return None
        return {
            'gameId': room.id,
            'presence': room.presence().model_dump(),
            'hasState': room.last_state is not None,
            'lastUpdate': room.last_update,
        }
