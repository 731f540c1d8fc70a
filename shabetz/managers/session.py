from __future__ import annotations
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

from pydantic import ValidationError

from ..board import has_tile, overlay
from ..config import Config
from ..game_logic import (
    GameError,
    GameNotActive,
    GameOptions,
    IllegalAction,
    InvalidMove,
    NotYourTurn,
    exchange_tiles,
    pass_turn,
    play_word,
    settle_turn,
    start_game,
)
from ..highscores import HighscoreStore, record_game, record_turn
from ..letters import JOKER
from ..logging_setup import GAME_ID_VAR
from ..schemas import (
    CommitExchange,
    CommitMove,
    CommitPass,
    Envelope,
    ErrorPayload,
    Participant,
    Placement,
    Position,
    Presence,
    Role,
    Snapshot,
    TilePlaced,
    TileRemoved,
    envelope,
    parse_action,
)
from ..scoring import MoveScore, score_move
from ..validation import Lexicon, MoveError, validate
from .game import GAME_FULL
from .timer import TurnTimer

log = logging.getLogger(__name__)

HOST_PLAYER = 0
JOINER_PLAYER = 1

class ChannelClosed(Exception):
    pass

class SessionFull(Exception):
    pass

class Channel(Protocol):
    """Client end of a relay connection."""

    async def connect(self, game_id: str) -> None: ...

    async def send(self, message: dict) -> None: ...

    async def receive(self) -> dict:
        """Next envelope from the relay; raises `ChannelClosed` when the connection drops."""
        ...

    async def close(self) -> None: ...


class ReplicationSession:
    """One participant's view of a replicated game.

    The host (player 0) is the only writer: its own moves and the joiner's
    commit requests go through a single command queue and each applied
    command produces a new `state` broadcast. The joiner (player 1) computes
    proposals with the same engine, sends them as commit requests and keeps
    them provisional until the host's snapshot arrives.
    """

    def __init__(
        self,
        game_id: str,
        name: str,
        role: Role,
        channel: Channel,
        lexicon: Lexicon,
        options: Optional[GameOptions] = None,
        rng: Optional[random.Random] = None,
        highscores: Optional[HighscoreStore] = None,
        reconnect_delay: float = Config.RECONNECT_DELAY,
        timer_interval: float = 1.0,
        on_change: Optional[Callable[['ReplicationSession'], None]] = None,
    ):
        self.game_id = game_id
        self.name = name
        self.role = role
        self.player_id = HOST_PLAYER if role == 'host' else JOINER_PLAYER
        self.channel = channel
        self.lexicon = lexicon
        self.options = options or GameOptions(
            tiles_per_player=Config.TILES_PER_PLAYER,
            seconds_per_turn=Config.SECONDS_PER_TURN,
        )
        self.rng = rng or random.Random()
        self.highscores = highscores
        self.reconnect_delay = reconnect_delay
        self.on_change = on_change

        # Connection state
        self.connected = False
        self.started = False
        self.reconnecting = False
        self.stopped = False
        self.connect_attempts = 0

        self.snapshot: Optional[Snapshot] = None
        self.provisional: Optional[Snapshot] = None
        self.presence: Optional[Presence] = None
        self.pending: List[Placement] = []
        self.peer_pending: Dict[Tuple[int, int], Placement] = {}
        self.last_score: Optional[MoveScore] = None
        self._recorded_end: Optional[str] = None
        self._unconfirmed: Optional[Tuple[str, int, MoveScore]] = None  # (epoch, turn number, score)

        self.timer = TurnTimer(self._on_turn_expired, interval=timer_interval)
        self._commands: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    @property
    def is_host(self) -> bool:
        return self.role == 'host'

    @property
    def current(self) -> Optional[Snapshot]:
        """Provisional state if a proposal is in flight, else the last confirmed snapshot."""
        return self.provisional or self.snapshot

    def my_turn(self) -> bool:
        snap = self.current
        return (
            snap is not None
            and snap.gameState.phase == 'playing'
            and snap.currentPlayer == self.player_id
        )

    def rack_view(self) -> List[str]:
        snap = self.current
        if snap is None:
            return []
        used = {p.sourceTileIndex for p in self.pending}
        return ['' if i in used else t for i, t in enumerate(snap.players[self.player_id].rack)]

    # Lifecycle

    def _start_background(self) -> None:
        if self.is_host and (self._worker is None or self._worker.done()):
            self._worker = asyncio.create_task(self._process_commands())
        self.timer.start()

    def _stop_background(self) -> None:
        self.timer.stop()
        if self._worker and not self._worker.done():
            self._worker.cancel()
        self._worker = None

    async def run(self) -> None:
        """Connect, join and handle relay messages until `leave()`.

        A dropped connection is retried after a fixed delay; a full game
        raises `SessionFull` and ends the session.
        """
        GAME_ID_VAR.set(self.game_id)
        self._start_background()
        try:
            while not self.stopped:
                self.connect_attempts += 1
                try:
                    await self.channel.connect(self.game_id)
                    self.connected = True
                    self.reconnecting = False
                    join = Participant(name=self.name, role=self.role)
                    await self.channel.send(envelope('join', self.game_id, join))
                    while True:
                        await self.handle(await self.channel.receive())
                except ChannelClosed as e:
                    log.info('Connection to game %s lost: %s', self.game_id, e or 'closed')
                except (ConnectionError, OSError) as e:
                    log.warning('Cannot reach relay for game %s: %s', self.game_id, e)
                finally:
                    self.connected = False
                if self.stopped:
                    break
                self.reconnecting = True
                log.info('Reconnecting in %.1fs', self.reconnect_delay)
                await asyncio.sleep(self.reconnect_delay)
        except SessionFull:
            self.stopped = True
            raise
        finally:
            self.reconnecting = False
            self._stop_background()

    async def leave(self) -> None:
        self.stopped = True
        self._stop_background()
        try:
            await self.channel.close()
        except ChannelClosed:
            pass
        log.info('%s left game %s', self.name, self.game_id)

    # Inbound

    async def handle(self, raw: dict) -> None:
        try:
            message = Envelope.model_validate(raw)
            if message.type == 'presence':
                await self._on_presence(Presence.model_validate(message.payload))
            elif message.type == 'state':
                self._on_state(Snapshot.model_validate(message.payload))
            elif message.type == 'action':
                await self._on_action(parse_action(message.payload))
            elif message.type == 'error':
                self._on_error(ErrorPayload.model_validate(message.payload))
            else:
                log.debug('Ignoring %s message', message.type)
        except ValidationError as e:
            log.warning('Dropping malformed message: %s', e)

    async def _on_presence(self, presence: Presence) -> None:
        self.presence = presence
        if presence.count < 2:
            log.info('Waiting for the other player (%d connected)', presence.count)
        elif self.is_host:
            if self.started:
                self._enqueue(self._resync)
            else:
                self._enqueue(self._start)
        self._changed()

    def _on_state(self, snapshot: Snapshot) -> None:
        if self.is_host:
            log.debug('Host ignores inbound state')
            return
        last = self.snapshot
        if last is not None and snapshot.epoch == last.epoch and snapshot.version <= last.version:
            log.debug('Discarding stale state v%d (have v%d)', snapshot.version, last.version)
            if snapshot.version == last.version and self.provisional is not None:
                # Host resent the current state without applying our proposal
                self.provisional = None
                self._unconfirmed = None
                self._changed()
            return
        self._adopt(snapshot)

    async def _on_action(self, action) -> None:
        if isinstance(action, TilePlaced):
            self.peer_pending[action.placement.position.key()] = action.placement
            self._changed()
        elif isinstance(action, TileRemoved):
            self.peer_pending.pop(action.position.key(), None)
            self._changed()
        elif self.is_host:
            self._enqueue(self._apply_commit, action)
        else:
            log.warning('Joiner dropped %s: commits are for the host', action.type)

    def _on_error(self, error: ErrorPayload) -> None:
        if error.message == GAME_FULL:
            log.error('Game %s is full', self.game_id)
            raise SessionFull(error.message)
        log.warning('Relay error: %s', error.message)

    # Shared state handling

    def _adopt(self, snapshot: Snapshot) -> None:
        was_playing = self.snapshot is not None and self.snapshot.gameState.phase == 'playing'
        self.snapshot = snapshot
        self.provisional = None
        self.peer_pending.clear()
        self.started = True
        if snapshot.currentPlayer != self.player_id or snapshot.gameState.phase != 'playing':
            self.pending = []
        self.timer.track(snapshot.gameState, snapshot.epoch)
        if self._unconfirmed is not None:
            self._confirm_turn(snapshot)
        if snapshot.gameState.phase == 'finished' and was_playing:
            self._record_end(snapshot)
        self._changed()

    def _record_end(self, snapshot: Snapshot) -> None:
        if self._recorded_end == snapshot.epoch:
            return
        self._recorded_end = snapshot.epoch
        me = snapshot.players[self.player_id]
        log.info('Game over: %s', ', '.join(f'{p.name} {p.score}' for p in snapshot.players))
        if self.highscores is not None:
            record_game(self.highscores, snapshot.players, self.player_id,
                        snapshot.gameState.moveHistory, self.game_id)
        log.debug('%s finished with %d points', me.name, me.score)

    def _record_turn(self, score: MoveScore) -> None:
        self.last_score = score
        if self.highscores is not None:
            record_turn(self.highscores, self.name, score, self.game_id)

    def _confirm_turn(self, snapshot: Snapshot) -> None:
        epoch, turn, score = self._unconfirmed
        history = snapshot.gameState.moveHistory
        if snapshot.epoch == epoch and len(history) < turn:
            return
        self._unconfirmed = None
        if snapshot.epoch != epoch:
            return
        move = history[turn - 1]
        if move.playerId == self.player_id and move.action == 'place-word':
            self._record_turn(score)

    def _changed(self) -> None:
        if self.on_change:
            self.on_change(self)

    async def _send(self, type_: str, payload) -> None:
        await self.channel.send(envelope(type_, self.game_id, payload))

    async def _send_transient(self, action) -> None:
        if not self.connected:
            return
        try:
            await self._send('action', action)
        except ChannelClosed:
            log.debug('Transient %s not delivered', action.type)

    # Host command queue

    def _enqueue(self, fn: Callable[..., Awaitable[Any]], *args) -> None:
        self._commands.put_nowait((fn, args, None))

    async def _submit(self, fn: Callable[..., Awaitable[Any]], *args) -> Any:
        done = asyncio.get_running_loop().create_future()
        await self._commands.put((fn, args, done))
        if self._worker is None or self._worker.done():
            self._start_background()
        return await done

    async def _process_commands(self) -> None:
        while True:
            fn, args, done = await self._commands.get()
            try:
                result = await fn(*args)
            except GameError as e:
                if done is not None:
                    done.set_exception(e)
                else:
                    log.warning('Command %s rejected: %s', fn.__name__, e)
            except Exception as e:
                log.exception('Command %s failed', fn.__name__)
                if done is not None:
                    done.set_exception(e)
            else:
                if done is not None:
                    done.set_result(result)
            finally:
                self._commands.task_done()

    async def _broadcast(self) -> None:
        if self.snapshot is None:
            return
        try:
            await self._send('state', self.snapshot)
        except ChannelClosed:
            log.warning('State v%d not delivered, will resync on reconnect', self.snapshot.version)

    async def _start(self) -> None:
        if self.started:
            return await self._resync()
        peer = next((p.name for p in self.presence.participants if p.role == 'joiner'), 'Guest')
        snapshot = start_game([self.name, peer], self.options, rng=self.rng)
        log.info('Starting game %s: %s vs %s', self.game_id, self.name, peer)
        self._adopt(snapshot)
        await self._broadcast()

    async def _resync(self) -> None:
        log.info('Resending state v%d', self.snapshot.version if self.snapshot else -1)
        await self._broadcast()

    async def _commit(self, snapshot: Snapshot) -> None:
        settled = settle_turn(snapshot)
        settled = settled.model_copy(update={'version': self.snapshot.version + 1})
        self._adopt(settled)
        await self._broadcast()

    async def _apply_commit(self, action) -> None:
        snap = self.snapshot
        if snap is None or snap.gameState.phase != 'playing':
            log.warning('Dropping %s: game is not in progress', action.type)
            return
        if action.playerId != JOINER_PLAYER or snap.currentPlayer != action.playerId:
            log.warning('Dropping %s from player %d: it is player %d\'s turn',
                        action.type, action.playerId, snap.currentPlayer)
            return
        if isinstance(action, CommitPass):
            proposed = pass_turn(snap, action.playerId)
        elif isinstance(action, CommitMove):
            proposed = snap.model_copy(update={
                'board': action.board,
                'players': action.players,
                'letterBag': action.letterBag,
                'gameState': action.gameState,
            })
        elif isinstance(action, CommitExchange):
            proposed = snap.model_copy(update={
                'players': action.players,
                'letterBag': action.letterBag,
                'gameState': action.gameState,
            })
        else:
            log.warning('Dropping unknown commit %s', action.type)
            return
        log.info('Applying %s from player %d', action.type, action.playerId)
        await self._commit(proposed)

    async def _host_play(self, placements: List[Placement]) -> MoveScore:
        new, score = await asyncio.to_thread(play_word, self.snapshot, self.player_id, placements, self.lexicon)
        await self._commit(new)
        return score

    async def _host_pass(self) -> None:
        await self._commit(pass_turn(self.snapshot, self.player_id))

    async def _host_exchange(self, indices: List[int]) -> None:
        await self._commit(exchange_tiles(self.snapshot, self.player_id, indices, rng=self.rng))

    async def _host_timeout(self, turn_number: int) -> None:
        snap = self.snapshot
        if snap is None or snap.gameState.turnNumber != turn_number or snap.currentPlayer != self.player_id:
            return
        self.pending = []
        await self._commit(pass_turn(snap, self.player_id))

    async def _on_turn_expired(self, turn_number: int) -> None:
        snap = self.current
        if snap is None or snap.currentPlayer != self.player_id or snap.gameState.turnNumber != turn_number:
            return
        log.info('Turn %d expired, passing', turn_number)
        if self.is_host:
            self._enqueue(self._host_timeout, turn_number)
            return
        if self.provisional is not None:
            return
        try:
            await self._propose(pass_turn(snap, self.player_id), CommitPass(playerId=self.player_id))
        except ChannelClosed as e:
            # Retried on a later tick once the relay is back
            log.warning('Automatic pass not sent: %s', e)
            self.timer.rearm(turn_number)
        except GameError as e:
            log.warning('Automatic pass not sent: %s', e)

    # Joiner proposals

    def _ready_to_propose(self) -> Snapshot:
        if self.provisional is not None:
            raise IllegalAction('waiting for the host to confirm the previous move')
        if self.snapshot is None:
            raise GameNotActive('the game has not started')
        return self.snapshot

    async def _propose(self, proposed: Snapshot, action) -> None:
        self.provisional = proposed
        try:
            await self._send('action', action)
        except ChannelClosed:
            self.provisional = None
            raise
        self._changed()

    # Local player API

    async def place_tile(self, row: int, col: int, rack_index: int, letter: Optional[str] = None) -> Placement:
        snap = self.current
        if snap is None or snap.gameState.phase != 'playing':
            raise GameNotActive('the game is not in progress')
        if snap.currentPlayer != self.player_id:
            raise NotYourTurn('wait for your turn')
        if self.provisional is not None:
            raise IllegalAction('waiting for the host to confirm the previous move')
        rack = snap.players[self.player_id].rack
        if not 0 <= rack_index < len(rack) or not rack[rack_index]:
            raise IllegalAction(f'no tile in rack slot {rack_index}')
        if any(p.sourceTileIndex == rack_index for p in self.pending):
            raise IllegalAction(f'rack slot {rack_index} is already on the board')
        if has_tile(snap.board, row, col) or any(p.position.key() == (row, col) for p in self.pending):
            raise IllegalAction(f'square ({row}, {col}) is taken')
        is_joker = rack[rack_index] == JOKER
        if is_joker and not letter:
            raise IllegalAction('choose a letter for the joker')
        placement = Placement(
            position=Position(row=row, col=col),
            letter=letter if is_joker else rack[rack_index],
            sourceTileIndex=rack_index,
            isJoker=is_joker,
        )
        self.pending.append(placement)
        await self._send_transient(TilePlaced(playerId=self.player_id, placement=placement))
        self._changed()
        return placement

    async def remove_tile(self, row: int, col: int) -> None:
        kept = [p for p in self.pending if p.position.key() != (row, col)]
        if len(kept) == len(self.pending):
            return
        self.pending = kept
        await self._send_transient(TileRemoved(playerId=self.player_id, position=Position(row=row, col=col)))
        self._changed()

    async def recall_tiles(self) -> None:
        for p in list(self.pending):
            await self.remove_tile(p.position.row, p.position.col)

    async def confirm_move(self) -> List[MoveError]:
        """Commit the pending tiles as a word.

        Returns the validation errors; on rejection the tiles go back to the
        rack and nothing else changes.
        """
        placements = list(self.pending)
        if not placements:
            raise IllegalAction('no tiles placed')
        try:
            if self.is_host:
                score = await self._submit(self._host_play, placements)
            else:
                snap = self._ready_to_propose()
                new, score = await asyncio.to_thread(play_word, snap, self.player_id, placements, self.lexicon)
                # Recorded once the host's snapshot carries the move
                self._unconfirmed = (snap.epoch, snap.gameState.turnNumber, score)
                try:
                    await self._propose(new, CommitMove(
                        playerId=self.player_id,
                        board=new.board,
                        players=new.players,
                        letterBag=new.letterBag,
                        gameState=new.gameState,
                    ))
                except ChannelClosed:
                    self._unconfirmed = None
                    raise
        except InvalidMove as e:
            log.info('Move rejected: %s', e)
            await self.recall_tiles()
            return e.errors
        self.pending = []
        if self.is_host:
            self._record_turn(score)
        return []

    def preview(self) -> Tuple[List[MoveError], Optional[MoveScore]]:
        """Validate and score the pending tiles without committing them."""
        snap = self.current
        if snap is None or not self.pending:
            return [], None
        result = validate(snap.board, self.pending, snap.gameState.isFirstMove, self.lexicon)
        if not result.legal:
            return result.errors, None
        board = overlay(snap.board, self.pending, owner=self.player_id)
        score = score_move(
            result.new_words,
            [p.position for p in self.pending],
            board,
            tiles_used=len(self.pending),
            rack_capacity=len(snap.players[self.player_id].rack),
        )
        return [], score

    async def pass_turn(self) -> None:
        await self.recall_tiles()
        if self.is_host:
            await self._submit(self._host_pass)
            return
        snap = self._ready_to_propose()
        await self._propose(pass_turn(snap, self.player_id), CommitPass(playerId=self.player_id))

    async def exchange(self, rack_indices: List[int]) -> None:
        await self.recall_tiles()
        if self.is_host:
            await self._submit(self._host_exchange, list(rack_indices))
            return
        snap = self._ready_to_propose()
        new = exchange_tiles(snap, self.player_id, rack_indices, rng=self.rng)
        await self._propose(new, CommitExchange(
            playerId=self.player_id,
            players=new.players,
            letterBag=new.letterBag,
            gameState=new.gameState,
        ))
