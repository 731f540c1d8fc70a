from __future__ import annotations
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

class Position(BaseModel):
    row: int
    col: int

    def key(self) -> tuple[int, int]:
        return (self.row, self.col)

class BoardTile(BaseModel):
    letter: str
    isNew: bool = False
    ownerId: Optional[int] = None
    isJoker: bool = False

Board = List[List[Optional[BoardTile]]]

class Placement(BaseModel):
    position: Position
    letter: str
    sourceTileIndex: int
    isJoker: bool = False

class FoundWord(BaseModel):
    text: str
    positions: List[Position]
    isNew: bool = False

class PlayerState(BaseModel):
    name: str
    score: int = 0
    rack: List[str] = []
    consecutivePasses: int = 0

    def tiles_left(self) -> List[str]:
        return [t for t in self.rack if t]

class WordScore(BaseModel):
    word: str
    score: int

TurnAction = Literal['place-word', 'exchange-tiles', 'pass']

class Move(BaseModel):
    playerId: int
    action: TurnAction
    timestamp: Optional[datetime] = None
    word: Optional[str] = None
    tilesUsed: Optional[List[str]] = None
    score: Optional[int] = None
    wordScores: Optional[List[WordScore]] = None
    bingoBonus: Optional[int] = None

GamePhase = Literal['setup', 'playing', 'finished']

class GameState(BaseModel):
    phase: GamePhase = 'setup'
    turnNumber: int = 1
    consecutivePasses: int = 0
    isFirstMove: bool = True
    moveHistory: List[Move] = []
    secondsPerTurn: int = 120
    currentTurnStartTime: Optional[datetime] = None

class Snapshot(BaseModel):
    board: Board
    players: List[PlayerState]
    letterBag: List[str] = []
    currentPlayer: int = 0
    gameState: GameState
    # Ordering: discard snapshots of the same epoch with a version not above the last applied one
    version: int = 0
    epoch: str = ''

# Wire protocol

Role = Literal['host', 'joiner']
MessageType = Literal['join', 'state', 'action', 'presence', 'error']

class Participant(BaseModel):
    name: str
    role: Role

class Presence(BaseModel):
    count: int
    participants: List[Participant]

class ErrorPayload(BaseModel):
    message: str

class Envelope(BaseModel):
    type: MessageType
    gameId: str = ''
    payload: Any = None

# Actions: a closed set of variants discriminated on `type`

class TilePlaced(BaseModel):
    type: Literal['tile_placed'] = 'tile_placed'
    playerId: int
    placement: Placement

class TileRemoved(BaseModel):
    type: Literal['tile_removed'] = 'tile_removed'
    playerId: int
    position: Position

class CommitMove(BaseModel):
    type: Literal['commit_move'] = 'commit_move'
    playerId: int
    board: Board
    players: List[PlayerState]
    letterBag: List[str]
    gameState: GameState

class CommitPass(BaseModel):
    type: Literal['commit_pass'] = 'commit_pass'
    playerId: int

class CommitExchange(BaseModel):
    type: Literal['commit_exchange'] = 'commit_exchange'
    playerId: int
    players: List[PlayerState]
    letterBag: List[str]
    gameState: GameState

Action = Annotated[
    Union[TilePlaced, TileRemoved, CommitMove, CommitPass, CommitExchange],
    Field(discriminator='type'),
]

COMMIT_ACTIONS = ('commit_move', 'commit_pass', 'commit_exchange')

_action_adapter: TypeAdapter = TypeAdapter(Action)

def parse_action(payload: Any) -> Union[TilePlaced, TileRemoved, CommitMove, CommitPass, CommitExchange]:
    return _action_adapter.validate_python(payload)

def envelope(type_: str, game_id: str, payload: Any = None) -> dict:
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode='json')
    return Envelope(type=type_, gameId=game_id, payload=payload).model_dump(mode='json')

# REST

class WordCheck(BaseModel):
    word: str
    valid: bool

class ValidateWordsRequest(BaseModel):
    words: List[str]

class ValidateWordsResponse(BaseModel):
    results: List[WordCheck]
    allValid: bool
