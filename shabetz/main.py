from __future__ import annotations
import logging
from typing import Dict
from urllib.parse import parse_qs

import socketio
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .config import Config
from .dictionary import service as dict_service
from .highscores import HighscoreCategory, HighscoreStore
from .managers.game import RoomManager
from .routers.ws import WebSocketRegistry, router as ws_router
from .schemas import ValidateWordsRequest, ValidateWordsResponse

log = logging.getLogger(__name__)

# Socket.IO server (ASGI)
_origins = '*' if Config.CORS_ORIGINS == ['*'] else Config.CORS_ORIGINS
sio = socketio.AsyncServer(async_mode='asgi', cors_allowed_origins=_origins)
app = FastAPI(title="Shabetz Relay", version="0.1.0")

# Mount Socket.IO ASGI application
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)

# CORS for REST
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


class RelayTransport:
    """Sends relay output over whichever transport owns the connection."""

    def __init__(self, sio: socketio.AsyncServer, websockets: WebSocketRegistry):
        self.sio = sio
        self.websockets = websockets

    async def send(self, conn_id: str, message: dict) -> None:
        if conn_id in self.websockets:
            await self.websockets.send(conn_id, message)
        else:
            await self.sio.emit(message['type'], message, to=conn_id)

    async def close(self, conn_id: str) -> None:
        if conn_id in self.websockets:
            await self.websockets.close(conn_id)
        else:
            await self.sio.disconnect(conn_id)


websockets = WebSocketRegistry()
relay = RoomManager(RelayTransport(sio, websockets))
highscores = HighscoreStore(Config.HIGHSCORES_PATH)

app.state.relay = relay
app.state.websockets = websockets
app.include_router(ws_router)

# REST Endpoints
@app.get('/dictionary/search')
async def search_word(q: str):
    return {'word': q, 'valid': dict_service.is_valid(q)}

@app.post('/dictionary/validate-words')
async def validate_words(body: ValidateWordsRequest) -> ValidateWordsResponse:
    results = dict_service.validate_words(body.words)
    return ValidateWordsResponse(results=results, allValid=all(r.valid for r in results))

@app.get('/dictionary/stats')
async def dictionary_stats() -> Dict[str, int]:
    return {'totalWords': len(dict_service)}

@app.get('/dictionary')
async def list_words(offset: int = 0, limit: int = 100):
    words = dict_service.words()
    return {'total': len(words), 'words': words[offset:offset + limit]}

@app.get('/highscores/{category}')
async def top_scores(category: HighscoreCategory, limit: int = 10):
    return {'category': category, 'entries': [e.model_dump() for e in highscores.top(category, limit)]}

@app.get('/games/{game_id}')
async def game_summary(game_id: str):
    summary = relay.summary(game_id)
    if summary is None:
        raise HTTPException(status_code=404, detail='Game not found')
    return summary

# Socket.IO Events
@sio.event
async def connect(sid, environ, auth=None):
    # Game id may come with the connection or in the join envelope
    query = parse_qs(environ.get('QUERY_STRING', ''))
    game_id = (query.get('gameId') or [None])[0]
    await sio.save_session(sid, {'game_id': game_id})

@sio.event
async def disconnect(sid, *args):
    await relay.leave(sid)

async def _relay_event(sid, event: str, data) -> None:
    if not isinstance(data, dict):
        log.warning('Dropping %s from %s: payload is not an envelope', event, sid)
        return
    sess = await sio.get_session(sid) or {}
    await relay.handle(sid, {**data, 'type': event}, sess.get('game_id'))

@sio.on('join')
async def on_join(sid, data):
    await _relay_event(sid, 'join', data)

@sio.on('state')
async def on_state(sid, data):
    await _relay_event(sid, 'state', data)

@sio.on('action')
async def on_action(sid, data):
    await _relay_event(sid, 'action', data)

# Export ASGI app for uvicorn
application = asgi_app

# For local running: python -m shabetz  (or uvicorn shabetz.main:application --port 3001)
