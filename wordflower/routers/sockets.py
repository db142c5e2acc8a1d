from __future__ import annotations
import asyncio
import logging
import uuid
from typing import Optional

from ..managers.game import SessionManager
from ..managers.session import PuzzleSession

logger = logging.getLogger(__name__)

RESUME_MESSAGES = {
    'resumed': 'Game resumed!',
    'completed': 'You have already completed this puzzle',
    'expired': 'Your saved game expired',
    'corrupt': 'Your saved game could not be read',
    'absent': 'No saved game found',
}


def _non_blank(value) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def register_socket_handlers(sio, manager: SessionManager):
    """Wire Socket.IO events to the session manager."""

    async def _emit_state(sid: str, session: PuzzleSession):
        await sio.emit('session:state', session.view().model_dump(), to=sid)

    async def _emit_hints(sid: str, session: PuzzleSession):
        if session.hints is not None:
            await sio.emit('hint:state', session.hints.state().model_dump(), to=sid)

    async def _playing(sid: str) -> Optional[PuzzleSession]:
        session = manager.get(sid)
        if session is None or session.state != 'playing':
            await sio.emit('error', { 'message': 'Please start the game first!' }, to=sid)
            return None
        return session

    @sio.event
    async def connect(sid, environ, auth=None):
        # Client uses its player id as the auth token; anonymous clients get a
        # device id they hand back on reconnect to find their saved game
        auth = auth if isinstance(auth, dict) else {}
        user_id = _non_blank(auth.get('token'))
        device_id = None
        if user_id:
            valid = await asyncio.to_thread(manager.services.identities.is_valid_user, user_id)
            if not valid:
                logger.info("Rejected connection with unknown player id %s", user_id)
                return False
        else:
            device_id = _non_blank(auth.get('deviceId')) or uuid.uuid4().hex
            await sio.emit('session:identity', { 'deviceId': device_id }, to=sid)
        await sio.save_session(sid, { 'userId': user_id, 'deviceId': device_id })
        manager.bind_user(sid, user_id, device_id)
        await sio.emit('pong', to=sid)

    @sio.event
    async def disconnect(sid, *args):
        await manager.disconnect(sid)

    @sio.on('ping')
    async def on_ping(sid):
        await sio.emit('pong', to=sid)

    @sio.on('session:start')
    async def session_start(sid, payload=None):
        puzzle_id = None
        if isinstance(payload, dict) and payload.get('gameId') is not None:
            puzzle_id = str(payload['gameId'])
        session = await manager.start(sid, puzzle_id)
        await _emit_state(sid, session)
        await _emit_hints(sid, session)

    @sio.on('session:resume')
    async def session_resume(sid):
        session, outcome = await manager.resume(sid)
        await sio.emit('session:resumed', { 'outcome': outcome, 'message': RESUME_MESSAGES[outcome] }, to=sid)
        if outcome == 'completed' and session.result is not None:
            await sio.emit('session:ended', session.result.model_dump(), to=sid)
        if outcome in ('resumed', 'completed'):
            await _emit_state(sid, session)
            await _emit_hints(sid, session)

    @sio.on('session:reset')
    async def session_reset(sid):
        await manager.reset(sid)
        await sio.emit('session:state', { 'gameState': 'not-started' }, to=sid)

    @sio.on('session:letter')
    async def session_letter(sid, letter):
        session = await _playing(sid)
        if session and await session.append_letter(str(letter)):
            await _emit_state(sid, session)

    @sio.on('session:backspace')
    async def session_backspace(sid):
        session = await _playing(sid)
        if session and await session.backspace():
            await _emit_state(sid, session)

    @sio.on('session:clear')
    async def session_clear(sid):
        session = await _playing(sid)
        if session and await session.clear_buffer():
            await _emit_state(sid, session)

    @sio.on('session:shuffle')
    async def session_shuffle(sid):
        session = await _playing(sid)
        if session and await session.shuffle() is not None:
            await _emit_state(sid, session)

    @sio.on('session:submit')
    async def session_submit(sid):
        session = manager.get(sid)
        if session is None:
            await sio.emit('error', { 'message': 'Please start the game first!' }, to=sid)
            return
        result = await session.submit()
        await sio.emit('session:submitted', result.model_dump(), to=sid)
        await _emit_state(sid, session)
        if result.accepted:
            await _emit_hints(sid, session)

    @sio.on('session:end')
    async def session_end(sid):
        session = await _playing(sid)
        if session:
            await session.end()
            await _emit_state(sid, session)

    @sio.on('session:visibility')
    async def session_visibility(sid, visible):
        session = manager.get(sid)
        if session:
            session.set_visible(bool(visible))

    @sio.on('hint:next')
    async def hint_next(sid):
        session = await _playing(sid)
        if session and session.hints is not None:
            session.hints.request_next_hint()
            await _emit_hints(sid, session)

    @sio.on('hint:skip')
    async def hint_skip(sid):
        session = await _playing(sid)
        if session and session.hints is not None:
            session.hints.skip_to_next_word()
            await _emit_hints(sid, session)

    @sio.on('hint:previous')
    async def hint_previous(sid):
        session = await _playing(sid)
        if session and session.hints is not None:
            message = session.hints.previous_word()
            if message:
                await sio.emit('hint:info', { 'message': message }, to=sid)
            await _emit_hints(sid, session)
