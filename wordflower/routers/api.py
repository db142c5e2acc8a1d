from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from ..errors import ConflictError, NotFoundError
from ..hint_content import build_hint_pool
from ..managers.game import GameServices
from ..schemas import Feedback, GameMetadata, SignupRequest

logger = logging.getLogger(__name__)

router = APIRouter()

GameId = Optional[Union[str, int]]


def get_services(request: Request) -> GameServices:
    return request.app.state.services


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse({ 'error': message }, status_code=status)


class ValidateWordBody(BaseModel):
    gameId: GameId = None
    word: Optional[str] = None


class HintBody(BaseModel):
    gameId: GameId = None


class AnalyticsBody(BaseModel):
    gameId: GameId = None
    eventType: Optional[str] = None
    eventData: Dict[str, Any] = {}


class MetadataBody(BaseModel):
    gameId: GameId = None
    gameMetadata: Optional[GameMetadata] = None


class FeedbackBody(BaseModel):
    userId: Optional[str] = None
    gameId: GameId = None
    feedback: Optional[Dict[str, Any]] = None


class UserBody(BaseModel):
    userId: Optional[Any] = None


# Puzzles

@router.post('/game')
async def start_game(services: GameServices = Depends(get_services)):
    puzzle = services.catalog.pick_puzzle(services.rng)
    return services.catalog.summary(puzzle).model_dump()


@router.put('/game')
async def validate_word(body: ValidateWordBody, services: GameServices = Depends(get_services)):
    if not body.gameId or not body.word:
        return _error(400, 'Missing gameId or word')
    try:
        verdict = services.catalog.validate(str(body.gameId), body.word)
    except NotFoundError:
        return _error(404, 'Game not found')
    return verdict.model_dump()


@router.get('/game')
async def answer_words(gameId: Optional[str] = None, services: GameServices = Depends(get_services)):
    if not gameId:
        return _error(400, 'Missing gameId')
    if not gameId.strip().isdigit():
        return _error(400, 'Invalid gameId')
    try:
        return services.catalog.answer_words(gameId)
    except NotFoundError:
        return _error(404, 'Game not found')


@router.get('/game/completed')
async def game_completed(userId: Optional[str] = None, gameId: Optional[str] = None,
                         services: GameServices = Depends(get_services)):
    if not userId or not gameId:
        return _error(400, 'Missing required parameters: userId and gameId')
    try:
        status = await asyncio.to_thread(services.completions.is_completed, userId, gameId)
    except Exception as e:
        logger.error("Check game completion error: %s", e)
        return _error(500, 'Failed to check game completion status')
    return status.model_dump()


# Hints

@router.post('/hint')
async def hints(body: HintBody, services: GameServices = Depends(get_services)):
    if not body.gameId:
        return _error(400, 'Missing gameId')
    try:
        puzzle = services.catalog.lookup_puzzle(str(body.gameId))
    except NotFoundError:
        return _error(404, 'Game not found')
    pool = await build_hint_pool(puzzle.answerWords, services.hint_provider, services.rng, services.hint_pool_size)
    return [entry.model_dump() for entry in pool]


# Analytics

@router.post('/analytics')
async def log_event(body: AnalyticsBody, services: GameServices = Depends(get_services)):
    if not body.gameId or not body.eventType:
        return _error(400, 'Missing required fields: gameId and eventType')
    services.analytics.record(str(body.gameId), body.eventType, body.eventData)
    return { 'success': True }


@router.patch('/analytics')
async def update_metadata(body: MetadataBody, services: GameServices = Depends(get_services)):
    if not body.gameId or body.gameMetadata is None:
        return _error(400, 'Missing required fields: gameId and gameMetadata')
    services.analytics.upsert_metadata(str(body.gameId), body.gameMetadata)
    return { 'success': True }


@router.get('/analytics')
async def get_analytics(gameId: Optional[str] = None, services: GameServices = Depends(get_services)):
    if not gameId:
        return _error(400, 'Missing gameId parameter')
    try:
        doc = await asyncio.to_thread(services.sink.get, gameId)
    except Exception as e:
        logger.error("Analytics retrieval error: %s", e)
        return _error(500, 'Failed to retrieve analytics')
    if not doc:
        return _error(404, 'Game analytics not found')
    return doc


@router.post('/analytics/feedback')
async def submit_feedback(body: FeedbackBody, services: GameServices = Depends(get_services)):
    if not body.userId or not body.gameId or body.feedback is None:
        return _error(400, 'Missing required fields: userId, gameId and feedback')
    try:
        feedback = Feedback.model_validate(body.feedback)
    except ValidationError:
        return _error(400, 'Invalid feedback data structure')
    try:
        matched = await asyncio.to_thread(services.sink.record_feedback, body.userId, str(body.gameId), feedback)
    except Exception as e:
        logger.error("Feedback submission error: %s", e)
        return _error(500, 'Failed to submit feedback')
    if not matched:
        return _error(404, 'Game session not found for user')
    return { 'success': True }


# Identity

@router.post('/auth/validate')
async def validate_user(body: UserBody, services: GameServices = Depends(get_services)):
    if not body.userId or not isinstance(body.userId, str):
        return _error(400, 'User ID is required and must be a string')
    user_id = body.userId.strip()
    if await asyncio.to_thread(services.identities.is_valid_user, user_id):
        return { 'isValid': True, 'message': 'User ID is valid', 'userId': user_id }
    return { 'isValid': False, 'message': 'User ID not found' }


@router.post('/auth/signup')
async def signup(body: Dict[str, Any], services: GameServices = Depends(get_services)):
    try:
        request = SignupRequest.model_validate(body)
    except ValidationError as e:
        fields = { str(err['loc'][0]) for err in e.errors() if err['loc'] }
        if 'email' in fields and body.get('email'):
            return _error(400, 'Invalid email format')
        if 'age' in fields and body.get('age') is not None:
            return _error(400, 'Invalid age. Must be between 16 and 100')
        return _error(400, 'Missing required fields')
    try:
        request_id = await asyncio.to_thread(services.signups.add, request)
    except ConflictError as e:
        return _error(409, str(e))
    except Exception as e:
        logger.error("Signup request error: %s", e)
        return _error(500, 'Failed to submit signup request')
    logger.info("Signup request stored for %s", request.email)
    return { 'success': True, 'message': 'Signup request submitted successfully', 'requestId': request_id }


@router.get('/auth/signup')
async def signup_requests(email: Optional[str] = None, services: GameServices = Depends(get_services)):
    try:
        if email:
            found = await asyncio.to_thread(services.signups.find, email)
            if not found:
                return _error(404, 'Request not found')
            return found
        return { 'requests': await asyncio.to_thread(services.signups.list_all) }
    except Exception as e:
        logger.error("Get signup requests error: %s", e)
        return _error(500, 'Failed to retrieve signup requests')
