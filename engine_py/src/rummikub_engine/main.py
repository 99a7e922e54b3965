"""FastAPI main application for the Rummikub game backend"""

import logging
from typing import Any, Dict, Optional

import orjson
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from .config import Settings
from .engine import EngineResult
from .errors import ACTION_NOT_ALLOWED, CONFLICT, INTERNAL_ERROR, RECOVERABLE, ROOM_NOT_FOUND, GameError
from .events import ActionType, meld_specs, parse_action
from .manager import GameManager
from .queued import outcome_to_dict
from .serialization import tile_to_dict
from .store import InMemoryRoomStore

settings = Settings.from_env()

# Configure logging
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


def status_for(code: str) -> int:
    if code == ROOM_NOT_FOUND:
        return 404
    if code == CONFLICT:
        return 409
    if code in RECOVERABLE:
        return 400
    return 500


def error_response(code: str, message: str, **extra) -> ORJSONResponse:
    body = {"success": False, "error": {"code": code, "message": message}}
    body.update(extra)
    return ORJSONResponse(body, status_code=status_for(code))


def _payload(manager: GameManager, result: EngineResult, viewer_id: Optional[str]) -> Dict[str, Any]:
    data = dict(result.data)
    room_code = data.pop("room_code", None)
    outcomes = data.pop("queue_outcomes", [])
    drawn = data.pop("drawn_tile", None)

    payload = {"success": True, "room_code": room_code}
    payload.update(data)
    payload["queue_outcomes"] = [outcome_to_dict(o) for o in outcomes]
    if drawn is not None:
        payload["drawn_tile"] = tile_to_dict(drawn)

    # The room is gone once the last player has left
    if room_code and not data.get("all_disconnected"):
        payload["state"] = manager.get_state(room_code, data.get("player_id") or viewer_id)
    return payload


def dispatch(manager: GameManager, action) -> EngineResult:
    kind = action.action
    if kind == ActionType.CREATE_ROOM:
        return manager.create_room(action.name, action.email)
    if kind == ActionType.JOIN_ROOM:
        return manager.join_room(action.room_code, action.name, action.email, action.expected_revision)
    if kind == ActionType.REJOIN:
        return manager.rejoin(action.room_code, action.player_code)
    if kind == ActionType.START_GAME:
        return manager.start_game(action.room_code, action.player_id, action.expected_revision, action.seed)
    if kind == ActionType.PLAY_TILES:
        return manager.play_tiles(action.room_code, action.player_id, meld_specs(action.melds),
                                  action.hand, action.working_area, action.expected_revision)
    if kind == ActionType.DRAW_TILE:
        return manager.draw_tile(action.room_code, action.player_id, action.expected_revision)
    if kind == ActionType.END_TURN:
        return manager.end_turn(action.room_code, action.player_id, action.expected_revision)
    if kind == ActionType.RESET_TURN:
        return manager.reset_turn(action.room_code, action.player_id, action.expected_revision)
    if kind == ActionType.SPLIT_RUN:
        return manager.split_run(action.room_code, action.player_id, action.meld_id, action.expected_revision)
    if kind == ActionType.REARRANGE_TABLE:
        return manager.rearrange_table(action.room_code, action.player_id, action.expected_revision)
    if kind == ActionType.QUEUE_TURN:
        return manager.queue_turn(action.room_code, action.player_id, meld_specs(action.melds),
                                  action.hand, action.working_area, action.expected_revision)
    if kind == ActionType.CLEAR_QUEUED_TURN:
        return manager.clear_queued_turn(action.room_code, action.player_id)
    if kind == ActionType.END_GAME:
        return manager.end_game(action.room_code, action.player_id, action.expected_revision)
    if kind == ActionType.LEAVE:
        return manager.leave(action.room_code, action.player_id)
    if kind == ActionType.SET_ROOM_STYLE:
        return manager.set_room_style(action.room_code, action.player_id, action.style_id)
    raise GameError(ACTION_NOT_ALLOWED, f"Unsupported action: {kind}")


def create_app(manager: Optional[GameManager] = None, app_settings: Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or settings
    if manager is None:
        manager = GameManager(
            store=InMemoryRoomStore(app_settings.room_ttl_seconds),
            rule_table=app_settings.rule_table(),
            app_url=app_settings.app_url,
        )

    app = FastAPI(title="Rummikub Game API", version="1.0.0")
    app.state.manager = manager

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        return {"message": "Rummikub Game API", "version": "1.0.0"}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @app.post("/api/game")
    async def game_action(request: Request):
        try:
            action = parse_action(orjson.loads(await request.body()))
        except ValueError as e:
            return error_response(ACTION_NOT_ALLOWED, str(e))

        try:
            if action.action == ActionType.GET_STATE:
                state = manager.get_state(action.room_code, action.player_id)
                return ORJSONResponse({"success": True, "room_code": state["room_code"], "state": state})

            result = dispatch(manager, action)
            if not result.success:
                return error_response(result.error_code, result.error_message, **result.data)
            return ORJSONResponse(_payload(manager, result, getattr(action, "player_id", None)))
        except GameError as e:
            return error_response(e.code, e.message)
        except Exception as e:
            logger.error(f"Error handling action {action.action.value}: {e}", exc_info=True)
            return error_response(INTERNAL_ERROR, "Internal error")

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
