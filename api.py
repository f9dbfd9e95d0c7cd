"""FastAPI backend for roguelike chess."""

import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from time import time
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from roguechess import (
    ChoiceError,
    GameConfig,
    GameSession,
    IllegalMoveError,
    InvariantViolation,
    square_name,
)
from roguechess.game import HUMAN

logger = logging.getLogger(__name__)

# Thread pool for AI move selection
executor = ThreadPoolExecutor(max_workers=4)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    yield
    executor.shutdown(wait=True)


app = FastAPI(title="Roguelike Chess Engine", lifespan=lifespan)


class GameState:
    """Session plus the lock that serializes access to it."""

    def __init__(self, session: GameSession):
        self.session = session
        self.lock = asyncio.Lock()
        self.last_access = time()
        self.is_processing = False  # AI move in progress


# Global game registry with proper locking
games: Dict[str, GameState] = {}
games_lock = asyncio.Lock()

# Rate limiting configuration
RATE_LIMIT_WINDOW = 1.0
RATE_LIMIT_MAX_REQUESTS = int(os.environ.get("ROGUECHESS_RATE_LIMIT", "10"))
rate_limit_data: Dict[str, List[float]] = {}  # Request timestamps per IP

MAX_IDLE_TIME = 3600


async def check_rate_limit(request: Request) -> bool:
    """Check if request should be rate limited."""
    client_ip = request.client.host if request.client else "unknown"
    current_time = time()

    # Drop requests outside the window
    recent = [
        t for t in rate_limit_data.get(client_ip, []) if current_time - t < RATE_LIMIT_WINDOW
    ]
    if len(recent) >= RATE_LIMIT_MAX_REQUESTS:
        rate_limit_data[client_ip] = recent
        return False

    recent.append(current_time)
    rate_limit_data[client_ip] = recent
    return True


async def enforce_rate_limit(request: Request) -> None:
    if not await check_rate_limit(request):
        raise HTTPException(status_code=429, detail="Too many requests. Please slow down.")


async def get_game_state(game_id: str) -> GameState:
    """Get game state with proper error handling."""
    async with games_lock:
        if game_id not in games:
            raise HTTPException(status_code=404, detail="Game not found")
        game_state = games[game_id]
        game_state.last_access = time()
        return game_state


async def cleanup_old_games():
    """Clean up games that haven't been accessed for a long time."""
    current_time = time()
    async with games_lock:
        to_remove = [
            game_id
            for game_id, state in games.items()
            if current_time - state.last_access > MAX_IDLE_TIME
        ]
        for game_id in to_remove:
            del games[game_id]
    if to_remove:
        logger.info("Removed %d idle games", len(to_remove))


class NewGameRequest(BaseModel):
    """Request model for creating a new game."""

    game_id: str
    mode: Optional[str] = None  # "reset_and_reinforce" or "persistent_armies"
    army_count: Optional[int] = None
    seed: Optional[int] = None


class SquareRequest(BaseModel):
    """Request model for asking the legal moves of a square."""

    game_id: str
    square: str  # e.g., "e2"


class MoveRequest(BaseModel):
    """Request model for making a move."""

    game_id: str
    from_square: str  # e.g., "e2"
    to_square: str  # e.g., "e4"


class ChoiceRequest(BaseModel):
    """Request model for promotion and reinforcement choices."""

    game_id: str
    piece_type: str  # e.g., "queen"


class BoardResponse(BaseModel):
    """Response model for board state."""

    board: List[List[Optional[str]]]  # Top row first, codes like "wK"
    rows: int
    turn: str
    status: str
    is_check: bool
    is_checkmate: bool
    is_stalemate: bool
    is_game_over: bool
    winner: Optional[str]
    captured: Dict[str, List[str]]
    move_log: List[Dict[str, Any]]
    boards_cleared: int
    pending_promotion: Optional[str] = None
    reinforcement_options: List[Dict[str, str]] = []
    active_armies: List[int] = []
    last_move: Optional[str] = None


def _invariant_error(exc: InvariantViolation) -> HTTPException:
    logger.error("Game aborted: %s", exc)
    return HTTPException(status_code=500, detail=f"Game aborted: {exc}")


@app.post("/api/new-game")
async def new_game(request: NewGameRequest, req: Request):
    """Create a new game."""
    await enforce_rate_limit(req)

    try:
        # The HTTP client paces the AI itself through /api/ai-move
        config = GameConfig.from_env(
            mode=request.mode,
            army_count=request.army_count,
            seed=request.seed,
            ai_autoplay=False,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid game settings: {e}")

    session = GameSession(config)

    async with games_lock:
        games[request.game_id] = GameState(session)

    asyncio.create_task(cleanup_old_games())

    return {"status": "ok", "game_id": request.game_id, "mode": config.mode.value}


@app.get("/api/board/{game_id}", response_model=BoardResponse)
async def get_board(game_id: str, req: Request):
    """Get current board state."""
    await enforce_rate_limit(req)
    game_state = await get_game_state(game_id)

    async with game_state.lock:
        return BoardResponse(**game_state.session.snapshot())


@app.post("/api/legal-moves")
async def legal_moves(request: SquareRequest, req: Request):
    """Legal destinations for the piece on a square."""
    await enforce_rate_limit(req)
    game_state = await get_game_state(request.game_id)

    async with game_state.lock:
        try:
            moves = game_state.session.legal_moves(request.square)
        except IllegalMoveError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except InvariantViolation as e:
            raise _invariant_error(e)

    return {
        "square": request.square,
        "moves": [
            {
                "to": square_name(move.to_row, move.to_col),
                "en_passant": move.en_passant,
                "castling": move.castling.value if move.castling else None,
            }
            for move in moves
        ],
    }


@app.post("/api/move")
async def make_move(request: MoveRequest, req: Request):
    """Make a move."""
    await enforce_rate_limit(req)
    game_state = await get_game_state(request.game_id)

    async with game_state.lock:
        if game_state.is_processing:
            raise HTTPException(status_code=409, detail="AI is moving. Please wait.")
        if game_state.session.turn != HUMAN:
            raise HTTPException(status_code=400, detail="It is the computer's turn")
        try:
            result = game_state.session.apply_move(request.from_square, request.to_square)
        except IllegalMoveError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except InvariantViolation as e:
            raise _invariant_error(e)
        session = game_state.session

    return {
        "status": "ok",
        "result": result.to_dict(),
        "ai_to_move": session.ai_to_move,
    }


@app.post("/api/ai-move/{game_id}")
async def ai_move(game_id: str, req: Request):
    """Let the computer move, after the configured pacing delay."""
    await enforce_rate_limit(req)
    game_state = await get_game_state(game_id)

    async with game_state.lock:
        if game_state.is_processing:
            raise HTTPException(
                status_code=409, detail="AI is already processing a move. Please wait."
            )
        if not game_state.session.ai_to_move:
            raise HTTPException(status_code=400, detail="It is not the computer's turn")
        game_state.is_processing = True

    try:
        # Pacing only; the result does not depend on it
        await asyncio.sleep(game_state.session.config.ai_delay)

        async with game_state.lock:
            loop = asyncio.get_running_loop()
            try:
                result = await loop.run_in_executor(executor, game_state.session.play_ai_move)
            except InvariantViolation as e:
                raise _invariant_error(e)
            moves_scored = game_state.session.engine.moves_scored

        return {
            "status": "ok",
            "passed": result is None,
            "result": result.to_dict() if result else None,
            "moves_scored": moves_scored,
        }
    finally:
        async with game_state.lock:
            game_state.is_processing = False


@app.post("/api/promotion")
async def choose_promotion(request: ChoiceRequest, req: Request):
    """Resolve a pending pawn promotion."""
    await enforce_rate_limit(req)
    game_state = await get_game_state(request.game_id)

    async with game_state.lock:
        try:
            game_state.session.choose_promotion(request.piece_type)
        except ChoiceError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except InvariantViolation as e:
            raise _invariant_error(e)
        status = game_state.session.status.value

    return {"status": "ok", "game_status": status}


@app.post("/api/reinforcement")
async def choose_reinforcement(request: ChoiceRequest, req: Request):
    """Pick a reinforcement piece and start the next board."""
    await enforce_rate_limit(req)
    game_state = await get_game_state(request.game_id)

    async with game_state.lock:
        try:
            piece = game_state.session.choose_reinforcement(request.piece_type)
        except ChoiceError as e:
            raise HTTPException(status_code=400, detail=str(e))
        boards_cleared = game_state.session.boards_cleared

    return {"status": "ok", "piece": piece.code, "boards_cleared": boards_cleared}


@app.post("/api/reset/{game_id}")
async def reset_game(game_id: str, req: Request):
    """Start over from the first board."""
    await enforce_rate_limit(req)
    game_state = await get_game_state(game_id)

    async with game_state.lock:
        if game_state.is_processing:
            raise HTTPException(status_code=409, detail="AI is moving. Please wait.")
        game_state.session.reset()

    return {"status": "ok", "message": "Game reset"}
