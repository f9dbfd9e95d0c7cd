"""Roguelike chess: a chess rule engine with a heuristic AI and board progression."""

from .board import Board, Move, Piece, PieceType, Color, Castling, square_name, parse_square
from .config import GameConfig, ProgressionMode
from .engine import Engine, Difficulty, PIECE_VALUES
from .errors import (
    ChessError, IllegalMoveError, InvalidSquareError, ChoiceError, InvariantViolation,
)
from .game import GameSession, GameStatus, LogEntry, MoveResult
from .progression import (
    ProgressionController, ReinforcementOption, ArmyState,
    REINFORCEMENT_POOL, draw_reinforcements,
)

__all__ = [
    # Board and rules
    'Board', 'Move', 'Piece', 'PieceType', 'Color', 'Castling',
    'square_name', 'parse_square',
    # Configuration
    'GameConfig', 'ProgressionMode',
    # AI
    'Engine', 'Difficulty', 'PIECE_VALUES',
    # Errors
    'ChessError', 'IllegalMoveError', 'InvalidSquareError', 'ChoiceError',
    'InvariantViolation',
    # Game flow
    'GameSession', 'GameStatus', 'LogEntry', 'MoveResult',
    # Progression
    'ProgressionController', 'ReinforcementOption', 'ArmyState',
    'REINFORCEMENT_POOL', 'draw_reinforcements',
]
