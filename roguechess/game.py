"""Game session: turn order, check detection and progression hand-off."""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from .board import Board, Color, Move, Piece, PieceType, Square, parse_square, square_name
from .config import GameConfig
from .engine import Engine
from .errors import ChoiceError, IllegalMoveError, InvariantViolation
from .progression import ProgressionController

logger = logging.getLogger(__name__)

HUMAN = Color.WHITE
AI = Color.BLACK

PROMOTION_CHOICES = (PieceType.QUEEN, PieceType.ROOK, PieceType.BISHOP, PieceType.KNIGHT)

SquareLike = Union[str, Tuple[int, int]]


class GameStatus(Enum):
    """Derived state of a session."""

    TO_MOVE = "to_move"
    CHECK = "check"
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    AWAITING_PROMOTION = "awaiting_promotion"
    AWAITING_REINFORCEMENT = "awaiting_reinforcement"
    GAME_OVER = "game_over"


@dataclass
class LogEntry:
    """One line of the in-game move log."""

    text: str
    is_event: bool = False
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {"text": self.text, "is_event": self.is_event, "timestamp": self.timestamp}


@dataclass
class MoveResult:
    """Outcome of one applied move."""

    move: Move
    piece: Piece
    captured: List[Piece]
    status: GameStatus
    ai_reply: Optional["MoveResult"] = None

    def to_dict(self) -> dict:
        result = {
            "move": self.move.to_uci(),
            "from": square_name(self.move.from_row, self.move.from_col),
            "to": square_name(self.move.to_row, self.move.to_col),
            "piece": self.piece.code,
            "captured": [piece.code for piece in self.captured],
            "status": self.status.value,
        }
        if self.ai_reply is not None:
            result["ai_reply"] = self.ai_reply.to_dict()
        return result


def to_square(value: SquareLike) -> Square:
    """Accept 'e2' or (row, col)."""
    if isinstance(value, str):
        return parse_square(value)
    row, col = value
    return int(row), int(col)


def to_piece_type(value: Union[str, PieceType]) -> PieceType:
    if isinstance(value, PieceType):
        return value
    try:
        return PieceType(value.lower())
    except ValueError:
        raise ChoiceError(f"Unknown piece type: {value!r}") from None


class GameSession:
    """All state of one game, from the first board to game over.

    White is the human side. Black is played by the engine; with
    `config.ai_autoplay` the reply is made inside `apply_move`, otherwise the
    caller triggers it with `play_ai_move`.
    """

    def __init__(self, config: Optional[GameConfig] = None, rng: Optional[np.random.Generator] = None):
        self.config = config or GameConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.engine = Engine(rng=self.rng, endgame_piece_threshold=self.config.endgame_piece_threshold)
        self.progression = ProgressionController(self.config, self.rng, self._log_event)
        self.reset()

    def reset(self) -> None:
        """Back to the first board with all progression cleared."""
        self.turn = HUMAN
        self.is_check = False
        self.is_checkmate = False
        self.is_stalemate = False
        self.is_game_over = False
        self.winner: Optional[Color] = None
        self.pending_promotion: Optional[Square] = None
        self.move_log: List[LogEntry] = []
        self.captured: Dict[Color, List[Piece]] = {Color.WHITE: [], Color.BLACK: []}
        self.progression.reset()
        self.board: Board = self.progression.new_board()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def boards_cleared(self) -> int:
        return self.progression.boards_cleared

    @property
    def status(self) -> GameStatus:
        if self.progression.awaiting_reinforcement:
            return GameStatus.AWAITING_REINFORCEMENT
        if self.pending_promotion is not None:
            return GameStatus.AWAITING_PROMOTION
        if self.is_checkmate:
            return GameStatus.CHECKMATE
        if self.is_stalemate:
            return GameStatus.STALEMATE
        if self.is_game_over:
            return GameStatus.GAME_OVER
        if self.is_check:
            return GameStatus.CHECK
        return GameStatus.TO_MOVE

    @property
    def is_running(self) -> bool:
        """Moves can be made (no terminal state, no pending choice)."""
        return self.status in (GameStatus.TO_MOVE, GameStatus.CHECK)

    @property
    def ai_to_move(self) -> bool:
        return self.turn == AI and self.is_running

    def snapshot(self) -> dict:
        """Everything a renderer needs, as plain data."""
        board_rows = []
        for row in range(self.board.rows - 1, -1, -1):  # Top row first
            board_rows.append(
                [piece.code if piece else None for piece in self.board.grid[row]]
            )
        last_move = self.board.last_move
        return {
            "board": board_rows,
            "rows": self.board.rows,
            "turn": self.turn.value,
            "status": self.status.value,
            "is_check": self.is_check,
            "is_checkmate": self.is_checkmate,
            "is_stalemate": self.is_stalemate,
            "is_game_over": self.is_game_over,
            "winner": self.winner.value if self.winner else None,
            "captured": {
                color.value: [piece.code for piece in pieces]
                for color, pieces in self.captured.items()
            },
            "move_log": [entry.to_dict() for entry in self.move_log],
            "boards_cleared": self.boards_cleared,
            "pending_promotion": (
                square_name(*self.pending_promotion) if self.pending_promotion else None
            ),
            "reinforcement_options": [
                option.to_dict() for option in self.progression.pending_options
            ],
            "active_armies": sorted(self.progression.active_armies()),
            "last_move": last_move.to_uci() if last_move else None,
        }

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def legal_moves(self, square: SquareLike) -> List[Move]:
        """Legal moves from a square; empty unless it holds a piece of the side to move."""
        row, col = to_square(square)
        if not self.is_running:
            return []
        piece = self.board.get_piece(row, col)
        if piece is None or piece.color != self.turn:
            return []
        if not self.progression.is_army_active(piece.army):
            return []
        with self._fatal_on_corruption():
            return self.board.legal_moves(row, col)

    def apply_move(self, from_square: SquareLike, to_square_: SquareLike) -> MoveResult:
        """Apply a move for the side to move.

        Raises IllegalMoveError (and changes nothing) if the move is not legal.
        """
        start, end = to_square(from_square), to_square(to_square_)
        move = next(
            (m for m in self.legal_moves(start) if m.to_square == end),
            None,
        )
        if move is None:
            raise IllegalMoveError(
                f"Illegal move {self._describe_square(start)}-{self._describe_square(end)}"
            )

        with self._fatal_on_corruption():
            result = self._execute(move)
            if self.config.ai_autoplay and self.ai_to_move:
                result.ai_reply = self.play_ai_move()
        return result

    def play_ai_move(self) -> Optional[MoveResult]:
        """Let the engine move for Black. Returns None when Black passes."""
        if not self.ai_to_move:
            raise IllegalMoveError("It is not the computer's turn")

        with self._fatal_on_corruption():
            move = self.engine.choose_move(self.board, AI, self.progression.difficulty_for)
            if move is None:
                # Only dormant armies are left with moves
                self._log_event("Black armies dormant... White's turn")
                self.turn = HUMAN
                self._update_flags()
                return None
            return self._execute(move)

    def choose_promotion(self, piece_type: Union[str, PieceType]) -> Optional[MoveResult]:
        """Finish a suspended White promotion. Returns the AI reply, if any."""
        if self.pending_promotion is None:
            raise ChoiceError("No promotion is pending")
        piece_type = to_piece_type(piece_type)
        if piece_type not in PROMOTION_CHOICES:
            raise ChoiceError(f"Cannot promote to {piece_type.value}")

        row, col = self.pending_promotion
        piece = self.board.get_piece(row, col)
        piece.piece_type = piece_type  # Same object as the roster entry
        self.pending_promotion = None
        self._log_event(f"White pawn promoted to {piece_type.value} at {square_name(row, col)}")

        with self._fatal_on_corruption():
            self._finish_turn()
            if self.config.ai_autoplay and self.ai_to_move:
                return self.play_ai_move()
        return None

    def choose_reinforcement(self, piece_type: Union[str, PieceType]) -> Piece:
        """Take an offered reinforcement and start the next board."""
        piece = self.progression.choose_reinforcement(to_piece_type(piece_type))
        self.board = self.progression.next_board()
        self.turn = HUMAN
        self.is_check = False
        self.is_checkmate = False
        self.is_stalemate = False
        self.pending_promotion = None
        return piece

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(self, move: Move) -> MoveResult:
        """Apply an already validated move and settle the resulting state."""
        piece = self.board.get_piece(move.from_row, move.from_col)
        if move.en_passant:
            victim = self.board.get_piece(move.from_row, move.to_col)
        else:
            victim = self.board.get_piece(move.to_row, move.to_col)
        self._log_move(piece, move, victim)

        captured = self.board.apply_move(move)
        for taken in captured:
            self.captured[taken.color].append(taken)
            self.progression.on_piece_captured(taken)

        king = next((p for p in captured if p.piece_type == PieceType.KING), None)
        if king is not None:
            self._on_king_captured(king)
            return MoveResult(move, piece, captured, self.status)

        if piece.piece_type == PieceType.PAWN and move.to_row == self.board.promotion_row(piece.color):
            if piece.color == HUMAN:
                self.pending_promotion = move.to_square
                return MoveResult(move, piece, captured, self.status)
            piece.piece_type = PieceType.QUEEN
            self._log_event(f"Black pawn promoted to queen at {square_name(move.to_row, move.to_col)}")

        self._finish_turn()
        return MoveResult(move, piece, captured, self.status)

    def _finish_turn(self) -> None:
        """Hand the move to the other side and recompute its status."""
        self.turn = self.turn.opponent
        self.progression.update_activation(self.board)
        self._update_flags()

    def _update_flags(self) -> None:
        color = self.turn
        if self.progression.exhausted:
            self._end_game(Color.BLACK, "Game Over! White has no pieces left")
            return

        if color == AI:
            mated = self._find_mated_army()
            if mated is not None:
                self._clear_mated_army(mated)
                return

        in_check = self.board.is_in_check(color, all_armies=True)
        has_move = self.board.has_legal_move(color)
        self.is_check = in_check
        self.is_checkmate = in_check and not has_move
        self.is_stalemate = not in_check and not has_move

        if self.is_checkmate:
            self._end_game(Color.BLACK, "Checkmate! Black wins")
        elif self.is_stalemate:
            self._end_game(None, "Stalemate! Draw")

    def _find_mated_army(self) -> Optional[Square]:
        """King square of a Black army in check with no legal move, if any.

        Each army is mated on its own: moves of the other armies cannot
        rescue it.
        """
        for row, col in self.board.king_squares(AI, all_armies=True):
            if not self.board.is_square_attacked(row, col, HUMAN):
                continue
            army = self.board.get_piece(row, col).army
            if not self.board.all_legal_moves(AI, armies={army}):
                return row, col
        return None

    def _clear_mated_army(self, square: Square) -> None:
        """A mated Black army loses its king, which clears it like a capture.

        The status is recomputed afterwards, which handles any further
        mated army.
        """
        row, col = square
        king = self.board.get_piece(row, col)
        self.board.set_piece(row, col, None)
        self.captured[AI].append(king)
        self._log_event(f"Checkmate! {self._army_label(king)} king falls")
        self._on_king_captured(king)

    def _on_king_captured(self, king: Piece) -> None:
        self.is_check = False
        self.is_checkmate = False
        if king.color == HUMAN:
            if not self.board.king_squares(HUMAN):
                self._end_game(Color.BLACK, "Game Over! The White king has fallen")
            else:
                self._finish_turn()
            return

        self.progression.on_king_captured(self.board, king)
        if not self.progression.persistent:
            self.turn = HUMAN
            return
        if self.progression.all_armies_cleared:
            self._end_game(Color.WHITE, f"Victory! All {len(self.progression.armies)} Black armies defeated")
            return
        # The army vanished; settle whoever is to move next
        if self.turn == HUMAN:
            self._finish_turn()
        else:
            self._update_flags()

    def _end_game(self, winner: Optional[Color], message: str) -> None:
        self.is_game_over = True
        self.winner = winner
        logger.info("%s (%d boards cleared)", message, self.boards_cleared)
        self._log_event(f"{message} - {self.boards_cleared} cleared")

    @contextmanager
    def _fatal_on_corruption(self):
        try:
            yield
        except InvariantViolation:
            logger.error("Board invariant violated, ending game", exc_info=True)
            self.is_game_over = True
            raise

    def _army_label(self, piece: Piece) -> str:
        if piece.color == HUMAN:
            return "White"
        if self.progression.persistent:
            return f"Army {piece.army + 1} Black"
        return f"Board {self.boards_cleared + 1} Black"

    def _describe_square(self, square: Square) -> str:
        if self.board.in_bounds(*square):
            return square_name(*square)
        return str(square)

    def _log_move(self, piece: Piece, move: Move, victim: Optional[Piece]) -> None:
        text = (
            f"{self._army_label(piece)} {piece.name} "
            f"{square_name(move.from_row, move.from_col)}→{square_name(move.to_row, move.to_col)}"
        )
        if victim is not None:
            text += f" captures {self._army_label(victim)} {victim.name}"
        if move.en_passant:
            text += " en passant"
        if move.castling is not None:
            text += f" ({move.castling.value} castle)"
        self.move_log.insert(0, LogEntry(text))

    def _log_event(self, text: str) -> None:
        self.move_log.insert(0, LogEntry(text, is_event=True))
