"""Heuristic move selection for the computer-controlled armies.

The engine looks one ply ahead only: every legal move is scored by a weighted
sum of material, position and simple tactical terms, and the best-scoring
move is played. Difficulty scales the weights and shrinks the random noise.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np

from .board import KING_OFFSETS, KNIGHT_OFFSETS, Board, Color, Move, Piece, PieceType

logger = logging.getLogger(__name__)

PIECE_VALUES = {
    PieceType.PAWN: 10,
    PieceType.KNIGHT: 30,
    PieceType.BISHOP: 30,
    PieceType.ROOK: 50,
    PieceType.QUEEN: 90,
    PieceType.KING: 1000,
}

FORK_TARGETS = (PieceType.KING, PieceType.QUEEN, PieceType.ROOK)


@dataclass(frozen=True)
class Difficulty:
    """Scaling applied to the evaluation weights."""

    level: int
    multiplier: float
    hard: bool
    expert: bool

    @classmethod
    def from_level(cls, level: int) -> "Difficulty":
        """Difficulty for a level (boards cleared, or scaled army index)."""
        return cls(
            level=level,
            multiplier=min(0.3 + level * 0.4, 5.0),
            hard=level >= 3,
            expert=level >= 6,
        )

    def tiered(self, normal: float, hard: float, expert: float) -> float:
        if self.expert:
            return expert
        if self.hard:
            return hard
        return normal


def segment_base(piece: Piece) -> int:
    """First row of the 8-row segment a piece belongs to."""
    return 8 * piece.army if piece.army is not None else 0


def center_distance(row: int, col: int, base: int = 0) -> float:
    """Manhattan distance from the centre of the segment starting at `base`."""
    return abs(base + 3.5 - row) + abs(3.5 - col)


class Engine:
    """Single-ply heuristic engine."""

    def __init__(self, rng: Optional[np.random.Generator] = None, endgame_piece_threshold: int = 12):
        """Initialize engine.

        Args:
            rng: Randomness source (noise and tie-breaking). Anything with
                `random()` and `integers(n)` works, which lets tests fix it.
            endgame_piece_threshold: Total piece count below which endgame
                terms are scored on the expert tier
        """
        self.rng = rng if rng is not None else np.random.default_rng()
        self.endgame_piece_threshold = endgame_piece_threshold
        self.moves_scored = 0
        self.last_scores: List[Tuple[Move, float]] = []

    def choose_move(
        self,
        board: Board,
        color: Color,
        difficulty_for: Callable[[Piece], Optional[Difficulty]],
    ) -> Optional[Move]:
        """Score every legal move of `color` and pick one of the best.

        `difficulty_for` returns None for pieces that may not move (dormant
        armies). The board is left exactly as it was.
        """
        scored: List[Tuple[Move, float]] = []
        for row, col, piece in list(board.pieces(color)):
            difficulty = difficulty_for(piece)
            if difficulty is None:
                continue
            for move in board.legal_moves(row, col):
                scored.append((move, self.score_move(board, move, difficulty)))

        self.moves_scored = len(scored)
        self.last_scores = scored
        move = self.select_best(scored)
        if move is not None:
            logger.debug("AI picked %s out of %d moves", move, len(scored))
        return move

    def select_best(self, scored: List[Tuple[Move, float]]) -> Optional[Move]:
        """Uniform random choice among the moves tied for the top score."""
        if not scored:
            return None
        best_score = max(score for _, score in scored)
        best_moves = [move for move, score in scored if score == best_score]
        return best_moves[int(self.rng.integers(len(best_moves)))]

    def score_move(self, board: Board, move: Move, difficulty: Difficulty) -> float:
        """Weighted heuristic score of a legal move. Higher is better."""
        piece = board.get_piece(move.from_row, move.from_col)
        if move.en_passant:
            target = board.get_piece(move.from_row, move.to_col)
        else:
            target = board.get_piece(move.to_row, move.to_col)
        m = difficulty.multiplier
        enemy = piece.color.opponent
        base = segment_base(piece)

        # Less noise for stronger armies
        score = self.rng.random() * (8 / m)

        after = board.copy()
        after.apply_move(move)
        if piece.piece_type == PieceType.PAWN and move.to_row == after.promotion_row(piece.color):
            # Computer pawns always promote to a queen
            after.get_piece(move.to_row, move.to_col).piece_type = PieceType.QUEEN
        destination_attacked = after.is_square_attacked(move.to_row, move.to_col, enemy)

        if target is not None:
            capture_value = PIECE_VALUES[target.piece_type] * m
            if difficulty.hard and destination_attacked:
                trade = PIECE_VALUES[target.piece_type] - PIECE_VALUES[piece.piece_type]
                capture_value += trade * 0.8 if trade > 0 else trade * 1.2
            score += capture_value

        centrality = 7 - center_distance(move.to_row, move.to_col, base)
        if difficulty.hard:
            score += centrality * 3 * m
            score += self._coordination(after, move, piece) * m
            score += self._king_proximity(after, move, piece) * m * 2
        else:
            score += centrality * 2 * m

        if not piece.has_moved:
            score += max(5, 20 - difficulty.level * 2) * m

        if self._gives_check(after, piece.color):
            score += difficulty.tiered(40, 60, 80) * m

        if destination_attacked:
            danger = PIECE_VALUES[piece.piece_type] * m / 2
            if difficulty.expert and target is None:
                danger *= 2
            score -= danger

        if difficulty.hard:
            if self._creates_fork(after, move, piece):
                score += 40 * m
            if piece.piece_type == PieceType.PAWN:
                score += self._pawn_structure(after, move, piece) * m
            score += self._mobility(after, move) * m

        if difficulty.expert:
            score += self._key_square_control(after, move, piece) * m
            if sum(board.count_pieces().values()) < self.endgame_piece_threshold:
                score += self._endgame_activity(move, piece) * m

        if self._exposes_king(board, after, piece):
            score -= difficulty.tiered(20, 40, 60) * m

        return score

    def _coordination(self, after: Board, move: Move, piece: Piece) -> float:
        """5 points per friendly piece defending the destination."""
        return 5 * len(after.attackers(move.to_row, move.to_col, piece.color))

    def _king_proximity(self, after: Board, move: Move, piece: Piece) -> float:
        """Prefer keeping pieces close to their own king."""
        kings = after.king_squares(piece.color, piece.army)
        if not kings:
            return 0
        distance = min(abs(move.to_row - r) + abs(move.to_col - c) for r, c in kings)
        return max(0, 8 - distance)

    def _gives_check(self, after: Board, color: Color) -> bool:
        """Whether any enemy king is attacked once the move is made."""
        return any(
            after.is_square_attacked(row, col, color)
            for row, col in after.king_squares(color.opponent, all_armies=True)
        )

    def _creates_fork(self, after: Board, move: Move, piece: Piece) -> bool:
        """Knight landing where it hits two or more of king, queen and rook."""
        if piece.piece_type != PieceType.KNIGHT:
            return False
        threatened = 0
        for dr, dc in KNIGHT_OFFSETS:
            target = after.get_piece(move.to_row + dr, move.to_col + dc)
            if target is not None and target.color != piece.color and target.piece_type in FORK_TARGETS:
                threatened += 1
        return threatened >= 2

    def _pawn_structure(self, after: Board, move: Move, piece: Piece) -> float:
        structure = 0
        if (move.to_row - move.from_row) * piece.color.forward > 0:
            structure += 10

        # Isolated pawn: no friendly pawn on either neighbouring file
        has_neighbour = any(
            other.piece_type == PieceType.PAWN
            and other.army == piece.army
            and abs(col - move.to_col) == 1
            for _, col, other in after.pieces(piece.color)
        )
        if not has_neighbour:
            structure -= 5
        return structure

    def _mobility(self, after: Board, move: Move) -> int:
        return len(after.pseudo_legal_moves(move.to_row, move.to_col, include_castling=False))

    def _key_square_control(self, after: Board, move: Move, piece: Piece) -> float:
        """15 points for landing in the centre or next to an enemy king."""
        base = segment_base(piece)
        if move.to_row in (base + 3, base + 4) and move.to_col in (3, 4):
            return 15
        for row, col in after.king_squares(piece.color.opponent, all_armies=True):
            if max(abs(move.to_row - row), abs(move.to_col - col)) <= 1:
                return 15
        return 0

    def _endgame_activity(self, move: Move, piece: Piece) -> float:
        """Centralize the king and activate heavy pieces."""
        if piece.piece_type == PieceType.KING:
            return (7 - center_distance(move.to_row, move.to_col, segment_base(piece))) * 5
        if piece.piece_type in (PieceType.ROOK, PieceType.QUEEN):
            return 10
        return 0

    def _exposes_king(self, before: Board, after: Board, piece: Piece) -> bool:
        """Whether the move leaves more attacked squares around the mover's king."""
        return self._king_zone_pressure(after, piece) > self._king_zone_pressure(before, piece)

    def _king_zone_pressure(self, board: Board, piece: Piece) -> int:
        enemy = piece.color.opponent
        pressure = 0
        for king_row, king_col in board.king_squares(piece.color, piece.army):
            for dr, dc in KING_OFFSETS + [(0, 0)]:
                row, col = king_row + dr, king_col + dc
                if board.in_bounds(row, col) and board.is_square_attacked(row, col, enemy):
                    pressure += 1
        return pressure
