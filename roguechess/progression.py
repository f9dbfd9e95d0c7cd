"""Progression between boards and armies.

Reset-and-reinforce mode plays one 8x8 board at a time: clearing it earns a
reinforcement piece and a fresh Black army. Persistent-armies mode stacks
several armies on one tall board; an army wakes up when White comes close
and disappears when its king falls.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional, Set

import numpy as np

from .board import Board, Color, Piece, PieceType, Square
from .config import GameConfig, ProgressionMode
from .engine import Difficulty
from .errors import ChoiceError

logger = logging.getLogger(__name__)

# (piece type, rarity, weight)
REINFORCEMENT_POOL = [
    (PieceType.PAWN, "common", 30),
    (PieceType.ROOK, "common", 20),
    (PieceType.KNIGHT, "common", 20),
    (PieceType.BISHOP, "common", 20),
    (PieceType.QUEEN, "rare", 8),
    (PieceType.KING, "legendary", 2),
]


@dataclass(frozen=True)
class ReinforcementOption:
    """A piece the player may add to the roster after clearing a board."""

    piece_type: PieceType
    rarity: str

    def to_dict(self) -> dict:
        return {"piece_type": self.piece_type.value, "rarity": self.rarity}


def draw_reinforcements(rng: np.random.Generator, count: int = 3) -> List[ReinforcementOption]:
    """Draw `count` distinct piece types, weighted by rarity.

    Types are drawn one after another without replacement, so a rare type
    only shows up when it wins a weighted draw against the types still left.
    """
    weights = np.array([weight for _, _, weight in REINFORCEMENT_POOL], dtype=float)
    picks = rng.choice(len(REINFORCEMENT_POOL), size=count, replace=False, p=weights / weights.sum())
    return [ReinforcementOption(*REINFORCEMENT_POOL[int(i)][:2]) for i in picks]


@dataclass
class ArmyState:
    """Activation state of one Black army."""

    index: int
    active: bool = False
    cleared: bool = False


class ProgressionController:
    """Tracks cleared boards, the White survivor roster and Black armies."""

    def __init__(
        self,
        config: GameConfig,
        rng: np.random.Generator,
        log_event: Callable[[str], None],
    ):
        self.config = config
        self.rng = rng
        self._log_event = log_event
        self.reset()

    def reset(self) -> None:
        self.boards_cleared = 0
        self.roster: List[Piece] = []
        self.armies: List[ArmyState] = []
        self.pending_options: List[ReinforcementOption] = []

    @property
    def persistent(self) -> bool:
        return self.config.mode == ProgressionMode.PERSISTENT_ARMIES

    @property
    def awaiting_reinforcement(self) -> bool:
        return bool(self.pending_options)

    @property
    def exhausted(self) -> bool:
        """White has nothing left to fight with."""
        return not self.roster

    @property
    def all_armies_cleared(self) -> bool:
        return self.persistent and all(army.cleared for army in self.armies)

    def new_board(self) -> Board:
        """Board for the start of a game; also builds the initial roster."""
        if self.persistent:
            board = Board(rows=self.config.board_rows)
            self.armies = [ArmyState(i) for i in range(self.config.army_count)]
            for army in self.armies:
                board.place_black_army(army.index)
            self.roster = board.place_white_army()
            self.update_activation(board)
        else:
            board = Board()
            self.armies = [ArmyState(0, active=True)]
            board.place_black_army(0)
            self.roster = board.place_white_army()
        return board

    # ------------------------------------------------------------------
    # Armies and difficulty
    # ------------------------------------------------------------------

    def is_army_active(self, army: Optional[int]) -> bool:
        if army is None or not self.persistent:
            return True
        state = self.armies[army]
        return state.active and not state.cleared

    def active_armies(self) -> Set[int]:
        return {army.index for army in self.armies if army.active and not army.cleared}

    def difficulty_for(self, piece: Piece) -> Optional[Difficulty]:
        """Difficulty a Black piece plays at, or None while its army sleeps."""
        if not self.is_army_active(piece.army):
            return None
        if self.persistent:
            return Difficulty.from_level(piece.army * self.config.level_step_per_army)
        return Difficulty.from_level(self.boards_cleared)

    def update_activation(self, board: Board) -> List[int]:
        """Wake dormant armies that White has come close to. Waking is permanent."""
        if not self.persistent:
            return []
        white_rows = {row for row, _, _ in board.pieces(Color.WHITE)}
        if not white_rows:
            return []

        woken = []
        for army in self.armies:
            if army.active or army.cleared:
                continue
            army_rows = {row for row, _, piece in board.pieces(Color.BLACK) if piece.army == army.index}
            if not army_rows:
                continue
            distance = min(abs(w - a) for w in white_rows for a in army_rows)
            if distance <= self.config.activation_distance:
                army.active = True
                woken.append(army.index)
                logger.info("Black army %d activated", army.index + 1)
                self._log_event(f"Black army {army.index + 1} awakens!")
        return woken

    # ------------------------------------------------------------------
    # Captures
    # ------------------------------------------------------------------

    def on_piece_captured(self, piece: Piece) -> None:
        """Drop a captured White piece from the survivor roster."""
        if piece.color == Color.WHITE:
            self.roster = [p for p in self.roster if p.piece_id != piece.piece_id]

    def on_king_captured(self, board: Board, king: Piece) -> None:
        """Clear the army whose king fell."""
        self.boards_cleared += 1
        if self.persistent:
            army = self.armies[king.army]
            army.cleared = True
            army.active = False
            board.remove_army(king.army)
            logger.info("Black army %d cleared (%d total)", king.army + 1, self.boards_cleared)
            self._log_event(f"Black army {king.army + 1} defeated!")
            return

        logger.info("Board %d cleared", self.boards_cleared)
        self._log_event(f"Board {self.boards_cleared} cleared! Choose reinforcement...")
        self.pending_options = draw_reinforcements(self.rng, self.config.reinforcement_choices)

    # ------------------------------------------------------------------
    # Reinforcements and the next board
    # ------------------------------------------------------------------

    def choose_reinforcement(self, piece_type: PieceType) -> Piece:
        """Add one of the offered piece types to the roster."""
        if not self.pending_options:
            raise ChoiceError("No reinforcement choice is pending")
        if piece_type not in [option.piece_type for option in self.pending_options]:
            raise ChoiceError(f"{piece_type.value} is not one of the offered reinforcements")

        piece = Piece(
            piece_type,
            Color.WHITE,
            piece_id=f"reward-{piece_type.value}-{uuid.uuid4().hex[:8]}",
        )
        self.roster.append(piece)
        self.pending_options = []
        self._log_event(f"Added {piece_type.value} to your army!")
        return piece

    def next_board(self) -> Board:
        """Fresh Black army plus the surviving White roster."""
        board = Board()
        board.place_black_army(0)
        self.place_roster(board)
        self._log_event(f"=== Board {self.boards_cleared + 1} ===")
        return board

    def place_roster(self, board: Board) -> None:
        """Originals go home; reward pieces fill empty squares from the back rank."""
        overflow = []
        for piece in self.roster:
            if piece.home is not None and board.get_piece(*piece.home) is None:
                self._place(board, piece, piece.home)
            else:
                overflow.append(piece)

        for piece in overflow:
            square = self._first_empty_square(board)
            if square is None:
                logger.warning("No room for %s on the new board, dropping it", piece)
                self.roster.remove(piece)
                continue
            self._place(board, piece, square)

    @staticmethod
    def _place(board: Board, piece: Piece, square: Square) -> None:
        piece.has_moved = False
        board.set_piece(square[0], square[1], piece)

    @staticmethod
    def _first_empty_square(board: Board) -> Optional[Square]:
        for row in range(board.rows):
            for col in range(board.cols):
                if board.get_piece(row, col) is None:
                    return (row, col)
        return None
