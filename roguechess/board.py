"""Chess board representation, move generation and attack detection."""

import re
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from .errors import InvalidSquareError, InvariantViolation

Square = Tuple[int, int]  # (row, col)

FILES = "abcdefgh"


class Color(Enum):
    """Player colors."""

    WHITE = "white"  # Human, moves first, pawns move up
    BLACK = "black"  # AI armies, pawns move down

    @property
    def opponent(self) -> "Color":
        return Color.BLACK if self == Color.WHITE else Color.WHITE

    @property
    def forward(self) -> int:
        return 1 if self == Color.WHITE else -1


class PieceType(Enum):
    """Piece types."""

    PAWN = "pawn"
    KNIGHT = "knight"
    BISHOP = "bishop"
    ROOK = "rook"
    QUEEN = "queen"
    KING = "king"


class Castling(Enum):
    """Castling side."""

    KINGSIDE = "kingside"
    QUEENSIDE = "queenside"


PIECE_LETTERS = {
    PieceType.PAWN: "P",
    PieceType.KNIGHT: "N",
    PieceType.BISHOP: "B",
    PieceType.ROOK: "R",
    PieceType.QUEEN: "Q",
    PieceType.KING: "K",
}
LETTER_TO_TYPE = {letter: piece_type for piece_type, letter in PIECE_LETTERS.items()}

BACK_ROW = [
    PieceType.ROOK,
    PieceType.KNIGHT,
    PieceType.BISHOP,
    PieceType.QUEEN,
    PieceType.KING,
    PieceType.BISHOP,
    PieceType.KNIGHT,
    PieceType.ROOK,
]

# (rook from col, rook to col, king to col, cols that must be empty, cols the king crosses)
CASTLING_LAYOUT = {
    Castling.KINGSIDE: (7, 5, 6, (5, 6), (5, 6)),
    Castling.QUEENSIDE: (0, 3, 2, (1, 2, 3), (3, 2)),
}

KNIGHT_OFFSETS = [(-2, -1), (-2, 1), (-1, -2), (-1, 2), (1, -2), (1, 2), (2, -1), (2, 1)]
KING_OFFSETS = [(dr, dc) for dr in (-1, 0, 1) for dc in (-1, 0, 1) if dr or dc]
ORTHOGONAL = [(0, 1), (1, 0), (0, -1), (-1, 0)]
DIAGONAL = [(1, 1), (1, -1), (-1, 1), (-1, -1)]


def square_name(row: int, col: int) -> str:
    """Convert (row, col) to algebraic notation, e.g. (0, 4) -> 'e1'."""
    return f"{FILES[col]}{row + 1}"


def parse_square(name: str) -> Square:
    """Convert algebraic notation (e.g. 'e2', 'a12') to (row, col)."""
    match = re.fullmatch(r"([a-h])(\d{1,2})", name.strip().lower())
    if not match:
        raise InvalidSquareError(f"Invalid square: {name!r}")
    return int(match.group(2)) - 1, FILES.index(match.group(1))


@dataclass
class Piece:
    """A piece. `piece_id` follows the piece for its whole life."""

    piece_type: PieceType
    color: Color
    has_moved: bool = False
    piece_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    army: Optional[int] = None  # Black army index, None for White
    home: Optional[Square] = None  # Replay square for original White pieces

    def __str__(self) -> str:
        return f"{self.color.value}_{self.piece_type.value}"

    @property
    def code(self) -> str:
        """Two-letter code such as 'wK' or 'bP'."""
        return f"{self.color.value[0]}{PIECE_LETTERS[self.piece_type]}"

    @property
    def name(self) -> str:
        return self.piece_type.value.capitalize()

    def copy(self) -> "Piece":
        return replace(self)


@dataclass
class Move:
    """Represents a move."""

    from_row: int
    from_col: int
    to_row: int
    to_col: int
    en_passant: bool = False
    castling: Optional[Castling] = None

    @property
    def from_square(self) -> Square:
        return (self.from_row, self.from_col)

    @property
    def to_square(self) -> Square:
        return (self.to_row, self.to_col)

    def __str__(self) -> str:
        return self.to_uci()

    def to_uci(self) -> str:
        """Convert to UCI-like notation."""
        return square_name(self.from_row, self.from_col) + square_name(self.to_row, self.to_col)

    @classmethod
    def from_uci(cls, uci: str) -> "Move":
        """Parse UCI-like notation. Flags are not recovered."""
        match = re.fullmatch(r"([a-h]\d{1,2})([a-h]\d{1,2})", uci.strip().lower())
        if not match:
            raise InvalidSquareError(f"Invalid move: {uci!r}")
        from_row, from_col = parse_square(match.group(1))
        to_row, to_col = parse_square(match.group(2))
        return cls(from_row, from_col, to_row, to_col)


class UndoRecord(NamedTuple):
    """Everything needed to take back a move made with make_move_fast."""

    move: Move
    piece: Piece
    had_moved: bool
    captured: Optional[Piece]
    captured_square: Optional[Square]
    rook_from: Optional[Square]
    rook_to: Optional[Square]
    rook_had_moved: bool
    last_move: Optional[Move]


def _pawn_reaches(piece: Piece, dr: int, dc: int) -> bool:
    return dr == piece.color.forward and abs(dc) == 1


def _knight_reaches(piece: Piece, dr: int, dc: int) -> bool:
    return (abs(dr), abs(dc)) in ((1, 2), (2, 1))


def _king_reaches(piece: Piece, dr: int, dc: int) -> bool:
    return max(abs(dr), abs(dc)) == 1


def _bishop_line(piece: Piece, dr: int, dc: int) -> bool:
    return abs(dr) == abs(dc)


def _rook_line(piece: Piece, dr: int, dc: int) -> bool:
    return dr == 0 or dc == 0


def _queen_line(piece: Piece, dr: int, dc: int) -> bool:
    return dr == 0 or dc == 0 or abs(dr) == abs(dc)


# piece type -> (geometry test, needs a clear path)
ATTACK_PATTERNS = {
    PieceType.PAWN: (_pawn_reaches, False),
    PieceType.KNIGHT: (_knight_reaches, False),
    PieceType.KING: (_king_reaches, False),
    PieceType.BISHOP: (_bishop_line, True),
    PieceType.ROOK: (_rook_line, True),
    PieceType.QUEEN: (_queen_line, True),
}


class Board:
    """Chess board of `rows` x 8 squares.

    Row 0 is White's back rank. The standard board has 8 rows; the extended
    board used for persistent armies stacks one 8-row segment per army.
    """

    COLS = 8

    def __init__(self, rows: int = 8, custom_setup: Optional[Dict[str, str]] = None):
        """Initialize an empty board.

        Args:
            rows: Number of rows (8 for a standard board)
            custom_setup: Optional dictionary mapping squares (e.g. "e1") to piece
                codes (e.g. "wK" for White King). Black pieces are assigned to the
                army whose 8-row segment holds them.
        """
        self.rows = rows
        self.cols = self.COLS
        self.grid: List[List[Optional[Piece]]] = [
            [None for _ in range(self.cols)] for _ in range(self.rows)
        ]
        self.last_move: Optional[Move] = None  # For en passant
        if custom_setup:
            self._initialize_custom_position(custom_setup)

    @classmethod
    def standard(cls) -> "Board":
        """The usual starting position with one Black army."""
        board = cls()
        board.place_white_army()
        board.place_black_army(0)
        return board

    def place_white_army(self) -> List[Piece]:
        """Set up White's 16 original pieces on rows 0-1 and return them."""
        pieces = []
        for col, piece_type in enumerate(BACK_ROW):
            for row, kind in ((0, piece_type), (1, PieceType.PAWN)):
                piece = Piece(
                    kind,
                    Color.WHITE,
                    piece_id=f"white-{kind.value}-{col}",
                    home=(row, col),
                )
                self.grid[row][col] = piece
                pieces.append(piece)
        return pieces

    def place_black_army(self, army: int) -> List[Piece]:
        """Set up a fresh Black army at the top of segment `army`."""
        back_row = 8 * army + 7
        pawn_row = back_row - 1
        pieces = []
        for col, piece_type in enumerate(BACK_ROW):
            for row, kind in ((back_row, piece_type), (pawn_row, PieceType.PAWN)):
                piece = Piece(
                    kind,
                    Color.BLACK,
                    piece_id=f"black{army}-{kind.value}-{col}",
                    army=army,
                )
                self.grid[row][col] = piece
                pieces.append(piece)
        return pieces

    def _initialize_custom_position(self, custom_setup: Dict[str, str]):
        """Place pieces from a {"e1": "wK"} style mapping."""
        for name, code in custom_setup.items():
            row, col = parse_square(name)
            if not self.in_bounds(row, col):
                raise InvalidSquareError(f"Square {name} is off the board")
            if len(code) != 2 or code[0] not in "wb" or code[1] not in LETTER_TO_TYPE:
                raise ValueError(f"Invalid piece code: {code!r}")
            color = Color.WHITE if code[0] == "w" else Color.BLACK
            self.grid[row][col] = Piece(
                LETTER_TO_TYPE[code[1]],
                color,
                army=row // 8 if color == Color.BLACK else None,
            )

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.cols

    def get_piece(self, row: int, col: int) -> Optional[Piece]:
        """Get piece at given coordinates."""
        if self.in_bounds(row, col):
            return self.grid[row][col]
        return None

    def set_piece(self, row: int, col: int, piece: Optional[Piece]) -> None:
        self.grid[row][col] = piece

    def pieces(self, color: Optional[Color] = None) -> Iterator[Tuple[int, int, Piece]]:
        """Iterate over (row, col, piece) for every piece, optionally by color."""
        for row in range(self.rows):
            for col in range(self.cols):
                piece = self.grid[row][col]
                if piece is not None and (color is None or piece.color == color):
                    yield row, col, piece

    def count_pieces(self) -> Dict[Color, int]:
        counts = {Color.WHITE: 0, Color.BLACK: 0}
        for _, _, piece in self.pieces():
            counts[piece.color] += 1
        return counts

    def promotion_row(self, color: Color) -> int:
        return self.rows - 1 if color == Color.WHITE else 0

    def copy(self) -> "Board":
        """Fully independent copy (every piece record is duplicated)."""
        clone = Board(rows=self.rows)
        for row, col, piece in self.pieces():
            clone.grid[row][col] = piece.copy()
        clone.last_move = replace(self.last_move) if self.last_move else None
        return clone

    def to_fen(self) -> str:
        """Piece placement in FEN style, top row first."""
        fen_rows = []
        for row in range(self.rows - 1, -1, -1):
            row_str = ""
            empty = 0
            for col in range(self.cols):
                piece = self.grid[row][col]
                if piece is None:
                    empty += 1
                    continue
                if empty:
                    row_str += str(empty)
                    empty = 0
                letter = PIECE_LETTERS[piece.piece_type]
                row_str += letter if piece.color == Color.WHITE else letter.lower()
            if empty:
                row_str += str(empty)
            fen_rows.append(row_str)
        return "/".join(fen_rows)

    # ------------------------------------------------------------------
    # Move generation (pseudo-legal)
    # ------------------------------------------------------------------

    def pseudo_legal_moves(self, row: int, col: int, include_castling: bool = True) -> List[Move]:
        """Moves obeying the piece's movement rules, ignoring self-check."""
        piece = self.get_piece(row, col)
        if piece is None:
            return []
        generator = self._MOVE_GENERATORS[piece.piece_type]
        moves = generator(self, row, col, piece)
        if include_castling and piece.piece_type == PieceType.KING:
            moves.extend(self._generate_castling_moves(row, col, piece))
        return moves

    def _generate_pawn_moves(self, row: int, col: int, piece: Piece) -> List[Move]:
        """Pushes, double push from an unmoved pawn, captures and en passant."""
        moves = []
        forward = piece.color.forward

        one_step = row + forward
        if self.in_bounds(one_step, col) and self.grid[one_step][col] is None:
            moves.append(Move(row, col, one_step, col))
            two_step = row + 2 * forward
            if (
                not piece.has_moved
                and self.in_bounds(two_step, col)
                and self.grid[two_step][col] is None
            ):
                moves.append(Move(row, col, two_step, col))

        for dc in (-1, 1):
            to_col = col + dc
            if not self.in_bounds(one_step, to_col):
                continue
            target = self.grid[one_step][to_col]
            if target is not None:
                if target.color != piece.color:
                    moves.append(Move(row, col, one_step, to_col))
            elif self._can_capture_en_passant(row, to_col, piece):
                moves.append(Move(row, col, one_step, to_col, en_passant=True))

        return moves

    def _can_capture_en_passant(self, row: int, side_col: int, piece: Piece) -> bool:
        """Whether the pawn beside us just arrived with a two-square advance."""
        last = self.last_move
        if last is None or last.to_square != (row, side_col):
            return False
        if abs(last.from_row - last.to_row) != 2 or last.from_col != last.to_col:
            return False
        victim = self.grid[row][side_col]
        return (
            victim is not None
            and victim.piece_type == PieceType.PAWN
            and victim.color != piece.color
        )

    def _generate_knight_moves(self, row: int, col: int, piece: Piece) -> List[Move]:
        moves = []
        for dr, dc in KNIGHT_OFFSETS:
            to_row, to_col = row + dr, col + dc
            if self.in_bounds(to_row, to_col):
                target = self.grid[to_row][to_col]
                if target is None or target.color != piece.color:
                    moves.append(Move(row, col, to_row, to_col))
        return moves

    def _slide(self, row: int, col: int, piece: Piece, directions) -> List[Move]:
        """Cast rays until the edge or the first occupied square."""
        moves = []
        for dr, dc in directions:
            to_row, to_col = row + dr, col + dc
            while self.in_bounds(to_row, to_col):
                target = self.grid[to_row][to_col]
                if target is None:
                    moves.append(Move(row, col, to_row, to_col))
                else:
                    if target.color != piece.color:
                        moves.append(Move(row, col, to_row, to_col))
                    break
                to_row += dr
                to_col += dc
        return moves

    def _generate_bishop_moves(self, row: int, col: int, piece: Piece) -> List[Move]:
        return self._slide(row, col, piece, DIAGONAL)

    def _generate_rook_moves(self, row: int, col: int, piece: Piece) -> List[Move]:
        return self._slide(row, col, piece, ORTHOGONAL)

    def _generate_queen_moves(self, row: int, col: int, piece: Piece) -> List[Move]:
        return self._slide(row, col, piece, ORTHOGONAL + DIAGONAL)

    def _generate_king_moves(self, row: int, col: int, piece: Piece) -> List[Move]:
        """The eight neighbouring squares (castling is added separately)."""
        moves = []
        for dr, dc in KING_OFFSETS:
            to_row, to_col = row + dr, col + dc
            if self.in_bounds(to_row, to_col):
                target = self.grid[to_row][to_col]
                if target is None or target.color != piece.color:
                    moves.append(Move(row, col, to_row, to_col))
        return moves

    def _generate_castling_moves(self, row: int, col: int, piece: Piece) -> List[Move]:
        """Castling moves for an unmoved king on the e-file.

        The king may not be in check, and neither may it cross or land on an
        attacked square.
        """
        if piece.has_moved or col != 4:
            return []
        enemy = piece.color.opponent
        if self.is_square_attacked(row, col, enemy):
            return []

        moves = []
        for side, (rook_col, _, king_to_col, empty_cols, transit_cols) in CASTLING_LAYOUT.items():
            rook = self.grid[row][rook_col]
            if (
                rook is None
                or rook.piece_type != PieceType.ROOK
                or rook.color != piece.color
                or rook.has_moved
            ):
                continue
            if any(self.grid[row][c] is not None for c in empty_cols):
                continue
            if any(self.is_square_attacked(row, c, enemy) for c in transit_cols):
                continue
            moves.append(Move(row, col, row, king_to_col, castling=side))
        return moves

    _MOVE_GENERATORS = {
        PieceType.PAWN: _generate_pawn_moves,
        PieceType.KNIGHT: _generate_knight_moves,
        PieceType.BISHOP: _generate_bishop_moves,
        PieceType.ROOK: _generate_rook_moves,
        PieceType.QUEEN: _generate_queen_moves,
        PieceType.KING: _generate_king_moves,
    }

    # ------------------------------------------------------------------
    # Attack detection
    # ------------------------------------------------------------------

    def attacks(self, from_row: int, from_col: int, to_row: int, to_col: int) -> bool:
        """Whether the piece on (from_row, from_col) attacks (to_row, to_col).

        Uses raw movement rules: pawns only attack diagonally and occupancy of
        the target square does not matter.
        """
        piece = self.grid[from_row][from_col]
        if piece is None:
            return False
        dr, dc = to_row - from_row, to_col - from_col
        if dr == 0 and dc == 0:
            return False
        reaches, needs_clear_path = ATTACK_PATTERNS[piece.piece_type]
        if not reaches(piece, dr, dc):
            return False
        if needs_clear_path:
            return self._is_path_clear(from_row, from_col, to_row, to_col)
        return True

    def _is_path_clear(self, from_row: int, from_col: int, to_row: int, to_col: int) -> bool:
        """Squares strictly between the two ends of a straight line are empty."""
        step_row = (to_row > from_row) - (to_row < from_row)
        step_col = (to_col > from_col) - (to_col < from_col)
        row, col = from_row + step_row, from_col + step_col
        while (row, col) != (to_row, to_col):
            if self.grid[row][col] is not None:
                return False
            row += step_row
            col += step_col
        return True

    def is_square_attacked(self, row: int, col: int, by_color: Color) -> bool:
        """Check if any piece of `by_color` on this board attacks the square."""
        for from_row, from_col, _ in self.pieces(by_color):
            if self.attacks(from_row, from_col, row, col):
                return True
        return False

    def attackers(self, row: int, col: int, by_color: Color) -> List[Square]:
        """Squares of the `by_color` pieces attacking (row, col)."""
        return [
            (from_row, from_col)
            for from_row, from_col, _ in self.pieces(by_color)
            if self.attacks(from_row, from_col, row, col)
        ]

    # ------------------------------------------------------------------
    # Kings and legality
    # ------------------------------------------------------------------

    def king_squares(
        self, color: Color, army: Optional[int] = None, all_armies: bool = False
    ) -> List[Square]:
        """Squares of the kings of `color` (of one army unless `all_armies`)."""
        return [
            (row, col)
            for row, col, piece in self.pieces(color)
            if piece.piece_type == PieceType.KING and (all_armies or piece.army == army)
        ]

    def get_king_position(self, color: Color, army: Optional[int] = None) -> Square:
        """Position of the king of `color`; raises if there is none."""
        kings = self.king_squares(color, army)
        if not kings:
            raise InvariantViolation(f"No {color.value} king on the board (army={army})")
        return kings[0]

    def is_in_check(self, color: Color, army: Optional[int] = None, all_armies: bool = False) -> bool:
        """Check if any of the given side's kings is attacked."""
        kings = self.king_squares(color, army, all_armies)
        if not kings:
            raise InvariantViolation(f"No {color.value} king on the board (army={army})")
        enemy = color.opponent
        return any(self.is_square_attacked(row, col, enemy) for row, col in kings)

    def legal_moves(self, row: int, col: int) -> List[Move]:
        """Pseudo-legal moves that do not leave the mover's own king attacked."""
        piece = self.get_piece(row, col)
        if piece is None:
            return []
        return [
            move
            for move in self.pseudo_legal_moves(row, col)
            if self._would_be_legal(move, piece)
        ]

    def _would_be_legal(self, move: Move, piece: Piece) -> bool:
        """Try the move, test the mover's kings, then take it back."""
        undo = self.make_move_fast(move)
        try:
            return not self.is_in_check(piece.color, piece.army)
        finally:
            self.undo_move_fast(undo)

    def all_legal_moves(self, color: Color, armies: Optional[set] = None) -> List[Move]:
        """Every legal move for `color`, optionally only for some Black armies."""
        moves = []
        for row, col, piece in list(self.pieces(color)):
            if armies is not None and piece.army not in armies:
                continue
            moves.extend(self.legal_moves(row, col))
        return moves

    def has_legal_move(self, color: Color) -> bool:
        for row, col, _ in list(self.pieces(color)):
            if self.legal_moves(row, col):
                return True
        return False

    # ------------------------------------------------------------------
    # Making moves
    # ------------------------------------------------------------------

    def make_move_fast(self, move: Move) -> UndoRecord:
        """Apply a move without validation and return what undo needs.

        Handles the en passant victim and the castling rook.
        """
        piece = self.grid[move.from_row][move.from_col]
        if piece is None:
            raise InvariantViolation(f"No piece on {square_name(move.from_row, move.from_col)}")

        captured_square: Optional[Square] = move.to_square
        if move.en_passant:
            captured_square = (move.from_row, move.to_col)
        captured = self.grid[captured_square[0]][captured_square[1]]
        self.grid[captured_square[0]][captured_square[1]] = None
        if captured is None:
            captured_square = None

        rook_from = rook_to = None
        rook_had_moved = False
        if move.castling is not None:
            rook_col, rook_to_col = CASTLING_LAYOUT[move.castling][:2]
            rook_from = (move.from_row, rook_col)
            rook_to = (move.from_row, rook_to_col)
            rook = self.grid[move.from_row][rook_col]
            rook_had_moved = rook.has_moved
            self.grid[move.from_row][rook_to_col] = rook
            self.grid[move.from_row][rook_col] = None
            rook.has_moved = True

        self.grid[move.to_row][move.to_col] = piece
        self.grid[move.from_row][move.from_col] = None
        had_moved = piece.has_moved
        piece.has_moved = True

        previous_last_move = self.last_move
        self.last_move = move

        return UndoRecord(
            move=move,
            piece=piece,
            had_moved=had_moved,
            captured=captured,
            captured_square=captured_square,
            rook_from=rook_from,
            rook_to=rook_to,
            rook_had_moved=rook_had_moved,
            last_move=previous_last_move,
        )

    def undo_move_fast(self, undo: UndoRecord) -> None:
        """Take back a move made with make_move_fast. Must be called in LIFO order."""
        move = undo.move
        self.grid[move.from_row][move.from_col] = undo.piece
        self.grid[move.to_row][move.to_col] = None
        undo.piece.has_moved = undo.had_moved

        if undo.rook_from is not None:
            rook = self.grid[undo.rook_to[0]][undo.rook_to[1]]
            self.grid[undo.rook_to[0]][undo.rook_to[1]] = None
            self.grid[undo.rook_from[0]][undo.rook_from[1]] = rook
            rook.has_moved = undo.rook_had_moved

        if undo.captured_square is not None:
            self.grid[undo.captured_square[0]][undo.captured_square[1]] = undo.captured

        self.last_move = undo.last_move

    def apply_move(self, move: Move) -> List[Piece]:
        """Apply a move for good and return the removed pieces."""
        undo = self.make_move_fast(move)
        return [undo.captured] if undo.captured is not None else []

    def remove_army(self, army: int) -> List[Piece]:
        """Take every piece of a Black army off the board."""
        removed = []
        for row, col, piece in list(self.pieces(Color.BLACK)):
            if piece.army == army:
                self.grid[row][col] = None
                removed.append(piece)
        return removed
