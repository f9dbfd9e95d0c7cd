"""Unit tests for Engine class."""

import pytest
import sys
import os

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from roguechess import Board, Move, Color, PieceType, Engine, Difficulty


class FixedRng:
    """No noise, always the first of the tied moves."""

    def random(self):
        return 0.0

    def integers(self, n):
        return 0


class LastRng(FixedRng):
    def integers(self, n):
        return n - 1


def fixed(level):
    return lambda piece: Difficulty.from_level(level)


class TestDifficulty:
    """Test difficulty scaling."""

    def test_multiplier(self):
        assert Difficulty.from_level(0).multiplier == pytest.approx(0.3)
        assert Difficulty.from_level(1).multiplier == pytest.approx(0.7)
        assert Difficulty.from_level(5).multiplier == pytest.approx(2.3)

    def test_multiplier_is_capped(self):
        assert Difficulty.from_level(12).multiplier == 5.0
        assert Difficulty.from_level(50).multiplier == 5.0

    def test_tiers(self):
        assert not Difficulty.from_level(2).hard
        assert Difficulty.from_level(3).hard
        assert not Difficulty.from_level(5).expert
        assert Difficulty.from_level(6).expert
        assert Difficulty.from_level(6).hard

    def test_tiered_values(self):
        assert Difficulty.from_level(0).tiered(40, 60, 80) == 40
        assert Difficulty.from_level(4).tiered(40, 60, 80) == 60
        assert Difficulty.from_level(9).tiered(40, 60, 80) == 80


class TestEngineInitialization:
    """Test engine initialization."""

    def test_default_initialization(self):
        engine = Engine()

        assert engine.moves_scored == 0
        assert engine.endgame_piece_threshold == 12
        assert isinstance(engine.rng, np.random.Generator)


class TestMoveSelection:
    """Test move selection."""

    def test_returns_legal_move(self):
        board = Board.standard()
        engine = Engine(rng=np.random.default_rng(0))

        move = engine.choose_move(board, Color.BLACK, fixed(0))

        assert isinstance(move, Move)
        legal = [m.to_uci() for m in board.all_legal_moves(Color.BLACK)]
        assert move.to_uci() in legal
        assert engine.moves_scored == 20

    def test_board_is_unchanged(self):
        """Scoring moves leaves the board exactly as it was."""
        board = Board.standard()
        board.apply_move(Move(1, 4, 3, 4))
        fen = board.to_fen()
        flags = [(r, c, p.has_moved) for r, c, p in board.pieces()]
        last_move = board.last_move

        Engine(rng=np.random.default_rng(1)).choose_move(board, Color.BLACK, fixed(7))

        assert board.to_fen() == fen
        assert [(r, c, p.has_moved) for r, c, p in board.pieces()] == flags
        assert board.last_move == last_move

    def test_prefers_free_queen(self):
        """An undefended queen is taken."""
        board = Board(custom_setup={"a1": "wK", "d5": "wQ", "d8": "bR", "h8": "bK"})
        engine = Engine(rng=FixedRng())

        move = engine.choose_move(board, Color.BLACK, fixed(0))

        assert move.from_square == (7, 3)
        assert move.to_square == (4, 3)

    def test_hard_engine_plays_fork(self):
        """A knight check that also hits a rook beats a plain check."""
        board = Board(custom_setup={"e1": "wK", "a1": "wR", "b4": "bN", "h8": "bK"})
        engine = Engine(rng=FixedRng())

        move = engine.choose_move(board, Color.BLACK, fixed(3))

        assert move.to_square == (1, 2)  # Nc2+

    def test_no_moves(self):
        """No legal moves gives None."""
        board = Board(custom_setup={"e1": "wK", "h8": "bK"})
        engine = Engine(rng=FixedRng())

        assert engine.choose_move(board, Color.BLACK, lambda piece: None) is None
        assert engine.moves_scored == 0

    def test_dormant_armies_are_skipped(self):
        """Pieces whose difficulty is None never move."""
        board = Board(rows=16)
        board.place_white_army()
        board.place_black_army(0)
        board.place_black_army(1)
        engine = Engine(rng=np.random.default_rng(3))

        def only_army_one(piece):
            return Difficulty.from_level(3) if piece.army == 1 else None

        move = engine.choose_move(board, Color.BLACK, only_army_one)

        assert board.get_piece(move.from_row, move.from_col).army == 1
        assert engine.moves_scored == 20


class TestTieBreaking:
    """Test random choice among equal scores."""

    def test_first_and_last(self):
        scored = [(Move(0, 0, 1, 0), 5.0), (Move(0, 1, 1, 1), 9.0), (Move(0, 2, 1, 2), 9.0)]

        assert Engine(rng=FixedRng()).select_best(scored).to_uci() == "b1b2"
        assert Engine(rng=LastRng()).select_best(scored).to_uci() == "c1c2"

    def test_uniform_over_ties(self):
        """Every tied move gets picked eventually; worse moves never do."""
        scored = [(Move(0, col, 1, col), 1.0) for col in range(4)]
        scored.append((Move(0, 7, 1, 7), 0.5))
        engine = Engine(rng=np.random.default_rng(0))

        picks = {engine.select_best(scored).to_uci() for _ in range(200)}

        assert picks == {"a1a2", "b1b2", "c1c2", "d1d2"}

    def test_empty(self):
        assert Engine().select_best([]) is None


class TestEvaluationTerms:
    """Test individual evaluation terms."""

    def test_gives_check(self):
        board = Board(custom_setup={"e1": "wK", "a8": "bR", "h8": "bK"})
        engine = Engine(rng=FixedRng())
        after = board.copy()
        after.apply_move(Move(7, 0, 0, 0))  # Ra8-a1+

        assert engine._gives_check(after, Color.BLACK)
        assert not engine._gives_check(board, Color.BLACK)

    def test_knight_fork(self):
        board = Board(custom_setup={"e1": "wK", "a1": "wR", "b4": "bN", "h8": "bK"})
        engine = Engine(rng=FixedRng())
        piece = board.get_piece(3, 1)

        fork = Move(3, 1, 1, 2)
        after = board.copy()
        after.apply_move(fork)
        assert engine._creates_fork(after, fork, piece)

        single = Move(3, 1, 2, 3)
        after = board.copy()
        after.apply_move(single)
        assert not engine._creates_fork(after, single, piece)

    def test_capture_outscores_quiet_move(self):
        board = Board(custom_setup={"a1": "wK", "d5": "wQ", "d8": "bR", "h8": "bK"})
        engine = Engine(rng=FixedRng())
        difficulty = Difficulty.from_level(0)

        capture = engine.score_move(board, Move(7, 3, 4, 3), difficulty)
        quiet = engine.score_move(board, Move(7, 3, 5, 3), difficulty)

        assert capture > quiet

    def test_hanging_piece_is_penalized(self):
        """Moving onto an attacked square costs half the piece value."""
        board = Board(custom_setup={"a1": "wK", "b2": "wP", "h8": "bK", "f6": "bQ"})
        engine = Engine(rng=FixedRng())
        difficulty = Difficulty.from_level(0)

        # Qf6-c3 is hit by the b2 pawn, Qf6-f3 is not; same distance from the centre
        attacked = engine.score_move(board, Move(5, 5, 2, 2), difficulty)
        safe = engine.score_move(board, Move(5, 5, 2, 5), difficulty)

        assert safe - attacked == pytest.approx(90 * 0.3 / 2)

    def test_promotion_scored_as_queen(self):
        """A pawn promoting with check earns the check bonus."""
        engine = Engine(rng=FixedRng())
        difficulty = Difficulty.from_level(0)
        promotion = Move(1, 1, 0, 1)  # b2-b1

        # The new queen on b1 checks a king on e1 but not one on e3
        checking = Board(custom_setup={"e1": "wK", "b2": "bP", "h8": "bK"})
        quiet = Board(custom_setup={"e3": "wK", "b2": "bP", "h8": "bK"})

        bonus = engine.score_move(checking, promotion, difficulty) - engine.score_move(
            quiet, promotion, difficulty
        )

        assert bonus == pytest.approx(40 * 0.3)
        assert checking.get_piece(1, 1).piece_type == PieceType.PAWN

    def test_noise_shrinks_with_difficulty(self):
        class HalfRng(FixedRng):
            def random(self):
                return 0.5

        board = Board.standard()
        move = Move(6, 4, 4, 4)
        quiet = Engine(rng=FixedRng())
        noisy = Engine(rng=HalfRng())

        low = Difficulty.from_level(0)
        high = Difficulty.from_level(10)
        noise_low = noisy.score_move(board, move, low) - quiet.score_move(board, move, low)
        noise_high = noisy.score_move(board, move, high) - quiet.score_move(board, move, high)

        assert noise_low == pytest.approx(0.5 * 8 / 0.3)
        assert noise_high == pytest.approx(0.5 * 8 / 4.3)
