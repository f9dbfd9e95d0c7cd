"""Tests for move generation, special moves and legality."""

import pytest
import sys
import os

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from roguechess import Board, Move, Color, PieceType, Castling


def destinations(moves):
    return {move.to_square for move in moves}


class TestPieceMoves:
    """Test the movement rules of each piece type."""

    def test_pawn_initial_moves(self):
        """An unmoved pawn may advance one or two squares."""
        board = Board.standard()
        assert destinations(board.legal_moves(1, 4)) == {(2, 4), (3, 4)}

    def test_pawn_single_step_after_moving(self):
        """A pawn that has moved only advances one square."""
        board = Board.standard()
        board.get_piece(1, 4).has_moved = True
        assert destinations(board.legal_moves(1, 4)) == {(2, 4)}

    def test_black_pawn_moves_down(self):
        board = Board.standard()
        assert destinations(board.legal_moves(6, 3)) == {(5, 3), (4, 3)}

    def test_blocked_pawn(self):
        """A pawn cannot advance into an occupied square."""
        board = Board(custom_setup={"e1": "wK", "h8": "bK", "e2": "wP", "e3": "bN"})
        assert board.legal_moves(1, 4) == []

    def test_pawn_captures_diagonally(self):
        board = Board(custom_setup={
            "e1": "wK", "h8": "bK",
            "e4": "wP", "e5": "bP", "d5": "bP", "f5": "bN",
        })
        assert destinations(board.legal_moves(3, 4)) == {(4, 3), (4, 5)}

    def test_knight_moves(self):
        """Knights jump over pieces."""
        board = Board.standard()
        assert destinations(board.legal_moves(0, 1)) == {(2, 0), (2, 2)}

    def test_knight_in_corner(self):
        board = Board(custom_setup={"e1": "wK", "h8": "bK", "a1": "wN"})
        assert destinations(board.legal_moves(0, 0)) == {(2, 1), (1, 2)}

    def test_blocked_sliders(self):
        """Bishops, rooks and queens start boxed in."""
        board = Board.standard()
        for col in (0, 2, 3, 5, 7):
            assert board.legal_moves(0, col) == []

    def test_rook_on_open_board(self):
        board = Board(custom_setup={"a1": "wK", "h7": "bK", "d4": "wR"})
        assert len(board.legal_moves(3, 3)) == 14

    def test_queen_on_open_board(self):
        """Queen rays stop at friendly pieces and include captures."""
        board = Board(custom_setup={"a1": "wK", "h7": "bK", "d4": "wQ", "g7": "bP"})
        dests = destinations(board.legal_moves(3, 3))
        assert (6, 6) in dests  # Capture on g7
        assert (7, 7) not in dests  # Behind the pawn
        assert (0, 0) not in dests  # Own king
        assert len(dests) == 25

    def test_king_moves(self):
        board = Board(custom_setup={"e1": "wK", "e8": "bK"})
        assert destinations(board.legal_moves(0, 4)) == {(0, 3), (0, 5), (1, 3), (1, 4), (1, 5)}

    def test_king_cannot_step_into_attack(self):
        board = Board(custom_setup={"e1": "wK", "d8": "bR", "h8": "bK"})
        assert destinations(board.legal_moves(0, 4)) == {(0, 5), (1, 4), (1, 5)}

    def test_pinned_piece_cannot_move(self):
        """Moving a pinned piece would expose the king."""
        board = Board(custom_setup={"e1": "wK", "e2": "wB", "e8": "bR", "h8": "bK"})
        assert board.legal_moves(1, 4) == []

    def test_must_answer_check(self):
        """In check, only moves that resolve it are legal."""
        board = Board(custom_setup={"e1": "wK", "a2": "wR", "e8": "bR", "h8": "bK"})
        rook_moves = board.legal_moves(1, 0)
        assert destinations(rook_moves) == {(1, 4)}  # Block on e2


class TestEnPassant:
    """Test en passant captures."""

    def make_position(self):
        board = Board(custom_setup={"e1": "wK", "e8": "bK", "e5": "wP", "d7": "bP"})
        board.get_piece(4, 4).has_moved = True
        board.apply_move(Move(6, 3, 4, 3))  # d7-d5
        return board

    def test_en_passant_available(self):
        board = self.make_position()
        moves = board.legal_moves(4, 4)
        en_passant = [m for m in moves if m.en_passant]
        assert len(en_passant) == 1
        assert en_passant[0].to_square == (5, 3)

    def test_en_passant_removes_the_passed_pawn(self):
        board = self.make_position()
        move = next(m for m in board.legal_moves(4, 4) if m.en_passant)

        captured = board.apply_move(move)

        assert len(captured) == 1
        assert captured[0].piece_type == PieceType.PAWN
        assert captured[0].color == Color.BLACK
        assert board.get_piece(4, 3) is None
        assert board.get_piece(5, 3).color == Color.WHITE

    def test_en_passant_expires(self):
        """The right lapses if not used on the very next move."""
        board = self.make_position()
        board.apply_move(Move(0, 4, 0, 5))  # Ke1-f1
        board.apply_move(Move(7, 4, 7, 3))  # Ke8-d8

        assert not any(m.en_passant for m in board.legal_moves(4, 4))

    def test_no_en_passant_after_single_steps(self):
        board = Board(custom_setup={"e1": "wK", "e8": "bK", "e5": "wP", "d6": "bP"})
        board.get_piece(5, 3).has_moved = True
        board.get_piece(4, 4).has_moved = True
        board.apply_move(Move(5, 3, 4, 3))  # d6-d5

        assert not any(m.en_passant for m in board.legal_moves(4, 4))


class TestCastling:
    """Test castling rules."""

    BASE = {"e1": "wK", "a1": "wR", "h1": "wR", "e8": "bK"}

    def castling_sides(self, board):
        return {m.castling for m in board.legal_moves(0, 4) if m.castling is not None}

    def test_both_sides_available(self):
        board = Board(custom_setup=self.BASE)
        assert self.castling_sides(board) == {Castling.KINGSIDE, Castling.QUEENSIDE}

    def test_king_has_moved(self):
        board = Board(custom_setup=self.BASE)
        board.get_piece(0, 4).has_moved = True
        assert self.castling_sides(board) == set()

    def test_rook_has_moved(self):
        board = Board(custom_setup=self.BASE)
        board.get_piece(0, 7).has_moved = True
        assert self.castling_sides(board) == {Castling.QUEENSIDE}

    def test_path_blocked(self):
        board = Board(custom_setup=dict(self.BASE, g1="wN"))
        assert self.castling_sides(board) == {Castling.QUEENSIDE}

    def test_transit_square_attacked(self):
        """The king may not cross an attacked square."""
        board = Board(custom_setup=dict(self.BASE, f8="bR"))
        assert self.castling_sides(board) == {Castling.QUEENSIDE}

    def test_rook_path_square_may_be_attacked(self):
        """Only the king's squares matter; b1 may be attacked."""
        board = Board(custom_setup=dict(self.BASE, b8="bR"))
        assert self.castling_sides(board) == {Castling.KINGSIDE, Castling.QUEENSIDE}

    def test_not_out_of_check(self):
        board = Board(custom_setup={"e1": "wK", "a1": "wR", "h1": "wR", "b8": "bK", "e7": "bR"})
        assert self.castling_sides(board) == set()

    def test_castling_moves_the_rook(self):
        board = Board(custom_setup=self.BASE)
        move = next(m for m in board.legal_moves(0, 4) if m.castling == Castling.KINGSIDE)

        board.apply_move(move)

        assert board.get_piece(0, 6).piece_type == PieceType.KING
        assert board.get_piece(0, 5).piece_type == PieceType.ROOK
        assert board.get_piece(0, 7) is None
        assert board.get_piece(0, 5).has_moved

    def test_queenside_castling(self):
        board = Board(custom_setup=self.BASE)
        move = next(m for m in board.legal_moves(0, 4) if m.castling == Castling.QUEENSIDE)

        board.apply_move(move)

        assert board.get_piece(0, 2).piece_type == PieceType.KING
        assert board.get_piece(0, 3).piece_type == PieceType.ROOK
        assert board.get_piece(0, 0) is None


class TestMakeUndo:
    """Test make_move_fast / undo_move_fast."""

    def snapshot(self, board):
        flags = {(r, c): p.has_moved for r, c, p in board.pieces()}
        return board.to_fen(), flags, board.last_move

    def test_undo_restores_every_move(self):
        board = Board(custom_setup={
            "e1": "wK", "a1": "wR", "h1": "wR", "e5": "wP", "b7": "wP",
            "e8": "bK", "d7": "bP", "c8": "bN",
        })
        board.apply_move(Move(6, 3, 4, 3))  # d7-d5, enables en passant
        before = self.snapshot(board)

        for row, col, _ in list(board.pieces(Color.WHITE)):
            for move in board.legal_moves(row, col):
                undo = board.make_move_fast(move)
                board.undo_move_fast(undo)
                assert self.snapshot(board) == before, move


class TestAttacks:
    """Test attack detection."""

    def test_pawn_attacks_diagonally_only(self):
        board = Board(custom_setup={"e4": "wP"})
        assert board.is_square_attacked(4, 3, Color.WHITE)
        assert board.is_square_attacked(4, 5, Color.WHITE)
        assert not board.is_square_attacked(4, 4, Color.WHITE)

    def test_sliders_are_blocked(self):
        board = Board(custom_setup={"a1": "wR", "a4": "bP"})
        assert board.is_square_attacked(3, 0, Color.WHITE)
        assert not board.is_square_attacked(5, 0, Color.WHITE)

    def test_attackers(self):
        board = Board(custom_setup={"d1": "wR", "b3": "wB", "c2": "wN", "d4": "bP"})
        assert sorted(board.attackers(3, 3, Color.WHITE)) == [(0, 3), (1, 2)]

    def test_attack_oracle_on_copy(self):
        """Hypothetical positions are evaluated on a copy."""
        board = Board(custom_setup={"e1": "wK", "e8": "bK", "a4": "bR"})
        clone = board.copy()
        clone.apply_move(Move(3, 0, 0, 0))  # Ra4-a1

        assert clone.is_square_attacked(0, 4, Color.BLACK)
        assert not board.is_square_attacked(0, 4, Color.BLACK)


class TestNoSelfCheck:
    """Legal moves never leave the mover's king attacked."""

    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    def test_random_playouts(self, seed):
        rng = np.random.default_rng(seed)
        board = Board.standard()
        color = Color.WHITE

        for _ in range(40):
            moves = board.all_legal_moves(color)
            if not moves:
                break
            move = moves[int(rng.integers(len(moves)))]
            board.apply_move(move)
            assert not board.is_in_check(color, all_armies=True), move
            color = color.opponent
