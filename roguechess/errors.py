"""Exception types raised by the rule engine."""


class ChessError(Exception):
    """Base class for engine errors."""


class IllegalMoveError(ChessError):
    """The requested move is not in the legal set. Nothing was changed."""


class InvalidSquareError(IllegalMoveError, ValueError):
    """A square name could not be parsed or lies off the board."""


class ChoiceError(ChessError):
    """A promotion or reinforcement choice was not pending or not offered."""


class InvariantViolation(ChessError):
    """The board is corrupted, e.g. a side has lost its king mid-game.

    Check detection has no meaning without a king, so this is fatal for the
    game instance that raised it.
    """
