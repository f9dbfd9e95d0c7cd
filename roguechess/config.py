"""Game configuration."""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .board import PieceType

MAX_ARMIES = 8


class ProgressionMode(Enum):
    """How the game moves on after a Black army is cleared."""

    RESET_AND_REINFORCE = "reset_and_reinforce"  # New board, reward piece
    PERSISTENT_ARMIES = "persistent_armies"  # One tall board, stacked armies


@dataclass
class GameConfig:
    """Tunable settings for one game session."""

    mode: ProgressionMode = ProgressionMode.RESET_AND_REINFORCE
    army_count: int = 3  # Persistent mode only
    activation_distance: int = 5  # Rows between White and a dormant army
    ai_autoplay: bool = True  # Reply with the AI move inside apply_move
    ai_delay: float = 0.5  # Seconds; pacing for the HTTP layer only
    reinforcement_choices: int = 3
    level_step_per_army: int = 3
    endgame_piece_threshold: int = 12
    seed: Optional[int] = None

    def __post_init__(self):
        if not 1 <= self.army_count <= MAX_ARMIES:
            raise ValueError(f"army_count must be between 1 and {MAX_ARMIES}, got {self.army_count}")
        # One reinforcement option per piece type at most
        if not 1 <= self.reinforcement_choices <= len(PieceType):
            raise ValueError(
                f"reinforcement_choices must be between 1 and {len(PieceType)}, "
                f"got {self.reinforcement_choices}"
            )
        if self.activation_distance < 0:
            raise ValueError("activation_distance must not be negative")
        if self.ai_delay < 0:
            raise ValueError("ai_delay must not be negative")

    @property
    def board_rows(self) -> int:
        if self.mode == ProgressionMode.PERSISTENT_ARMIES:
            return 8 * self.army_count
        return 8

    @classmethod
    def from_env(cls, **overrides) -> "GameConfig":
        """Build a config from ROGUECHESS_* environment variables.

        Keyword arguments take priority over the environment.
        """
        values = {}

        mode = os.environ.get("ROGUECHESS_MODE")
        if mode:
            values["mode"] = ProgressionMode(mode)

        int_vars = {
            "army_count": "ROGUECHESS_ARMY_COUNT",
            "activation_distance": "ROGUECHESS_ACTIVATION_DISTANCE",
            "reinforcement_choices": "ROGUECHESS_REINFORCEMENT_CHOICES",
            "level_step_per_army": "ROGUECHESS_LEVEL_STEP",
            "endgame_piece_threshold": "ROGUECHESS_ENDGAME_THRESHOLD",
            "seed": "ROGUECHESS_SEED",
        }
        for name, var in int_vars.items():
            raw = os.environ.get(var)
            if raw:
                values[name] = int(raw)

        delay = os.environ.get("ROGUECHESS_AI_DELAY")
        if delay:
            values["ai_delay"] = float(delay)

        autoplay = os.environ.get("ROGUECHESS_AI_AUTOPLAY")
        if autoplay:
            values["ai_autoplay"] = autoplay.lower() in ("1", "true", "yes")

        values.update({k: v for k, v in overrides.items() if v is not None})
        if isinstance(values.get("mode"), str):
            values["mode"] = ProgressionMode(values["mode"])
        return cls(**values)
