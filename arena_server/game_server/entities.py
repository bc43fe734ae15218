"""
Game entities: players in the arena
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict

from arena_server.shared.constants import ARENA_HEIGHT, ARENA_WIDTH


def clamp(value: float, min_val: float, max_val: float) -> float:
    return max(min_val, min(max_val, value))


@dataclass(frozen=True)
class PlayerInfo:
    """Identity of a newly joined player, announced to the transport"""
    player_id: int
    name: str
    session_id: str


@dataclass
class Player:
    player_id: int
    name: str
    session_id: str
    x: float = ARENA_WIDTH / 2
    y: float = ARENA_HEIGHT / 2
    moves: int = 0
    joined_at: float = field(default_factory=time.time)

    def move_by(self, dx: float, dy: float):
        """Move inside the arena bounds"""
        self.x = clamp(self.x + dx, 0.0, ARENA_WIDTH)
        self.y = clamp(self.y + dy, 0.0, ARENA_HEIGHT)
        self.moves += 1

    def info(self) -> PlayerInfo:
        return PlayerInfo(self.player_id, self.name, self.session_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'player_id': self.player_id,
            'name': self.name,
            'position': {'x': self.x, 'y': self.y},
            'moves': self.moves
        }
