"""
Arena Game Server - Game Server Module
Game simulation and the agent transport
"""

from .agent_server import AgentServer
from .entities import Player, PlayerInfo
from .game import Game, GameRunner

__all__ = ['AgentServer', 'Game', 'GameRunner', 'Player', 'PlayerInfo']
