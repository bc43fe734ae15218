"""
Arena Game Server
Launch orchestration for a multiplayer game server
"""

__version__ = "1.0.0"
