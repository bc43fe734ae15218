"""
Game simulation - player registry, action queue and the tick loop
"""

import logging
import math
import threading
import time
from collections import deque
from typing import Any, Deque, Dict, Optional, Tuple

from arena_server.admin.metrics import ServerMetrics
from arena_server.shared.constants import MAX_MOVE_STEP, MAX_PLAYER_NAME_LENGTH, TICK_RATE
from arena_server.shared.events import EventHub, EventKind
from arena_server.shared.protocol import PacketType, ReceivedMessage
from .entities import Player, clamp

logger = logging.getLogger(__name__)


class Game:
    """Authoritative game state, shared between the tick thread and the transport thread.

    Every read and write goes through ``_lock``; the player count in particular is
    read by the launcher while agents are still joining.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._players_changed = threading.Condition(self._lock)
        self._players: Dict[int, Player] = {}
        self._sessions: Dict[str, int] = {}  # session_id -> player_id
        self._pending_actions: Deque[Tuple[int, float, float]] = deque()
        self._next_player_id = 1
        self.tick_count = 0

    @property
    def player_count(self) -> int:
        with self._lock:
            return len(self._players)

    def wait_for_player_count(self, expected: int, timeout: Optional[float] = None) -> bool:
        """Block until at least ``expected`` players joined or ``timeout`` elapses"""
        with self._players_changed:
            return self._players_changed.wait_for(lambda: len(self._players) >= expected, timeout)

    def add_player(self, name: str, session_id: str) -> Player:
        with self._players_changed:
            if session_id in self._sessions:
                raise ValueError(f"Session {session_id} already controls a player")

            player = Player(player_id=self._next_player_id, name=name, session_id=session_id)
            self._next_player_id += 1
            self._players[player.player_id] = player
            self._sessions[session_id] = player.player_id
            self._players_changed.notify_all()

        logger.info(f"Player {name} (ID: {player.player_id}) joined the game")
        return player

    def get_player_by_session(self, session_id: str) -> Optional[Player]:
        with self._lock:
            player_id = self._sessions.get(session_id)
            return self._players.get(player_id) if player_id is not None else None

    def queue_move(self, player_id: int, dx: float, dy: float):
        """Queue a move to be applied on the next tick"""
        step_x = clamp(dx, -MAX_MOVE_STEP, MAX_MOVE_STEP)
        step_y = clamp(dy, -MAX_MOVE_STEP, MAX_MOVE_STEP)
        with self._lock:
            self._pending_actions.append((player_id, step_x, step_y))

    def tick(self) -> Dict[str, Any]:
        """Apply queued actions and advance one tick; returns the new state"""
        with self._lock:
            while self._pending_actions:
                player_id, dx, dy = self._pending_actions.popleft()
                player = self._players.get(player_id)
                if player:
                    player.move_by(dx, dy)
            self.tick_count += 1
            return self._snapshot()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> Dict[str, Any]:
        return {
            'tick': self.tick_count,
            'players': [p.to_dict() for p in self._players.values()]
        }


class GameRunner:
    """Owns the Game and drives its tick loop on a dedicated thread"""

    def __init__(self, events: EventHub, metrics: Optional[ServerMetrics] = None,
                 tick_rate: int = TICK_RATE, log: Optional[logging.Logger] = None):
        self.game = Game()
        self.events = events
        self.metrics = metrics
        self.tick_rate = tick_rate
        self.logger = log or logger

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._state_lock = threading.Lock()
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start the tick loop"""
        with self._state_lock:
            if self._stopped:
                raise RuntimeError("GameRunner cannot be restarted after stop()")
            if self._thread is not None:
                return
            self._thread = threading.Thread(target=self._tick_loop, name="game-tick", daemon=True)
            self._thread.start()

        self.logger.info(f"Game started with {self.game.player_count} players at {self.tick_rate} ticks/s")

    def stop(self) -> bool:
        """Stop the tick loop. Returns False if it was already stopped."""
        with self._state_lock:
            if self._stopped:
                return False
            self._stopped = True
            thread = self._thread

        self._stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)

        self.logger.info(f"Game stopped after {self.game.tick_count} ticks")
        return True

    def _tick_loop(self):
        self.logger.info("Starting game tick loop...")
        tick_interval = 1.0 / self.tick_rate

        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                state = self.game.tick()
                self.events.publish(EventKind.AFTER_GAME_TICK, state)
            except Exception as e:
                self.logger.error(f"Error in game tick loop: {e}", exc_info=True)

            elapsed = time.monotonic() - started
            if self.metrics:
                self.metrics.record_tick_time(elapsed)
            self._stop_event.wait(max(0.0, tick_interval - elapsed))

        self.logger.info("Game tick loop stopped")

    def handle_after_message_receive(self, message: ReceivedMessage):
        """Apply a client message. Runs on the transport thread."""
        if message.packet_type == PacketType.JOIN_REQUEST:
            self._handle_join(message)
        elif message.packet_type == PacketType.PLAYER_ACTION:
            self._handle_action(message)
        else:
            self.logger.warning(f"Ignoring {message.packet_type.name} from {message.session_id}")

    def _handle_join(self, message: ReceivedMessage):
        name = message.payload.get('name')
        if not isinstance(name, str) or not name.strip() or len(name) > MAX_PLAYER_NAME_LENGTH:
            self.logger.warning(f"Rejected join from {message.session_id}: invalid name {name!r}")
            return

        try:
            player = self.game.add_player(name.strip(), message.session_id)
        except ValueError as e:
            self.logger.warning(f"Rejected join from {message.session_id}: {e}")
            return

        self.events.publish(EventKind.AFTER_NEW_PLAYER_JOIN, player.info())

    def _handle_action(self, message: ReceivedMessage):
        player = self.game.get_player_by_session(message.session_id)
        if player is None:
            self.logger.warning(f"Action from {message.session_id} before joining")
            return

        payload = message.payload
        if payload.get('action') != 'move':
            self.logger.warning(f"Unknown action {payload.get('action')!r} from {player.name}")
            return

        dx, dy = payload.get('dx', 0), payload.get('dy', 0)
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
                   for v in (dx, dy)):
            self.logger.warning(f"Malformed move from {player.name}: {payload}")
            return

        self.game.queue_move(player.player_id, float(dx), float(dy))
