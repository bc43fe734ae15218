"""
Agent Server - the transport side of the game server

Runs the asyncio network layer on a dedicated thread so the launcher and the
tick loop stay plain threads. Event handlers called from other threads hand
their work to the server's loop and return immediately.
"""

import asyncio
import logging
import threading
from typing import Any, Dict, Optional

from arena_server import __version__
from arena_server.admin.metrics import ServerMetrics
from arena_server.shared.constants import (
    GAME_SERVER_HOST, DEFAULT_SERVER_PORT, SERVER_START_TIMEOUT, SERVER_STOP_TIMEOUT
)
from arena_server.shared.events import EventHub, EventKind
from arena_server.shared.network import NetworkServer, NetworkSession
from arena_server.shared.protocol import (
    ErrorCode, HOUSEKEEPING_TYPES, Packet, PacketBuilder, ReceivedMessage
)
from .entities import PlayerInfo

logger = logging.getLogger(__name__)


class AgentServer(NetworkServer):
    """Accepts agent connections and bridges their packets to the game"""

    def __init__(self, events: EventHub, port: int = DEFAULT_SERVER_PORT,
                 host: str = GAME_SERVER_HOST, metrics: Optional[ServerMetrics] = None):
        super().__init__(host, port, "AgentServer", __version__)
        self.events = events
        self.metrics = metrics

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._start_error: Optional[BaseException] = None
        self._lifecycle_lock = threading.Lock()
        self._stopped = False

    # ------------------------------------------------------------------
    # Lifecycle (called from the launcher thread)
    # ------------------------------------------------------------------

    def start(self):
        """Start accepting connections; returns once the port is bound"""
        with self._lifecycle_lock:
            if self._stopped:
                raise RuntimeError(f"{self.name} cannot be restarted after stop()")
            if self._thread is not None:
                return
            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(target=self._run_loop, name="agent-server", daemon=True)
            self._thread.start()

        if not self._ready.wait(SERVER_START_TIMEOUT):
            raise RuntimeError(f"{self.name} did not start within {SERVER_START_TIMEOUT}s")
        if self._start_error is not None:
            self._thread.join(SERVER_STOP_TIMEOUT)
            raise RuntimeError(f"{self.name} failed to listen on port {self.port}") from self._start_error

    def stop(self) -> bool:
        """Close every session and the listener. Returns False if already stopped."""
        with self._lifecycle_lock:
            if self._stopped:
                return False
            self._stopped = True
            loop, thread = self._loop, self._thread

        if loop is None or thread is None:
            return True

        # A start still binding the port finishes before it is torn down
        self._ready.wait(SERVER_START_TIMEOUT)
        if self._start_error is not None or loop.is_closed() or not thread.is_alive():
            return True

        future = asyncio.run_coroutine_threadsafe(self.stop_listening(), loop)
        try:
            future.result(SERVER_STOP_TIMEOUT)
        except Exception as e:
            logger.error(f"Error stopping {self.name}: {e}", exc_info=True)

        loop.call_soon_threadsafe(loop.stop)
        if thread is not threading.current_thread():
            thread.join(SERVER_STOP_TIMEOUT)
        return True

    def _run_loop(self):
        loop = self._loop
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self.start_listening())
        except Exception as e:
            self._start_error = e
            loop.close()
            self._ready.set()
            return

        self._ready.set()
        try:
            loop.run_forever()
        finally:
            pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.close()

    def _submit(self, coro) -> bool:
        """Schedule a coroutine on the server loop without waiting for it"""
        loop = self._loop
        if loop is None or loop.is_closed() or not self.running:
            coro.close()
            return False
        asyncio.run_coroutine_threadsafe(coro, loop)
        return True

    # ------------------------------------------------------------------
    # Event handlers (called on the producer's thread)
    # ------------------------------------------------------------------

    def handle_after_game_tick(self, state: Dict[str, Any]):
        """Broadcast the new game state to every joined agent"""
        packet = PacketBuilder.game_state(state['tick'], state['players'])
        self._submit(self.broadcast_packet(packet))

    def handle_after_new_player_join(self, info: PlayerInfo):
        """Bind the session to its player and confirm the join"""
        self._submit(self._register_player(info))

    async def _register_player(self, info: PlayerInfo):
        session = self.sessions.get(info.session_id)
        if session is None:
            logger.warning(f"Player {info.name} joined from a session that already closed")
            return

        session.player_id = info.player_id
        session.player_name = info.name
        if self.metrics:
            self.metrics.record_join()

        await session.send_packet(PacketBuilder.join_response(info.player_id, info.name))
        logger.info(f"Session {info.session_id} registered as player {info.name} (ID: {info.player_id})")

    # ------------------------------------------------------------------
    # Network hooks (run on the server loop)
    # ------------------------------------------------------------------

    def on_session_opened(self, session: NetworkSession):
        if self.metrics:
            self.metrics.record_connection()

    async def _handle_unregistered_packet(self, session: NetworkSession, packet: Packet):
        if packet.packet_type in HOUSEKEEPING_TYPES:
            return

        try:
            payload = packet.json()
        except ValueError as e:
            logger.warning(f"Bad payload from {session.remote_addr}: {e}")
            await session.send_packet(PacketBuilder.error_message(ErrorCode.BAD_REQUEST, str(e)))
            return

        if self.metrics:
            self.metrics.record_message()

        self.events.publish(
            EventKind.AFTER_MESSAGE_RECEIVE,
            ReceivedMessage(session.session_id, packet.packet_type, payload)
        )
