"""
Async Network Layer for the Arena Game Server
Handles TCP connections, packet framing, and session management
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional

from .constants import HEARTBEAT_INTERVAL, MAX_PAYLOAD_SIZE, SESSION_TIMEOUT
from .protocol import Packet, PacketBuilder, PacketType

logger = logging.getLogger(__name__)

PacketHandler = Callable[['NetworkSession', Packet], Awaitable[None]]


class NetworkSession:
    """Represents a network session with a connected agent"""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                 session_id: str, remote_addr: tuple):
        self.reader = reader
        self.writer = writer
        self.session_id = session_id
        self.remote_addr = remote_addr
        self.player_id: Optional[int] = None
        self.player_name: Optional[str] = None
        self.connected_at = time.time()
        self.last_activity = time.time()
        self.packet_sequence = 0
        self.is_closing = False

        # Stats
        self.packets_sent = 0
        self.packets_received = 0
        self.bytes_sent = 0
        self.bytes_received = 0

    @property
    def joined(self) -> bool:
        return self.player_id is not None

    async def send_packet(self, packet: Packet):
        """Send a packet to the agent"""
        if self.is_closing:
            return

        try:
            packet.sequence = self.packet_sequence
            self.packet_sequence = (self.packet_sequence + 1) % 0xFFFFFFFF

            data = packet.serialize()
            self.writer.write(data)
            await self.writer.drain()

            self.packets_sent += 1
            self.bytes_sent += len(data)

            logger.debug(f"Sent {packet.packet_type.name} to {self.remote_addr}")

        except (ConnectionError, OSError) as e:
            logger.error(f"Error sending packet to {self.remote_addr}: {e}")
            await self.close()

    async def receive_packet(self) -> Optional[Packet]:
        """Receive one packet, or None once the connection is gone or corrupt"""
        if self.is_closing:
            return None

        try:
            header = await self.reader.readexactly(Packet.HEADER_SIZE)
            length = Packet.payload_length(header)
            if length > MAX_PAYLOAD_SIZE:
                raise ValueError(f"Declared payload of {length} bytes exceeds the limit")
            payload = await self.reader.readexactly(length)
            packet = Packet.deserialize(header + payload)
        except asyncio.IncompleteReadError:
            return None
        except (ConnectionError, OSError) as e:
            logger.error(f"Error receiving packet from {self.remote_addr}: {e}")
            return None
        except ValueError as e:
            logger.error(f"Dropping malformed packet from {self.remote_addr}: {e}")
            return None

        self.packets_received += 1
        self.bytes_received += Packet.HEADER_SIZE + len(payload)
        self.last_activity = time.time()

        logger.debug(f"Received {packet.packet_type.name} from {self.remote_addr}")

        return packet

    async def close(self):
        """Close the session"""
        if self.is_closing:
            return

        self.is_closing = True
        try:
            self.writer.close()
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error closing connection to {self.remote_addr}: {e}")

        logger.info(f"Session {self.session_id} closed. Stats - Sent: {self.packets_sent}/{self.bytes_sent}B, "
                    f"Received: {self.packets_received}/{self.bytes_received}B")

    def is_alive(self, timeout: float = SESSION_TIMEOUT) -> bool:
        """Check if session is still alive"""
        return not self.is_closing and (time.time() - self.last_activity) < timeout


class NetworkServer:
    """Base asyncio server for handling agent connections"""

    def __init__(self, host: str, port: int, name: str = "Server", version: str = "0"):
        self.host = host
        self.port = port
        self.name = name
        self.version = version
        self.server: Optional[asyncio.AbstractServer] = None
        self.sessions: Dict[str, NetworkSession] = {}
        self.running = False
        self.packet_handlers: Dict[PacketType, PacketHandler] = {}
        self._background_tasks: List[asyncio.Task] = []

        self.total_connections = 0

        self.register_handler(PacketType.PONG, self._handle_pong)
        self.register_handler(PacketType.PING, self._handle_ping)

    def register_handler(self, packet_type: PacketType, handler: PacketHandler):
        """Register a packet handler"""
        self.packet_handlers[packet_type] = handler
        logger.debug(f"Registered handler for {packet_type.name}")

    async def start_listening(self):
        """Bind the listening socket and start housekeeping tasks"""
        self.server = await asyncio.start_server(self._handle_client, self.host, self.port)
        self.running = True

        addr = self.server.sockets[0].getsockname()
        self.port = addr[1]
        logger.info(f"{self.name} listening on {addr[0]}:{addr[1]}")

        self._background_tasks = [
            asyncio.ensure_future(self._cleanup_dead_sessions()),
            asyncio.ensure_future(self._heartbeat_task()),
        ]

    async def stop_listening(self):
        """Close all sessions and the listening socket"""
        logger.info(f"Stopping {self.name}...")
        self.running = False

        for task in self._background_tasks:
            task.cancel()
        self._background_tasks = []

        for session in list(self.sessions.values()):
            await session.close()

        if self.server:
            self.server.close()
            await self.server.wait_closed()

        logger.info(f"{self.name} stopped")

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle a new agent connection"""
        remote_addr = writer.get_extra_info('peername')
        self.total_connections += 1
        session_id = f"{remote_addr[0]}:{remote_addr[1]}#{self.total_connections}"

        session = NetworkSession(reader, writer, session_id, remote_addr)
        self.sessions[session_id] = session
        self.on_session_opened(session)

        logger.info(f"New connection from {remote_addr} (Total: {len(self.sessions)})")

        try:
            await session.send_packet(PacketBuilder.handshake(self.name, self.version))

            while self.running and session.is_alive():
                packet = await session.receive_packet()
                if packet is None:
                    break

                await self._handle_packet(session, packet)

        except asyncio.CancelledError:
            logger.info(f"Connection handler cancelled for {remote_addr}")
        finally:
            await session.close()
            self.sessions.pop(session_id, None)
            logger.info(f"Client {remote_addr} disconnected (Remaining: {len(self.sessions)})")

    async def _handle_packet(self, session: NetworkSession, packet: Packet):
        """Dispatch a received packet"""
        try:
            handler = self.packet_handlers.get(packet.packet_type)
            if handler:
                await handler(session, packet)
            else:
                await self._handle_unregistered_packet(session, packet)

        except Exception as e:
            logger.error(f"Error handling packet {packet.packet_type.name}: {e}", exc_info=True)

    async def _handle_unregistered_packet(self, session: NetworkSession, packet: Packet):
        logger.warning(f"No handler for packet type {packet.packet_type.name}")

    def on_session_opened(self, session: NetworkSession):
        pass

    async def _handle_ping(self, session: NetworkSession, packet: Packet):
        await session.send_packet(Packet(PacketType.PONG, packet.payload))

    async def _handle_pong(self, session: NetworkSession, packet: Packet):
        session.last_activity = time.time()

    async def _cleanup_dead_sessions(self):
        """Periodically close sessions that stopped talking"""
        while self.running:
            await asyncio.sleep(HEARTBEAT_INTERVAL)

            for session_id, session in list(self.sessions.items()):
                if not session.is_alive():
                    logger.info(f"Cleaning up dead session {session_id}")
                    await session.close()

    async def _heartbeat_task(self):
        """Send periodic pings to joined sessions"""
        while self.running:
            await asyncio.sleep(HEARTBEAT_INTERVAL)
            await self.broadcast_packet(PacketBuilder.ping(time.time()))

    async def broadcast_packet(self, packet: Packet):
        """Broadcast a packet to all joined sessions"""
        for session in list(self.sessions.values()):
            if session.joined:
                await session.send_packet(packet)

