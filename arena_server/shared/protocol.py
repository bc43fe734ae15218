"""
Network Protocol Definition for the Arena Game Server
Binary-framed packets carrying JSON payloads between agents and the server
"""

import enum
import json
import struct
import zlib
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .constants import COMPRESSION_THRESHOLD, MAX_PAYLOAD_SIZE


class PacketType(enum.IntEnum):
    """All packet types understood by the server"""
    # Connection (0-99)
    HANDSHAKE = 0
    PING = 1
    PONG = 2

    # Session (100-199)
    JOIN_REQUEST = 100
    JOIN_RESPONSE = 101

    # Gameplay (200-299)
    PLAYER_ACTION = 200

    # World state (300-399)
    GAME_STATE = 300

    ERROR_MESSAGE = 999


# Packet types answered by the transport itself and never forwarded to the game
HOUSEKEEPING_TYPES = frozenset({PacketType.HANDSHAKE, PacketType.PING, PacketType.PONG})


class ErrorCode(enum.IntEnum):
    BAD_REQUEST = 400


@dataclass
class Packet:
    """Base packet structure"""
    packet_type: PacketType
    payload: bytes = b''
    compressed: bool = False
    sequence: int = 0

    HEADER_FORMAT = '!HIIBB'  # Type(2), Length(4), Sequence(4), Flags(1), Checksum(1)
    HEADER_SIZE = struct.calcsize(HEADER_FORMAT)

    FLAG_COMPRESSED = 0x01

    def serialize(self) -> bytes:
        """Serialize packet to bytes"""
        payload = self.payload
        flags = 0

        # payload is always held uncompressed; compression happens on the wire only
        if self.compressed or len(payload) > COMPRESSION_THRESHOLD:
            payload = zlib.compress(payload)
            self.compressed = True
            flags |= self.FLAG_COMPRESSED

        if len(payload) > MAX_PAYLOAD_SIZE:
            raise ValueError(f"Payload too large: {len(payload)} bytes")

        header = struct.pack(
            self.HEADER_FORMAT,
            self.packet_type,
            len(payload),
            self.sequence & 0xFFFFFFFF,
            flags,
            self.calculate_checksum(payload)
        )

        return header + payload

    @classmethod
    def payload_length(cls, header: bytes) -> int:
        """Read the payload length out of a packed header"""
        _, length, _, _, _ = struct.unpack(cls.HEADER_FORMAT, header[:cls.HEADER_SIZE])
        return length

    @classmethod
    def deserialize(cls, data: bytes) -> 'Packet':
        """Deserialize bytes to packet"""
        if len(data) < cls.HEADER_SIZE:
            raise ValueError("Insufficient data for packet header")

        packet_type, payload_length, sequence, flags, checksum = struct.unpack(
            cls.HEADER_FORMAT,
            data[:cls.HEADER_SIZE]
        )

        if len(data) < cls.HEADER_SIZE + payload_length:
            raise ValueError("Insufficient data for packet payload")

        payload = data[cls.HEADER_SIZE:cls.HEADER_SIZE + payload_length]

        if cls.calculate_checksum(payload) != checksum:
            raise ValueError("Packet checksum mismatch")

        compressed = bool(flags & cls.FLAG_COMPRESSED)
        if compressed:
            payload = cls._decompress(payload)

        try:
            kind = PacketType(packet_type)
        except ValueError:
            raise ValueError(f"Unknown packet type {packet_type}") from None

        return cls(packet_type=kind, payload=payload, compressed=compressed, sequence=sequence)

    @staticmethod
    def _decompress(payload: bytes) -> bytes:
        """Inflate a compressed payload, refusing corrupt or oversized data"""
        inflater = zlib.decompressobj()
        try:
            data = inflater.decompress(payload, MAX_PAYLOAD_SIZE)
        except zlib.error as e:
            raise ValueError(f"Corrupt compressed payload: {e}") from None

        if inflater.unconsumed_tail:
            raise ValueError(f"Decompressed payload exceeds {MAX_PAYLOAD_SIZE} bytes")
        if not inflater.eof:
            raise ValueError("Truncated compressed payload")
        return data

    @staticmethod
    def calculate_checksum(data: bytes) -> int:
        """Byte-sum checksum for packet validation"""
        return sum(data) & 0xFF

    @classmethod
    def from_json(cls, packet_type: PacketType, obj: Dict[str, Any]) -> 'Packet':
        return cls(packet_type, json.dumps(obj, separators=(',', ':')).encode('utf-8'))

    def json(self) -> Dict[str, Any]:
        """Decode the payload as a JSON object"""
        if not self.payload:
            return {}
        try:
            data = json.loads(self.payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed JSON payload: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Payload must be a JSON object")
        return data


@dataclass(frozen=True)
class ReceivedMessage:
    """A client packet handed from the transport to the game"""
    session_id: str
    packet_type: PacketType
    payload: Dict[str, Any] = field(default_factory=dict)


class PacketBuilder:
    """Helper class for building packets with payloads"""

    @staticmethod
    def handshake(server_name: str, version: str) -> Packet:
        return Packet.from_json(PacketType.HANDSHAKE, {'server': server_name, 'version': version})

    @staticmethod
    def ping(timestamp: float) -> Packet:
        return Packet.from_json(PacketType.PING, {'ts': timestamp})

    @staticmethod
    def join_request(name: str) -> Packet:
        return Packet.from_json(PacketType.JOIN_REQUEST, {'name': name})

    @staticmethod
    def join_response(player_id: int, name: str) -> Packet:
        return Packet.from_json(PacketType.JOIN_RESPONSE, {'player_id': player_id, 'name': name})

    @staticmethod
    def move(dx: float, dy: float) -> Packet:
        return Packet.from_json(PacketType.PLAYER_ACTION, {'action': 'move', 'dx': dx, 'dy': dy})

    @staticmethod
    def game_state(tick: int, players: List[Dict[str, Any]]) -> Packet:
        return Packet.from_json(PacketType.GAME_STATE, {'tick': tick, 'players': players})

    @staticmethod
    def error_message(error_code: int, message: str) -> Packet:
        return Packet.from_json(PacketType.ERROR_MESSAGE, {'code': int(error_code), 'message': message})
