from __future__ import annotations

import struct
import zlib

import pytest

from arena_server.shared.constants import MAX_PAYLOAD_SIZE
from arena_server.shared.protocol import Packet, PacketBuilder, PacketType


def test_join_request_survives_the_wire() -> None:
    packet = Packet.deserialize(PacketBuilder.join_request("alice").serialize())

    assert packet.packet_type is PacketType.JOIN_REQUEST
    assert packet.json() == {"name": "alice"}


def test_large_payloads_are_compressed_on_the_wire() -> None:
    players = [{"player_id": i, "name": f"player-{i}", "position": {"x": 1.0, "y": 2.0}} for i in range(50)]
    packet = PacketBuilder.game_state(7, players)
    raw_size = len(packet.payload)

    data = packet.serialize()
    _, length, _, flags, _ = struct.unpack(Packet.HEADER_FORMAT, data[:Packet.HEADER_SIZE])

    assert flags & Packet.FLAG_COMPRESSED
    assert length < raw_size
    assert Packet.deserialize(data).json() == {"tick": 7, "players": players}


def test_sequence_is_carried_in_the_header() -> None:
    packet = PacketBuilder.ping(1.5)
    packet.sequence = 42

    assert Packet.deserialize(packet.serialize()).sequence == 42


def test_checksum_mismatch_is_rejected() -> None:
    data = bytearray(PacketBuilder.join_request("alice").serialize())
    data[-1] ^= 0xFF

    with pytest.raises(ValueError, match="checksum"):
        Packet.deserialize(bytes(data))


def test_truncated_packets_are_rejected() -> None:
    data = PacketBuilder.join_request("alice").serialize()

    with pytest.raises(ValueError, match="header"):
        Packet.deserialize(data[:3])
    with pytest.raises(ValueError, match="payload"):
        Packet.deserialize(data[:-2])


def test_unknown_packet_type_is_rejected() -> None:
    data = struct.pack(Packet.HEADER_FORMAT, 4242, 0, 0, 0, 0)

    with pytest.raises(ValueError, match="Unknown packet type"):
        Packet.deserialize(data)


@pytest.mark.parametrize("payload", [b"[1, 2]", b"not json", b"\xff\xff"])
def test_json_payload_must_be_an_object(payload) -> None:
    with pytest.raises(ValueError):
        Packet(PacketType.PLAYER_ACTION, payload).json()


def test_empty_payload_decodes_to_empty_object() -> None:
    assert Packet(PacketType.PONG).json() == {}


def _compressed_frame(packet_type: PacketType, wire_payload: bytes) -> bytes:
    header = struct.pack(
        Packet.HEADER_FORMAT,
        packet_type,
        len(wire_payload),
        0,
        Packet.FLAG_COMPRESSED,
        Packet.calculate_checksum(wire_payload),
    )
    return header + wire_payload


def test_corrupt_compressed_payload_is_rejected() -> None:
    frame = _compressed_frame(PacketType.JOIN_REQUEST, b"definitely not deflate data")

    with pytest.raises(ValueError, match="Corrupt compressed payload"):
        Packet.deserialize(frame)


def test_truncated_compressed_payload_is_rejected() -> None:
    frame = _compressed_frame(PacketType.JOIN_REQUEST, zlib.compress(b'{"name": "alice"}' * 100)[:-6])

    with pytest.raises(ValueError):
        Packet.deserialize(frame)


def test_decompressed_size_is_bounded() -> None:
    bomb = zlib.compress(b" " * (MAX_PAYLOAD_SIZE * 20))
    assert len(bomb) < MAX_PAYLOAD_SIZE

    with pytest.raises(ValueError, match="exceeds"):
        Packet.deserialize(_compressed_frame(PacketType.PLAYER_ACTION, bomb))
