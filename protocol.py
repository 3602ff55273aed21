import struct
import time
from dataclasses import dataclass, field

# Header format:
# ver (B), msg_type (B), seq (I), timestamp (d), source_len (B), topic_len (B), payload_len (H)
# ! = Network byte order (big-endian)
# B = unsigned char (1 byte)
# I = unsigned int (4 bytes)
# d = double (8 bytes)
# H = unsigned short (2 bytes)
# The header is followed by the source peer id, the topic and the payload.
HEADER_FORMAT = "!BBIdBBH"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)

PROTOCOL_VERSION = 1


@dataclass
class Packet:
    msg_type: int
    source: str
    topic: str
    payload: bytes = b""
    seq: int = 0
    timestamp: float = field(default_factory=time.time)
    ver: int = PROTOCOL_VERSION

    def pack(self) -> bytes:
        """
        Serializes the packet into bytes.
        Raises ValueError if a field does not fit its header slot.
        """
        source = self.source.encode('utf-8')
        topic = self.topic.encode('utf-8')
        if len(source) > 0xFF or len(topic) > 0xFF:
            raise ValueError("Source and topic must each fit in 255 bytes")
        if len(self.payload) > 0xFFFF:
            raise ValueError(f"Payload too large: {len(self.payload)} bytes")

        header = struct.pack(
            HEADER_FORMAT,
            self.ver,
            self.msg_type,
            self.seq,
            self.timestamp,
            len(source),
            len(topic),
            len(self.payload)
        )
        return header + source + topic + self.payload

    @classmethod
    def unpack(cls, data: bytes) -> 'Packet':
        """
        Deserializes bytes into a Packet object.
        Raises ValueError if data is too short or lengths are inconsistent.
        """
        if len(data) < HEADER_SIZE:
            raise ValueError(f"Data too short for header. Expected at least {HEADER_SIZE}, got {len(data)}")

        ver, msg_type, seq, timestamp, source_len, topic_len, payload_len = struct.unpack(
            HEADER_FORMAT, data[:HEADER_SIZE]
        )

        expected = HEADER_SIZE + source_len + topic_len + payload_len
        if len(data) < expected:
            raise ValueError(f"Data too short for body. Expected {expected}, got {len(data)}")

        offset = HEADER_SIZE
        source = data[offset:offset + source_len].decode('utf-8')
        offset += source_len
        topic = data[offset:offset + topic_len].decode('utf-8')
        offset += topic_len
        payload = data[offset:offset + payload_len]

        return cls(
            msg_type=msg_type,
            source=source,
            topic=topic,
            payload=payload,
            seq=seq,
            timestamp=timestamp,
            ver=ver
        )
