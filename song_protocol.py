# song_protocol.py
import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from catalog import Song
from protocol import Packet

logger = logging.getLogger(__name__)

# Message Type Constants
TYPE_LEGACY   = 0   # Untagged JSON body, classified by shape
TYPE_REQUEST  = 1   # Payload: ListRequest
TYPE_RESPONSE = 2   # Payload: ListResponse
TYPE_CHAT     = 3   # Payload: ChatMessage
TYPE_ANNOUNCE = 4   # Discovery heartbeat, empty payload
TYPE_GOODBYE  = 5   # Discovery departure, empty payload

MODE_ALL = "ALL"


class ClassificationMiss(Exception):
    """Payload matches none of the known message schemas."""


@dataclass(frozen=True)
class ListMode:
    """
    Either ALL, or One(target). Encoded as "ALL" or {"One": target}.
    """
    target: Optional[str] = None

    @property
    def is_all(self) -> bool:
        return self.target is None

    def addresses(self, peer_id: str) -> bool:
        return self.is_all or self.target == peer_id

    def to_json(self) -> Any:
        if self.is_all:
            return MODE_ALL
        return {"One": self.target}

    @classmethod
    def from_json(cls, data: Any) -> 'ListMode':
        if data == MODE_ALL:
            return cls()
        if isinstance(data, dict) and len(data) == 1 and isinstance(data.get("One"), str):
            return cls(target=data["One"])
        raise ValueError(f"Invalid list mode: {data!r}")

    def __str__(self):
        return MODE_ALL if self.is_all else f"One({self.target})"


ALL = ListMode()


@dataclass
class ListRequest:
    mode: ListMode = ALL

    def to_json(self) -> dict:
        return {"mode": self.mode.to_json()}

    @classmethod
    def from_json(cls, data: Any) -> 'ListRequest':
        if not isinstance(data, dict) or "mode" not in data:
            raise ValueError("Request must be an object with a 'mode'")
        return cls(mode=ListMode.from_json(data["mode"]))


@dataclass
class ListResponse:
    receiver: str
    data: List[Song] = field(default_factory=list)
    mode: ListMode = ALL

    def to_json(self) -> dict:
        return {
            "mode": self.mode.to_json(),
            "data": [s.to_dict() for s in self.data],
            "receiver": self.receiver
        }

    @classmethod
    def from_json(cls, data: Any) -> 'ListResponse':
        if not isinstance(data, dict):
            raise ValueError("Response must be an object")
        if not isinstance(data.get("receiver"), str):
            raise ValueError("Response 'receiver' must be a string")
        if not isinstance(data.get("data"), list):
            raise ValueError("Response 'data' must be a list")
        return cls(
            receiver=data["receiver"],
            data=[Song.from_dict(s) for s in data["data"]],
            mode=ListMode.from_json(data.get("mode"))
        )


@dataclass
class ChatMessage:
    text: str

    def to_json(self) -> dict:
        return {"text": self.text}

    @classmethod
    def from_json(cls, data: Any) -> 'ChatMessage':
        if not isinstance(data, dict) or not isinstance(data.get("text"), str):
            raise ValueError("Chat message must be an object with a 'text' string")
        return cls(text=data["text"])


Message = Union[ListRequest, ListResponse, ChatMessage]

TAGS = {
    ListRequest: TYPE_REQUEST,
    ListResponse: TYPE_RESPONSE,
    ChatMessage: TYPE_CHAT,
}
SCHEMAS = {tag: cls for cls, tag in TAGS.items()}

# Order in which untagged bodies are tried. First schema that parses wins.
LEGACY_PRIORITY = (ListResponse, ListRequest, ChatMessage)


def encode(message: Message, source: str, topic: str, seq: int = 0) -> Packet:
    """
    Wraps a message into a tagged Packet ready for the transport.
    """
    payload = json.dumps(message.to_json(), ensure_ascii=False).encode('utf-8')
    return Packet(msg_type=TAGS[type(message)], source=source, topic=topic, payload=payload, seq=seq)


def classify(packet: Packet) -> Message:
    """
    Turns a catalog packet into a message object.

    Tagged packets are parsed against the schema their msg_type names.
    Untagged (TYPE_LEGACY) bodies are tried Response, Request, Chat in that
    order; a body that satisfies more than one schema takes the first.
    Raises ClassificationMiss if nothing matches.
    """
    try:
        body = json.loads(packet.payload.decode('utf-8'))
    except (ValueError, RecursionError) as e:
        # Deeply nested bodies exhaust the decoder stack
        raise ClassificationMiss(f"Payload is not JSON: {e}") from e

    if packet.msg_type == TYPE_LEGACY:
        for schema in LEGACY_PRIORITY:
            try:
                return schema.from_json(body)
            except ValueError:
                continue
        raise ClassificationMiss("Untagged payload matches no schema")

    schema = SCHEMAS.get(packet.msg_type)
    if schema is None:
        raise ClassificationMiss(f"Unknown message type {packet.msg_type}")
    try:
        return schema.from_json(body)
    except ValueError as e:
        raise ClassificationMiss(f"Malformed {schema.__name__}: {e}") from e
