import hashlib
import logging
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PATH = "./songs.json"
DEFAULT_TOPIC = "songs"
DEFAULT_GROUP = "239.255.42.99"
DEFAULT_PORT = 42424
DEFAULT_ANNOUNCE_INTERVAL = 2.0
DEFAULT_PEER_TIMEOUT = 6.0

# Number of hex digits of sha256(public key) used as the peer identity
PEER_ID_LENGTH = 40


class StartupFatalError(Exception):
    """Raised when the node cannot be brought up (identity or bind failure)."""


@dataclass
class NodeConfig:
    storage_path: str = DEFAULT_STORAGE_PATH
    topic: str = DEFAULT_TOPIC
    group: str = DEFAULT_GROUP
    port: int = DEFAULT_PORT
    announce_interval: float = DEFAULT_ANNOUNCE_INTERVAL
    peer_timeout: float = DEFAULT_PEER_TIMEOUT
    dashboard_port: int = 0


class NodeIdentity:
    """
    Ed25519 key pair plus the printable peer id derived from it.
    Generated once at start-up and never changed afterwards.
    """
    def __init__(self, private_key: Ed25519PrivateKey):
        self.private_key = private_key
        raw = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )
        self.peer_id = hashlib.sha256(raw).hexdigest()[:PEER_ID_LENGTH]

    @classmethod
    def generate(cls) -> 'NodeIdentity':
        try:
            return cls(Ed25519PrivateKey.generate())
        except Exception as e:
            raise StartupFatalError(f"cannot generate identity keys: {e}") from e


@dataclass
class NodeContext:
    """Process-wide settings handed by reference to every component."""
    config: NodeConfig
    identity: NodeIdentity

    @property
    def peer_id(self) -> str:
        return self.identity.peer_id

    @property
    def topic(self) -> str:
        return self.config.topic

    @classmethod
    def create(cls, config: NodeConfig) -> 'NodeContext':
        identity = NodeIdentity.generate()
        logger.info(f"Peer Id: {identity.peer_id}")
        return cls(config=config, identity=identity)
