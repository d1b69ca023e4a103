import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import FrozenSet, List, Optional

from ..config import DEFAULT_SESSION_TITLE, MAX_FILE_SIZE


class SessionStatus(str, Enum):
    """Lifecycle states of a transfer session.

    Only WAITING, UPLOADED and CLAIMED are ever stored on a session.
    EXPIRED is derived from the session's age by the registry.
    """

    WAITING = "waiting"
    UPLOADED = "uploaded"
    CLAIMED = "claimed"
    EXPIRED = "expired"


def normalize_extension(extension: str) -> str:
    """Lower-case an extension and make sure it starts with a dot."""
    extension = extension.strip().lower()
    if extension and not extension.startswith("."):
        extension = "." + extension
    return extension


def file_extension(filename: str) -> str:
    return PurePath(filename).suffix.lower()


@dataclass(frozen=True)
class SessionPolicy:
    """Upload and encoding policy fixed when a session is created.

    Attributes:
        title (str): Display title shown on the upload form
        allowed_extensions (FrozenSet[str]): Allowed extensions, empty means unrestricted
        max_size_bytes (int): Largest accepted upload in bytes
        smart_cut (bool): Move chunk boundaries to safe delimiters
        sanitize_output (bool): Strip characters outside the clean-output whitelist
    """

    title: str = DEFAULT_SESSION_TITLE
    allowed_extensions: FrozenSet[str] = frozenset()
    max_size_bytes: int = MAX_FILE_SIZE
    smart_cut: bool = True
    sanitize_output: bool = False

    def __post_init__(self):
        if self.max_size_bytes <= 0:
            raise ValueError("max_size_bytes must be positive")
        extensions = frozenset(
            normalize_extension(ext) for ext in self.allowed_extensions if ext.strip()
        )
        object.__setattr__(self, "allowed_extensions", extensions)

    def allows(self, filename: str) -> bool:
        if not self.allowed_extensions:
            return True
        return file_extension(filename) in self.allowed_extensions


@dataclass(frozen=True)
class UploadedFile:
    """Metadata about the file attached to a session."""

    original_name: str
    original_size_bytes: int
    mime_type: str
    encoded_total_chars: int


@dataclass
class Session:
    """In-memory record of one file-transfer handshake.

    Attributes:
        id (str): Short opaque identifier, unique among live sessions
        created_at (float): Creation time in epoch seconds, basis for expiry
        policy (SessionPolicy): Immutable upload and encoding policy
        status (SessionStatus): Stored lifecycle state
        file (Optional[UploadedFile]): Present once a file was uploaded
        chunks (List[str]): Encoded chunks in delivery order
        delivered_count (int): Highest delivered chunk index plus one
        lock (threading.Lock): Guards status, file, chunks and delivered_count
    """

    id: str
    created_at: float
    policy: SessionPolicy
    status: SessionStatus = SessionStatus.WAITING
    file: Optional[UploadedFile] = None
    chunks: List[str] = field(default_factory=list)
    delivered_count: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    @property
    def is_ready(self) -> bool:
        return self.status is not SessionStatus.WAITING


@dataclass(frozen=True)
class UploadSummary:
    original_name: str
    original_size: int
    encoded_size: int
    chunk_count: int
    compression_ratio: float


@dataclass(frozen=True)
class ChunkDelivery:
    index: int
    total_chunks: int
    is_last: bool
    data: str


@dataclass(frozen=True)
class ChunkBundle:
    filename: str
    chunks: List[str]

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)
