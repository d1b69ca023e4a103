import asyncio
import logging
import secrets
import threading
import time
from typing import Callable, Dict, Optional

from ..config import SESSION_TTL_SECONDS
from ..models.session import (
    ChunkBundle,
    ChunkDelivery,
    Session,
    SessionPolicy,
    SessionStatus,
    UploadedFile,
    UploadSummary,
    file_extension,
)
from ..utils.exceptions import (
    EmptyFileError,
    FileSizeError,
    FileTypeError,
    InvalidChunkIndexError,
    InvalidSessionStateError,
    NoFileYetError,
    SessionNotFoundError,
)
from .encoding_pipeline import EncodingPipeline

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Owns every live transfer session and drives its lifecycle.

    Sessions move Waiting -> Uploaded -> Claimed and are removed once they
    reach the time-to-live, whatever their status. The session map is guarded
    by a registry-wide lock; each session's mutable fields are guarded by the
    session's own lock.

    Attributes:
        pipeline (EncodingPipeline): Encoder run once per upload
        ttl_seconds (float): Session lifetime measured from creation
        clock (Callable[[], float]): Source of the current time in epoch seconds
    """

    def __init__(
        self,
        pipeline: Optional[EncodingPipeline] = None,
        ttl_seconds: float = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.pipeline = pipeline or EncodingPipeline()
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _is_expired(self, session: Session, now: float) -> bool:
        return now - session.created_at >= self.ttl_seconds

    def status_of(self, session: Session, now: Optional[float] = None) -> SessionStatus:
        """Stored status, or EXPIRED once the session has outlived the TTL."""
        now = self.clock() if now is None else now
        if self._is_expired(session, now):
            return SessionStatus.EXPIRED
        return session.status

    def create(self, policy: SessionPolicy) -> Session:
        """
        Register a new session in the Waiting state.

        Args:
            policy (SessionPolicy): Policy the session keeps for its whole life

        Returns:
            Session: The stored session
        """
        with self._lock:
            session_id = secrets.token_urlsafe(12)
            while session_id in self._sessions:
                session_id = secrets.token_urlsafe(12)
            session = Session(id=session_id, created_at=self.clock(), policy=policy)
            self._sessions[session_id] = session

        logger.info(f"Created session {session_id} ({policy.title})")
        return session

    def get(self, session_id: str) -> Session:
        """
        Look up a live session.

        Raises:
            SessionNotFoundError: When the id is unknown or the session has expired
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if self._is_expired(session, self.clock()):
                del self._sessions[session_id]
                logger.info(f"Session {session_id} expired on lookup")
                raise SessionNotFoundError(session_id)
            return session

    def attach_upload(
        self, session_id: str, raw_bytes: bytes, original_name: str, mime_type: str
    ) -> UploadSummary:
        """
        Validate an upload against the session policy, encode it and store the chunks.

        Args:
            session_id (str): Target session
            raw_bytes (bytes): Uploaded file contents
            original_name (str): Client-side filename, used for the extension check
            mime_type (str): MIME type reported by the client

        Returns:
            UploadSummary: Chunk count, sizes and compression ratio

        Raises:
            SessionNotFoundError: When the session does not exist
            InvalidSessionStateError: When a file was already uploaded
            EmptyFileError: When the upload has no content, or none survives clean output
            FileTypeError: When the extension is not allowed
            FileSizeError: When the file exceeds the session's max size
        """
        session = self.get(session_id)
        policy = session.policy

        with session.lock:
            if session.status is not SessionStatus.WAITING:
                raise InvalidSessionStateError(session_id, "File already uploaded to this session")

            if not raw_bytes:
                raise EmptyFileError(session_id, "No file provided")

            if not policy.allows(original_name):
                ext = file_extension(original_name) or "(none)"
                allowed = ", ".join(sorted(policy.allowed_extensions))
                raise FileTypeError(session_id, f"File type {ext} not allowed. Allowed: {allowed}")

            if len(raw_bytes) > policy.max_size_bytes:
                raise FileSizeError(
                    session_id,
                    f"File too large. Max size: {policy.max_size_bytes / (1024 * 1024):.1f}MB",
                )

            logger.info(f"[Upload] Session {session_id}: Processing {original_name} ({len(raw_bytes)} bytes)")
            chunks = self.pipeline.encode(raw_bytes, policy)
            if not chunks:
                raise EmptyFileError(session_id, "File is empty after clean output")
            encoded_size = sum(len(chunk) for chunk in chunks)

            session.file = UploadedFile(
                original_name=original_name,
                original_size_bytes=len(raw_bytes),
                mime_type=mime_type,
                encoded_total_chars=encoded_size,
            )
            session.chunks = chunks
            session.status = SessionStatus.UPLOADED

        logger.info(f"[Upload] Complete: {len(chunks)} chunks, {encoded_size} total encoded chars")
        return UploadSummary(
            original_name=original_name,
            original_size=len(raw_bytes),
            encoded_size=encoded_size,
            chunk_count=len(chunks),
            compression_ratio=1 - encoded_size / len(raw_bytes),
        )

    def deliver_chunk(self, session_id: str, index: int) -> ChunkDelivery:
        """
        Hand out one encoded chunk and record delivery progress.

        The delivered counter only moves forward; re-fetching an earlier index
        returns the same data without lowering it. The session is claimed once
        every chunk has been delivered.

        Raises:
            SessionNotFoundError: When the session does not exist
            NoFileYetError: When nothing was uploaded yet
            InvalidChunkIndexError: When index is outside the chunk range
        """
        session = self.get(session_id)

        with session.lock:
            if session.status is SessionStatus.WAITING:
                raise NoFileYetError(session_id)

            total = len(session.chunks)
            if index < 0 or index >= total:
                raise InvalidChunkIndexError(session_id)

            if index >= session.delivered_count:
                session.delivered_count = index + 1
            if session.delivered_count == total and session.status is not SessionStatus.CLAIMED:
                session.status = SessionStatus.CLAIMED
                logger.info(f"Session {session_id} claimed after chunk {index}")

            return ChunkDelivery(
                index=index,
                total_chunks=total,
                is_last=index == total - 1,
                data=session.chunks[index],
            )

    def deliver_all(self, session_id: str) -> ChunkBundle:
        """
        Hand out every chunk at once and claim the session.

        Raises:
            SessionNotFoundError: When the session does not exist
            NoFileYetError: When nothing was uploaded yet
        """
        session = self.get(session_id)

        with session.lock:
            if session.status is SessionStatus.WAITING:
                raise NoFileYetError(session_id, "No file ready")

            session.delivered_count = len(session.chunks)
            session.status = SessionStatus.CLAIMED
            bundle = ChunkBundle(filename=session.file.original_name, chunks=list(session.chunks))

        logger.info(f"Session {session_id} claimed in bulk ({bundle.total_chunks} chunks)")
        return bundle

    def sweep_expired(self, now: Optional[float] = None) -> int:
        """
        Remove every session that has reached the TTL, whatever its status.

        Args:
            now (Optional[float]): Reference time, defaults to the registry clock

        Returns:
            int: Number of sessions removed
        """
        now = self.clock() if now is None else now
        with self._lock:
            expired = [sid for sid, session in self._sessions.items() if self._is_expired(session, now)]
            for sid in expired:
                del self._sessions[sid]

        if expired:
            logger.info(f"Swept {len(expired)} expired session(s)")
        return len(expired)


async def run_periodic_sweep(registry: SessionRegistry, interval: float) -> None:
    """Call registry.sweep_expired every interval seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            # Off the event loop: sweep_expired blocks on the registry lock
            await asyncio.to_thread(registry.sweep_expired)
        except Exception:
            logger.exception("Session sweep failed")
