import base64
import gzip
import logging
from typing import List

from ..config import (
    ALLOWED_OUTPUT_CHARS,
    RAW_CHUNK_SIZE,
    SMART_CUT_CHARS,
    SMART_CUT_LOOKBACK,
)
from ..models.session import SessionPolicy

logger = logging.getLogger(__name__)


def sanitize_bytes(raw_bytes: bytes) -> bytes:
    """
    Keep only whitelisted characters of a UTF-8 payload.

    Filtering runs over decoded code points, not raw bytes. Invalid UTF-8
    sequences decode to U+FFFD, which is not whitelisted, so they are dropped
    along with every other disallowed character.

    Args:
        raw_bytes (bytes): Payload to clean

    Returns:
        bytes: UTF-8 encoding of the whitelisted characters, in order
    """
    text = raw_bytes.decode("utf-8", errors="replace")
    cleaned = "".join(char for char in text if char in ALLOWED_OUTPUT_CHARS)
    return cleaned.encode("utf-8")


def encode_chunk(chunk: bytes) -> str:
    # mtime=0 keeps the gzip header, and so the output, deterministic
    return base64.b64encode(gzip.compress(chunk, mtime=0)).decode("ascii")


def decode_chunk(encoded: str) -> bytes:
    """Reverse encode_chunk for a single chunk string."""
    return gzip.decompress(base64.b64decode(encoded))


class EncodingPipeline:
    """
    Turns an uploaded file into independently decodable text chunks.

    The pipeline is stateless; one instance can serve every session
    concurrently.

    Attributes:
        raw_chunk_size (int): Maximum bytes per chunk before compression
        lookback (int): How far back smart-cut searches for a delimiter
    """

    def __init__(self, raw_chunk_size: int = RAW_CHUNK_SIZE, lookback: int = SMART_CUT_LOOKBACK):
        if raw_chunk_size <= 0:
            raise ValueError("raw_chunk_size must be positive")
        self.raw_chunk_size = raw_chunk_size
        self.lookback = lookback

    def _smart_boundary(self, buffer: bytes, start: int, end: int) -> int:
        """Return the cut just after the closest safe delimiter before end, or end."""
        search_start = max(end - self.lookback, start + 1)
        for i in range(end - 1, search_start - 1, -1):
            if buffer[i] in SMART_CUT_CHARS:
                return i + 1
        return end

    def split(self, buffer: bytes, smart_cut: bool = True) -> List[bytes]:
        """
        Split a buffer into slices of at most raw_chunk_size bytes.

        Args:
            buffer (bytes): Data to split
            smart_cut (bool): Move interior boundaries to just after a safe delimiter

        Returns:
            List[bytes]: Non-empty slices whose concatenation is the buffer
        """
        chunks = []
        offset = 0
        total = len(buffer)

        while offset < total:
            end = min(offset + self.raw_chunk_size, total)
            if smart_cut and end < total:
                end = self._smart_boundary(buffer, offset, end)
            chunks.append(buffer[offset:end])
            offset = end

        return chunks

    def encode(self, raw_bytes: bytes, policy: SessionPolicy) -> List[str]:
        """
        Sanitize, chunk, then gzip and base64 encode every chunk on its own.

        Args:
            raw_bytes (bytes): Uploaded file contents
            policy (SessionPolicy): Session policy supplying smart_cut and sanitize_output

        Returns:
            List[str]: Encoded chunks in original byte order, empty for empty input
        """
        buffer = raw_bytes
        if policy.sanitize_output:
            buffer = sanitize_bytes(raw_bytes)
            logger.info(f"Cleaned: {len(raw_bytes)} bytes -> {len(buffer)} bytes")

        encoded_chunks = []
        for i, chunk in enumerate(self.split(buffer, policy.smart_cut)):
            encoded = encode_chunk(chunk)
            logger.debug(f"Chunk {i}: {len(chunk)} bytes -> base64 {len(encoded)} chars")
            encoded_chunks.append(encoded)

        return encoded_chunks
