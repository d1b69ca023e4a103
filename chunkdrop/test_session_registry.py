import asyncio
import random
import threading

import pytest

from chunkdrop.models.session import SessionPolicy, SessionStatus
from chunkdrop.services.encoding_pipeline import EncodingPipeline, decode_chunk
from chunkdrop.services.session_registry import SessionRegistry, run_periodic_sweep
from chunkdrop.utils.exceptions import (
    EmptyFileError,
    FileSizeError,
    FileTypeError,
    InvalidChunkIndexError,
    InvalidSessionStateError,
    NoFileYetError,
    SessionNotFoundError,
)

TTL = 1800


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def registry(clock):
    return SessionRegistry(
        pipeline=EncodingPipeline(raw_chunk_size=6000),
        ttl_seconds=TTL,
        clock=clock,
    )

@pytest.fixture
def payload():
    return bytes(random.Random(7).getrandbits(8) for _ in range(12000))

def uploaded_session(registry, payload, **policy):
    session = registry.create(SessionPolicy(smart_cut=False, **policy))
    registry.attach_upload(session.id, payload, "save.bin", "application/octet-stream")
    return session

def test_create_session(registry, clock):
    """Test that a new session starts waiting with an empty chunk list"""
    policy = SessionPolicy(title="Save file", allowed_extensions={"JSON"})
    session = registry.create(policy)

    assert session.status is SessionStatus.WAITING
    assert session.created_at == clock.now
    assert session.chunks == []
    assert session.delivered_count == 0
    assert session.file is None
    assert session.policy.allowed_extensions == frozenset({".json"})
    assert registry.get(session.id) is session

def test_session_ids_are_unique(registry):
    ids = {registry.create(SessionPolicy()).id for _ in range(200)}
    assert len(ids) == 200
    assert all(len(session_id) == 16 for session_id in ids)

def test_get_unknown_session(registry):
    with pytest.raises(SessionNotFoundError):
        registry.get("missing")

def test_get_does_not_mutate_delivery(registry, payload):
    session = uploaded_session(registry, payload)
    registry.get(session.id)
    assert session.delivered_count == 0
    assert session.status is SessionStatus.UPLOADED

def test_upload_too_large(registry):
    """Test that a file larger than maxSize is rejected"""
    session = registry.create(SessionPolicy(max_size_bytes=100))
    with pytest.raises(FileSizeError):
        registry.attach_upload(session.id, b"x" * 150, "data.json", "application/json")
    assert session.status is SessionStatus.WAITING

def test_upload_disallowed_type(registry):
    """Test that a .txt file is rejected when only .json is allowed"""
    session = registry.create(SessionPolicy(max_size_bytes=100, allowed_extensions={".json"}))
    with pytest.raises(FileTypeError) as exc_info:
        registry.attach_upload(session.id, b"x" * 50, "notes.txt", "text/plain")
    assert ".txt" in exc_info.value.message
    assert session.status is SessionStatus.WAITING

def test_extension_check_ignores_case(registry):
    session = registry.create(SessionPolicy(allowed_extensions={".json"}))
    summary = registry.attach_upload(session.id, b'{"a": 1}', "SAVE.JSON", "application/json")
    assert summary.chunk_count == 1

def test_upload_empty_file(registry):
    session = registry.create(SessionPolicy())
    with pytest.raises(EmptyFileError):
        registry.attach_upload(session.id, b"", "empty.json", "application/json")
    assert session.status is SessionStatus.WAITING

def test_upload_empty_after_clean_output(registry):
    """Test that a file with no whitelisted characters is rejected and the session keeps waiting"""
    session = registry.create(SessionPolicy(sanitize_output=True))
    with pytest.raises(EmptyFileError) as exc_info:
        registry.attach_upload(session.id, "\t\r™é".encode("utf-8"), "a.txt", "text/plain")

    assert exc_info.value.message == "File is empty after clean output"
    assert session.status is SessionStatus.WAITING
    assert session.chunks == []
    assert session.file is None

    summary = registry.attach_upload(session.id, b"ok", "a.txt", "text/plain")
    assert summary.chunk_count == 1

def test_upload_unknown_session(registry):
    with pytest.raises(SessionNotFoundError):
        registry.attach_upload("missing", b"data", "a.txt", "text/plain")

def test_upload_encodes_into_chunks(registry, payload):
    """Test that a 12000 byte upload with smart-cut off gives two decodable chunks"""
    session = registry.create(SessionPolicy(smart_cut=False))
    summary = registry.attach_upload(session.id, payload, "save.bin", "application/octet-stream")

    assert summary.chunk_count == 2
    assert summary.original_size == 12000
    assert summary.encoded_size == sum(len(c) for c in session.chunks)
    assert summary.compression_ratio == pytest.approx(1 - summary.encoded_size / 12000)
    assert session.status is SessionStatus.UPLOADED
    assert session.file.original_name == "save.bin"
    assert session.file.mime_type == "application/octet-stream"
    assert session.file.encoded_total_chars == summary.encoded_size
    assert b"".join(decode_chunk(c) for c in session.chunks) == payload

def test_second_upload_rejected(registry, payload):
    """Test that a session accepts exactly one upload and keeps the first file"""
    session = uploaded_session(registry, payload)
    chunks_before = list(session.chunks)
    file_before = session.file

    with pytest.raises(InvalidSessionStateError):
        registry.attach_upload(session.id, b"other", "other.bin", "application/octet-stream")

    registry.deliver_all(session.id)
    with pytest.raises(InvalidSessionStateError):
        registry.attach_upload(session.id, b"other", "other.bin", "application/octet-stream")

    assert session.chunks == chunks_before
    assert session.file == file_before

def test_concurrent_uploads_only_one_wins(registry, payload):
    session = registry.create(SessionPolicy())
    outcomes = []

    def upload(name):
        try:
            registry.attach_upload(session.id, payload, name, "application/octet-stream")
            outcomes.append("ok")
        except InvalidSessionStateError:
            outcomes.append("rejected")

    threads = [threading.Thread(target=upload, args=(f"f{i}.bin",)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("rejected") == 7

def test_deliver_chunk_before_upload(registry):
    session = registry.create(SessionPolicy())
    with pytest.raises(NoFileYetError):
        registry.deliver_chunk(session.id, 0)
    with pytest.raises(NoFileYetError):
        registry.deliver_all(session.id)

@pytest.mark.parametrize("index", [-1, 2, 100])
def test_deliver_invalid_index(registry, payload, index):
    session = uploaded_session(registry, payload)
    with pytest.raises(InvalidChunkIndexError):
        registry.deliver_chunk(session.id, index)
    assert session.delivered_count == 0

def test_deliver_chunks_in_order_claims(registry, payload):
    """Test that fetching the last chunk claims the session"""
    session = uploaded_session(registry, payload)

    first = registry.deliver_chunk(session.id, 0)
    assert first.is_last is False
    assert first.total_chunks == 2
    assert session.status is SessionStatus.UPLOADED

    last = registry.deliver_chunk(session.id, 1)
    assert last.is_last is True
    assert last.data == session.chunks[1]
    assert session.delivered_count == 2
    assert session.status is SessionStatus.CLAIMED

def test_delivered_count_never_decreases(registry, payload):
    """Test that re-fetching an earlier chunk keeps the delivered counter"""
    session = uploaded_session(registry, payload)

    registry.deliver_chunk(session.id, 1)
    assert session.delivered_count == 2
    assert session.status is SessionStatus.CLAIMED

    again = registry.deliver_chunk(session.id, 0)
    assert again.data == session.chunks[0]
    assert session.delivered_count == 2
    assert session.status is SessionStatus.CLAIMED

def test_delivered_count_monotonic_for_any_order(clock):
    registry = SessionRegistry(pipeline=EncodingPipeline(raw_chunk_size=10), ttl_seconds=TTL, clock=clock)
    rng = random.Random(3)
    for _ in range(20):
        session = registry.create(SessionPolicy(smart_cut=False))
        registry.attach_upload(session.id, b"0123456789" * 7, "a.txt", "text/plain")
        previous = 0
        for index in [rng.randrange(7) for _ in range(15)]:
            registry.deliver_chunk(session.id, index)
            assert session.delivered_count >= previous
            previous = session.delivered_count
            assert (session.status is SessionStatus.CLAIMED) == (session.delivered_count == 7)

def test_deliver_all_claims(registry, payload):
    session = uploaded_session(registry, payload)
    bundle = registry.deliver_all(session.id)

    assert bundle.filename == "save.bin"
    assert bundle.chunks == session.chunks
    assert session.delivered_count == 2
    assert session.status is SessionStatus.CLAIMED

def test_get_after_ttl_is_not_found(registry, clock):
    """Test that an untouched session is gone once the TTL has elapsed"""
    session = registry.create(SessionPolicy())
    clock.advance(TTL - 1)
    assert registry.get(session.id) is session

    clock.advance(1)
    with pytest.raises(SessionNotFoundError):
        registry.get(session.id)
    assert len(registry) == 0

def test_status_of_reports_expired(registry, clock):
    session = registry.create(SessionPolicy())
    assert registry.status_of(session) is SessionStatus.WAITING
    assert registry.status_of(session, now=clock.now + TTL) is SessionStatus.EXPIRED

def test_sweep_removes_expired_regardless_of_status(registry, clock, payload):
    """Test that the sweep purges waiting, uploaded and claimed sessions alike"""
    waiting = registry.create(SessionPolicy())
    uploaded = uploaded_session(registry, payload)
    claimed = uploaded_session(registry, payload)
    registry.deliver_all(claimed.id)

    clock.advance(600)
    fresh = registry.create(SessionPolicy())

    assert registry.sweep_expired(now=clock.now + TTL - 600) == 3
    assert len(registry) == 1
    for session in (waiting, uploaded, claimed):
        with pytest.raises(SessionNotFoundError):
            registry.get(session.id)
    assert registry.get(fresh.id) is fresh

def test_sweep_keeps_live_sessions(registry, clock):
    registry.create(SessionPolicy())
    clock.advance(TTL / 2)
    assert registry.sweep_expired() == 0
    assert len(registry) == 1

@pytest.mark.asyncio
async def test_periodic_sweep_task(registry, clock):
    """Test that the background sweep removes aged sessions until cancelled"""
    registry.create(SessionPolicy())
    clock.advance(TTL)

    task = asyncio.create_task(run_periodic_sweep(registry, 0.01))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(registry) == 0
