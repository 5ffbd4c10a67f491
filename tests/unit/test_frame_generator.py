# tests/unit/test_frame_generator.py

import pytest

from audio.frame_generator import chunk_count, iter_chunks, split_into_chunks
from spec import DELIVERY_CHUNK_BYTES


def test_full_chunks_only():
    payload = b"\x00" * (DELIVERY_CHUNK_BYTES * 3)

    chunks = split_into_chunks(payload, DELIVERY_CHUNK_BYTES)

    assert len(chunks) == 3
    for chunk in chunks:
        assert len(chunk) == DELIVERY_CHUNK_BYTES


def test_keeps_short_trailing_chunk():
    payload = b"\x01" * (DELIVERY_CHUNK_BYTES * 2 + 10)

    chunks = split_into_chunks(payload, DELIVERY_CHUNK_BYTES)

    assert len(chunks) == 3
    assert len(chunks[-1]) == 10
    assert b"".join(chunks) == payload


def test_empty_input_returns_no_chunks():
    assert split_into_chunks(b"", DELIVERY_CHUNK_BYTES) == []
    assert chunk_count(0, DELIVERY_CHUNK_BYTES) == 0


def test_chunk_count_is_ceiling():
    assert chunk_count(10_000, 2048) == 5
    assert chunk_count(2048, 2048) == 1
    assert chunk_count(2049, 2048) == 2


def test_non_positive_chunk_size_rejected():
    with pytest.raises(ValueError):
        chunk_count(10, 0)
    with pytest.raises(ValueError):
        list(iter_chunks(b"abc", -1))
