import math

import pytest

from docchat_server.rag.chunker import chunk_text, estimate_tokens


def _reassemble(chunks, overlap):
    return chunks[0] + "".join(chunk[overlap:] for chunk in chunks[1:])


@pytest.mark.parametrize("text", ["", "   ", "\n\r\n\t  \n"])
def test_blank_input_yields_no_chunks(text):
    assert chunk_text(text, 100, 10) == []


def test_short_text_is_single_trimmed_chunk():
    assert chunk_text("  hello world \r\n", 100, 10) == ["hello world"]


def test_crlf_is_normalized():
    [chunk] = chunk_text("line one\r\nline two", 100, 10)
    assert chunk == "line one\nline two"


@pytest.mark.parametrize(
    "length,size,overlap",
    [(1000, 300, 50), (300, 300, 50), (301, 300, 50), (5000, 1500, 200), (77, 10, 3)],
)
def test_overlap_removed_reconstructs_input(length, size, overlap):
    text = "".join(chr(ord("a") + i % 26) for i in range(length))

    chunks = chunk_text(text, size, overlap)

    assert _reassemble(chunks, overlap) == text
    assert all(len(chunk) <= size for chunk in chunks)
    assert len(chunks) == max(1, math.ceil((length - overlap) / (size - overlap)))


def test_windows_share_overlap():
    text = "abcdefghijklmnopqrstuvwxyz"
    chunks = chunk_text(text, 10, 4)
    assert chunks[0] == "abcdefghij"
    assert chunks[1].startswith("ghij")
    assert chunks[-1].endswith("z")


def test_whitespace_only_window_is_skipped():
    text = "a" + " " * 30 + "b"
    chunks = chunk_text(text, 10, 2)
    assert all(chunk.strip() for chunk in chunks)
    assert chunks[0] == "a"
    assert chunks[-1] == "b"


@pytest.mark.parametrize("size,overlap", [(0, 0), (10, 10), (10, 11), (10, -1)])
def test_invalid_window_parameters(size, overlap):
    with pytest.raises(ValueError):
        chunk_text("some text", size, overlap)


def test_estimate_tokens():
    assert estimate_tokens("") == 1
    assert estimate_tokens("abc") == 1
    assert estimate_tokens("a" * 10) == 3
    assert estimate_tokens("a" * 400) == 100
