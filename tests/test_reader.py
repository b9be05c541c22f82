"""
BufferedReader: строки и куски поверх потока с произвольными границами.
"""
import errno

import pytest

from probe.connection import Connection
from probe.errors import MalformedLine, TransportError
from probe.reader import BufferedReader, socket_refiller


def read_lines(reader, conn):
    lines = []
    while True:
        conn, line = reader.gets(conn).unwrap()
        lines.append(line)
        if line is None:
            return conn, lines


def test_gets_across_chunk_boundaries(make_reader, conn):
    reader, _ = make_reader([b"HTTP/1.1 2", b"00 OK\r", b"\nX: y\r\n", b"\r\n"])
    _, lines = read_lines(reader, conn)
    assert lines == ["HTTP/1.1 200 OK", "X: y", "", None]


def test_gets_accepts_bare_lf(make_reader, conn):
    reader, _ = make_reader([b"one\ntwo\n"])
    _, lines = read_lines(reader, conn)
    assert lines == ["one", "two", None]


def test_gets_returns_partial_line_then_none(make_reader, conn):
    """Поток оборвался посреди строки: отдаём хвост, потом None."""
    reader, _ = make_reader([b"abc"])
    conn, line = reader.gets(conn).unwrap()
    assert line == "abc"
    _, line = reader.gets(conn).unwrap()
    assert line is None


@pytest.mark.parametrize("tail, expected", [
    (b"abc\r", "abc"),
    (b"\r", None),
])
def test_gets_strips_cr_from_partial_line(make_reader, conn, tail, expected):
    reader, _ = make_reader([tail])
    _, line = reader.gets(conn).unwrap()
    assert line == expected


def test_gets_on_empty_stream_is_not_an_error(make_reader, conn):
    reader, _ = make_reader([])
    result = reader.gets(conn)
    assert result
    assert result.value is None


def test_every_call_moves_the_connection(make_reader, conn):
    reader, _ = make_reader([b"a\nb\n"])
    moved, _ = reader.gets(conn).unwrap()
    assert moved is not conn
    assert moved.valid
    assert not conn.valid


def test_get_span_is_bounded_and_refills_once(make_reader, conn):
    reader, refill = make_reader([b"hello world"])

    conn, span = reader.get_span(conn, 5).unwrap()
    assert span == b"hello"
    assert refill.calls == 1

    conn, span = reader.get_span(conn, 100).unwrap()
    assert span == b" world"
    assert refill.calls == 1

    conn, span = reader.get_span(conn, 100).unwrap()
    assert span == b""
    assert refill.calls == 2


def test_get_span_returns_only_what_is_buffered(make_reader, conn):
    reader, _ = make_reader([b"ab", b"cd"])
    conn, span = reader.get_span(conn, 10).unwrap()
    assert span == b"ab"
    _, span = reader.get_span(conn, 10).unwrap()
    assert span == b"cd"


def test_get_span_uses_leftover_after_gets(make_reader, conn):
    reader, refill = make_reader([b"line\r\nbody"])
    conn, line = reader.gets(conn).unwrap()
    assert line == "line"
    assert reader.pending == b"body"
    _, span = reader.get_span(conn, 10).unwrap()
    assert span == b"body"
    assert refill.calls == 1


def test_refill_error_keeps_connection_open(make_reader, conn):
    """Ридер сам соединение не закрывает — это решает вызывающий."""
    reader, _ = make_reader([b"partial", TransportError("recv", errno.ECONNRESET)])
    result = reader.gets(conn)
    assert not result
    assert isinstance(result.error, TransportError)
    assert result.error.errno == errno.ECONNRESET
    assert result.state.valid


def test_line_too_long(make_reader, conn):
    reader, _ = make_reader([b"0123", b"456789\r\n"], max_line_length=8)
    result = reader.gets(conn)
    assert isinstance(result.error, MalformedLine)


def test_socket_refiller_reads_real_socket(sockpair):
    left, right = sockpair
    reader = BufferedReader(socket_refiller(16))
    right.sendall(b"ping\r\npong")
    right.close()

    conn, line = reader.gets(Connection(left)).unwrap()
    assert line == "ping"
    conn, line = reader.gets(conn).unwrap()
    assert line == "pong"
    conn, line = reader.gets(conn).unwrap()
    assert line is None
    conn.close()


def test_socket_refiller_on_closed_connection():
    reader = BufferedReader.for_socket()
    result = reader.gets(Connection())
    assert isinstance(result.error, TransportError)
    assert result.error.errno == errno.EBADF


def test_socket_refiller_read_timeout(sockpair):
    left, _ = sockpair
    reader = BufferedReader(socket_refiller())
    conn = Connection(left)
    conn.settimeout(0.05)
    result = reader.get_span(conn, 10)
    assert isinstance(result.error, TransportError)
    assert result.error.errno == errno.ETIMEDOUT
