"""
Стриминг тела ответа.

Читаем кусками и сразу отдаём в sink — всё тело в память не собираем.
"""
import logging
from typing import Callable, Optional

from probe.connection import Connection
from probe.errors import TransportError
from probe.reader import BufferedReader
from probe.result import Err, Ok, Result

logger = logging.getLogger("probe")

# столько байт за раз просим у ридера и отдаём в sink
CHUNK_SIZE = 256

Sink = Callable[[bytes], object]


def stream_body(
    reader: BufferedReader,
    conn: Connection,
    length: Optional[int],
    sink: Sink,
    chunk_size: int = CHUNK_SIZE,
) -> Result:
    """
    Стримит тело известной длины (Content-Length): Ok(conn, отдано байт).

    Если сервер закрыл соединение раньше, чем прислал length байт,
    это не ошибка — просто отдаём сколько было.
    length=None — читаем до закрытия соединения (HTTP/1.0 без длины).
    """
    remaining = length
    delivered = 0
    while remaining is None or remaining > 0:
        want = chunk_size if remaining is None else min(chunk_size, remaining)
        got = reader.get_span(conn, want)
        if not got:
            return got
        conn, chunk = got.unwrap()
        if not chunk:
            if remaining:
                logger.debug(f"Body cut short: {remaining} of {length} bytes never arrived")
            break

        # stdout закрыли (| head) — это ошибка обмена, а не падение клиента
        try:
            with conn.closing_on_error():
                sink(chunk)
        except OSError as e:
            return Err(TransportError.from_os_error("writing body", e), conn)
        delivered += len(chunk)
        if remaining is not None:
            remaining -= len(chunk)

    return Ok(conn, delivered)


def body_step(
    reader: BufferedReader,
    sink: Sink,
    chunk_size: int = CHUNK_SIZE,
    until_eof: bool = False,
) -> Callable[[Connection, int], Result]:
    """stream_body() как шаг цепочки: (conn, content_length) -> Ok(conn, отдано)."""

    def step(conn: Connection, length: int) -> Result:
        return stream_body(reader, conn, None if until_eof else length, sink, chunk_size)

    return step
