"""
Буферизованное чтение из сокета.

Сеть не обещает, что строка или заголовок придёт одним recv():
"HTTP/1.1 2" + "00 OK\r\nCont" + "ent-Length: 5\r\n..." — нормальная ситуация.
BufferedReader склеивает куски и отдаёт наружу:
- gets() — одну строку без \r\n
- get_span() — не больше N байт из того, что уже есть

Connection при этом не хранится внутри ридера, а передаётся в каждый
вызов и возвращается обратно в Ok(...). Ридер держит только буфер.
"""
import logging
from typing import Callable, Optional

from probe.connection import Connection
from probe.errors import MalformedLine, ProbeError
from probe.result import Err, Ok, Result
from probe.timeouts import TimeoutScope

logger = logging.getLogger("probe")

# сколько байт забираем из сокета за один recv()
DEFAULT_BUFFER_SIZE = 4096
# защита от сервера, который шлёт бесконечную строку без \n
DEFAULT_MAX_LINE_LENGTH = 8192

Refill = Callable[[Connection], Result]


def socket_refiller(
    size: int = DEFAULT_BUFFER_SIZE,
    read_timeout: Optional[float] = None,
    scope: Optional[TimeoutScope] = None,
) -> Refill:
    """
    Refill поверх recv(): Ok(connection, data) или Err.

    b"" — сервер закрыл соединение, это не ошибка.
    Если задан scope, перед каждым recv() таймаут урезается
    до остатка общего бюджета.
    """
    def refill(conn: Connection) -> Result:
        try:
            if scope is not None:
                conn.settimeout(scope.clamp(read_timeout, "reading response"))
            data = conn.recv(size)
        except ProbeError as e:
            return Err(e, conn)
        return Ok(conn, data)

    return refill


class BufferedReader:
    """
    Буфер + курсор поверх refill-функции.

    Инвариант: 0 <= _pos <= len(_buf). Refill вызывается только когда
    все байты буфера уже отданы, так что непрочитанное не теряется.
    """

    def __init__(
        self,
        refill: Refill,
        capacity: int = DEFAULT_BUFFER_SIZE,
        max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
    ):
        self._refill_fn = refill
        self.capacity = capacity
        self.max_line_length = max_line_length
        self._buf = bytearray()
        self._pos = 0

    @classmethod
    def for_socket(
        cls,
        capacity: int = DEFAULT_BUFFER_SIZE,
        max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
        read_timeout: Optional[float] = None,
        scope: Optional[TimeoutScope] = None,
    ) -> "BufferedReader":
        return cls(
            socket_refiller(capacity, read_timeout, scope),
            capacity=capacity,
            max_line_length=max_line_length,
        )

    @property
    def pending(self) -> bytes:
        """Уже прочитанное из сети, но ещё не отданное наружу."""
        return bytes(self._buf[self._pos:])

    def _exhausted(self) -> bool:
        return self._pos >= len(self._buf)

    def _refill(self, conn: Connection) -> Result:
        filled = self._refill_fn(conn)
        if not filled:
            return Err(filled.error, filled.state or conn)

        conn, data = filled.unwrap()
        self._buf = bytearray(data)
        self._pos = 0
        logger.debug(f"Refilled {len(data)} bytes")
        return Ok(conn, bytes(data))

    def gets(self, conn: Connection) -> Result:
        """
        Читает строку до \\n, \\r перед ним отбрасывается.

        Ok(conn, None) — поток кончился, а строки не было вовсе.
        Если поток кончился посреди строки — отдаём что успели,
        следующий вызов вернёт None.
        """
        line = bytearray()
        while True:
            if self._exhausted():
                filled = self._refill(conn)
                if not filled:
                    return filled
                conn, data = filled.unwrap()
                if not data:
                    # хвост без \n: "abc\r" -> "abc", одинокий "\r" -> None
                    if line.endswith(b"\r"):
                        del line[-1]
                    if line:
                        return Ok(conn.move(), line.decode("latin-1"))
                    return Ok(conn.move(), None)

            newline = self._buf.find(b"\n", self._pos)
            end = newline if newline != -1 else len(self._buf)
            line += self._buf[self._pos:end]
            self._pos = end + 1 if newline != -1 else end

            if len(line) > self.max_line_length:
                preview = line[:32].decode("latin-1")
                return Err(MalformedLine(preview, "line too long"), conn)

            if newline != -1:
                if line.endswith(b"\r"):
                    del line[-1]
                return Ok(conn.move(), line.decode("latin-1"))

    def get_span(self, conn: Connection, max_length: int) -> Result:
        """
        Не больше max_length байт из буфера.

        Если буфер пуст — один refill. b"" означает конец потока.
        """
        if max_length <= 0:
            return Ok(conn.move(), b"")

        if self._exhausted():
            filled = self._refill(conn)
            if not filled:
                return filled
            conn, data = filled.unwrap()
            if not data:
                return Ok(conn.move(), b"")

        end = min(self._pos + max_length, len(self._buf))
        span = bytes(self._buf[self._pos:end])
        self._pos = end
        return Ok(conn.move(), span)
