"""
Один обмен с сервером.

Поток данных:
resolve -> connect -> send request -> parse status + headers -> stream body -> close

Соединение не переиспользуется: один Exchange.get() — один сокет,
который закрывается в конце при любом исходе.
"""
import logging
import random
import sys
from dataclasses import dataclass
from http import HTTPStatus
from typing import Optional, Union

from probe.body import Sink, body_step
from probe.config import ClientConfig
from probe.connection import Connection, establish
from probe.reader import BufferedReader
from probe.request import build_host_get, build_ws_upgrade, check_upgrade, request_key, send
from probe.result import Ok, Result, chain
from probe.timeouts import TimeoutScope, apply_timeout
from probe.utils.http import (
    HeaderHandler,
    HeaderMap,
    ParsedResponse,
    ResponseParser,
    StatusHandler,
    StatusLine,
)

logger = logging.getLogger("probe")


@dataclass
class ExchangeResult:
    """Что получилось в итоге обмена (тело уже ушло в sink)."""
    status: StatusLine
    headers: HeaderMap
    content_length: int
    body_bytes: int
    ws_key: Optional[str] = None
    upgraded: bool = False


def _stdout_sink(chunk: bytes) -> None:
    sys.stdout.buffer.write(chunk)
    sys.stdout.buffer.flush()


class Exchange:
    """
    Запрос + ответ поверх одного соединения.

    rng нужен только для ключа WebSocket; в тестах его можно
    передать с фиксированным seed.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        sink: Optional[Sink] = None,
        rng: Optional[random.Random] = None,
        on_header: Optional[HeaderHandler] = None,
        on_status: Optional[StatusHandler] = None,
    ):
        self.config = config or ClientConfig.default()
        self.sink = sink or _stdout_sink
        self.rng = rng
        self.on_header = on_header
        self.on_status = on_status

    def get(
        self,
        host: str,
        port: Union[str, int],
        path: str,
        until_eof: bool = False,
    ) -> ExchangeResult:
        """Обычный GET, тело уходит в sink."""
        payload = build_host_get(host, port, path, self.config.headers)
        return self._run(host, port, payload, until_eof=until_eof)

    def upgrade(self, host: str, port: Union[str, int], path: str) -> ExchangeResult:
        """
        GET с Upgrade: websocket.

        После 101 тело не читаем — дальше по сокету пошли бы фреймы.
        """
        key = request_key(self.rng)
        payload = build_ws_upgrade(host, port, path, key, self.config.headers)
        return self._run(host, port, payload, ws_key=key)

    def _run(
        self,
        host: str,
        port: Union[str, int],
        payload: bytes,
        ws_key: Optional[str] = None,
        until_eof: bool = False,
    ) -> ExchangeResult:
        timeouts = self.config.timeouts
        reader_config = self.config.reader
        scope = TimeoutScope(timeouts.total)

        conn, peer = establish(host, port, scope.clamp(timeouts.connect, "connecting")).unwrap()
        logger.debug(f"Connected to {host}:{port} via {peer}")

        reader = BufferedReader.for_socket(
            capacity=reader_config.buffer_size,
            max_line_length=reader_config.max_line_length,
            read_timeout=timeouts.read,
            scope=scope,
        )
        parser = ResponseParser(
            reader, self.config.strict_status, self.on_header, self.on_status
        )

        stream = body_step(reader, self.sink, reader_config.chunk_size, until_eof)

        def body(conn: Connection, response: ParsedResponse) -> Result:
            logger.debug(f"Status: {response.status}")
            if ws_key is not None and response.status.code == HTTPStatus.SWITCHING_PROTOCOLS:
                return Ok(conn, (response, 0))
            return stream(conn, response.content_length).map(
                lambda delivered: (response, delivered)
            )

        with conn.closing_on_error():
            apply_timeout(conn, scope.clamp(timeouts.write, "sending request"))

        # дальше сокетом владеет цепочка: Err несёт его в state,
        # а чужие исключения закрывают его на месте (closing_on_error)
        result = chain(
            send(conn, payload),
            lambda conn, _sent: parser.parse(conn),
            body,
        )
        if not result:
            result.dispose()
            result.unwrap()

        owner, (response, delivered) = result.unwrap()
        owner.close()

        upgraded = False
        if ws_key is not None:
            upgraded = check_upgrade(response.status.code, response.headers, ws_key)
            if not upgraded:
                logger.warning(f"Server did not accept the WebSocket upgrade: {response.status}")

        return ExchangeResult(
            status=response.status,
            headers=response.headers,
            content_length=response.content_length,
            body_bytes=delivered,
            ws_key=ws_key,
            upgraded=upgraded,
        )
