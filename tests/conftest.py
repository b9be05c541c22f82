"""
Общие фикстуры.

- make_reader: BufferedReader поверх заранее заданных кусков —
  так можно резать поток на любые границы
- conn: Connection поверх socketpair()
- raw_server: одноразовый TCP-сервер, отвечающий заданными байтами
- echo_server: tests/echo_app.py под uvicorn в фоновом потоке
"""
import socket
import threading
import time
from typing import Callable, List, Optional, Sequence, Union

import pytest
import uvicorn

from probe.connection import Connection
from probe.errors import ProbeError
from probe.reader import BufferedReader
from probe.result import Err, Ok


class ScriptedRefill:
    """
    Refill, отдающий куски по очереди.

    ProbeError в списке — вернуть ошибку вместо данных.
    Когда куски кончились — b"" (конец потока).
    """

    def __init__(self, chunks: Sequence[Union[bytes, ProbeError]]):
        self.chunks = list(chunks)
        self.calls = 0

    def __call__(self, conn: Connection):
        self.calls += 1
        if not self.chunks:
            return Ok(conn, b"")
        item = self.chunks.pop(0)
        if isinstance(item, ProbeError):
            return Err(item, conn)
        return Ok(conn, item)


@pytest.fixture
def make_reader():
    def factory(chunks, **kwargs):
        refill = ScriptedRefill(chunks)
        return BufferedReader(refill, **kwargs), refill

    return factory


@pytest.fixture
def sockpair():
    left, right = socket.socketpair()
    yield left, right
    left.close()
    right.close()


@pytest.fixture
def conn(sockpair):
    left, _ = sockpair
    connection = Connection(left, peer="socketpair")
    yield connection
    connection.close()


Response = Union[bytes, List[bytes], Callable[[bytes], bytes]]


class RawServer:
    """
    Принимает одно соединение, читает запрос до пустой строки,
    отвечает и закрывает соединение.

    wait_for_close=True — перед закрытием ждёт, пока клиент закроет
    свой конец, и пишет итог в peer_closed.

    response может быть байтами, списком кусков (шлются с паузой,
    чтобы клиент получил их разными recv()) или функцией от запроса.
    """

    def __init__(self, response: Response, wait_for_close: bool = False):
        self.response = response
        self.wait_for_close = wait_for_close
        self.request = b""
        self.peer_closed: Optional[bool] = None
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(1)
        self._sock.settimeout(10)
        self.port = self._sock.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        try:
            client, _ = self._sock.accept()
        except OSError:
            return
        with client:
            client.settimeout(10)
            data = b""
            while b"\r\n\r\n" not in data:
                chunk = client.recv(4096)
                if not chunk:
                    break
                data += chunk
            self.request = data

            response = self.response
            if callable(response):
                response = response(data)
            if isinstance(response, list):
                client.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                for piece in response:
                    client.sendall(piece)
                    time.sleep(0.02)
            else:
                client.sendall(response)

            if self.wait_for_close:
                self.peer_closed = self._peer_closed(client)

    @staticmethod
    def _peer_closed(client: socket.socket) -> bool:
        """Клиент закрыл свой конец? FIN или RST — да, тишина — нет."""
        # свой конец на запись закрываем, чтобы клиент увидел конец ответа
        client.shutdown(socket.SHUT_WR)
        client.settimeout(2)
        try:
            return client.recv(1) == b""
        except ConnectionResetError:
            return True
        except socket.timeout:
            return False

    def close(self) -> None:
        self._thread.join(timeout=10)
        self._sock.close()


@pytest.fixture
def raw_server():
    servers: List[RawServer] = []

    def factory(response: Response, wait_for_close: bool = False) -> RawServer:
        server = RawServer(response, wait_for_close)
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.close()


@pytest.fixture
def closed_port() -> int:
    """Порт, на котором точно никто не слушает."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def silent_server():
    """Слушает, но никогда не делает accept() — ответа не будет."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    yield sock.getsockname()[1]
    sock.close()


@pytest.fixture(scope="session")
def echo_server():
    """
    Starlette-приложение из echo_app.py под настоящим uvicorn.

    Сокет создаём сами, чтобы заранее знать порт.
    """
    from echo_app import app

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("127.0.0.1", 0))
    host, port = sock.getsockname()

    config = uvicorn.Config(app, log_level="warning", lifespan="off")
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, kwargs={"sockets": [sock]}, daemon=True)
    thread.start()

    deadline = time.monotonic() + 10
    while not server.started:
        if not thread.is_alive() or time.monotonic() > deadline:
            raise RuntimeError("uvicorn did not start")
        time.sleep(0.01)

    yield host, port

    server.should_exit = True
    thread.join(timeout=10)
    sock.close()


class Collector:
    """Sink, запоминающий куски тела."""

    def __init__(self):
        self.chunks: List[bytes] = []

    def __call__(self, chunk: bytes) -> None:
        self.chunks.append(chunk)

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)


@pytest.fixture
def sink() -> Collector:
    return Collector()
