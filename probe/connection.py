"""
Установка TCP-соединения.

Реализует:
- resolve(): host:port -> список адресов-кандидатов
- connect(): перебор кандидатов по порядку до первого успешного
- Connection: сокет с единственным владельцем

Владение передаётся через move(): старый объект после этого
невалиден, любая операция на нём сразу падает с TransportError.
Так один и тот же сокет нельзя случайно читать из двух мест.
"""
import errno
import logging
import socket
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Tuple, Union

from probe.errors import ConnectError, ResolutionError, TransportError
from probe.result import Ok, Result, catching, chain

logger = logging.getLogger("probe")


@dataclass(frozen=True)
class AddressCandidate:
    """Один адрес из ответа getaddrinfo()."""
    family: int
    type: int
    proto: int
    address: Tuple[Any, ...]

    @property
    def label(self) -> str:
        """Для логов."""
        return f"{self.address[0]}:{self.address[1]}"


class Connection:
    """
    Сокет с одним владельцем.

    Невалидная Connection (пустая, закрытая или отданная через move())
    не умеет ничего, кроме close() — тот всегда безопасен.
    """

    def __init__(self, sock: Optional[socket.socket] = None, peer: str = ""):
        self._sock = sock
        self.peer = peer

    @property
    def valid(self) -> bool:
        return self._sock is not None

    def _require(self, operation: str) -> socket.socket:
        if self._sock is None:
            raise TransportError(operation, errno.EBADF, "connection is not open")
        return self._sock

    def move(self) -> "Connection":
        """Отдаёт сокет новому владельцу, self становится пустым."""
        sock = self._require("move")
        self._sock = None
        return Connection(sock, self.peer)

    def settimeout(self, seconds: Optional[float]) -> None:
        self._require("settimeout").settimeout(seconds)

    def send(self, data: bytes) -> int:
        """
        Отправляет всё целиком.

        sendall() либо отдаёт все байты, либо падает —
        молча потерять хвост запроса нельзя.
        """
        sock = self._require("send")
        try:
            sock.sendall(data)
        except OSError as e:
            raise TransportError.from_os_error("send", e) from e
        return len(data)

    def recv(self, size: int) -> bytes:
        sock = self._require("recv")
        try:
            return sock.recv(size)
        except OSError as e:
            raise TransportError.from_os_error("recv", e) from e

    def fileno(self) -> int:
        return self._require("fileno").fileno()

    def close(self) -> None:
        if self._sock is not None:
            sock, self._sock = self._sock, None
            sock.close()

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def closing_on_error(self) -> Iterator["Connection"]:
        """
        Закрывает сокет, если из блока вылетело исключение.

        Для мест, где внутри цепочки зовётся чужой код (sink, хуки):
        исключение уходит мимо Err, и кроме текущего владельца
        закрыть сокет больше некому.
        """
        try:
            yield self
        except BaseException:
            self.close()
            raise

    def __repr__(self) -> str:
        state = "open" if self.valid else "closed"
        return f"<Connection {self.peer or '?'} {state}>"


def resolve(
    host: str,
    port: Union[str, int],
    family: int = socket.AF_INET,
) -> List[AddressCandidate]:
    """
    Резолвит host:port.

    По умолчанию только IPv4 — как и в остальном клиенте.
    Пустой ответ тоже ошибка: дальше connect() нечего перебирать.
    """
    try:
        infos = socket.getaddrinfo(host, port, family, socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise ResolutionError(host, str(port), e.errno, e.strerror) from e

    candidates = [
        AddressCandidate(family=fam, type=kind, proto=proto, address=addr)
        for fam, kind, proto, _, addr in infos
    ]
    if not candidates:
        raise ResolutionError(host, str(port))

    logger.debug(f"Resolved {host}:{port} -> {[c.label for c in candidates]}")
    return candidates


def connect(
    candidates: List[AddressCandidate],
    timeout: Optional[float] = None,
    host: str = "",
    port: Union[str, int] = "",
) -> Connection:
    """
    Подключается к первому адресу, который примет соединение.

    Если упали все — ConnectError с errno последней попытки.
    Недосозданный сокет закрываем сразу, висящих дескрипторов не остаётся.
    """
    last_error: Optional[int] = None

    for candidate in candidates:
        sock = None
        try:
            sock = socket.socket(candidate.family, candidate.type, candidate.proto)
            if timeout is not None:
                sock.settimeout(timeout)
            sock.connect(candidate.address)
        except OSError as e:
            last_error = e.errno if e.errno is not None else errno.ETIMEDOUT
            logger.debug(f"Connect to {candidate.label} failed: {e}")
            if sock is not None:
                sock.close()
            continue

        logger.debug(f"Connected to {candidate.label}")
        return Connection(sock, peer=candidate.label)

    if not host and candidates:
        host, port = candidates[-1].address[0], candidates[-1].address[1]
    raise ConnectError(host, str(port), last_error)


@catching
def resolve_step(host: str, port: Union[str, int]) -> Result:
    """resolve() в виде шага цепочки: Ok(None, candidates)."""
    return Ok(None, resolve(host, port))


def connect_step(timeout: Optional[float] = None, host: str = "", port: Union[str, int] = ""):
    """Шаг цепочки: кандидаты -> Ok(connection, peer)."""

    @catching
    def step(_state: Any, candidates: List[AddressCandidate]) -> Result:
        conn = connect(candidates, timeout, host, port)
        return Ok(conn, conn.peer)

    return step


def establish(host: str, port: Union[str, int], timeout: Optional[float] = None) -> Result:
    """resolve >>= connect."""
    return chain(resolve_step(host, port), connect_step(timeout, host, port))
