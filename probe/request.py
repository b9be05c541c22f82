"""
Сборка и отправка запроса.

Формат:
GET /path HTTP/1.1\r\n
Host:example.com:80\r\n
\r\n

Пробела после двоеточия нет — так делал исходный клиент,
серверы это принимают (OWS после ':' необязателен).
"""
import base64
import hashlib
import logging
import random
from typing import Dict, Mapping, Optional, Union

from probe.connection import Connection
from probe.errors import ProbeError
from probe.result import Err, Ok, Result

logger = logging.getLogger("probe")

CRLF = "\r\n"

# RFC 6455, 1.3
WS_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"
WS_VERSION = "13"
WS_KEY_BYTES = 16


def build_get(path: str, headers: Mapping[str, str]) -> bytes:
    """GET + заголовки как есть."""
    lines = [f"GET {path} HTTP/1.1{CRLF}"]
    for name, value in headers.items():
        lines.append(f"{name}:{value}{CRLF}")
    # пустая строка = конец заголовков
    lines.append(CRLF)
    # latin-1 — стандартная кодировка для HTTP/1.x headers
    return "".join(lines).encode("latin-1")


def host_header(host: str, port: Union[str, int]) -> str:
    return f"{host}:{port}"


def build_host_get(
    host: str,
    port: Union[str, int],
    path: str,
    extra: Optional[Mapping[str, str]] = None,
) -> bytes:
    """Обычный GET с Host."""
    headers: Dict[str, str] = dict(extra or {})
    headers["Host"] = host_header(host, port)
    return build_get(path, headers)


def build_ws_upgrade(
    host: str,
    port: Union[str, int],
    path: str,
    key: str,
    extra: Optional[Mapping[str, str]] = None,
) -> bytes:
    """GET с просьбой переключиться на WebSocket."""
    headers: Dict[str, str] = dict(extra or {})
    headers["Host"] = host_header(host, port)
    headers["Upgrade"] = "websocket"
    headers["Connection"] = "Upgrade"
    headers["Sec-WebSocket-Key"] = key
    headers["Sec-WebSocket-Version"] = WS_VERSION
    return build_get(path, headers)


def request_key(rng: Optional[random.Random] = None) -> str:
    """
    Значение Sec-WebSocket-Key.

    16 случайных байт в base64, новые на каждое соединение.
    rng передаётся явно — в тестах можно подсунуть random.Random(seed).
    По умолчанию SystemRandom (os.urandom).
    """
    rng = rng or random.SystemRandom()
    nonce = bytes(rng.getrandbits(8) for _ in range(WS_KEY_BYTES))
    return base64.b64encode(nonce).decode("ascii")


def accept_key(key: str) -> str:
    """Что сервер обязан вернуть в Sec-WebSocket-Accept."""
    digest = hashlib.sha1((key + WS_GUID).encode("ascii")).digest()
    return base64.b64encode(digest).decode("ascii")


def check_upgrade(code: int, headers: Mapping[str, str], key: str) -> bool:
    """
    Сервер действительно согласился на WebSocket?

    101 + Upgrade: websocket + правильный Sec-WebSocket-Accept.
    headers — HeaderMap (регистронезависимый поиск).
    """
    if int(code) != 101:
        return False
    if headers.get("upgrade", "").lower() != "websocket":
        return False
    return headers.get("sec-websocket-accept", "") == accept_key(key)


def send(conn: Connection, data: bytes) -> Result:
    """
    Пишет запрос в сокет: Ok(connection, sent) или Err.

    Ретраев нет — частичная отправка из-за ошибки сокета
    поднимается наверх как TransportError.
    """
    try:
        sent = conn.send(data)
    except ProbeError as e:
        return Err(e, conn)
    logger.debug(f"Sent {sent} bytes to {conn.peer}")
    return Ok(conn.move(), sent)
