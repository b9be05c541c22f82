"""
Ошибки клиента.

Все наследуются от ProbeError — CLI ловит только его
и печатает сообщение, остальное считается багом.
"""
import errno as errno_codes
import os
from typing import Optional


class ProbeError(Exception):
    """Базовая ошибка. Несёт человекочитаемое сообщение."""


class ResolutionError(ProbeError):
    """
    DNS не смог разрезолвить host:port.

    errno — код резолвера (socket.EAI_*), не системный errno.
    """

    def __init__(self, host: str, port: str, code: Optional[int] = None, message: str = ""):
        self.host = host
        self.port = port
        self.errno = code
        self.reason = message or "no addresses found"
        super().__init__(f"Failed to resolve {host}:{port} ({self.reason})")


class ConnectError(ProbeError):
    """Ни один адрес из списка не принял соединение."""

    def __init__(self, host: str, port: str, code: Optional[int] = None):
        self.host = host
        self.port = port
        self.errno = code
        reason = os.strerror(code) if code else "no candidate addresses"
        super().__init__(f"Failed to connect to {host}:{port} ({reason})")


class TransportError(ProbeError):
    """
    send()/recv() упал на уровне сокета.

    Таймаут чтения — тоже TransportError, отдельного типа нет.
    """

    def __init__(self, operation: str, code: Optional[int] = None, message: str = ""):
        self.operation = operation
        self.errno = code
        reason = message or (os.strerror(code) if code else "transport failure")
        super().__init__(f"Failed during {operation}: {reason}")

    @classmethod
    def from_os_error(cls, operation: str, err: OSError) -> "TransportError":
        # socket.timeout не выставляет errno
        code = err.errno if err.errno is not None else errno_codes.ETIMEDOUT
        return cls(operation, code, err.strerror or str(err) or os.strerror(code))


class ParseError(ProbeError):
    """Ответ сервера не соответствует грамматике HTTP/1.x."""


class OutOfData(ParseError):
    """Поток закончился раньше, чем пришла обязательная строка."""

    def __init__(self, expected: str):
        self.expected = expected
        super().__init__(f"Connection closed while reading {expected}")


class MalformedLine(ParseError):
    """Строка пришла, но разобрать её нельзя."""

    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"Malformed line {line!r}: {reason}")


class UnsupportedStatus(ParseError):
    """Код статуса не из известной таблицы."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Unsupported HTTP status code: {code!r}")
