"""
Минимальный HTTP/1.x парсер.

Только то что нужно клиенту:
- status line (или request line, если разбираем запрос)
- headers
- длина тела по Content-Length

Тело не читаем — оно стримится отдельно (probe/body.py).
Chunked, folding и multi-value заголовки не поддерживаются.
"""
import enum
import re
from collections.abc import MutableMapping
from dataclasses import dataclass
from http import HTTPStatus
from typing import Callable, Dict, Iterator, Mapping, Optional, Tuple, Union

from probe.connection import Connection
from probe.errors import MalformedLine, OutOfData, ParseError, UnsupportedStatus
from probe.reader import BufferedReader
from probe.result import Err, Ok, Result, chain

StatusCode = Union[HTTPStatus, int]
HeaderHandler = Callable[[str, str], None]
StatusHandler = Callable[["StatusLine"], None]

_DIGITS = re.compile(r"[0-9]+")


class ParserState(enum.Enum):
    AWAIT_STATUS_LINE = enum.auto()
    AWAIT_HEADERS = enum.auto()
    AWAIT_BODY = enum.auto()
    DONE = enum.auto()

    def next(self) -> "ParserState":
        """Только вперёд, назад переходов нет."""
        order = list(ParserState)
        index = order.index(self)
        return order[min(index + 1, len(order) - 1)]


@dataclass(frozen=True)
class StatusLine:
    """
    HTTP/1.1 200 OK -> (HTTP/1.1, 200, OK).

    code — HTTPStatus для известных кодов, голый int для остальных.
    """
    version: str
    code: StatusCode
    reason: str

    @property
    def known(self) -> bool:
        return isinstance(self.code, HTTPStatus)

    def __str__(self) -> str:
        return f"{self.version} {int(self.code)} {self.reason}"


@dataclass(frozen=True)
class RequestLine:
    """GET /path HTTP/1.1 — то, что видит сервер."""
    method: str
    uri: str
    version: str

    def __str__(self) -> str:
        return f"{self.method} {self.uri} {self.version}"


class HeaderMap(MutableMapping):
    """
    Заголовки: имя -> значение.

    Поиск регистронезависимый ("Content-Length" == "content-length"),
    но имя хранится в том виде, в каком пришло последним —
    для печати и dict(headers). Повтор имени перезаписывает значение.
    """

    def __init__(self, items: Optional[Mapping[str, str]] = None):
        self._items: Dict[str, Tuple[str, str]] = {}
        if items:
            self.update(items)

    def __setitem__(self, name: str, value: str) -> None:
        self._items[name.lower()] = (name, value)

    @staticmethod
    def _key(name: str) -> str:
        # не-строка не может быть именем заголовка: `1 in headers` -> False
        if not isinstance(name, str):
            raise KeyError(name)
        return name.lower()

    def __getitem__(self, name: str) -> str:
        return self._items[self._key(name)][1]

    def __delitem__(self, name: str) -> None:
        del self._items[self._key(name)]

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"HeaderMap({dict(self.items())!r})"


@dataclass
class ParsedResponse:
    """Всё, что есть у ответа до тела."""
    status: StatusLine
    headers: HeaderMap
    content_length: int


@dataclass
class ParsedRequest:
    """
    Распарсенный HTTP-запрос (без тела).

    Для серверной стороны и тестов.
    """
    request: RequestLine
    headers: HeaderMap

    @property
    def content_length(self) -> int:
        return content_length(self.headers)

    @property
    def host(self) -> Optional[str]:
        return self.headers.get("host")


def lookup_status(token: str, strict: bool = False) -> StatusCode:
    """
    "404" -> HTTPStatus.NOT_FOUND.

    Неизвестный числовой код (например 299) по умолчанию проходит как int —
    серверы шлют и нестандартные коды. strict=True делает его ошибкой.
    Не-число в позиции кода — ошибка всегда.
    """
    if not _DIGITS.fullmatch(token):
        raise UnsupportedStatus(token)
    code = int(token)
    try:
        return HTTPStatus(code)
    except ValueError:
        if strict:
            raise UnsupportedStatus(token)
        return code


def parse_status_line(line: str, strict: bool = False) -> StatusLine:
    # HTTP/1.1 404 Not Found — reason может содержать пробелы
    parts = line.split(None, 2)
    if len(parts) != 3:
        raise MalformedLine(line, "expected '<version> <code> <reason>'")
    version, code, reason = parts
    return StatusLine(version, lookup_status(code, strict), reason)


def parse_request_line(line: str) -> RequestLine:
    parts = line.split()
    if len(parts) != 3:
        raise MalformedLine(line, "expected '<method> <uri> <version>'")
    method, uri, version = parts
    return RequestLine(method, uri, version)


def parse_header_line(line: str) -> Tuple[str, str]:
    """
    Host: example.com -> (Host, example.com).

    Режем по первому ':', у значения срезаем один ведущий пробел.
    """
    name, sep, value = line.partition(":")
    if not sep:
        raise MalformedLine(line, "missing ':' separator")
    name = name.strip()
    if not name:
        raise MalformedLine(line, "empty header name")
    if value.startswith(" "):
        value = value[1:]
    return name, value


def content_length(headers: Mapping[str, str]) -> int:
    """
    Длина тела. Никогда не отрицательная.

    Нет заголовка, мусор или минус — 0.
    """
    value = headers.get("content-length")
    if value is None:
        return 0
    value = value.strip()
    if not _DIGITS.fullmatch(value):
        return 0
    return int(value)


def _read_line(reader: BufferedReader, conn: Connection, what: str) -> Result:
    """gets(), но конец потока здесь — OutOfData."""
    got = reader.gets(conn)
    if not got:
        return got
    conn, line = got.unwrap()
    if line is None:
        return Err(OutOfData(what), conn)
    return Ok(conn, line)


def _parsing(conn: Connection, parse: Callable[[], object]) -> Result:
    try:
        return Ok(conn, parse())
    except ParseError as e:
        return Err(e, conn)


def read_status_line(reader: BufferedReader, conn: Connection, strict: bool = False) -> Result:
    """Ok(conn, StatusLine)."""
    return _read_line(reader, conn, "status line").bind(
        lambda conn, line: _parsing(conn, lambda: parse_status_line(line, strict))
    )


def read_request_line(reader: BufferedReader, conn: Connection) -> Result:
    """Ok(conn, RequestLine)."""
    return _read_line(reader, conn, "request line").bind(
        lambda conn, line: _parsing(conn, lambda: parse_request_line(line))
    )


def read_headers(
    reader: BufferedReader,
    conn: Connection,
    on_header: Optional[HeaderHandler] = None,
) -> Result:
    """
    Читает заголовки до пустой строки: Ok(conn, HeaderMap).

    on_header вызывается на каждый заголовок по мере разбора.
    """
    headers = HeaderMap()
    while True:
        got = _read_line(reader, conn, "headers")
        if not got:
            return got
        conn, line = got.unwrap()

        # пустая строка = конец заголовков
        if line == "":
            return Ok(conn, headers)

        parsed = _parsing(conn, lambda: parse_header_line(line))
        if not parsed:
            return parsed
        name, value = parsed.value
        headers[name] = value
        if on_header is not None:
            with conn.closing_on_error():
                on_header(name, value)


class ResponseParser:
    """
    Status line -> headers -> длина тела.

    Состояния идут строго вперёд:
    AWAIT_STATUS_LINE -> AWAIT_HEADERS -> AWAIT_BODY -> DONE.
    Если шаг упал, state остаётся на нём — видно, где сломалось.
    """

    def __init__(
        self,
        reader: BufferedReader,
        strict_status: bool = False,
        on_header: Optional[HeaderHandler] = None,
        on_status: Optional[StatusHandler] = None,
    ):
        self.reader = reader
        self.strict_status = strict_status
        self.on_header = on_header
        self.on_status = on_status
        self.state = ParserState.AWAIT_STATUS_LINE

    def _advance(self, result: Result) -> Result:
        if result:
            self.state = self.state.next()
        return result

    def _status(self, conn: Connection, _: object) -> Result:
        result = read_status_line(self.reader, conn, self.strict_status)
        if result and self.on_status is not None:
            with result.state.closing_on_error():
                self.on_status(result.value)
        return self._advance(result)

    def _headers(self, conn: Connection, status: StatusLine) -> Result:
        return self._advance(
            read_headers(self.reader, conn, self.on_header).map(
                lambda headers: (status, headers)
            )
        )

    def _body(self, conn: Connection, parsed: Tuple[StatusLine, HeaderMap]) -> Result:
        status, headers = parsed
        # тело не читаем, только считаем сколько его должно быть
        response = ParsedResponse(status, headers, content_length(headers))
        return self._advance(Ok(conn, response))

    def parse(self, conn: Connection) -> Result:
        """Ok(conn, ParsedResponse) или ошибка первого упавшего шага."""
        if self.state is not ParserState.AWAIT_STATUS_LINE:
            raise RuntimeError("ResponseParser is single-use")
        return chain(Ok(conn, None), self._status, self._headers, self._body)


def read_request(
    reader: BufferedReader,
    conn: Connection,
    on_header: Optional[HeaderHandler] = None,
) -> Result:
    """Серверная сторона: Ok(conn, ParsedRequest)."""
    return chain(
        read_request_line(reader, conn),
        lambda conn, line: read_headers(reader, conn, on_header).map(
            lambda headers: ParsedRequest(line, headers)
        ),
    )
