"""
Утилиты для работы с таймаутами.

Ядро клиента блокирующее и своих таймаутов не знает —
всё задаётся на уровне сокета через settimeout() до вызова операций.
Сокет, у которого кончилось время, отдаёт TimeoutError,
а Connection превращает его в TransportError(ETIMEDOUT).
"""
import errno
import time
from typing import Optional

from probe.connection import Connection
from probe.errors import TransportError


def apply_timeout(conn: Connection, timeout: Optional[float]) -> Connection:
    """
    Ставит таймаут на сокет. None — ждать бесконечно.

    0 для сокета значит non-blocking, нам такое не нужно —
    считаем его отсутствием таймаута.
    """
    conn.settimeout(timeout or None)
    return conn


class TimeoutScope:
    """
    Общий таймаут на несколько операций.

    Пример:
        scope = TimeoutScope(30.0)  # 30 сек на всё

        conn.settimeout(scope.clamp(15.0, "reading"))  # съело 5 сек
        conn.settimeout(scope.clamp(15.0, "reading"))  # осталось 25 сек

    total=None — бюджета нет, clamp() отдаёт таймаут как есть.
    """

    def __init__(self, total_timeout: Optional[float]):
        # monotonic — не прыгает при переводе часов
        self._start_time = time.monotonic()
        self._total_timeout = total_timeout

    @property
    def elapsed(self) -> float:
        """Сколько прошло с начала."""
        return time.monotonic() - self._start_time

    @property
    def remaining(self) -> Optional[float]:
        """Сколько осталось. Не меньше 0."""
        if self._total_timeout is None:
            return None
        return max(0.0, self._total_timeout - self.elapsed)

    @property
    def expired(self) -> bool:
        remaining = self.remaining
        return remaining is not None and remaining <= 0

    def clamp(self, timeout: Optional[float], operation: str = "") -> Optional[float]:
        """
        Таймаут очередной операции с учётом общего бюджета.

        Если бюджет уже исчерпан — сразу TransportError,
        в сокет даже не ходим.
        """
        if self.expired:
            raise TransportError(
                operation or "exchange",
                errno.ETIMEDOUT,
                f"timeout after {self._total_timeout}s",
            )
        remaining = self.remaining
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)
