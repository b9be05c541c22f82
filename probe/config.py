"""
Конфигурация клиента.

Все настройки — dataclasses, YAML читается через from_yaml().
"""
from dataclasses import dataclass, field
from typing import Dict, Optional

import yaml

from probe.body import CHUNK_SIZE
from probe.reader import DEFAULT_BUFFER_SIZE, DEFAULT_MAX_LINE_LENGTH


@dataclass
class TimeoutConfig:
    """
    Таймауты для различных операций.

    Храним в миллисекундах (так удобнее в конфиге),
    но properties возвращают секунды для socket.settimeout().
    0 — без таймаута.
    """
    connect_ms: int = 1000      # 1 сек на коннект — обычно хватает
    read_ms: int = 15000        # 15 сек на один recv()
    write_ms: int = 15000       # 15 сек на отправку запроса
    total_ms: int = 0           # общий бюджет на весь обмен, 0 — без лимита

    @staticmethod
    def _seconds(ms: int) -> Optional[float]:
        return ms / 1000 if ms > 0 else None

    @property
    def connect(self) -> Optional[float]:
        return self._seconds(self.connect_ms)

    @property
    def read(self) -> Optional[float]:
        return self._seconds(self.read_ms)

    @property
    def write(self) -> Optional[float]:
        return self._seconds(self.write_ms)

    @property
    def total(self) -> Optional[float]:
        return self._seconds(self.total_ms)


@dataclass
class ReaderConfig:
    """Размеры буферов."""
    buffer_size: int = DEFAULT_BUFFER_SIZE          # байт за один recv()
    chunk_size: int = CHUNK_SIZE                    # кусок тела, отдаваемый в stdout
    max_line_length: int = DEFAULT_MAX_LINE_LENGTH  # длиннее — MalformedLine


@dataclass
class ClientConfig:
    """
    Корневой конфиг приложения.

    Можно создать через from_yaml() или default().
    """
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    reader: ReaderConfig = field(default_factory=ReaderConfig)
    # неизвестный код статуса — ошибка, а не проброс как есть
    strict_status: bool = False
    # добавляются к каждому запросу (User-Agent и т.п.)
    headers: Dict[str, str] = field(default_factory=dict)
    log_level: str = "info"

    @classmethod
    def from_yaml(cls, path: str) -> "ClientConfig":
        """
        Парсит YAML-конфиг.

        Формат:
            timeouts: {connect_ms: 1000, read_ms: 15000, total_ms: 30000}
            reader: {buffer_size: 4096, chunk_size: 256}
            strict_status: false
            headers: {User-Agent: probe}
            logging: {level: debug}
        """
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        timeouts_data = data.get("timeouts", {})
        timeouts = TimeoutConfig(
            connect_ms=timeouts_data.get("connect_ms", 1000),
            read_ms=timeouts_data.get("read_ms", 15000),
            write_ms=timeouts_data.get("write_ms", 15000),
            total_ms=timeouts_data.get("total_ms", 0),
        )

        reader_data = data.get("reader", {})
        reader = ReaderConfig(
            buffer_size=reader_data.get("buffer_size", DEFAULT_BUFFER_SIZE),
            chunk_size=reader_data.get("chunk_size", CHUNK_SIZE),
            max_line_length=reader_data.get("max_line_length", DEFAULT_MAX_LINE_LENGTH),
        )

        # значения заголовков в YAML могут оказаться числами
        headers = {
            str(name): str(value)
            for name, value in (data.get("headers") or {}).items()
        }

        return cls(
            timeouts=timeouts,
            reader=reader,
            strict_status=bool(data.get("strict_status", False)),
            headers=headers,
            log_level=data.get("logging", {}).get("level", "info"),
        )

    @classmethod
    def default(cls) -> "ClientConfig":
        """Дефолтный конфиг."""
        return cls()
