"""
Настройка логирования с поддержкой exchange_id.

Каждый обмен (запрос + ответ) получает короткий id, который
автоматически добавляется во все логи через ContextVar + Filter.
Логи идут в stderr — stdout занят телом ответа.
"""
import logging
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional

exchange_id_var: ContextVar[Optional[str]] = ContextVar("exchange_id", default=None)


class ExchangeIdFilter(logging.Filter):
    """
    Добавляет exchange_id в каждую запись лога.

    Если exchange_id не установлен — ставит "-".
    """
    def filter(self, record: logging.LogRecord) -> bool:
        record.exchange_id = exchange_id_var.get() or "-"
        return True


@dataclass
class ExchangeLog:
    """
    Данные для лога обмена.

    Заполняется по ходу обмена и выводится в finally.
    """
    exchange_id: str
    method: str
    target: str
    status: int = 0
    bytes_received: int = 0
    duration_ms: float = 0
    error: str = ""


def setup_logger(level: str = "info") -> logging.Logger:
    """
    Настраивает логгер "probe".

    Формат: 2025-01-15 12:30:45 | INFO | [abc12345] message
    """
    logger = logging.getLogger("probe")
    logger.setLevel(getattr(logging, level.upper()))

    # чистим старые хэндлеры если есть (при повторном вызове)
    logger.handlers.clear()

    handler = logging.StreamHandler()

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | [%(exchange_id)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    handler.setFormatter(formatter)
    handler.addFilter(ExchangeIdFilter())
    logger.addHandler(handler)
    return logger


@contextmanager
def log_exchange(logger: logging.Logger, method: str, target: str):
    """
    Контекст для измерения времени обмена.

    Использование:
        with log_exchange(logger, "GET", "localhost:8080/") as log:
            log.status = 200
            log.bytes_received = 5
        # автоматически залогирует с duration
    """
    # первые 8 символов UUID, чтобы отличать обмены в логах
    exchange_id = uuid.uuid4().hex[:8]
    token = exchange_id_var.set(exchange_id)
    start = time.perf_counter()
    log = ExchangeLog(exchange_id=exchange_id, method=method, target=target)

    try:
        yield log
    except Exception as e:
        log.error = str(e)
        raise
    finally:
        log.duration_ms = (time.perf_counter() - start) * 1000
        outcome = log.error or log.status
        logger.info(
            f"{log.method} {log.target} | "
            f"{outcome} | {log.bytes_received}B | {log.duration_ms:.2f}ms"
        )
        exchange_id_var.reset(token)
