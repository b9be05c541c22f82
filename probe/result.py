"""
Результат шага + цепочка шагов.

Каждый шаг разбора получает текущее состояние (обычно Connection)
и значение предыдущего шага, а возвращает либо Ok(state, value),
либо Err(error). Цепочка останавливается на первой ошибке:

    chain(Ok(conn, None), read_status, read_headers, stream_body)

Если read_headers вернул Err — stream_body не вызывается вообще,
наружу уходит ошибка read_headers.
"""
import functools
from dataclasses import dataclass
from typing import Any, Callable, Generic, Tuple, TypeVar, Union

from probe.errors import ProbeError

S = TypeVar("S")
T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[S, T]):
    """Успех: новое состояние и значение шага."""
    state: S
    value: T

    def bind(self, step: "Step") -> "Result":
        return step(self.state, self.value)

    def __rshift__(self, step: "Step") -> "Result":
        return self.bind(step)

    def map(self, fn: Callable[[T], Any]) -> "Result":
        """Меняет значение, состояние остаётся тем же."""
        return Ok(self.state, fn(self.value))

    def unwrap(self) -> Tuple[S, T]:
        return self.state, self.value

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """
    Ошибка. Дальше по цепочке ничего не выполняется.

    state — то, что было на руках у упавшего шага (если было).
    Использовать его можно только для close().
    """
    error: ProbeError
    state: Any = None

    def bind(self, step: "Step") -> "Err":
        return self

    def __rshift__(self, step: "Step") -> "Err":
        return self

    def map(self, fn: Callable[[Any], Any]) -> "Err":
        return self

    def unwrap(self):
        raise self.error

    def dispose(self) -> None:
        """Закрывает оставшееся состояние, если оно закрываемое."""
        close = getattr(self.state, "close", None)
        if close is not None:
            close()

    def __bool__(self) -> bool:
        return False


Result = Union[Ok, Err]
Step = Callable[[Any, Any], Result]


def chain(initial: Result, *steps: Step) -> Result:
    """Прогоняет шаги по очереди через bind."""
    result = initial
    for step in steps:
        result = result.bind(step)
    return result


def catching(fn: Callable[..., Result]) -> Callable[..., Result]:
    """
    Превращает брошенный ProbeError в Err.

    Для шагов, которые внутри зовут код, кидающий исключения
    (resolve/connect), чтобы их можно было ставить в chain().
    """
    @functools.wraps(fn)
    def wrapper(*args, **kwargs) -> Result:
        try:
            return fn(*args, **kwargs)
        except ProbeError as e:
            return Err(e)

    return wrapper
