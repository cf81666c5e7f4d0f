import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")

MISSING: Any = object()


class Disposable(ABC):
	@abstractmethod
	def dispose(self) -> None: ...


def _positional_capacity(fn: Callable[..., Any]) -> int | None:
	try:
		sig = inspect.signature(fn)
	except (TypeError, ValueError):
		return None
	count = 0
	for param in sig.parameters.values():
		if param.kind == inspect.Parameter.VAR_POSITIONAL:
			return None
		if param.kind in (
			inspect.Parameter.POSITIONAL_ONLY,
			inspect.Parameter.POSITIONAL_OR_KEYWORD,
		):
			count += 1
	return count


def call_flexible(fn: Callable[..., T], *args: Any) -> T:
	"""Call `fn` with as many of `args` as its signature accepts.

	Lets callbacks be written as `lambda: ...` or `lambda value: ...`
	interchangeably.
	"""
	capacity = _positional_capacity(fn)
	if capacity is None:
		return fn(*args)
	return fn(*args[:capacity])


async def maybe_await(value: T | Awaitable[T]) -> T:
	if inspect.isawaitable(value):
		return await value
	return value


__all__ = [
	"MISSING",
	"Disposable",
	"call_flexible",
	"maybe_await",
]
