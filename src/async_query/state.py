from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeAlias, TypeVar

from async_query.helpers import MISSING

T = TypeVar("T")

QueryStatus: TypeAlias = Literal["idle", "loading", "success", "error"]
Listener: TypeAlias = Callable[[], None]


@dataclass(frozen=True, slots=True)
class QueryResult(Generic[T]):
	"""Immutable snapshot of a controller, handed to the host on each render.

	`refetch` re-runs the operation and returns a task resolving to the
	snapshot taken once that fetch settles.
	"""

	loading: bool
	data: T | None
	error: Exception | None
	previous_data: T | None
	refetch: "Callable[..., Awaitable[QueryResult[T]]]" = field(
		repr=False, compare=False
	)
	variables: Any = field(default=MISSING, repr=False)
	called: bool = True

	@property
	def status(self) -> QueryStatus:
		if self.loading:
			return "loading"
		if self.error is not None:
			return "error"
		if not self.called:
			return "idle"
		return "success"

	@property
	def is_loading(self) -> bool:
		return self.loading

	@property
	def is_success(self) -> bool:
		return self.status == "success"

	@property
	def is_error(self) -> bool:
		return self.error is not None


class QueryState(Generic[T]):
	"""Mutable record backing a controller.

	Mutated in place by the fetch procedure; `notify()` tells subscribers
	to re-read it. The record itself never notifies on assignment, so a
	burst of writes is flushed with a single notification.
	"""

	__slots__ = (  # pyright: ignore[reportUnannotatedClassAttribute]
		"loading",
		"data",
		"error",
		"previous_data",
		"variables",
		"_listeners",
	)

	loading: bool
	data: T | None
	error: Exception | None
	previous_data: T | None
	variables: Any
	_listeners: list[Listener]

	def __init__(self, *, loading: bool = False, variables: Any = MISSING) -> None:
		self.loading = loading
		self.data = None
		self.error = None
		self.previous_data = None
		self.variables = variables
		self._listeners = []

	def begin(self) -> None:
		"""Enter the pending state of a new fetch."""
		self.previous_data = self.data
		self.data = None
		self.loading = True
		self.error = None

	def pause(self) -> None:
		self.loading = False
		self.error = None

	def succeed(self, data: T) -> None:
		self.data = data
		self.loading = False
		self.error = None

	def fail(self, error: Exception) -> None:
		self.data = None
		self.loading = False
		self.error = error

	def subscribe(self, listener: Listener) -> Callable[[], None]:
		self._listeners.append(listener)

		def unsubscribe() -> None:
			if listener in self._listeners:
				self._listeners.remove(listener)

		return unsubscribe

	def notify(self) -> None:
		for listener in list(self._listeners):
			listener()

	def clear_listeners(self) -> None:
		self._listeners.clear()

	def __repr__(self) -> str:
		return (
			f"QueryState(loading={self.loading!r}, data={self.data!r}, "
			+ f"error={self.error!r}, previous_data={self.previous_data!r})"
		)


__all__ = ["Listener", "QueryResult", "QueryState", "QueryStatus"]
