import asyncio
from collections.abc import Callable
from typing import Any, TypeAlias, TypeVar, override

from async_query.controller import (
	OnCompletedFn,
	OnErrorFn,
	Operation,
	QueryController,
)
from async_query.helpers import MISSING
from async_query.state import QueryResult

T = TypeVar("T")

ExecuteFn: TypeAlias = Callable[..., asyncio.Task[QueryResult[T]]]


class LazyQueryController(QueryController[T]):
	"""
	A query controller that does not fetch until `execute()` is called.

	Before the first `execute()` (or `refetch()`), input changes never start
	a fetch and snapshots report `called=False`. Afterwards it behaves like
	an eager controller, refetching when its inputs change.
	"""

	def __init__(
		self,
		*,
		merge_variables: bool = True,
		name: str | None = None,
	) -> None:
		super().__init__(merge_variables=merge_variables, name=name)
		self._called = False

	@override
	def _auto_fetch_allowed(self) -> bool:
		return self._called

	def execute(self, variables: Any = MISSING) -> asyncio.Task[QueryResult[T]]:
		"""Run the operation now, with `variables` merged into the stored ones."""
		return self.refetch(variables)

	@override
	def render(  # pyright: ignore[reportIncompatibleMethodOverride]
		self,
		operation: Operation[T],
		*,
		variables: Any = MISSING,
		on_completed: OnCompletedFn[T] | None = None,
		on_error: OnErrorFn | None = None,
	) -> tuple[ExecuteFn[T], QueryResult[T]]:
		snapshot = super().render(
			operation,
			variables=variables,
			on_completed=on_completed,
			on_error=on_error,
		)
		return self.execute, snapshot

	@override
	def update(  # pyright: ignore[reportIncompatibleMethodOverride]
		self,
		operation: Operation[T],
		*,
		variables: Any = MISSING,
		on_completed: OnCompletedFn[T] | None = None,
		on_error: OnErrorFn | None = None,
	) -> tuple[ExecuteFn[T], QueryResult[T]]:
		result = self.render(
			operation,
			variables=variables,
			on_completed=on_completed,
			on_error=on_error,
		)
		self.commit()
		return result


__all__ = ["ExecuteFn", "LazyQueryController"]
