from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar, overload, override

from async_query.controller import OnCompletedFn, OnErrorFn, QueryController
from async_query.helpers import MISSING
from async_query.hooks.core import (
	HookContext,
	HookIdentity,
	HookInit,
	HookMetadata,
	HookState,
	create_hook,
)
from async_query.lazy import ExecuteFn, LazyQueryController
from async_query.state import QueryResult

T = TypeVar("T")
V = TypeVar("V")
C = TypeVar("C", bound=QueryController[Any])


class QueryHookState(HookState, Generic[C]):
	"""Holds one controller per call site and ties it to the host.

	The controller commits when the render cycle ends and asks the host
	to render again whenever its state changes.
	"""

	__slots__ = ("controller", "_request_render", "_unsubscribe")  # pyright: ignore[reportUnannotatedClassAttribute]
	controller: C | None
	_request_render: Callable[[], None] | None
	_unsubscribe: Callable[[], None] | None

	def __init__(self, request_render: Callable[[], None] | None = None) -> None:
		super().__init__()
		self.controller = None
		self._request_render = request_render
		self._unsubscribe = None

	def ensure(self, factory: Callable[[], C]) -> C:
		if self.controller is None:
			self.controller = factory()
			if self._request_render is not None:
				self._unsubscribe = self.controller.subscribe(self._request_render)
		return self.controller

	@property
	def busy(self) -> bool:
		return self.controller is not None and self.controller.pending

	@override
	def on_render_end(self, render_cycle: int) -> None:
		super().on_render_end(render_cycle)
		if self.controller is not None:
			self.controller.commit()

	@override
	def dispose(self) -> None:
		if self._unsubscribe is not None:
			self._unsubscribe()
			self._unsubscribe = None
		if self.controller is not None:
			self.controller.dispose()


def _query_state_factory(init: HookInit[Any]) -> QueryHookState[Any]:
	return QueryHookState(init.context.request_render)


_query_hook = create_hook(
	"async_query:query",
	_query_state_factory,
	metadata=HookMetadata(
		owner="async_query",
		description="Controller storage for use_query",
	),
	identity="callsite",
)

_lazy_query_hook = create_hook(
	"async_query:lazy_query",
	_query_state_factory,
	metadata=HookMetadata(
		owner="async_query",
		description="Controller storage for use_lazy_query",
	),
	identity="callsite",
)


def _controller_name(operation: Callable[..., Any], key: object | None) -> str:
	base = getattr(operation, "__qualname__", None) or repr(operation)
	if isinstance(key, str):
		return f"{base}[{key}]"
	return base


@overload
def use_query(
	operation: Callable[[], Awaitable[T]],
	*,
	skip: bool = False,
	on_completed: OnCompletedFn[T] | None = None,
	on_error: OnErrorFn | None = None,
	merge_variables: bool = True,
	key: str | HookIdentity | None = None,
) -> QueryResult[T]: ...


@overload
def use_query(
	operation: Callable[[V], Awaitable[T]],
	*,
	variables: V,
	skip: bool = False,
	on_completed: OnCompletedFn[T] | None = None,
	on_error: OnErrorFn | None = None,
	merge_variables: bool = True,
	key: str | HookIdentity | None = None,
) -> QueryResult[T]: ...


def use_query(
	operation: Callable[..., Awaitable[T]],
	*,
	variables: Any = MISSING,
	skip: bool = False,
	on_completed: OnCompletedFn[T] | None = None,
	on_error: OnErrorFn | None = None,
	merge_variables: bool = True,
	key: str | HookIdentity | None = None,
) -> QueryResult[T]:
	"""Run `operation` and track its result across renders.

	The operation is called with `variables` (or with no argument when they
	are omitted) on the first render and again whenever the operation,
	the variables (compared structurally) or `skip` change. While `skip` is
	true nothing runs and `loading` is false.

	Args:
		operation: Async callable to run.
		variables: Single argument passed to the operation.
		skip: Suspend automatic fetching.
		on_completed: Called with the data of each successful, current fetch.
		on_error: Called with the exception of each failed, current fetch.
		merge_variables: Whether `refetch(partial)` merges into the stored
			variables (default) or replaces them.
		key: Distinguishes several calls from the same line.

	Returns:
		The snapshot for this render. `result.refetch(...)` re-runs the
		operation and returns a task resolving to the settled snapshot.

	Example:

	```python
	async def fetch_user(variables):
	    return await api.get_user(variables["id"])

	def profile():
	    user = use_query(fetch_user, variables={"id": user_id})
	    if user.loading:
	        return "Loading..."
	    if user.error:
	        return f"Failed: {user.error}"
	    return user.data.name
	```
	"""
	ctx = HookContext.require("use_query")
	state: QueryHookState[QueryController[T]] = _query_hook(
		key if key is not None else ctx.callsite()
	)
	controller = state.ensure(
		lambda: QueryController[T](
			merge_variables=merge_variables, name=_controller_name(operation, key)
		)
	)
	return controller.render(
		operation,
		variables=variables,
		skip=skip,
		on_completed=on_completed,
		on_error=on_error,
	)


@overload
def use_lazy_query(
	operation: Callable[[], Awaitable[T]],
	*,
	on_completed: OnCompletedFn[T] | None = None,
	on_error: OnErrorFn | None = None,
	merge_variables: bool = True,
	key: str | HookIdentity | None = None,
) -> tuple[ExecuteFn[T], QueryResult[T]]: ...


@overload
def use_lazy_query(
	operation: Callable[[V], Awaitable[T]],
	*,
	variables: V,
	on_completed: OnCompletedFn[T] | None = None,
	on_error: OnErrorFn | None = None,
	merge_variables: bool = True,
	key: str | HookIdentity | None = None,
) -> tuple[ExecuteFn[T], QueryResult[T]]: ...


def use_lazy_query(
	operation: Callable[..., Awaitable[T]],
	*,
	variables: Any = MISSING,
	on_completed: OnCompletedFn[T] | None = None,
	on_error: OnErrorFn | None = None,
	merge_variables: bool = True,
	key: str | HookIdentity | None = None,
) -> tuple[ExecuteFn[T], QueryResult[T]]:
	"""Like `use_query`, but nothing runs until `execute()` is called.

	Returns `(execute, result)`. `result.called` stays false until the
	first `execute()`; from then on input changes refetch as in
	`use_query`.
	"""
	ctx = HookContext.require("use_lazy_query")
	state: QueryHookState[LazyQueryController[T]] = _lazy_query_hook(
		key if key is not None else ctx.callsite()
	)
	controller = state.ensure(
		lambda: LazyQueryController[T](
			merge_variables=merge_variables, name=_controller_name(operation, key)
		)
	)
	return controller.render(
		operation,
		variables=variables,
		on_completed=on_completed,
		on_error=on_error,
	)


__all__ = ["QueryHookState", "use_lazy_query", "use_query"]
