import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeAlias, TypeVar, override

from async_query.equality import deep_equal
from async_query.errors import (
	ControllerDisposedError,
	ErrorCode,
	QueryError,
	report_callback_error,
)
from async_query.helpers import MISSING, Disposable, call_flexible, maybe_await
from async_query.invocation import InvocationToken, TokenSource
from async_query.scheduling import TaskRegistry, log_task_exception
from async_query.state import Listener, QueryResult, QueryState

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation: TypeAlias = Callable[..., Awaitable[T]]
# Callbacks are invoked with call_flexible, so both `lambda: ...` and
# `lambda value: ...` are accepted. Async callbacks are awaited.
OnCompletedFn: TypeAlias = Callable[[T], Any] | Callable[[], Any]
OnErrorFn: TypeAlias = Callable[[Exception], Any] | Callable[[], Any]


@dataclass(slots=True)
class QueryOptions(Generic[T]):
	variables: Any = MISSING
	skip: bool = False
	on_completed: OnCompletedFn[T] | None = None
	on_error: OnErrorFn | None = None


@dataclass(frozen=True, slots=True)
class QueryInputs:
	"""The part of a render cycle's inputs that decides whether to refetch."""

	operation: Operation[Any]
	variables: Any
	skip: bool


class ChangeDetector:
	"""Compares a cycle's inputs against the last committed cycle.

	The comparison baseline only moves on `commit()`, so rendering the
	same cycle twice reports the same change both times.
	"""

	__slots__ = ("_committed",)  # pyright: ignore[reportUnannotatedClassAttribute]
	_committed: QueryInputs | None

	def __init__(self) -> None:
		self._committed = None

	@property
	def committed(self) -> QueryInputs | None:
		return self._committed

	def changed(self, inputs: QueryInputs) -> bool:
		prev = self._committed
		if prev is None:
			return True
		return (
			prev.skip != inputs.skip
			or prev.operation != inputs.operation
			or self.variables_changed(inputs)
		)

	def variables_changed(self, inputs: QueryInputs) -> bool:
		prev = self._committed
		if prev is None:
			return True
		return not deep_equal(prev.variables, inputs.variables)

	def commit(self, inputs: QueryInputs) -> None:
		self._committed = inputs


async def _reraise(exc: Exception) -> Any:
	raise exc


def _invoke(operation: Operation[T], variables: Any) -> Awaitable[T]:
	try:
		result = operation() if variables is MISSING else operation(variables)
	except Exception as exc:
		return _reraise(exc)
	if inspect.isawaitable(result):
		return result
	return maybe_await(result)


class QueryController(Generic[T], Disposable):
	"""
	Tracks the lifecycle of one async operation for a render host.

	Each host cycle calls `render()` with the current inputs, reads the
	returned snapshot, then calls `commit()` once the cycle is final. A
	fetch is started on commit when the inputs changed, or at any time via
	`refetch()`. Only the most recently started fetch may commit its
	outcome; earlier ones are discarded when they settle.
	"""

	name: str | None
	merge_variables: bool

	_state: QueryState[T]
	_tokens: TokenSource
	_detector: ChangeDetector
	_tasks: TaskRegistry
	_operation: Operation[T] | None
	_options: QueryOptions[T]
	_inputs: QueryInputs | None
	_current_task: asyncio.Task[QueryResult[T]] | None
	_before_fetch: tuple[bool, T | None, T | None, Exception | None] | None
	_fetch_scheduled: bool
	_called: bool
	_disposed: bool

	def __init__(
		self,
		*,
		merge_variables: bool = True,
		name: str | None = None,
	) -> None:
		self.name = name
		self.merge_variables = merge_variables
		self._state = QueryState()
		self._tokens = TokenSource()
		self._detector = ChangeDetector()
		self._tasks = TaskRegistry(name=name)
		self._operation = None
		self._options = QueryOptions()
		self._inputs = None
		self._current_task = None
		self._before_fetch = None
		self._fetch_scheduled = False
		self._called = True
		self._disposed = False

	@property
	def label(self) -> str:
		if self.name:
			return self.name
		if self._operation is not None:
			return getattr(self._operation, "__qualname__", repr(self._operation))
		return "query"

	@property
	def state(self) -> QueryState[T]:
		return self._state

	@property
	def called(self) -> bool:
		return self._called

	@property
	def disposed(self) -> bool:
		return self._disposed

	@property
	def fetch_scheduled(self) -> bool:
		return self._fetch_scheduled

	@property
	def pending(self) -> bool:
		"""Whether a fetch is scheduled or the latest fetch is unsettled.

		Superseded fetches are not counted: their outcome can never show.
		"""
		task = self._current_task
		return self._fetch_scheduled or (task is not None and not task.done())

	def subscribe(self, listener: Listener) -> Callable[[], None]:
		return self._state.subscribe(listener)

	def snapshot(self) -> QueryResult[T]:
		state = self._state
		return QueryResult(
			loading=state.loading,
			data=state.data,
			error=state.error,
			previous_data=state.previous_data,
			refetch=self.refetch,
			variables=state.variables,
			called=self._called,
		)

	# ----- Render cycle -----

	def _auto_fetch_allowed(self) -> bool:
		return True

	def render(
		self,
		operation: Operation[T],
		*,
		variables: Any = MISSING,
		skip: bool = False,
		on_completed: OnCompletedFn[T] | None = None,
		on_error: OnErrorFn | None = None,
	) -> QueryResult[T]:
		"""Compute the snapshot for this cycle's inputs.

		May be called several times for the same cycle before `commit()`;
		at most one fetch gets scheduled regardless.
		"""
		self._ensure_active("render")
		self._options = QueryOptions(
			variables=variables,
			skip=skip,
			on_completed=on_completed,
			on_error=on_error,
		)
		inputs = QueryInputs(operation=operation, variables=variables, skip=skip)
		self._inputs = inputs
		if self._detector.committed is None:
			# Nothing committed yet: an early refetch() uses this cycle's inputs
			self._operation = operation
			self._state.variables = variables

		if skip:
			if self._fetch_scheduled:
				# The fetch this cycle scheduled will not start
				self._rollback_scheduled_fetch()
			committed = self._detector.committed
			# Pause only on entering skip, so an explicit refetch() made
			# while skipped can still settle.
			if committed is None or not committed.skip:
				revoked = self._tokens.revoke()
				if revoked is not None:
					logger.debug(
						"%s: skipped, dropping fetch #%d", self.label, revoked.id
					)
				self._current_task = None
				self._state.pause()
		elif (
			self._auto_fetch_allowed()
			and self._detector.changed(inputs)
			and not self._fetch_scheduled
		):
			state = self._state
			self._before_fetch = (
				state.loading,
				state.data,
				state.previous_data,
				state.error,
			)
			state.begin()
			self._fetch_scheduled = True
		return self.snapshot()

	def _rollback_scheduled_fetch(self) -> None:
		saved = self._before_fetch
		if saved is not None:
			state = self._state
			state.loading, state.data, state.previous_data, state.error = saved
		self._before_fetch = None
		self._fetch_scheduled = False

	def commit(self) -> asyncio.Task[QueryResult[T]] | None:
		"""Finish the current cycle, starting the fetch scheduled by `render()`.

		Returns the fetch task if one was started. Repeated commits of the
		same cycle are no-ops.
		"""
		inputs = self._inputs
		if inputs is None or self._disposed:
			return None
		if self._detector.variables_changed(inputs):
			self._state.variables = inputs.variables
		self._operation = inputs.operation
		self._detector.commit(inputs)
		if not self._fetch_scheduled:
			return None
		self._fetch_scheduled = False
		self._before_fetch = None
		return self._fetch(preserve_previous_data=True)

	def update(
		self,
		operation: Operation[T],
		*,
		variables: Any = MISSING,
		skip: bool = False,
		on_completed: OnCompletedFn[T] | None = None,
		on_error: OnErrorFn | None = None,
	) -> QueryResult[T]:
		"""Render and commit in one step, for hosts without a commit phase."""
		snapshot = self.render(
			operation,
			variables=variables,
			skip=skip,
			on_completed=on_completed,
			on_error=on_error,
		)
		self.commit()
		return snapshot

	# ----- Fetching -----

	def _merge(self, variables: Any) -> Any:
		stored = self._state.variables
		if (
			self.merge_variables
			and isinstance(stored, Mapping)
			and isinstance(variables, Mapping)
		):
			return {**stored, **variables}
		return variables

	def refetch(self, variables: Any = MISSING) -> asyncio.Task[QueryResult[T]]:
		"""Re-run the operation, superseding any fetch in flight.

		With `variables`, they are merged into (or, without
		`merge_variables`, replace) the stored variables first. The
		returned task resolves with the snapshot once this fetch settles;
		a failure is reported in `QueryResult.error`, never raised.
		"""
		self._ensure_active("refetch")
		if self._operation is None:
			raise QueryError(f"{self.label}: refetch() called before render()")
		if variables is not MISSING:
			self._state.variables = self._merge(variables)
		self._called = True
		return self._fetch()

	def _fetch(
		self, *, preserve_previous_data: bool = False
	) -> asyncio.Task[QueryResult[T]]:
		operation = self._operation
		assert operation is not None
		variables = self._state.variables
		token = self._tokens.begin()
		if not preserve_previous_data:
			self._state.begin()
			self._state.notify()
		logger.debug(
			"%s: starting fetch #%d variables=%r", self.label, token.id, variables
		)
		pending = _invoke(operation, variables)
		task = self._tasks.create(
			self._settle(token, pending),
			name=f"{self.label}.fetch#{token.id}",
			on_done=log_task_exception,
		)
		self._current_task = task
		return task

	async def _settle(
		self, token: InvocationToken, pending: Awaitable[T]
	) -> QueryResult[T]:
		try:
			data = await pending
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			if not token.is_current:
				logger.debug(
					"%s: discarding stale failure of fetch #%d", self.label, token.id
				)
				return self.snapshot()
			logger.debug("%s: fetch #%d failed: %r", self.label, token.id, exc)
			self._state.fail(exc)
			self._state.notify()
			result = self.snapshot()
			await self._run_callback(self._options.on_error, exc, code="query.error")
			return result

		if not token.is_current:
			logger.debug("%s: discarding stale result of fetch #%d", self.label, token.id)
			return self.snapshot()
		logger.debug("%s: fetch #%d completed", self.label, token.id)
		self._state.succeed(data)
		self._state.notify()
		result = self.snapshot()
		await self._run_callback(
			self._options.on_completed, data, code="query.completed"
		)
		return result

	async def _run_callback(
		self,
		fn: Callable[..., Any] | None,
		value: Any,
		*,
		code: ErrorCode,
	) -> None:
		if fn is None:
			return
		try:
			await maybe_await(call_flexible(fn, value))
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			report_callback_error(
				exc,
				code=code,
				details={"query": self.label, "callback": repr(fn)},
			)

	async def wait(self) -> QueryResult[T]:
		"""Wait for the latest fetch to settle.

		A fetch started while waiting is waited for too. Superseded fetches
		are not: they may never settle and cannot change the snapshot.
		"""
		while True:
			task = self._current_task
			if task is None:
				break
			await asyncio.wait({task})
			if task is self._current_task:
				break
		return self.snapshot()

	# ----- Lifecycle -----

	def _ensure_active(self, action: str) -> None:
		if self._disposed:
			raise ControllerDisposedError(
				f"{self.label}: cannot {action}() a disposed query controller"
			)

	@override
	def dispose(self) -> None:
		"""Tear down: fetches in flight can no longer commit or notify."""
		if self._disposed:
			return
		self._disposed = True
		self._fetch_scheduled = False
		self._before_fetch = None
		self._current_task = None
		self._tokens.revoke()
		self._state.clear_listeners()

	def __repr__(self) -> str:
		return f"QueryController({self.label!r}, {self._state!r})"


__all__ = [
	"ChangeDetector",
	"OnCompletedFn",
	"OnErrorFn",
	"Operation",
	"QueryController",
	"QueryInputs",
	"QueryOptions",
]
