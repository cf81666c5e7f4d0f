import asyncio
import logging
from collections.abc import Callable, Iterator
from typing import Any, Generic, TypeVar

from async_query.errors import QueryError, report_callback_error
from async_query.hooks.core import HookContext
from async_query.hooks.query import QueryHookState
from async_query.scheduling import schedule_on_loop

logger = logging.getLogger(__name__)

R = TypeVar("R")


class Root(Generic[R]):
	"""
	Minimal render host for a zero-argument component function.

	Renders run the component inside a `HookContext`, so `use_query` and
	`use_lazy_query` keep their controllers between renders. When a
	controller reports a change, a re-render is scheduled on the event
	loop; several changes before it runs are coalesced into one render.

	In strict mode every render calls the component twice before the cycle
	is committed, which is how some hosts surface impure render functions.
	"""

	component: Callable[[], R]
	strict: bool
	context: HookContext
	output: R | None
	render_count: int
	_loop: asyncio.AbstractEventLoop | None
	_render_scheduled: bool
	_mounted: bool

	def __init__(self, component: Callable[[], R], *, strict: bool = False) -> None:
		self.component = component
		self.strict = strict
		self.context = HookContext(
			request_render=self.schedule_render,
			root_code=getattr(component, "__code__", None),
		)
		self.output = None
		self.render_count = 0
		self._loop = None
		self._render_scheduled = False
		self._mounted = True

	@property
	def mounted(self) -> bool:
		return self._mounted

	@property
	def render_scheduled(self) -> bool:
		return self._render_scheduled

	def render(self) -> R:
		if not self._mounted:
			raise QueryError("Cannot render an unmounted root")
		self._render_scheduled = False
		try:
			self._loop = asyncio.get_running_loop()
		except RuntimeError:
			# Rendered synchronously; keep the loop of an earlier render
			pass
		with self.context:
			output = self.component()
			if self.strict:
				output = self.component()
		self.output = output
		self.render_count += 1
		return output

	def schedule_render(self) -> None:
		if self._render_scheduled or not self._mounted:
			return
		self._render_scheduled = True
		try:
			# Controllers may notify from worker threads
			schedule_on_loop(self._flush, self._loop)
		except BaseException:
			self._render_scheduled = False
			raise

	def _flush(self) -> None:
		if not self._render_scheduled or not self._mounted:
			return
		try:
			self.render()
		except Exception as exc:
			report_callback_error(
				exc,
				code="render",
				details={"component": repr(self.component)},
			)

	def query_states(self) -> Iterator[QueryHookState[Any]]:
		for namespace in self.context.namespaces.values():
			for state in namespace.states.values():
				if isinstance(state, QueryHookState):
					yield state

	async def settle(self, max_rounds: int = 100) -> R | None:
		"""Wait until no fetch is pending and no render is scheduled.

		Raises:
			QueryError: If the component keeps starting new fetches.
		"""
		for _ in range(max_rounds):
			busy = [state for state in self.query_states() if state.busy]
			if not busy and not self._render_scheduled:
				return self.output
			for state in busy:
				assert state.controller is not None
				await state.controller.wait()
			# Let scheduled renders run
			await asyncio.sleep(0)
		raise QueryError(f"Root did not settle after {max_rounds} rounds")

	def unmount(self) -> None:
		if not self._mounted:
			return
		self._mounted = False
		self._render_scheduled = False
		logger.debug("Unmounting %r", self.component)
		self.context.unmount()


__all__ = ["Root"]
