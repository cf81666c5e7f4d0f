import asyncio
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from anyio import from_thread

T = TypeVar("T")


def schedule_on_loop(
	callback: Callable[[], None],
	loop: asyncio.AbstractEventLoop | None = None,
) -> None:
	"""Schedule a callback to run ASAP on the event loop from any thread.

	Off the loop, `loop` is used when given; otherwise the caller must be an
	anyio worker thread, and anyio raises `RuntimeError` when it is not.
	"""
	if loop is None:
		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:

			async def _runner():
				asyncio.get_running_loop().call_soon(callback)

			from_thread.run(_runner)
			return
	loop.call_soon_threadsafe(callback)


def create_task(
	coroutine: Coroutine[Any, Any, T],
	*,
	name: str | None = None,
	on_done: Callable[[asyncio.Task[T]], None] | None = None,
) -> asyncio.Task[T]:
	"""Create and schedule a coroutine task on the loop from any thread.

	Inside a running loop the task is created directly; from a worker thread
	started by anyio the creation hops onto the loop first.
	"""

	try:
		asyncio.get_running_loop()
		task = asyncio.ensure_future(coroutine)
		if name is not None:
			task.set_name(name)
		if on_done:
			task.add_done_callback(on_done)
		return task
	except RuntimeError:

		async def _runner():
			task = asyncio.ensure_future(coroutine)
			if name is not None:
				task.set_name(name)
			if on_done:
				task.add_done_callback(on_done)
			return task

	return from_thread.run(_runner)


def log_task_exception(task: asyncio.Task[Any]) -> None:
	"""Done-callback surfacing unexpected task failures via the loop handler."""
	if task.cancelled():
		return
	exc = task.exception()
	if exc is not None:
		task.get_loop().call_exception_handler(
			{
				"message": "Unhandled exception in async-query task",
				"exception": exc,
				"task": task,
			}
		)


class TaskRegistry:
	"""Holds strong references to running tasks until they finish."""

	_tasks: set[asyncio.Task[Any]]
	name: str | None

	def __init__(self, name: str | None = None) -> None:
		self._tasks = set()
		self.name = name

	def track(self, task: asyncio.Task[T]) -> asyncio.Task[T]:
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)
		return task

	def create(
		self,
		coroutine: Coroutine[Any, Any, T],
		*,
		name: str | None = None,
		on_done: Callable[[asyncio.Task[T]], None] | None = None,
	) -> asyncio.Task[T]:
		task = create_task(coroutine, name=name, on_done=on_done)
		return self.track(task)

	def __len__(self) -> int:
		return len(self._tasks)
