import asyncio
import threading
from typing import Any

import pytest
from anyio import to_thread
from async_query.scheduling import (
	TaskRegistry,
	create_task,
	log_task_exception,
	schedule_on_loop,
)
from async_query.test_helpers import wait_for


@pytest.mark.asyncio
async def test_schedule_on_loop_runs_callback():
	calls: list[str] = []

	schedule_on_loop(lambda: calls.append("ran"))
	assert calls == []

	assert await wait_for(lambda: calls == ["ran"])


@pytest.mark.asyncio
async def test_create_task_sets_name_and_done_callback():
	done: list[asyncio.Task[int]] = []

	async def work() -> int:
		return 42

	task = create_task(work(), name="users.fetch#1", on_done=done.append)

	assert task.get_name() == "users.fetch#1"
	assert await task == 42
	await asyncio.sleep(0)
	assert done == [task]


@pytest.mark.asyncio
async def test_registry_forgets_finished_tasks():
	registry = TaskRegistry("users")
	gate = asyncio.Event()

	async def work() -> None:
		await gate.wait()

	task = registry.create(work(), name="users.fetch#1")
	assert len(registry) == 1
	assert task.get_name() == "users.fetch#1"

	gate.set()
	await task
	await asyncio.sleep(0)

	assert len(registry) == 0


@pytest.mark.asyncio
async def test_log_task_exception_uses_loop_handler():
	loop = asyncio.get_running_loop()
	contexts: list[dict[str, Any]] = []
	previous = loop.get_exception_handler()
	loop.set_exception_handler(lambda _loop, context: contexts.append(context))
	try:

		async def boom() -> None:
			raise ValueError("boom")

		async def fine() -> None:
			return None

		failed = create_task(boom(), on_done=log_task_exception)
		ok = create_task(fine(), on_done=log_task_exception)
		await asyncio.gather(failed, ok, return_exceptions=True)
		await asyncio.sleep(0)
	finally:
		loop.set_exception_handler(previous)

	assert len(contexts) == 1
	assert isinstance(contexts[0]["exception"], ValueError)
	assert contexts[0]["task"] is failed


@pytest.mark.asyncio
async def test_schedule_on_loop_from_worker_thread():
	calls: list[str] = []

	await to_thread.run_sync(schedule_on_loop, lambda: calls.append("ran"))

	assert await wait_for(lambda: calls == ["ran"])


@pytest.mark.asyncio
async def test_schedule_on_loop_from_plain_thread_with_loop():
	calls: list[str] = []
	loop = asyncio.get_running_loop()

	thread = threading.Thread(
		target=schedule_on_loop, args=(lambda: calls.append("ran"), loop)
	)
	thread.start()
	thread.join()

	assert await wait_for(lambda: calls == ["ran"])


def test_schedule_on_loop_without_loop_raises():
	with pytest.raises(RuntimeError):
		schedule_on_loop(lambda: None)


@pytest.mark.asyncio
async def test_create_task_from_worker_thread():
	async def work() -> str:
		return "done"

	def start() -> asyncio.Task[str]:
		return create_task(work(), name="worker")

	task = await to_thread.run_sync(start)

	assert task.get_name() == "worker"
	assert await task == "done"
