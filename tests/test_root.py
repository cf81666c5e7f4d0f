import asyncio
import threading
from typing import Any

import pytest
from anyio import to_thread
from async_query import QueryError, QueryResult, Root, use_query
from async_query.test_helpers import wait_for

from conftest import Deferred


@pytest.mark.asyncio
async def test_root_rerenders_when_fetch_settles(op: Deferred):
	seen: list[tuple[bool, Any]] = []

	def component():
		result = use_query(op, variables={"id": 1})
		seen.append((result.loading, result.data))
		return result

	root = Root(component)
	root.render()
	op.resolve(0, "user")

	assert await wait_for(lambda: seen[-1] == (False, "user"))
	assert seen == [(True, None), (False, "user")]
	assert root.render_count == 2


@pytest.mark.asyncio
async def test_strict_mode_fetches_once(op: Deferred):
	seen: list[bool] = []

	def component():
		result = use_query(op, variables={"id": 1})
		seen.append(result.loading)
		return result

	root = Root(component, strict=True)
	root.render()

	assert seen == [True, True]
	assert op.call_count == 1

	op.resolve(0, "user")
	output = await root.settle()

	assert output is not None
	assert output.data == "user"
	assert op.call_count == 1


@pytest.mark.asyncio
async def test_settle_with_coroutine_operation():
	async def fetch_user(variables: dict[str, int]) -> dict[str, int]:
		await asyncio.sleep(0)
		return {"name": variables["id"]}

	root = Root(lambda: use_query(fetch_user, variables={"id": 7}))
	first = root.render()
	assert first.loading is True

	output = await root.settle()

	assert output is not None
	assert output.data == {"name": 7}
	assert root.render_scheduled is False


@pytest.mark.asyncio
async def test_refetch_from_output_rerenders(op: Deferred):
	root: Root[QueryResult[str]] = Root(lambda: use_query(op))
	root.render()
	op.resolve(0, "v1")
	await root.settle()

	assert root.output is not None
	root.output.refetch()

	assert await wait_for(lambda: root.output is not None and root.output.loading)
	assert root.output.previous_data == "v1"

	op.resolve(1, "v2")
	output = await root.settle()
	assert output is not None
	assert output.data == "v2"
	assert output.previous_data == "v1"


@pytest.mark.asyncio
async def test_unmount_stops_renders(op: Deferred):
	root = Root(lambda: use_query(op))
	root.render()

	root.unmount()
	op.resolve(0, "late")
	await asyncio.sleep(0)
	await asyncio.sleep(0)

	assert root.mounted is False
	assert root.render_count == 1
	with pytest.raises(QueryError):
		root.render()


@pytest.mark.asyncio
async def test_render_errors_are_reported(op: Deferred, caplog: pytest.LogCaptureFixture):
	def component():
		result = use_query(op)
		if result.data == "boom":
			raise RuntimeError("render exploded")
		return result

	root = Root(component)
	root.render()
	op.resolve(0, "boom")

	assert await wait_for(lambda: "code=render" in caplog.text)
	assert "render exploded" in caplog.text
	assert root.mounted is True


@pytest.mark.asyncio
async def test_settle_ignores_superseded_fetch(op: Deferred):
	root = Root(lambda: use_query(op))
	output = root.render()

	output.refetch()
	op.resolve(1, "fresh")
	settled = await asyncio.wait_for(root.settle(), 0.5)

	assert settled is not None
	assert settled.data == "fresh"


@pytest.mark.asyncio
async def test_render_requested_from_plain_thread(op: Deferred):
	root = Root(lambda: use_query(op))
	root.render()

	thread = threading.Thread(target=root.schedule_render)
	thread.start()
	thread.join()
	op.resolve(0, "user")

	assert await wait_for(
		lambda: root.output is not None and root.output.data == "user"
	)


@pytest.mark.asyncio
async def test_refetch_from_worker_thread():
	calls: list[int] = []

	async def fetch_count() -> int:
		calls.append(1)
		return len(calls)

	root = Root(lambda: use_query(fetch_count))
	root.render()
	first = await root.settle()
	assert first is not None
	assert first.data == 1

	task = await to_thread.run_sync(first.refetch)
	await task
	output = await root.settle()

	assert output is not None
	assert output.data == 2


def test_failed_schedule_leaves_root_renderable():
	root = Root(lambda: None)

	# No event loop and not an anyio worker thread
	with pytest.raises(RuntimeError):
		root.schedule_render()

	assert root.render_scheduled is False
