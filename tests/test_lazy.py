import pytest
from async_query import LazyQueryController

from conftest import Deferred


@pytest.mark.asyncio
async def test_lazy_controller_waits_for_execute(op: Deferred):
	controller = LazyQueryController[str]()

	execute, result = controller.update(op, variables={"id": 1})

	assert op.call_count == 0
	assert result.called is False
	assert result.loading is False
	assert result.data is None
	assert result.status == "idle"
	assert execute == controller.execute


@pytest.mark.asyncio
async def test_input_changes_before_execute_do_not_fetch(op: Deferred):
	controller = LazyQueryController[str]()
	controller.update(op, variables={"id": 1})
	controller.update(op, variables={"id": 2})
	controller.update(op, variables={"id": 3})

	assert op.call_count == 0


@pytest.mark.asyncio
async def test_execute_runs_with_latest_host_variables(op: Deferred):
	controller = LazyQueryController[str]()
	controller.update(op, variables={"id": 1})
	execute, _ = controller.update(op, variables={"id": 2})

	task = execute()
	assert op.calls == [({"id": 2},)]
	snapshot = controller.snapshot()
	assert snapshot.loading is True
	assert snapshot.called is True

	op.resolve(0, "two")
	result = await task

	assert result.called is True
	assert result.loading is False
	assert result.data == "two"


@pytest.mark.asyncio
async def test_execute_merges_variables(op: Deferred):
	controller = LazyQueryController[str]()
	execute, _ = controller.update(op, variables={"id": 1, "page": 1})

	execute({"page": 2})

	assert op.calls == [({"id": 1, "page": 2},)]


@pytest.mark.asyncio
async def test_called_stays_true(op: Deferred):
	controller = LazyQueryController[str]()
	execute, _ = controller.update(op)
	execute()
	op.resolve(0, "X")
	await controller.wait()

	for _ in range(3):
		_, result = controller.update(op)
		assert result.called is True
		assert result.data == "X"
	assert op.call_count == 1


@pytest.mark.asyncio
async def test_refetch_also_marks_called(op: Deferred):
	controller = LazyQueryController[str]()
	_, result = controller.update(op)

	result.refetch()

	assert controller.called is True
	assert op.call_count == 1


@pytest.mark.asyncio
async def test_after_execute_input_changes_refetch(op: Deferred):
	controller = LazyQueryController[str]()
	execute, _ = controller.update(op, variables={"id": 1})
	execute()
	op.resolve(0, "one")
	await controller.wait()

	_, pending = controller.update(op, variables={"id": 2})

	assert op.calls[1] == ({"id": 2},)
	assert pending.loading is True
	assert pending.previous_data == "one"


@pytest.mark.asyncio
async def test_lazy_execute_race(op: Deferred):
	controller = LazyQueryController[str]()
	execute, _ = controller.update(op)
	first = execute()
	second = execute()

	op.resolve(1, "second")
	await second
	op.resolve(0, "first")
	await first

	assert controller.snapshot().data == "second"


@pytest.mark.asyncio
async def test_lazy_failure_is_returned(op: Deferred):
	errors: list[Exception] = []
	controller = LazyQueryController[str]()
	execute, _ = controller.update(op, on_error=lambda e: errors.append(e))

	task = execute()
	op.reject(0, ValueError("nope"))
	result = await task

	assert isinstance(result.error, ValueError)
	assert result.called is True
	assert errors == [result.error]
