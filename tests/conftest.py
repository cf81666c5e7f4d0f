import asyncio
import logging
from typing import Any

import pytest


class Deferred:
	"""Operation whose calls settle only when the test resolves them.

	Each call records its arguments and returns a fresh future, so tests
	control the completion order of overlapping fetches.
	"""

	calls: list[tuple[Any, ...]]
	futures: list[asyncio.Future[Any]]

	def __init__(self) -> None:
		self.calls = []
		self.futures = []

	def __call__(self, *args: Any) -> asyncio.Future[Any]:
		future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
		self.calls.append(args)
		self.futures.append(future)
		return future

	@property
	def call_count(self) -> int:
		return len(self.calls)

	def resolve(self, index: int, value: Any) -> None:
		self.futures[index].set_result(value)

	def reject(self, index: int, error: Exception) -> None:
		self.futures[index].set_exception(error)


@pytest.fixture
def op() -> Deferred:
	return Deferred()


@pytest.fixture(autouse=True)
def _debug_logging(caplog: pytest.LogCaptureFixture):  # pyright: ignore[reportUnusedFunction]
	caplog.set_level(logging.DEBUG, logger="async_query")
	yield
