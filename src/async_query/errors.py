from __future__ import annotations

import logging
import traceback
from typing import Any, Literal

logger = logging.getLogger(__name__)

ErrorCode = Literal[
	"query.completed",
	"query.error",
	"hook.dispose",
	"render",
]


class QueryError(RuntimeError):
	"""Base class for misuse of the query controllers."""


class ControllerDisposedError(QueryError):
	pass


class HookError(QueryError):
	pass


class HookAlreadyRegisteredError(HookError):
	pass


class HookNotFoundError(HookError):
	pass


def _format_stack(exc: BaseException) -> str:
	return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def report_callback_error(
	exc: BaseException,
	*,
	code: ErrorCode,
	details: dict[str, Any] | None = None,
	message: str | None = None,
) -> None:
	"""Log an exception raised by user code that the controller must survive.

	Callbacks run from inside fetch continuations; letting their errors
	propagate would leave the fetch task failed with an error that has
	nothing to do with the operation.
	"""
	payload_details = dict(details) if details is not None else {}
	payload_message = message or str(exc)
	logger.error(
		"async-query error code=%s message=%s details=%s\n%s",
		code,
		payload_message,
		payload_details,
		_format_stack(exc),
	)


__all__ = [
	"ControllerDisposedError",
	"ErrorCode",
	"HookAlreadyRegisteredError",
	"HookError",
	"HookNotFoundError",
	"QueryError",
	"report_callback_error",
]
