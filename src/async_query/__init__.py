from async_query.controller import (
	ChangeDetector,
	OnCompletedFn,
	OnErrorFn,
	Operation,
	QueryController,
	QueryInputs,
	QueryOptions,
)
from async_query.equality import deep_equal
from async_query.errors import (
	ControllerDisposedError,
	HookAlreadyRegisteredError,
	HookError,
	HookNotFoundError,
	QueryError,
)
from async_query.helpers import MISSING
from async_query.hooks import (
	HookContext,
	HookState,
	create_hook,
	use_lazy_query,
	use_query,
)
from async_query.invocation import InvocationToken, TokenSource
from async_query.lazy import ExecuteFn, LazyQueryController
from async_query.root import Root
from async_query.state import QueryResult, QueryState, QueryStatus

__all__ = [
	"MISSING",
	"ChangeDetector",
	"ControllerDisposedError",
	"ExecuteFn",
	"HookAlreadyRegisteredError",
	"HookContext",
	"HookError",
	"HookNotFoundError",
	"HookState",
	"InvocationToken",
	"LazyQueryController",
	"OnCompletedFn",
	"OnErrorFn",
	"Operation",
	"QueryController",
	"QueryError",
	"QueryInputs",
	"QueryOptions",
	"QueryResult",
	"QueryState",
	"QueryStatus",
	"Root",
	"TokenSource",
	"create_hook",
	"deep_equal",
	"use_lazy_query",
	"use_query",
]
