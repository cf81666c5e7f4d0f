import inspect
from collections.abc import Callable, Mapping
from contextvars import ContextVar, Token
from dataclasses import dataclass
from types import CodeType, FrameType
from typing import Any, Generic, Literal, TypeVar, override

from async_query.errors import (
	HookAlreadyRegisteredError,
	HookError,
	HookNotFoundError,
	report_callback_error,
)
from async_query.helpers import Disposable, call_flexible

HookIdentity = tuple[tuple[CodeType, int], ...]


def _frame_offset(frame: FrameType) -> int:
	offset = frame.f_lasti
	if offset < 0:
		offset = frame.f_lineno
	return offset


def callsite_identity(
	*,
	skip: int = 0,
	frame: FrameType | None = None,
	root: CodeType | None = None,
) -> HookIdentity:
	"""Identify a hook call by the chain of frames leading to it.

	The chain stops at the frame running `root` (the component function),
	so the same line called from two helpers gets two identities. Without
	a root only the immediate caller is used.
	"""
	if skip < 0:
		raise ValueError("callsite_identity() skip must be non-negative")
	if frame is None:
		frame = inspect.currentframe()
		if frame is not None:
			frame = frame.f_back
	while skip > 0 and frame is not None:
		frame = frame.f_back
		skip -= 1
	if frame is None:
		return tuple()

	identity: list[tuple[CodeType, int]] = []
	cursor: FrameType | None = frame
	while cursor is not None:
		identity.append((cursor.f_code, _frame_offset(cursor)))
		if root is not None and cursor.f_code is root:
			return tuple(identity)
		cursor = cursor.f_back
	return tuple(identity[:1])


@dataclass(slots=True)
class HookMetadata:
	"""Descriptive information about a registered hook.

	Attributes:
		description: Human-readable description of the hook's purpose.
		owner: Module or package that owns this hook.
		extra: Additional metadata as a mapping.
	"""

	description: str | None = None
	owner: str | None = None
	extra: Mapping[str, Any] | None = None


class HookState(Disposable):
	"""Base class for per-component state created by a hook factory.

	Lifecycle methods are called by `HookContext` around every render
	cycle; `dispose()` is called on unmount.
	"""

	render_cycle: int = 0

	def on_render_start(self, render_cycle: int) -> None:
		self.render_cycle = render_cycle

	def on_render_end(self, render_cycle: int) -> None: ...

	@override
	def dispose(self) -> None: ...


T = TypeVar("T", bound=HookState)

HookFactory = Callable[[], T] | Callable[["HookInit[T]"], T]


@dataclass(slots=True)
class HookInit(Generic[T]):
	"""Passed to hook factories that accept one argument."""

	key: object | None
	render_cycle: int
	context: "HookContext"
	definition: "Hook[T]"


@dataclass(slots=True)
class Hook(Generic[T]):
	"""A registered hook definition, callable during render."""

	name: str
	factory: HookFactory[T]
	metadata: HookMetadata
	identity: Literal["key", "callsite"]

	def __call__(self, key: str | HookIdentity | None = None) -> T:
		"""Get or create hook state for the component being rendered.

		Raises:
			HookError: If called outside of a render cycle.
		"""
		ctx = HookContext.require(self.name)
		namespace = ctx.namespace_for(self)
		resolved_key: object | None = None
		if key is None:
			if self.identity == "callsite":
				hook_key = ("callsite", ctx.callsite())
			else:
				hook_key = ("default", DEFAULT_HOOK_KEY)
		elif isinstance(key, str):
			hook_key = ("key", key)
			resolved_key = key
		else:
			hook_key = ("callsite", key)
			resolved_key = key
		return namespace.ensure(ctx, hook_key, resolved_key)


DEFAULT_HOOK_KEY = object()


class HookNamespace(Generic[T]):
	__slots__ = ("hook", "states")  # pyright: ignore[reportUnannotatedClassAttribute]
	hook: Hook[T]

	def __init__(self, hook: Hook[T]) -> None:
		self.hook = hook
		self.states: dict[tuple[str, object], T] = {}

	def on_render_start(self, render_cycle: int):
		for state in self.states.values():
			state.on_render_start(render_cycle)

	def on_render_end(self, render_cycle: int):
		for state in list(self.states.values()):
			state.on_render_end(render_cycle)

	def ensure(
		self, ctx: "HookContext", key: tuple[str, object], init_key: object | None
	) -> T:
		state = self.states.get(key)
		if state is None:
			created = call_flexible(
				self.hook.factory,
				HookInit(
					key=init_key,
					render_cycle=ctx.render_cycle,
					context=ctx,
					definition=self.hook,
				),
			)
			if inspect.isawaitable(created):
				raise HookError(
					f"Hook factory '{self.hook.name}' returned an awaitable; "
					+ "async factories are not supported"
				)
			if not isinstance(created, HookState):
				raise HookError(
					f"Hook factory '{self.hook.name}' must return a HookState instance"
				)
			state = created
			self.states[key] = state
			state.on_render_start(ctx.render_cycle)
		return state

	def dispose(self) -> None:
		for key, state in self.states.items():
			try:
				state.dispose()
			except Exception as exc:
				report_callback_error(
					exc,
					code="hook.dispose",
					details={"hook": self.hook.name, "key": repr(key)},
				)
		self.states.clear()


class HookContext:
	"""Hook storage for one mounted component.

	Entering the context starts a render cycle; leaving it ends the cycle,
	which is when hook states commit. `request_render` is how hook states
	ask the host to render again.
	"""

	render_cycle: int
	namespaces: dict[str, HookNamespace[Any]]
	request_render: Callable[[], None] | None
	root_code: CodeType | None
	_token: "Token[HookContext | None] | None"

	def __init__(
		self,
		request_render: Callable[[], None] | None = None,
		root_code: CodeType | None = None,
	) -> None:
		self.render_cycle = 0
		self.namespaces = {}
		self.request_render = request_render
		self.root_code = root_code
		self._token = None

	@staticmethod
	def require(caller: str | None = None) -> "HookContext":
		ctx = HOOK_CONTEXT.get()
		if ctx is None:
			caller = caller or "this function"
			raise HookError(
				f"Missing hook context, {caller} was likely called outside rendering"
			)
		return ctx

	def callsite(self, *, skip: int = 0) -> HookIdentity:
		"""Identity of the code that called the function calling this method."""
		frame = inspect.currentframe()
		return callsite_identity(skip=skip + 2, frame=frame, root=self.root_code)

	def __enter__(self):
		self.render_cycle += 1
		self._token = HOOK_CONTEXT.set(self)
		for namespace in self.namespaces.values():
			namespace.on_render_start(self.render_cycle)
		return self

	def __exit__(
		self,
		exc_type: type[BaseException] | None,
		exc_val: BaseException | None,
		exc_tb: Any,
	) -> Literal[False]:
		if self._token is not None:
			HOOK_CONTEXT.reset(self._token)
			self._token = None
			# A render that raised is not committed
			if exc_type is None:
				for namespace in list(self.namespaces.values()):
					namespace.on_render_end(self.render_cycle)
		return False

	def namespace_for(self, hook: Hook[T]) -> HookNamespace[T]:
		namespace = self.namespaces.get(hook.name)
		if namespace is None:
			namespace = HookNamespace(hook)
			self.namespaces[hook.name] = namespace
		return namespace

	def unmount(self) -> None:
		for namespace in self.namespaces.values():
			namespace.dispose()
		self.namespaces.clear()


HOOK_CONTEXT: ContextVar[HookContext | None] = ContextVar(
	"async_query_hook_context", default=None
)


def _default_factory() -> HookState:
	return HookState()


class HookRegistry:
	hooks: dict[str, Hook[Any]]

	def __init__(self) -> None:
		self.hooks = {}

	def create(
		self,
		name: str,
		factory: HookFactory[T] = _default_factory,
		metadata: HookMetadata | None = None,
		identity: Literal["key", "callsite"] = "key",
	) -> Hook[T]:
		if not isinstance(name, str) or not name:
			raise ValueError("Hook name must be a non-empty string")
		if identity not in ("key", "callsite"):
			raise ValueError("Hook identity must be 'key' or 'callsite'")
		if name in self.hooks:
			raise HookAlreadyRegisteredError(f"Hook '{name}' is already registered")
		hook = Hook(
			name=name,
			factory=factory,
			metadata=metadata or HookMetadata(),
			identity=identity,
		)
		self.hooks[name] = hook
		return hook

	def list(self) -> list[str]:
		return sorted(self.hooks.keys())

	def describe(self, name: str) -> HookMetadata:
		definition = self.hooks.get(name)
		if definition is None:
			raise HookNotFoundError(f"Hook '{name}' is not registered")
		return definition.metadata


HOOK_REGISTRY: HookRegistry = HookRegistry()


def create_hook(
	name: str,
	factory: HookFactory[T] = _default_factory,
	*,
	metadata: HookMetadata | None = None,
	identity: Literal["key", "callsite"] = "key",
) -> Hook[T]:
	"""Register a new hook.

	Args:
		name: Unique name for the hook (e.g., "my_app:timer").
		factory: Creates the HookState. Either takes no argument or a
			`HookInit`.
		metadata: Optional metadata describing the hook.
		identity: "key" shares one state per component unless a key is
			passed; "callsite" gives each call site its own state.

	Raises:
		ValueError: If name is empty or identity is unknown.
		HookAlreadyRegisteredError: If a hook with this name already exists.
	"""
	return HOOK_REGISTRY.create(name, factory, metadata, identity)


__all__ = [
	"DEFAULT_HOOK_KEY",
	"HOOK_CONTEXT",
	"HOOK_REGISTRY",
	"Hook",
	"HookContext",
	"HookFactory",
	"HookIdentity",
	"HookInit",
	"HookMetadata",
	"HookNamespace",
	"HookRegistry",
	"HookState",
	"callsite_identity",
	"create_hook",
]
