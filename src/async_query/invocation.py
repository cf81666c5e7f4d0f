from dataclasses import dataclass, field
from itertools import count


@dataclass(frozen=True, slots=True)
class InvocationToken:
	"""Marker for one fetch. Compared by identity, the id is for logs."""

	id: int
	source: "TokenSource" = field(repr=False, compare=False)

	@property
	def is_current(self) -> bool:
		return self.source.is_current(self)


class TokenSource:
	"""Tracks which invocation is current.

	Only the current token is remembered: `begin()` invalidates exactly one
	predecessor and `revoke()` leaves no token current at all.
	"""

	__slots__ = ("_current", "_ids")  # pyright: ignore[reportUnannotatedClassAttribute]
	_current: InvocationToken | None

	def __init__(self) -> None:
		self._current = None
		self._ids = count(1)

	@property
	def current(self) -> InvocationToken | None:
		return self._current

	def begin(self) -> InvocationToken:
		token = InvocationToken(next(self._ids), self)
		self._current = token
		return token

	def is_current(self, token: InvocationToken) -> bool:
		return self._current is token

	def revoke(self) -> InvocationToken | None:
		previous = self._current
		self._current = None
		return previous


__all__ = ["InvocationToken", "TokenSource"]
