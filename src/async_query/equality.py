import dataclasses
import math
from collections.abc import Mapping, Sequence, Set
from typing import Any


def deep_equal(a: Any, b: Any) -> bool:
	"""Structural equality for query variables.

	Hosts rebuild their variables on every render, so two values are equal
	when they have the same shape and contents: mappings by key, sequences
	element-wise, dataclasses field by field. Scalars of different types
	never match. NaN equals NaN so a float variable cannot cause a refetch
	on every cycle.
	"""
	return _equal(a, b, set())


def _equal(a: Any, b: Any, seen: set[tuple[int, int]]) -> bool:
	if a is b:
		return True
	if isinstance(a, float) and isinstance(b, float):
		return a == b or (math.isnan(a) and math.isnan(b))
	if isinstance(a, (str, bytes)) or isinstance(b, (str, bytes)):
		return type(a) is type(b) and a == b

	pair = (id(a), id(b))
	if pair in seen:
		# Cyclic structure already being compared further up the stack
		return True

	if isinstance(a, Mapping) and isinstance(b, Mapping):
		if len(a) != len(b):
			return False
		seen.add(pair)
		for key, value in a.items():
			if key not in b or not _equal(value, b[key], seen):
				return False
		return True

	if dataclasses.is_dataclass(a) and not isinstance(a, type):
		if type(a) is not type(b):
			return False
		seen.add(pair)
		return all(
			_equal(getattr(a, f.name), getattr(b, f.name), seen)
			for f in dataclasses.fields(a)
			if f.compare
		)

	if isinstance(a, Sequence) and isinstance(b, Sequence):
		if type(a) is not type(b) or len(a) != len(b):
			return False
		seen.add(pair)
		return all(_equal(x, y, seen) for x, y in zip(a, b))

	if isinstance(a, Set) and isinstance(b, Set):
		return a == b

	# 1, 1.0 and True are different variables
	if type(a) is not type(b):
		return False
	try:
		return bool(a == b)
	except (TypeError, ValueError):
		# Array-likes compare element-wise and have no single truth value
		pass
	try:
		items_a, items_b = list(a), list(b)
	except TypeError:
		return False
	if len(items_a) != len(items_b):
		return False
	seen.add(pair)
	return all(_equal(x, y, seen) for x, y in zip(items_a, items_b))


__all__ = ["deep_equal"]
