from __future__ import annotations


class InvalidInputError(ValueError):
	"""Raised when species, point samples or layer selections are malformed."""


class ReplicateCountError(ValueError):
	"""Raised when a randomization test is requested with fewer than one replicate."""


class GridMismatchError(ValueError):
	"""Raised when niche grids built on different extents or resolutions are compared."""
