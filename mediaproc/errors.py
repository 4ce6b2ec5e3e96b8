from __future__ import annotations


class MediaProcError(Exception):
	"""Base class for all errors raised by the image-processing client."""


class InvalidInputError(MediaProcError):
	"""A precondition on the caller's arguments was violated."""


class ClientClosedError(InvalidInputError):
	"""An operation was attempted on a client that has already been closed."""


class ProcessingError(MediaProcError):
	"""The imaging engine failed to decode, transform or encode."""
