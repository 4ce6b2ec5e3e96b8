"""Package logging for mediaproc.

All modules log through children of the ``mediaproc`` logger so a single
handler and level (``MEDIAPROC_LOG_LEVEL``) govern the whole package.
"""

from __future__ import annotations

import logging
from typing import Optional

from mediaproc.config import LOG_LEVEL

ROOT_LOGGER_NAME = "mediaproc"


def _configure_root() -> logging.Logger:
	root = logging.getLogger(ROOT_LOGGER_NAME)
	if not root.handlers:
		handler = logging.StreamHandler()
		handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
		root.addHandler(handler)
		root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
	return root


def get_logger(name: Optional[str] = None) -> logging.Logger:
	"""Return the package logger, or the ``mediaproc.<name>`` child for *name*."""
	root = _configure_root()
	if not name or name == ROOT_LOGGER_NAME:
		return root
	if name.startswith(ROOT_LOGGER_NAME + "."):
		name = name[len(ROOT_LOGGER_NAME) + 1:]
	return root.getChild(name)
