import logging
import traceback
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def setup_logging(level: int = logging.INFO, fmt: Optional[str] = None) -> None:
	"""Configure root logging once. Later calls only adjust the level.
	If fmt is not provided, DEFAULT_FORMAT is used.
	"""
	root = logging.getLogger()
	if root.handlers:
		root.setLevel(level)
		return
	logging.basicConfig(level=level, format=fmt or DEFAULT_FORMAT)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	"""Return a module/logger by name."""
	return logging.getLogger(name) if name else logging.getLogger("image_migrator")


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Exception = None) -> None:
	"""Centralized exception logging with full traceback.

	Args:
		logger: Logger instance to use
		message: Custom error message to log before the traceback
		exc_info: Exception instance (if None, uses current exception context)
	"""
	logger.error(message)
	if exc_info is not None:
		logger.error(f"Exception type: {type(exc_info).__name__}")
		logger.error(f"Exception message: {getattr(exc_info, 'message', str(exc_info))}")
		logger.debug("Full traceback:\n" + "".join(
			traceback.format_exception(type(exc_info), exc_info, exc_info.__traceback__)
		))
	else:
		logger.debug("Full traceback:\n" + traceback.format_exc())
