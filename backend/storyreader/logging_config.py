from __future__ import annotations
import logging


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
	root = logging.getLogger()
	if not root.handlers:
		logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
	else:
		root.setLevel(level.upper())
	# httpx logs every request at INFO
	logging.getLogger("httpx").setLevel(logging.WARNING)
