"""Console logging setup shared by the command line programs."""
import logging
from typing import Optional, Union

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Union[str, int] = "INFO", fmt: Optional[str] = None) -> None:
    if isinstance(level, str):
        name = level.upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ValueError(f"unknown log level: {name}")
    logging.basicConfig(
        level=level,
        format=fmt or DEFAULT_FORMAT,
        handlers=[logging.StreamHandler()],
        force=True,
    )
