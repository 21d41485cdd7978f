import logging

from rich.logging import RichHandler

from utils.config import load_settings


class CenteredFormatter(logging.Formatter):
    """Pads logger names so messages from different modules line up."""

    longest_name_length = 14

    def __init__(self, fmt=None, datefmt=None, style="%", initial_width=14):
        super().__init__(fmt, datefmt, style)
        CenteredFormatter.longest_name_length = initial_width

    def format(self, record):
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, len(record.name)
        )
        width = CenteredFormatter.longest_name_length
        # format a copy so other handlers keep the raw name
        record = logging.makeLogRecord(record.__dict__)
        record.name = record.name.center(width)
        return super().format(record)


def get_logger(name=None) -> logging.Logger:
    """
    Returns a logger for the given module name, printing through rich.

    Debug output is enabled with STOREFRONT_DEBUG (or DEBUG) in the environment.
    """
    name = name or "storefront"
    logger = logging.getLogger(name)
    log_level = logging.DEBUG if load_settings().debug else logging.INFO
    logger.setLevel(log_level)

    if not logger.handlers:
        handler = RichHandler(
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(CenteredFormatter("[%(name)s]  %(message)s"))
        handler.setLevel(log_level)
        logger.addHandler(handler)

        logger.propagate = False
        logger.debug(f"Logger for '{name}' ready.")

    return logger
