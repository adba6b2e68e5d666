import logging
import sys
import warnings


logger = logging.getLogger(__name__)


def configure_error_reporting(debug: bool) -> None:
    """Silence runtime warnings, or in debug mode surface them through logging.

    Debug mode also logs any uncaught exception before the interpreter's
    default hook prints it.
    """
    if not debug:
        warnings.simplefilter("ignore")
        return

    warnings.simplefilter("default")
    logging.captureWarnings(True)
    sys.excepthook = _log_uncaught_exception


def _log_uncaught_exception(exc_type, exc_value, exc_traceback):
    if not issubclass(exc_type, KeyboardInterrupt):
        logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))
    sys.__excepthook__(exc_type, exc_value, exc_traceback)
