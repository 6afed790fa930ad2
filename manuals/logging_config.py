"""
manuals/logging_config.py
-------------------------
One logging namespace, `manuals`, for the whole engine process.

Modules call `get_logger(__name__)`. Loggers from outside the `manuals`
package (the API layer, the validator, the CLI) are re-parented under
`manuals.` so a single stdout handler sees every record-store event.

What each level carries here:
    DEBUG   — embedding batches, vector persistence, query scores
    INFO    — ingest and rebuild results, source removal, owner deletion,
              legacy records being reconstructed
    WARNING — skipped blank uploads, unreadable record files, denied
              owner access, failed metadata index writes
    ERROR   — rolled-back rebuilds, a corrupt vector file, invalid summaries

Tests and operators can raise verbosity with:
    logging.getLogger("manuals").setLevel(logging.DEBUG)
"""

import logging
import sys

_LOG_FORMAT  = "%(asctime)s [%(levelname)-8s] %(name)s — %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_ROOT_NAME   = "manuals"


def configure_logging(level: int = logging.INFO) -> None:
    """
    Attaches the stdout handler to the `manuals` logger once.

    Later calls are no-ops, so every module may call it on import. The
    namespace does not propagate: uvicorn's root handlers would otherwise
    print each engine line twice.
    """
    engine = logging.getLogger(_ROOT_NAME)
    if engine.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    engine.addHandler(handler)
    engine.setLevel(level)
    engine.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Logger for `name`, placed under the `manuals` namespace."""
    configure_logging()
    if name != _ROOT_NAME and not name.startswith(_ROOT_NAME + "."):
        name = f"{_ROOT_NAME}.{name}"
    return logging.getLogger(name)
