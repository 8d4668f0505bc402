from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Set levels for the `permgate` logger tree.

    Notes:
    - stdlib logging only; uvicorn installs the handlers.
    - `permgate.audit` carries authorization denials at INFO. Raise its level
      separately if denials are too noisy.
    - Set `PERMGATE_LOG_LEVEL=DEBUG` to see every resolution and check.
    """

    normalized = level.upper()
    logging.getLogger("permgate").setLevel(normalized)
    logging.getLogger("permgate").propagate = True
