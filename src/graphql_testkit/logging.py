"""Component loggers carrying structured context."""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping

_ROOT_LOGGER_NAME = "graphql_testkit"


class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that attaches a ``component`` name and an optional ``context`` mapping to every record.

    Calls accept ``context=<mapping>``; the mapping is merged with any ``context``
    already present in ``extra`` and exposed as ``record.context``. A
    non-mapping ``context`` raises ``TypeError`` whether or not the level is enabled.
    """

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        context = kwargs.get("context")
        if context is not None and not isinstance(context, Mapping):
            raise TypeError("Logging context must be a mapping.")
        super().log(level, msg, *args, **kwargs)

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        context = kwargs.pop("context", None)

        extra: dict[str, Any] = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})

        merged: dict[str, Any] = {}
        existing = extra.get("context")
        if isinstance(existing, Mapping):
            merged.update(existing)
        if context:
            merged.update(context)
        extra["context"] = merged
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(component: str) -> ContextLoggerAdapter:
    """
    Return the adapter for a testkit component.

    Parameters:
        component (str): Dotted component name, e.g. ``"subscription.driver"``.

    Returns:
        ContextLoggerAdapter: Adapter bound to logger ``graphql_testkit.<component>``.
    """
    logger = logging.getLogger(f"{_ROOT_LOGGER_NAME}.{component}")
    return ContextLoggerAdapter(logger, {"component": component})
