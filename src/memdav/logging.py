# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Structured logging helpers for :mod:`memdav`.

Every log call names an ``event`` (a dotted identifier such as
``filesystem.rename``) and may carry a ``context`` mapping. The text formatter
renders both next to the message; the JSON formatter emits one compact object
per record.

Example::

    logger = get_logger(__name__).bind(component="gateway")
    logger.info(
        "Renamed subtree",
        event="filesystem.rename",
        context={"source": "/a", "destination": "/b", "entries": 3},
    )
"""

from __future__ import annotations

import json
import logging
import logging.config
import os
from collections.abc import Mapping, MutableMapping
from datetime import UTC, datetime
from typing import Any, cast, override

__all__ = [
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]

_LOG_LEVEL_ENV = "MEMDAV_LOG_LEVEL"
_LOG_FORMAT_ENV = "MEMDAV_LOG_FORMAT"
_LEVEL_NAMES = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}


class StructuredLogger(logging.LoggerAdapter[logging.Logger]):
    """Logger adapter enforcing an ``event`` plus ``context`` record schema."""

    def __init__(
        self,
        logger: logging.Logger,
        *,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(logger, dict(context) if context is not None else {})

    def bind(self, **context: object) -> StructuredLogger:
        """Return a new adapter with ``context`` merged into the baseline payload."""

        base = cast(Mapping[str, object], self.extra)
        return type(self)(self.logger, context={**dict(base), **context})

    @override
    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        extra = kwargs.pop("extra", None) or {}
        if not isinstance(extra, Mapping):
            raise TypeError("extra must be a mapping when provided.")
        leftovers = dict(cast(Mapping[str, object], extra))

        event = kwargs.pop("event", None) or leftovers.pop("event", None)
        if not isinstance(event, str):
            raise TypeError("Structured logs require an 'event' field.")

        inline = kwargs.pop("context", None)
        if inline is not None and not isinstance(inline, Mapping):
            raise TypeError("context must be a mapping when provided.")

        # Bound context < inline context < stray extras.
        payload = {
            **dict(cast(Mapping[str, object], self.extra)),
            **dict(cast(Mapping[str, object], inline or {})),
            **leftovers,
        }
        kwargs["extra"] = {"event": event, "context": payload}
        return msg, kwargs


def get_logger(
    name: str,
    *,
    logger_override: logging.Logger | StructuredLogger | None = None,
    context: Mapping[str, object] | None = None,
) -> StructuredLogger:
    """Return a :class:`StructuredLogger` scoped to ``name``.

    When ``logger_override`` is provided, the returned adapter reuses the
    supplied logger; a structured override also contributes its bound context.
    """

    base_context: dict[str, object] = dict(context or {})
    if isinstance(logger_override, StructuredLogger):
        base_context = {
            **dict(cast(Mapping[str, object], logger_override.extra)),
            **base_context,
        }
        return StructuredLogger(logger_override.logger, context=base_context)
    if isinstance(logger_override, logging.Logger):
        return StructuredLogger(logger_override, context=base_context)
    return StructuredLogger(logging.getLogger(name), context=base_context)


def configure_logging(
    *,
    level: int | str | None = None,
    json_mode: bool | None = None,
    env: Mapping[str, str] | None = None,
    force: bool = False,
) -> None:
    """Configure the root logger for the memdav executable.

    ``level`` and ``json_mode`` can be supplied directly or via the
    ``MEMDAV_LOG_LEVEL`` and ``MEMDAV_LOG_FORMAT`` environment variables
    (``json`` enables structured output, ``text`` keeps the plain formatter).

    Existing handlers on the root logger are left alone unless ``force=True``;
    only the level is updated in that case.
    """

    env = os.environ if env is None else env
    resolved_level = _coerce_level(level or env.get(_LOG_LEVEL_ENV) or logging.INFO)

    if json_mode is None:
        format_value = env.get(_LOG_FORMAT_ENV)
        json_mode = format_value is not None and format_value.lower() == "json"

    root_logger = logging.getLogger()
    if root_logger.handlers and not force:
        root_logger.setLevel(resolved_level)
        return

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "text": {
                    "()": "memdav.logging._TextFormatter",
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {
                    "()": "memdav.logging._JsonFormatter",
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "json" if json_mode else "text",
                }
            },
            "root": {
                "handlers": ["stderr"],
                "level": resolved_level,
            },
        }
    )


class _TextFormatter(logging.Formatter):
    """Plain formatter appending ``event`` and ``context`` when present."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        event = getattr(record, "event", None)
        if event is not None:
            line = f"{line} [{event}]"
        context = getattr(record, "context", None)
        if context:
            line = f"{line} {json.dumps(context, default=_json_default, ensure_ascii=False)}"
        return line


class _JsonFormatter(logging.Formatter):
    """Formatter that renders structured records as compact JSON."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event is not None:
            payload["event"] = event
        context = getattr(record, "context", None)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(
            payload, default=_json_default, separators=(",", ":"), ensure_ascii=False
        )


def _json_default(value: Any) -> Any:  # noqa: ANN401
    """Fallback serializer returning ``str`` for unsupported values."""

    if isinstance(value, datetime):
        return value.isoformat()
    return repr(value)


def _coerce_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    try:
        return _LEVEL_NAMES[level.upper()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level!r}") from None
