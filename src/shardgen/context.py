"""Generation context and the narrow logging contract stages rely on."""

from dataclasses import dataclass
from typing import Any, Protocol


class StageLogger(Protocol):
    """Minimal logger accepted by the pipeline.

    A structlog bound logger satisfies it directly. ``debug`` and
    ``success`` are optional on the implementation side.
    """

    def info(self, event: str, **meta: Any) -> Any: ...

    def warning(self, event: str, **meta: Any) -> Any: ...

    def error(self, event: str, **meta: Any) -> Any: ...


@dataclass
class WorldGenContext:
    """Shared collaborators for one pipeline invocation."""

    logger: StageLogger | None = None


class StageLog:
    """Stage-scoped view over the optional context logger.

    Every event is tagged with the stage name. With no logger configured,
    all calls are no-ops.
    """

    def __init__(self, context: WorldGenContext | None, stage: str):
        self._logger = context.logger if context is not None else None
        self.stage = stage

    def debug(self, event: str, **meta: Any) -> None:
        self._emit("debug", event, meta)

    def info(self, event: str, **meta: Any) -> None:
        self._emit("info", event, meta)

    def warning(self, event: str, **meta: Any) -> None:
        self._emit("warning", event, meta)

    def error(self, event: str, **meta: Any) -> None:
        self._emit("error", event, meta)

    def success(self, event: str, **meta: Any) -> None:
        self._emit("success", event, meta)

    def _emit(self, level: str, event: str, meta: dict[str, Any]) -> None:
        if self._logger is None:
            return

        method = getattr(self._logger, level, None)
        if method is None and level == "warning":
            method = getattr(self._logger, "warn", None)
        if method is None and level == "success":
            method = self._logger.info
        if method is None:
            return

        method(event, stage=self.stage, **meta)
