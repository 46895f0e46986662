"""Streaming progress state machine.

    understanding → fetching → explaining → done
          └────────────┴───────────┴──────→ error

Transitions are strictly forward and DONE / ERROR absorb: once either has
been emitted nothing else may follow. ERROR can be entered from any
non-terminal state (including before the first stage).
"""

from typing import Any

from prism.models import Stage, StreamEvent

_ORDER = (Stage.UNDERSTANDING, Stage.FETCHING, Stage.EXPLAINING, Stage.DONE)


class StreamStateError(RuntimeError):
    """Raised on an out-of-order or post-terminal transition."""


class ProgressEmitter:
    """Produce stream events while enforcing stage order.

    Usage:
        emitter = ProgressEmitter()
        yield emitter.advance(Stage.UNDERSTANDING, "Understanding question…")
        ...
        yield emitter.done(answer)
    """

    def __init__(self) -> None:
        self.state: Stage | None = None
        self.history: list[Stage] = []

    @property
    def finished(self) -> bool:
        return self.state is not None and self.state.is_terminal

    def _enter(self, stage: Stage) -> None:
        if self.finished:
            raise StreamStateError(f"Stream already ended with '{self.state.value}'")
        if stage is not Stage.ERROR:
            current = _ORDER.index(self.state) if self.state is not None else -1
            if _ORDER.index(stage) != current + 1:
                previous = self.state.value if self.state else "start"
                raise StreamStateError(f"Invalid transition {previous} -> {stage.value}")
        self.state = stage
        self.history.append(stage)

    def advance(self, stage: Stage, message: str) -> StreamEvent:
        """Enter the next progress stage."""
        if stage.is_terminal:
            raise StreamStateError(f"Use done()/error() for terminal stage '{stage.value}'")
        self._enter(stage)
        return StreamEvent(stage=stage, message=message)

    def done(
        self,
        answer: str,
        viz_spec: dict[str, Any] | None = None,
        include_viz: bool = False,
    ) -> StreamEvent:
        """Terminal success event; only valid after EXPLAINING."""
        self._enter(Stage.DONE)
        return StreamEvent(stage=Stage.DONE, answer=answer, viz_spec=viz_spec, include_viz=include_viz)

    def error(self, message: str) -> StreamEvent:
        """Terminal failure event."""
        self._enter(Stage.ERROR)
        return StreamEvent(stage=Stage.ERROR, error=message)
