"""Question pipeline orchestration: classify → fetch → explain → stream.

Components:
- AskPipeline: Main coordinator, yields StreamEvents
- ProgressEmitter: Stage-order state machine for the stream
"""

from prism.pipeline.emitter import ProgressEmitter, StreamStateError
from prism.pipeline.orchestrator import AskPipeline, open_pipeline

__all__ = ["AskPipeline", "ProgressEmitter", "StreamStateError", "open_pipeline"]
