"""
Progress model for flash runs.

Maps phase transitions and segment-transfer callbacks onto a normalized
stream of ProgressEvent values. The stage percentages are fixed checkpoints
that embedding tools rely on; segment events are scaled between the base of
the current stage and the base of the next one.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional


class Stage(Enum):
    """Checkpoint stages with their contractual percentages, in run order."""
    DOWNLOAD = ("DOWNLOAD", 0)
    LOAD = ("LOAD", 0)
    START = ("START", 0)
    SDP_CONNECT = ("SDP_CONNECT", 5)
    BL_CHECK = ("BL_CHECK", 10)
    BL_FOUND = ("BL_FOUND", 15)
    SDP_UPLOAD = ("SDP_UPLOAD", 15)
    SDP_JUMP = ("SDP_JUMP", 25)
    WAIT_ENUM = ("WAIT_ENUM", 30)
    BL_CONNECT = ("BL_CONNECT", 40)
    CONFIGURE = ("CONFIGURE", 50)
    ERASE = ("ERASE", 55)
    FCB = ("FCB", 60)
    WRITE = ("WRITE", 65)
    RESET = ("RESET", 95)
    COMPLETE = ("COMPLETE", 100)

    def __init__(self, tag: str, percent: int):
        self.tag = tag
        self.percent = percent

    @property
    def next_base(self) -> int:
        """Percentage of the first later stage with a higher checkpoint."""
        stages = list(Stage)
        for later in stages[stages.index(self) + 1:]:
            if later.percent > self.percent:
                return later.percent
        return 100


class EventKind(Enum):
    """Line type in the machine-readable protocol."""
    STATUS = "STATUS"
    PROGRESS = "PROGRESS"


@dataclass(frozen=True)
class ProgressEvent:
    """
    One observation of run progress.

    Attributes:
        stage: Stage tag (e.g. "WRITE")
        percent: Overall percent, 0..100
        message: Human-readable description
        kind: STATUS for phase checkpoints, PROGRESS for segment updates
        current: Bytes transferred so far (segment events only)
        total: Bytes to transfer (segment events only)
    """
    stage: str
    percent: int
    message: str
    kind: EventKind = EventKind.STATUS
    current: Optional[int] = None
    total: Optional[int] = None

    @property
    def segment_percent(self) -> Optional[int]:
        """Percent of the current transfer, for segment events."""
        if self.current is None or not self.total:
            return None
        return _segment_percent(self.current, self.total)


EventSink = Callable[[ProgressEvent], None]


def _segment_percent(current: int, total: int) -> int:
    if total <= 0:
        return 100
    return max(0, min(100, round(current / total * 100)))


class ProgressModel:
    """
    Turns phase changes and transfer callbacks into ProgressEvents.

    The only retained state is the current stage (used to tag segment
    events) and the highest percent emitted within it, so segment
    percentages never go backwards inside a phase.

    Example:
        model = ProgressModel(sink=print)
        model.on_phase(Stage.WRITE, "Writing firmware")
        model.on_segment(512, 1024)   # PROGRESS:WRITE:80:50% (512/1024 bytes)
    """

    def __init__(self, sink: Optional[EventSink] = None):
        self._sinks: List[EventSink] = [sink] if sink is not None else []
        self._stage: Optional[Stage] = None
        self._high_water = 0

    @property
    def stage(self) -> Optional[Stage]:
        return self._stage

    def subscribe(self, sink: EventSink) -> None:
        """Add another event sink."""
        self._sinks.append(sink)

    def _emit(self, event: ProgressEvent) -> ProgressEvent:
        for sink in self._sinks:
            sink(event)
        return event

    def on_phase(
        self,
        stage: Stage,
        message: str,
        percent: Optional[int] = None,
    ) -> ProgressEvent:
        """
        Emit a STATUS checkpoint and make ``stage`` current.

        Args:
            stage: Stage entered
            message: Description of the step
            percent: Override for the checkpoint percentage (defaults to
                     the stage's fixed value)
        """
        pct = stage.percent if percent is None else max(0, min(100, percent))
        self._stage = stage
        self._high_water = pct
        return self._emit(ProgressEvent(stage.tag, pct, message, EventKind.STATUS))

    def on_segment(self, current: int, total: int) -> ProgressEvent:
        """
        Emit a PROGRESS event for a transfer inside the current stage.

        The transfer fraction is mapped onto [stage base, next stage base].
        """
        stage = self._stage or Stage.WRITE
        segment = _segment_percent(current, total)
        base = stage.percent
        span = stage.next_base - base
        pct = base + (span * segment) // 100
        pct = max(pct, self._high_water)
        self._high_water = pct
        message = f"{segment}% ({current}/{total} bytes)"
        return self._emit(
            ProgressEvent(stage.tag, pct, message, EventKind.PROGRESS, current, total)
        )

    def segment_callback(self) -> Callable[[int, int], None]:
        """Callback suitable for transports' ``progress`` argument."""
        def _callback(current: int, total: int) -> None:
            self.on_segment(current, total)
        return _callback
