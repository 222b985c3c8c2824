"""
Audio Frame Queue - Per-session FIFO between ingest and the bridge.

Decouples the rate at which a participant speaks from the rate at which
the upstream provider accepts audio:

- enqueue() never blocks the ingest socket; it appends and schedules a drain
- exactly one drain runs at a time (is_draining guard, per queue)
- frames are forwarded strictly in arrival order, each exactly once
- when the sink is not ready the drain stops and leaves frames queued;
  the next enqueue() (or kick()) resumes it
- an optional max depth turns unbounded growth into QueueOverloaded
- on_forwarded is told about each frame after the sink accepted it

Usage:
    queue = AudioFrameQueue(spawn=task_group.create_task, max_depth=500)
    queue.attach(bridge)
    queue.enqueue(AudioFrame(sequence_number=1, payload=b64))
"""

import asyncio
import logging
from collections import deque
from typing import Callable, Coroutine, Deque, Optional, Protocol

from app.config.constants import AUDIO_DRAIN_PAUSE_SEC
from app.services.audio.frames import AudioFrame
from app.services.exceptions import OutOfOrderFrame, QueueOverloaded
from app.services.metrics import frames_rejected, queue_depth

logger = logging.getLogger(__name__)

Spawner = Callable[[Coroutine], "asyncio.Task"]


class FrameSink(Protocol):
    """Where drained frames go (the Translation Bridge)."""

    @property
    def is_ready(self) -> bool:
        ...

    async def forward_frame(self, frame: AudioFrame) -> None:
        ...


class AudioFrameQueue:
    """
    Strict FIFO of audio frames with a single-consumer drain.

    Owned by exactly one RelaySession; never shared across sessions.
    """

    def __init__(
        self,
        spawn: Spawner,
        max_depth: int = 0,
        pause_sec: float = AUDIO_DRAIN_PAUSE_SEC,
        label: str = "",
        on_forwarded: Optional[Callable[[AudioFrame], None]] = None,
    ):
        self._spawn = spawn
        self._on_forwarded = on_forwarded
        self._max_depth = max_depth
        self._pause_sec = pause_sec
        self._label = label
        self._frames: Deque[AudioFrame] = deque()
        self._sink: Optional[FrameSink] = None
        self._last_sequence: Optional[int] = None
        self.is_draining = False

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def next_sequence_number(self) -> int:
        """Sequence number to assign when the sender omitted one."""
        return 0 if self._last_sequence is None else self._last_sequence + 1

    def attach(self, sink: FrameSink):
        """Point the queue at a (new) bridge."""
        self._sink = sink

    def detach(self):
        self._sink = None

    def enqueue(self, frame: AudioFrame):
        """
        Append a frame and schedule a drain.

        Raises:
            OutOfOrderFrame: sequence number not above the last accepted one
            QueueOverloaded: the queue already holds max_depth frames
        """
        if self._last_sequence is not None and frame.sequence_number <= self._last_sequence:
            frames_rejected.labels(reason="out_of_order").inc()
            raise OutOfOrderFrame(
                f"Frame {frame.sequence_number} is not after frame {self._last_sequence}"
            )

        if self._max_depth and len(self._frames) >= self._max_depth:
            frames_rejected.labels(reason="overloaded").inc()
            logger.warning(
                f"[AudioQueue] {self._label} overloaded at {len(self._frames)} frames, "
                f"dropping frame {frame.sequence_number}"
            )
            raise QueueOverloaded(f"Audio queue is full ({self._max_depth} frames)")

        self._frames.append(frame)
        self._last_sequence = frame.sequence_number
        queue_depth.observe(len(self._frames))
        self.kick()

    def kick(self):
        """Start a drain if none is running, frames are waiting and the sink is ready."""
        if self.is_draining or not self._frames:
            return
        sink = self._sink
        if sink is None or not sink.is_ready:
            return
        # Set before the task runs so a second kick in the same tick is a no-op
        self.is_draining = True
        self._spawn(self._drain())

    def clear(self) -> int:
        """Discard queued frames and restart sequence tracking. Returns the number dropped."""
        dropped = len(self._frames)
        self._frames.clear()
        self._last_sequence = None
        if dropped:
            logger.info(f"[AudioQueue] {self._label} discarded {dropped} queued frames")
        return dropped

    async def _drain(self):
        try:
            while self._frames:
                sink = self._sink
                if sink is None or not sink.is_ready:
                    logger.debug(f"[AudioQueue] {self._label} sink not ready, pausing drain")
                    break

                frame = self._frames.popleft()
                try:
                    await sink.forward_frame(frame)
                except Exception as e:
                    logger.error(
                        f"[AudioQueue] {self._label} failed to forward frame "
                        f"{frame.sequence_number}: {e}"
                    )
                    break

                if self._on_forwarded is not None:
                    self._on_forwarded(frame)
                logger.debug(
                    f"[AudioQueue] {self._label} forwarded frame {frame.sequence_number} "
                    f"after {frame.age_ms:.0f} ms"
                )
                await asyncio.sleep(self._pause_sec)
        finally:
            self.is_draining = False
