"""Capture loop: scroll, capture, crop, align, stitch, decide when to stop.

State machine:
    IDLE -> PRIMING -> CAPTURING -> FINALIZING -> DONE
    any non-terminal state -> ABORTED on unrecoverable error

Two execution shapes share the same control flow:
- sequential (default): scroll, settle, capture and align on the caller's
  thread.
- prefetch: a worker thread scrolls, settles and captures, handing frames
  over through a single-slot queue so alignment order equals capture order.
"""

from __future__ import annotations

from dataclasses import replace
import logging
import queue
import threading
import time
from typing import Callable, Iterable, Optional, Tuple

from scrollstitch.aligner import Classification
from scrollstitch.config import SessionConfig
from scrollstitch.cropper import crop
from scrollstitch.errors import CaptureError, InvalidRegion
from scrollstitch.frame import Frame
from scrollstitch.io import ArrayFrameSource, FrameSource, NullScrollDriver, ScrollDriver
from scrollstitch.session import (
    CaptureResult,
    CaptureSession,
    CaptureState,
    CaptureStatus,
    StopReason,
)


logger = logging.getLogger(__name__)

_POLL_S = 0.05


class _FramePump:
    """Worker that performs scroll -> settle -> capture ahead of the aligner.

    Items are ("frame", Frame), ("end", None) or ("error", exception). The
    queue holds a single item, so at most one frame waits for alignment.
    """

    def __init__(
        self,
        source: FrameSource,
        driver: ScrollDriver,
        key: str,
        settle_s: float,
        sleep: Callable[[float], None],
        max_steps: Optional[int] = None,
    ):
        self._source = source
        self._driver = driver
        self._key = key
        self._settle_s = settle_s
        self._sleep = sleep
        self._max_steps = max_steps
        self._queue: "queue.Queue[Tuple[str, object]]" = queue.Queue(maxsize=1)
        self._halt = threading.Event()
        self._thread = threading.Thread(target=self._run, name="scrollstitch-pump", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _put(self, item) -> bool:
        while not self._halt.is_set():
            try:
                self._queue.put(item, timeout=_POLL_S)
                return True
            except queue.Full:
                continue
        return False

    def _run(self) -> None:
        steps = 0
        while not self._halt.is_set():
            if self._max_steps is not None and steps >= self._max_steps:
                self._put(("end", None))
                return
            try:
                self._driver.step(self._key)
                steps += 1
                if self._settle_s > 0:
                    self._sleep(self._settle_s)
                frame = self._source.next_frame()
            except Exception as exc:  # handed to the consumer thread
                self._put(("error", exc))
                return
            if frame is None:
                self._put(("end", None))
                return
            if not self._put(("frame", frame)):
                return

    def get(self, stop_event: threading.Event) -> Tuple[str, object]:
        """Next item, or ("stopped", None) once `stop_event` is set."""
        while not stop_event.is_set():
            try:
                return self._queue.get(timeout=_POLL_S)
            except queue.Empty:
                continue
        return "stopped", None

    def close(self, timeout: float = 5.0) -> None:
        self._halt.set()
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(
                "Prefetch worker still busy after %.1fs (blocked in scroll or capture); "
                "leaving it to exit on its own.",
                timeout,
            )


class CaptureOrchestrator:
    """Drives one capture session over a FrameSource and a ScrollDriver.

    Args:
        source: Frame provider (live capture or recorded frames).
        driver: Scroll provider; called once before every frame after the first.
        config: Session tunables; validated here, before any capture.
        sleep: Delay function (injectable so tests run without real waits).
        clock: Monotonic clock used for the duration budget.
        warning_handler: Optional callback for explicit warning reporting.

    Raises from `run()`:
        InvalidRegion: Crop does not fit, or frame width changed mid-session.
        CaptureError: The source failed or was empty before any frame was captured.
    """

    def __init__(
        self,
        source: FrameSource,
        driver: ScrollDriver,
        config: Optional[SessionConfig] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        warning_handler: Optional[Callable[[str], None]] = None,
    ):
        self.source = source
        self.driver = driver
        self.session = CaptureSession(config=(config or SessionConfig()).validate())
        self.aligner = self.session.config.build_aligner(warning_handler=self._warn)
        self.warning_handler = warning_handler
        self._sleep = sleep
        self._clock = clock
        self._stop_event = threading.Event()
        self._pump: Optional[_FramePump] = None

    @property
    def state(self) -> CaptureState:
        return self.session.state

    def request_stop(self) -> None:
        """External stop signal; the session finalizes with what it has."""
        self._stop_event.set()

    def _warn(self, message: str) -> None:
        self.session.warnings.append(message)
        if self.warning_handler is not None:
            self.warning_handler(message)

    def _transition(self, state: CaptureState) -> None:
        logger.debug("session state %s -> %s", self.session.state.value, state.value)
        self.session.state = state

    # --- frame acquisition ---

    def _pull(self) -> Optional[Frame]:
        try:
            return self.source.next_frame()
        except CaptureError:
            raise
        except Exception as exc:
            raise CaptureError(f"Frame source failed: {exc}") from exc

    def _scroll(self) -> None:
        try:
            self.driver.step(self.session.config.scroll_key)
        except CaptureError:
            raise
        except Exception as exc:
            raise CaptureError(f"Scroll driver failed: {exc}") from exc
        self.session.scrolls += 1

    def _next_scrolled_frame(self) -> Tuple[str, Optional[Frame]]:
        """Scroll once, wait for the view to settle, capture.

        Returns ("frame", Frame), ("end", None) or ("stopped", None).
        """
        if self._pump is None:
            self._scroll()
            settle_s = self.session.config.scroll_delay_ms / 1000.0
            if settle_s > 0:
                self._sleep(settle_s)
            frame = self._pull()
            return ("end", None) if frame is None else ("frame", frame)

        kind, payload = self._pump.get(self._stop_event)
        if kind == "error":
            if isinstance(payload, CaptureError):
                raise payload
            raise CaptureError(f"Frame capture failed: {payload}") from payload
        if kind == "frame":
            self.session.scrolls += 1
            return "frame", payload
        return kind, None

    # --- stages ---

    def _prime(self) -> None:
        cfg = self.session.config
        if cfg.initial_delay_s > 0:
            logger.info("Starting capture in %s seconds...", cfg.initial_delay_s)
            self._sleep(cfg.initial_delay_s)
        frame = self._pull()
        if frame is None:
            raise CaptureError("Frame source produced no frames.")
        self.session.frames_captured += 1
        first = crop(frame, cfg.crop)
        self.session.accumulator.seed(first)
        self.session.previous = first
        self.session.frames_accepted += 1
        logger.info("Captured frame 1 (%sx%s)", first.width, first.height)

    def _budget_exhausted(self) -> Optional[StopReason]:
        cfg = self.session.config
        if cfg.max_scrolls is not None and self.session.scrolls >= cfg.max_scrolls:
            return StopReason.SCROLL_BUDGET
        if cfg.max_duration_s is not None and self.session.started_at is not None:
            if self._clock() - self.session.started_at >= cfg.max_duration_s:
                return StopReason.TIME_BUDGET
        return None

    def _capture_loop(self) -> StopReason:
        session = self.session
        cfg = session.config
        while True:
            budget = self._budget_exhausted()
            if budget is not None:
                return budget
            if self._stop_event.is_set():
                return StopReason.STOPPED

            kind, frame = self._next_scrolled_frame()
            if kind == "stopped" or self._stop_event.is_set():
                return StopReason.STOPPED
            if kind == "end":
                return StopReason.END_OF_INPUT

            session.frames_captured += 1
            current = crop(frame, cfg.crop)
            result = self.aligner.align(session.previous, current)
            session.alignments.append(result)
            logger.info(
                "frame %s: %s offset=%s score=%.4f confidence=%.4f",
                session.frames_captured,
                result.classification.value,
                result.offset,
                result.score,
                result.confidence,
            )

            session.accumulator.apply(current, result)
            if result.classification is Classification.ADVANCE:
                session.previous = current
                session.frames_accepted += 1
                session.consecutive_duplicates = 0
            elif result.classification is Classification.DUPLICATE:
                session.consecutive_duplicates += 1
                limit = cfg.duplicate_retry_limit
                if limit is not None and session.consecutive_duplicates > limit:
                    logger.info(
                        "No new content after %s consecutive duplicates; stopping.",
                        session.consecutive_duplicates,
                    )
                    return StopReason.STALLED
            else:
                logger.info("No overlap with previous frame; reached end of scrollable content.")
                return StopReason.END_OF_CONTENT

    def _start_pump(self) -> None:
        cfg = self.session.config
        max_steps = None
        if cfg.max_scrolls is not None:
            max_steps = max(0, cfg.max_scrolls - self.session.scrolls)
        self._pump = _FramePump(
            self.source,
            self.driver,
            cfg.scroll_key,
            cfg.scroll_delay_ms / 1000.0,
            self._sleep,
            max_steps=max_steps,
        )
        self._pump.start()

    def run(self) -> CaptureResult:
        """Run the session to completion and return the stitched result."""
        session = self.session
        if session.state is not CaptureState.IDLE:
            raise RuntimeError(f"Session already run (state={session.state.value}).")

        session.started_at = self._clock()
        self.aligner.reset()
        self._transition(CaptureState.PRIMING)
        try:
            self._prime()
        except (InvalidRegion, CaptureError):
            self._transition(CaptureState.ABORTED)
            raise

        self._transition(CaptureState.CAPTURING)
        aborted = False
        try:
            if session.config.prefetch:
                self._start_pump()
            session.stop_reason = self._capture_loop()
        except InvalidRegion:
            self._transition(CaptureState.ABORTED)
            raise
        except CaptureError as exc:
            aborted = True
            session.stop_reason = StopReason.CAPTURE_ERROR
            session.error = str(exc)
            logger.warning("Capture failed after %s frame(s): %s", session.frames_captured, exc)
        finally:
            if self._pump is not None:
                self._pump.close()

        self._transition(CaptureState.FINALIZING)
        seams = session.accumulator.seams
        image = session.accumulator.finalize()
        runtime_ms = int((self._clock() - session.started_at) * 1000)

        if aborted:
            status = CaptureStatus.ABORTED
            self._transition(CaptureState.ABORTED)
        else:
            status = CaptureStatus.STALLED if session.stop_reason is StopReason.STALLED else CaptureStatus.COMPLETED
            self._transition(CaptureState.DONE)

        logger.info(
            "Done! Final image size: %sx%s (%s, %s)",
            image.shape[1],
            image.shape[0],
            status.value,
            session.stop_reason.value,
        )
        return CaptureResult(
            image=image,
            status=status,
            stop_reason=session.stop_reason,
            alignments=list(session.alignments),
            frames_captured=session.frames_captured,
            frames_accepted=session.frames_accepted,
            seams=seams,
            warnings=list(session.warnings),
            error=session.error,
            runtime_ms=runtime_ms,
        )


def stitch_frames(frames: Iterable, config: Optional[SessionConfig] = None) -> CaptureResult:
    """Stitch an already-recorded frame sequence (no scrolling, no delays).

    Frames may be arrays or `Frame` objects. The config's delays are ignored
    and stall detection is off: a recording repeats each scroll position for
    as many frames as the view stood still, and those are skipped as
    duplicates until the content moves again.
    """
    cfg = replace(
        config or SessionConfig(),
        initial_delay_s=0.0,
        scroll_delay_ms=0,
        duplicate_retry_limit=None,
    )
    orchestrator = CaptureOrchestrator(ArrayFrameSource(frames), NullScrollDriver(), cfg)
    return orchestrator.run()
