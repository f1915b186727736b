# teamchat/client/recorder.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
import logging
import time

from teamchat.client.notifier import Notifier
from teamchat.schemas.message import VOICE_TYPE

logger = logging.getLogger(__name__)

MICROPHONE_ERROR = "Could not access microphone"
RECORDING_ERROR = "Failed to save recording"


class AudioCapture(ABC):
    """An open microphone stream."""

    @abstractmethod
    def finish(self) -> bytes:
        """Stop capturing and return the encoded audio."""

    @abstractmethod
    def release(self) -> None:
        """Give the device back. Safe to call more than once."""


class AudioInput(ABC):
    """Source of microphone streams. `open` raises PermissionError when access is denied."""

    @abstractmethod
    async def open(self) -> AudioCapture:
        ...


@dataclass(frozen=True)
class AudioBlob:
    data: bytes
    duration: float
    type: str = VOICE_TYPE

    @property
    def size(self) -> int:
        return len(self.data)


class RecorderState(str, Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    RECORDING = "recording"
    STOPPED = "stopped"
    CANCELLED = "cancelled"


class RecorderBusyError(RuntimeError):
    pass


def format_recording_time(seconds: float) -> str:
    seconds = int(seconds)
    return f"{seconds // 60}:{seconds % 60:02d}"


class VoiceRecorder:
    """Single-session voice note recorder.

    IDLE -> ACQUIRING -> RECORDING -> STOPPED (blob kept) or CANCELLED (blob dropped).
    The device is released on every way out of RECORDING. A device that
    arrives after the session was cancelled is released straight away.
    """

    def __init__(self, audio_input: AudioInput, notifier: Notifier, clock: Callable[[], float] = time.monotonic):
        self._audio_input = audio_input
        self._notifier = notifier
        self._clock = clock
        self.state = RecorderState.IDLE
        self.blob: Optional[AudioBlob] = None
        self._capture: Optional[AudioCapture] = None
        self._started_at: Optional[float] = None

    @property
    def is_recording(self) -> bool:
        return self.state == RecorderState.RECORDING

    @property
    def is_busy(self) -> bool:
        return self.state in (RecorderState.ACQUIRING, RecorderState.RECORDING)

    async def start(self) -> bool:
        if self.is_busy:
            raise RecorderBusyError("A recording is already in progress")

        self.blob = None
        self.state = RecorderState.ACQUIRING
        try:
            capture = await self._audio_input.open()
        except PermissionError as e:
            logger.warning(f"Microphone access denied: {e}")
            self._notifier.error(MICROPHONE_ERROR)
            if self.state == RecorderState.ACQUIRING:
                self.state = RecorderState.IDLE
            return False
        except BaseException:
            if self.state == RecorderState.ACQUIRING:
                self.state = RecorderState.IDLE
            raise

        if self.state != RecorderState.ACQUIRING:
            logger.info("Recording cancelled while the microphone was opening")
            capture.release()
            return False

        self._capture = capture
        self._started_at = self._clock()
        self.state = RecorderState.RECORDING
        return True

    def stop(self) -> Optional[AudioBlob]:
        if self.state != RecorderState.RECORDING:
            return None
        duration = self.elapsed()
        capture = self._capture
        try:
            data = capture.finish()
        except Exception:
            self.blob = None
            self.state = RecorderState.CANCELLED
            raise
        finally:
            self._release()
        self.blob = AudioBlob(data=data, duration=duration)
        self.state = RecorderState.STOPPED
        return self.blob

    def cancel(self) -> None:
        """Abort a recording or drop a stopped one."""
        self._release()
        self.blob = None
        self.state = RecorderState.CANCELLED

    discard = cancel

    def take_blob(self) -> Optional[AudioBlob]:
        """Hand over the stopped recording and return to idle."""
        blob, self.blob = self.blob, None
        if not self.is_busy:
            self.state = RecorderState.IDLE
        return blob

    def elapsed(self) -> float:
        if self.state != RecorderState.RECORDING or self._started_at is None:
            return self.blob.duration if self.blob else 0.0
        return self._clock() - self._started_at

    def _release(self) -> None:
        capture, self._capture = self._capture, None
        self._started_at = None
        if capture is not None:
            capture.release()
