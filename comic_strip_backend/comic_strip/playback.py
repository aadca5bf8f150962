"""
Sequential panel playback with narration.

The engine owns one audio slot. Whatever is playing is stopped before
anything else starts, and completion callbacks from a handle that has since
been stopped are ignored.
"""
import logging
from typing import Callable, List, Optional, Protocol, Sequence, Union

from .errors import PlaybackError
from .models import DeviceSpeech, Phase, PipelineState, PlaybackState, RemoteAudio

logger = logging.getLogger(__name__)

Handle = Union[RemoteAudio, DeviceSpeech]


class AudioSink(Protocol):
    """Plays one handle at a time. `start` raises PlaybackError if the handle cannot play."""

    def start(self, handle: Handle, on_complete: Callable[[], None]) -> None: ...

    def stop(self) -> None: ...


class PlaybackEngine:
    def __init__(self, panel_audio: Sequence[Optional[Handle]], sink: AudioSink):
        if not panel_audio:
            raise ValueError("nothing to play: no panels")
        self._audio: List[Optional[Handle]] = list(panel_audio)
        self._sink = sink
        self._index = 0
        self._playing = False
        self._active: Optional[Handle] = None
        self._generation = 0
        self._observers: List[Callable[[PlaybackState], None]] = []

    @classmethod
    def for_pipeline(cls, state: PipelineState, sink: AudioSink) -> "PlaybackEngine":
        if state.phase != Phase.READY:
            raise ValueError(f"playback needs a finished comic, pipeline is {state.phase.value}")
        return cls(state.panel_audio, sink)

    @property
    def state(self) -> PlaybackState:
        return PlaybackState(
            current_panel_index=self._index,
            is_playing=self._playing,
            panel_count=len(self._audio),
            active_kind=self._active.kind if self._active is not None else None,
        )

    def subscribe(self, observer: Callable[[PlaybackState], None]) -> Callable[[], None]:
        self._observers.append(observer)
        return lambda: self._observers.remove(observer) if observer in self._observers else None

    def _notify(self):
        snapshot = self.state
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                logger.exception("Playback observer failed")

    def _next_audible(self, start: int) -> Optional[int]:
        for i in range(start, len(self._audio)):
            if self._audio[i] is not None:
                return i
        return None

    def _release(self):
        # Bumping the generation orphans the stopped handle's completion callback.
        self._generation += 1
        if self._active is not None:
            self._active = None
            self._sink.stop()

    def _start_current(self) -> bool:
        target = self._next_audible(self._index)
        if target is None:
            return False
        self._release()
        self._index = target
        handle = self._audio[target]
        generation = self._generation
        self._active = handle
        self._playing = True
        try:
            self._sink.start(handle, lambda: self._on_complete(generation))
        except PlaybackError as e:
            logger.warning(f"Could not play narration for panel {target + 1}: {e}")
            if generation == self._generation:
                self._active = None
                self._playing = False
        self._notify()
        return True

    def _on_complete(self, generation: int):
        if generation != self._generation:
            return
        self.advance_on_completion()

    def play(self):
        if self._next_audible(self._index) is None:
            return
        self._start_current()

    def pause(self):
        self._release()
        self._playing = False
        self._notify()

    def toggle(self):
        if self._playing:
            self.pause()
        else:
            self.play()

    def advance_on_completion(self):
        self._release()
        if self._index >= len(self._audio) - 1:
            self._playing = False
            self._notify()
            return
        self._index += 1
        if not self._start_current():
            # Only silent panels remain.
            self._index = len(self._audio) - 1
            self._playing = False
            self._notify()

    def _move(self, step: int):
        was_playing = self._playing
        self._release()
        self._playing = False
        self._index = max(0, min(len(self._audio) - 1, self._index + step))
        if was_playing and self._audio[self._index] is not None:
            self._start_current()
        else:
            self._notify()

    def next(self):
        self._move(1)

    def previous(self):
        self._move(-1)

    def replay(self):
        self._release()
        self._playing = False
        self._index = 0
        if not self._start_current():
            self._notify()

    def reset(self):
        self._release()
        self._index = 0
        self._playing = False
        self._notify()

    def close(self):
        self._release()
        self._playing = False
        self._observers.clear()
