from __future__ import annotations

import sys
import threading

_SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"


class Spinner:
    """Thread-based spinner that renders on the current line using \\r."""

    def __init__(self, prefix: str = "", label: str = " Thinking..."):
        self._prefix = prefix
        self._label = label
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._frame_width = 1 + len(label)

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._stop.is_set():
            return
        self._stop.set()
        if self._thread:
            self._thread.join()
        clear = self._prefix + " " * self._frame_width
        sys.stdout.write("\r" + clear + "\r" + self._prefix)
        sys.stdout.flush()

    def _run(self) -> None:
        i = 0
        try:
            while not self._stop.is_set():
                frame = _SPINNER_FRAMES[i % len(_SPINNER_FRAMES)] + self._label
                sys.stdout.write("\r" + self._prefix + frame)
                sys.stdout.flush()
                self._stop.wait(0.08)
                i += 1
        except (UnicodeEncodeError, OSError):
            pass  # Terminal doesn't support these characters; fail silently


class StreamPrinter:
    """Prints fragments as they arrive, with a spinner until the first one."""

    def __init__(self, prefix: str, label: str = " Thinking..."):
        self._prefix = prefix
        self._label = label
        self._spinner: Spinner | None = None

    def begin(self) -> None:
        self._spinner = Spinner(prefix=self._prefix, label=self._label)
        self._spinner.start()

    def __call__(self, fragment: str) -> None:
        self._stop_spinner()
        sys.stdout.write(fragment)
        sys.stdout.flush()

    def end(self) -> None:
        self._stop_spinner()
        sys.stdout.write("\n")
        sys.stdout.flush()

    def _stop_spinner(self) -> None:
        if self._spinner is not None:
            self._spinner.stop()
            self._spinner = None
