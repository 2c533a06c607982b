"""Debugging aids: thread dumps, CPU profiles and heap profiles."""

from __future__ import annotations

import gc
import sys
import threading
import time
import traceback
from collections import Counter
from typing import IO, Any

_lock = threading.Lock()


class _CallProfiler:
    """Records call counts and time spent per Python function."""

    def __init__(self) -> None:
        self._stats: dict[tuple[str, int, str], list[Any]] = {}
        self._local = threading.local()

    def _stack(self) -> list[tuple[Any, float]]:
        stack = getattr(self._local, "stack", None)
        if stack is None:
            stack = []
            self._local.stack = stack
        return stack

    def _hook(self, frame: Any, event: str, arg: Any) -> None:
        if event == "call":
            self._stack().append((frame, time.perf_counter()))
        elif event == "return":
            stack = self._stack()
            if stack and stack[-1][0] is frame:
                _, started = stack.pop()
                code = frame.f_code
                key = (code.co_filename, code.co_firstlineno, code.co_name)
                entry = self._stats.setdefault(key, [0, 0.0])
                entry[0] += 1
                entry[1] += time.perf_counter() - started

    def enable(self) -> None:
        threading.setprofile(self._hook)
        sys.setprofile(self._hook)

    def disable(self) -> None:
        sys.setprofile(None)
        threading.setprofile(None)

    def report(self) -> str:
        rows = sorted(self._stats.items(), key=lambda item: item[1][1], reverse=True)
        total = sum(calls for calls, _ in self._stats.values())
        lines = [f"cpu profile: {total} calls\n"]
        for (filename, line, name), (calls, seconds) in rows:
            lines.append(f"{calls}\t{seconds:.6f}\t{filename}:{line}({name})\n")
        return "".join(lines)


_profiler: _CallProfiler | None = None
_profile_file: IO[str] | None = None


def get_thread_dump() -> str:
    """Return the stack traces of all running threads."""
    with _lock:
        names = {t.ident: t.name for t in threading.enumerate()}
        parts = []
        for ident, frame in sys._current_frames().items():
            name = names.get(ident, "unknown")
            parts.append(f"Thread {name} (id {ident}):\n")
            parts.extend(traceback.format_stack(frame))
            parts.append("\n")
        return "".join(parts)


def start_cpu_profile(file_path: str) -> None:
    """Start CPU profiling; the result is written to file_path when stopped."""
    global _profiler, _profile_file
    with _lock:
        if not file_path:
            raise ValueError("file path is empty")
        if _profiler is not None:
            raise RuntimeError("CPU profiling is already started")
        out = open(file_path, "w", encoding="utf-8")
        profiler = _CallProfiler()
        _profiler = profiler
        _profile_file = out
        profiler.enable()


def stop_cpu_profile() -> None:
    """Stop CPU profiling and save the collected statistics, if it was running."""
    global _profiler, _profile_file
    with _lock:
        profiler, out = _profiler, _profile_file
        _profiler = None
        _profile_file = None
        if profiler is None or out is None:
            return
        profiler.disable()
        with out:
            out.write(profiler.report())


def get_heap_profile(file_path: str) -> None:
    """Collect garbage, then write live object counts by type to file_path."""
    with _lock:
        if not file_path:
            raise ValueError("file path is empty")
        with open(file_path, "w", encoding="utf-8") as out:
            gc.collect()
            counts = Counter(type(obj).__qualname__ for obj in gc.get_objects())
            out.write(f"heap profile: {sum(counts.values())} objects\n")
            for type_name, count in counts.most_common():
                out.write(f"{count}\t{type_name}\n")