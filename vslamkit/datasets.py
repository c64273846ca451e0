"""Image lists and timing helpers for stereo benchmark sequences."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Sequence

__all__ = [
    "StereoSequence",
    "TrackingStatistics",
    "load_kitti_sequence",
    "load_euroc_sequence",
    "frame_wait_time",
    "tracking_statistics",
]


@dataclass
class StereoSequence:
    """Paths of left and right images with their timestamps in seconds."""

    left_images: list[str] = field(default_factory=list)
    right_images: list[str] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.timestamps)

    def frames(self) -> Iterator[tuple[str, str, float]]:
        """Yield ``(left, right, timestamp)`` for every frame in order."""
        return zip(self.left_images, self.right_images, self.timestamps)


@dataclass(frozen=True)
class TrackingStatistics:
    """Median and mean of the per-frame tracking durations."""

    median: float
    mean: float
    total: float
    count: int


def _non_empty_lines(path: str | Path) -> Iterator[str]:
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            line = line.rstrip("\r\n")
            if line:
                yield line


def _leading_float(line: str) -> float:
    tokens = line.split()
    if not tokens:
        raise ValueError(f"malformed timestamp line: {line!r}")
    try:
        return float(tokens[0])
    except ValueError as exc:
        raise ValueError(f"malformed timestamp line: {line!r}") from exc


def load_kitti_sequence(sequence_path: str | Path) -> StereoSequence:
    """Read ``times.txt`` of a sequence and list its numbered image pairs."""
    base = str(sequence_path)
    timestamps = [_leading_float(line) for line in _non_empty_lines(f"{base}/times.txt")]
    left = [f"{base}/image_0/{i:06d}.png" for i in range(len(timestamps))]
    right = [f"{base}/image_1/{i:06d}.png" for i in range(len(timestamps))]
    return StereoSequence(left, right, timestamps)


def load_euroc_sequence(
    left_path: str | Path, right_path: str | Path, times_path: str | Path
) -> StereoSequence:
    """Read a file of nanosecond timestamps that also name the image files."""
    sequence = StereoSequence()
    for line in _non_empty_lines(times_path):
        sequence.left_images.append(f"{left_path}/{line}.png")
        sequence.right_images.append(f"{right_path}/{line}.png")
        sequence.timestamps.append(_leading_float(line) / 1e9)
    return sequence


def frame_wait_time(timestamps: Sequence[float], index: int, elapsed: float) -> float:
    """Seconds to wait after frame ``index`` so playback keeps the sequence rate.

    The frame period is the gap to the next timestamp, or to the previous one
    for the last frame; a single-frame sequence has no period.
    """
    count = len(timestamps)
    if not 0 <= index < count:
        raise IndexError("frame index out of range")
    period = 0.0
    if index < count - 1:
        period = timestamps[index + 1] - timestamps[index]
    elif index > 0:
        period = timestamps[index] - timestamps[index - 1]
    return period - elapsed if elapsed < period else 0.0


def tracking_statistics(durations: Sequence[float]) -> TrackingStatistics:
    """Summarise tracking durations: the median is the upper middle value."""
    ordered = sorted(durations)
    if not ordered:
        raise ValueError("no durations to summarise")
    total = sum(ordered)
    return TrackingStatistics(
        median=ordered[len(ordered) // 2],
        mean=total / len(ordered),
        total=total,
        count=len(ordered),
    )