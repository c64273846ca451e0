"""Tracking states and the status summary shown for each processed frame."""

from __future__ import annotations

from enum import IntEnum
from typing import Sequence

__all__ = ["TrackingState", "status_text", "classify_matches"]


class TrackingState(IntEnum):
    """State of the tracker after processing a frame."""

    SYSTEM_NOT_READY = -1
    NO_IMAGES_YET = 0
    NOT_INITIALIZED = 1
    OK = 2
    LOST = 3


def status_text(
    state: int,
    only_tracking: bool = False,
    n_keyframes: int = 0,
    n_map_points: int = 0,
    n_tracked: int = 0,
    n_tracked_vo: int = 0,
) -> str:
    """Return the one-line status banner for a tracking state."""
    state = TrackingState(state)
    if state is TrackingState.NO_IMAGES_YET:
        return " WAITING FOR IMAGES"
    if state is TrackingState.NOT_INITIALIZED:
        return " TRYING TO INITIALIZE "
    if state is TrackingState.LOST:
        return " TRACK LOST. TRYING TO RELOCALIZE "
    if state is TrackingState.SYSTEM_NOT_READY:
        return " LOADING ORB VOCABULARY. PLEASE WAIT..."
    mode = "LOCALIZATION | " if only_tracking else "SLAM MODE |  "
    text = f"{mode}KFs: {n_keyframes}, MPs: {n_map_points}, Matches: {n_tracked}"
    if n_tracked_vo > 0:
        text += f", + VO matches: {n_tracked_vo}"
    return text


def classify_matches(
    observation_counts: Sequence[int | None], outliers: Sequence[bool]
) -> tuple[list[bool], list[bool]]:
    """Split tracked features into map matches and visual-odometry matches.

    ``observation_counts`` holds, per feature, the number of keyframes that
    observe its map point, or ``None`` where the feature has no map point.
    Returns two flag lists: matched to the map, and matched to a point seen
    only by the previous frame.
    """
    if len(observation_counts) != len(outliers):
        raise ValueError("observation counts and outlier flags differ in length")
    in_map: list[bool] = []
    visual_odometry: list[bool] = []
    for count, outlier in zip(observation_counts, outliers):
        tracked = count is not None and not outlier
        in_map.append(tracked and count > 0)
        visual_odometry.append(tracked and count <= 0)
    return in_map, visual_odometry