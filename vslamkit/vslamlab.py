"""Command-line options and sequence lists for benchmark-lab style runs."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "RunOptions",
    "remove_substring",
    "padding_zeros",
    "parse_arguments",
    "load_mono_sequence",
    "load_rgbd_sequence",
]

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def remove_substring(text: str, substring: str) -> str:
    """Remove every occurrence of ``substring``, repeating until none is left."""
    if not substring:
        raise ValueError("substring must not be empty")
    while substring in text:
        text = text.replace(substring, "", 1)
    return text


def padding_zeros(number: str, width: int = 5) -> str:
    """Left-pad ``number`` with zeros up to ``width`` characters."""
    return "0" * max(0, width - len(number)) + number


def _parse_int(text: str) -> int:
    match = _LEADING_INT.match(text)
    if match is None:
        raise ValueError(f"invalid integer: {text!r}")
    return int(match.group(1))


@dataclass
class RunOptions:
    """Settings for one run, gathered from ``key:value`` arguments."""

    sequence_path: str = ""
    calibration_yaml: str = ""
    rgb_txt: str = ""
    exp_folder: str = ""
    exp_id: str = "0"
    settings_yaml: str = "orbslam2_settings.yaml"
    verbose: bool = True
    vocabulary: str = "Vocabulary/ORBvoc.txt"

    def results_prefix(self) -> str:
        """Path prefix of the trajectory files written for this run."""
        return f"{self.exp_folder}/{padding_zeros(self.exp_id)}"


_STRING_KEYS = (
    ("sequence_path:", "sequence_path", "Path to sequence"),
    ("calibration_yaml:", "calibration_yaml", "Path to calibration.yaml"),
    ("rgb_txt:", "rgb_txt", "Path to rgb_txt"),
    ("exp_folder:", "exp_folder", "Path to exp_folder"),
    ("exp_id:", "exp_id", "Exp id"),
    ("settings_yaml:", "settings_yaml", "Path to settings_yaml"),
)


def parse_arguments(argv: list[str]) -> RunOptions:
    """Build options from arguments of the form ``key:value``.

    Every argument is looked at, the program name included; arguments that
    contain no known key are ignored.
    """
    options = RunOptions()
    for arg in argv:
        for marker, field, label in _STRING_KEYS:
            if marker in arg:
                value = remove_substring(arg, marker)
                setattr(options, field, value)
                logger.info("%s = %s", label, value)
                break
        else:
            if "verbose:" in arg:
                options.verbose = bool(_parse_int(remove_substring(arg, "verbose:")))
                logger.info("Activate Visualization = %s", options.verbose)
            elif "vocabulary:" in arg:
                options.vocabulary = remove_substring(arg, "vocabulary:")
                logger.info("Path to vocabulary = %s", options.vocabulary)
    return options


def _sequence_rows(rgb_txt: str | Path):
    with open(rgb_txt, encoding="utf-8") as handle:
        for line in handle:
            line = line.rstrip("\r\n")
            if not line:
                continue
            tokens = line.split()
            if not tokens:
                raise ValueError(f"malformed sequence line: {line!r}")
            try:
                timestamp = float(tokens[0])
            except ValueError as exc:
                raise ValueError(f"malformed timestamp in line: {line!r}") from exc
            yield timestamp, tokens


def load_mono_sequence(
    sequence_path: str, rgb_txt: str | Path
) -> tuple[list[str], list[float]]:
    """Read ``timestamp image`` lines; return image paths and timestamps."""
    filenames: list[str] = []
    timestamps: list[float] = []
    for timestamp, tokens in _sequence_rows(rgb_txt):
        timestamps.append(timestamp)
        image = tokens[1] if len(tokens) > 1 else ""
        filenames.append(f"{sequence_path}/{image}")
    return filenames, timestamps


def load_rgbd_sequence(
    sequence_path: str, rgb_txt: str | Path
) -> tuple[list[str], list[float], list[str]]:
    """Read ``timestamp rgb timestamp depth`` lines.

    Returns colour image paths, timestamps and depth image paths.
    """
    rgb_files: list[str] = []
    timestamps: list[float] = []
    depth_files: list[str] = []
    for timestamp, tokens in _sequence_rows(rgb_txt):
        timestamps.append(timestamp)
        rgb = tokens[1] if len(tokens) > 1 else ""
        depth = tokens[3] if len(tokens) > 3 else ""
        rgb_files.append(f"{sequence_path}/{rgb}")
        depth_files.append(f"{sequence_path}/{depth}")
    return rgb_files, timestamps, depth_files