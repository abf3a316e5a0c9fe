"""Artwork filename conventions.

Files are named ``{artist}_{title}_v{variation}[_{metadata}...].ext``, e.g.
``sam_shull_color_spots_v1_30s_4k.mp4``. The ``_v{n}`` token (the
variation marker) ends the human-readable part.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

UNKNOWN_ARTIST = "unknown"

_VARIATION_MARKER = re.compile(r"_v(\d+)(?:_|$)", re.IGNORECASE)


@dataclass(frozen=True)
class ArtworkName:
    artist: str
    title: str
    variation: int = 1

    @property
    def folder_name(self) -> str:
        return folder_name(self.artist, self.title, self.variation)


def parse_filename(filename: str) -> ArtworkName:
    """Split a filename into artist, title and variation.

    Artist names are assumed to be one or two words: with three or more
    words before the marker the first two are the artist, with two words
    the first is. Anything unparseable falls back to ``unknown``; this
    never raises.
    """
    stem = Path(filename).stem

    match = _VARIATION_MARKER.search(stem)
    if match:
        variation = int(match.group(1))
        before = stem[: match.start()]
        parts = before.split("_")
        if len(parts) >= 3:
            return ArtworkName(f"{parts[0]}_{parts[1]}", "_".join(parts[2:]), variation)
        if len(parts) == 2:
            return ArtworkName(parts[0], parts[1], variation)
        return ArtworkName(UNKNOWN_ARTIST, before or stem, variation)

    parts = stem.split("_")
    if len(parts) >= 2:
        return ArtworkName(parts[0], "_".join(parts[1:]), 1)
    return ArtworkName(UNKNOWN_ARTIST, stem, 1)


def sanitize_for_filename(text: str) -> str:
    """Lowercase, runs of non-alphanumerics collapsed to one underscore, trimmed."""
    return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")


def folder_name(artist: str, title: str, variation: int) -> str:
    return f"{artist}_{title}_v{variation}"
