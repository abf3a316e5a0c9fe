"""Tests for artwork filename conventions."""

import pytest

from layermedia.fanout.naming import (
    UNKNOWN_ARTIST,
    ArtworkName,
    folder_name,
    parse_filename,
    sanitize_for_filename,
)


class TestParseFilename:
    def test_two_word_artist(self):
        assert parse_filename("sam_shull_color_spots_v1_30s_4k.mp4") == ArtworkName(
            "sam_shull", "color_spots", 1
        )

    def test_one_word_artist(self):
        assert parse_filename("smith_colorflow_v2.mov") == ArtworkName("smith", "colorflow", 2)

    def test_no_marker(self):
        assert parse_filename("untitled.mp4") == ArtworkName(UNKNOWN_ARTIST, "untitled", 1)

    def test_single_word_before_marker(self):
        assert parse_filename("spots_v3_10s.mp4") == ArtworkName(UNKNOWN_ARTIST, "spots", 3)

    def test_marker_is_case_insensitive(self):
        assert parse_filename("ann_lee_waves_V4.mp4").variation == 4

    def test_directory_is_ignored(self):
        assert parse_filename("/renders/smith_colorflow_v2.mov").artist == "smith"

    def test_version_like_words_are_not_markers(self):
        # "_v2x" is not a marker: it must be followed by "_" or the end
        name = parse_filename("artist_v2x_title.mp4")
        assert name.variation == 1

    @pytest.mark.parametrize("filename", ["", ".mp4", "_v.mp4", "___", "v1.mp4", "_v1.mp4"])
    def test_never_raises(self, filename):
        assert isinstance(parse_filename(filename), ArtworkName)


class TestSanitize:
    def test_lowercase_and_collapse(self):
        assert sanitize_for_filename("Sam  Shull") == "sam_shull"

    def test_punctuation(self):
        assert sanitize_for_filename("Color-Spots: #2!") == "color_spots_2"

    def test_trims(self):
        assert sanitize_for_filename("  --Hello--  ") == "hello"


class TestFolderName:
    def test_folder(self):
        assert folder_name("sam_shull", "color_spots", 1) == "sam_shull_color_spots_v1"
        assert ArtworkName("smith", "colorflow", 2).folder_name == "smith_colorflow_v2"
