"""Unit tests for filename parsing and file discovery."""

import os
from datetime import datetime, timezone

import pytest

from catalogsync.core.scanner import FileScanner, is_extras_file
from catalogsync.utils.filename import FilenameParser, is_video_file


@pytest.fixture
def parser():
    return FilenameParser()


class TestMovies:
    """Test movie file names."""

    @pytest.mark.parametrize(
        "name,title,year",
        [
            ("Heat (1995).mkv", "Heat", 1995),
            ("Heat.1995.1080p.BluRay.x264.mkv", "Heat", 1995),
            ("Blade_Runner_2049_2017_2160p.mkv", "Blade Runner 2049", 2017),
            ("1917.2019.1080p.mkv", "1917", 2019),
            ("Alien [1979] 1080p.mkv", "Alien", 1979),
            ("Some Movie 1080p WEB-DL.mkv", "Some Movie", None),
        ],
    )
    def test_title_and_year(self, parser, name, title, year):
        """Should split title from year and quality tags."""
        parsed = parser.parse(name)

        assert parsed.media_type == "movie"
        assert parsed.title == title
        assert parsed.year == year

    def test_edition_tag(self, parser):
        """Should read the edition tag and keep it out of the title."""
        parsed = parser.parse("/movies/Heat (1995) {edition-Director's Cut}.mkv")

        assert parsed.title == "Heat"
        assert parsed.edition == "Director's Cut"


class TestEpisodes:
    """Test episode file names."""

    @pytest.mark.parametrize(
        "name,season,episode",
        [
            ("Show.S01E02.720p.mkv", 1, 2),
            ("Show 1x02.mkv", 1, 2),
            ("Show Season 1 Episode 2.mkv", 1, 2),
            ("Show.S01.E02.mkv", 1, 2),
        ],
    )
    def test_patterns(self, parser, name, season, episode):
        """Should recognize common numbering styles."""
        parsed = parser.parse(name)

        assert parsed.media_type == "episode"
        assert parsed.title == "Show"
        assert (parsed.season_number, parsed.episode_number) == (season, episode)

    def test_multi_episode_and_title(self, parser):
        """Should read episode ranges and titles."""
        parsed = parser.parse("The Show (2010) - S02E03-E04 - The Title 1080p.mkv")

        assert parsed.title == "The Show"
        assert parsed.year == 2010
        assert parsed.episode_number_end == 4
        assert parsed.episode_title == "The Title"

    def test_series_from_folder(self, parser):
        """Should take the series name from the folder when the file has none."""
        parsed = parser.parse("S01E01.mkv", folder_context="/tv/Great Show/Season 1")

        assert parsed.title == "Great Show"


class TestScanner:
    """Test FileScanner."""

    def test_finds_video_files_and_skips_extras(self, tmp_path):
        """Should skip extras folders, extras names and non-video files."""
        (tmp_path / "Movie").mkdir()
        (tmp_path / "Movie" / "Extras").mkdir()
        (tmp_path / "Movie" / "Movie.mkv").touch()
        (tmp_path / "Movie" / "Movie-trailer.mkv").touch()
        (tmp_path / "Movie" / "Movie.nfo").touch()
        (tmp_path / "Movie" / "Extras" / "Bonus.mkv").touch()

        files = FileScanner().scan(tmp_path)

        assert [f.name for f in files] == ["Movie.mkv"]

    def test_since_filters_by_mtime(self, tmp_path):
        """Should return only files modified after since."""
        old = tmp_path / "old.mkv"
        new = tmp_path / "new.mkv"
        old.touch()
        new.touch()
        os.utime(old, (1_600_000_000, 1_600_000_000))

        files = FileScanner().scan(tmp_path, since=datetime(2021, 1, 1, tzinfo=timezone.utc))

        assert files == [new]

    def test_missing_path(self, tmp_path):
        """Should raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            FileScanner().scan(tmp_path / "missing")

    def test_helpers(self):
        """Should classify names."""
        assert is_video_file("a.M2TS")
        assert not is_video_file("a.srt")
        assert is_extras_file("Movie.Behind.The.Scenes.mkv")
        assert not is_extras_file("The Scenery (2001).mkv")
