"""Unit tests for edition name extraction."""

from catalogsync.core.versions import (
    VersionNameExtractor,
    basename,
    build_label,
    common_word_prefix,
    edition_tag,
    is_technical_word,
    strip_extension,
    strip_technical_tokens,
    title_case,
)
from catalogsync.models.media import MediaVersion


def _versions(*paths, **fields):
    return [MediaVersion(file_path=p, **fields) for p in paths]


class TestExtractor:
    """Test VersionNameExtractor."""

    def test_extended_cut_against_plain_release(self):
        """Should name the extra words and leave the plain file without an edition."""
        versions = _versions(
            "/movies/Movie.2020.Extended.Cut.1080p.BluRay.x264.mkv",
            "/movies/Movie.2020.1080p.BluRay.x264.mkv",
            resolution="1080p",
        )

        VersionNameExtractor().extract(versions)

        assert versions[0].edition == "Extended Cut"
        assert versions[1].edition is None
        assert versions[0].label == "1080p Extended Cut"
        assert versions[1].label == "1080p"

    def test_two_named_editions(self):
        """Should strip technical tokens from both remainders."""
        versions = _versions(
            "Blade.Runner.1982.Directors.Cut.2160p.mkv",
            "Blade.Runner.1982.The.Final.Cut.2160p.HDR.mkv",
        )

        VersionNameExtractor().extract(versions)

        assert versions[0].edition == "Directors Cut"
        assert versions[1].edition == "The Final Cut"

    def test_lowercase_edition_is_title_cased(self):
        """Should title-case without capitalizing after an apostrophe."""
        versions = _versions(
            "movie.2020.director's.cut.mkv",
            "movie.2020.theatrical.mkv",
        )

        VersionNameExtractor().extract(versions)

        assert versions[0].edition == "Director's Cut"
        assert versions[1].edition == "Theatrical"

    def test_edition_tag_wins(self):
        """Should use an explicit {edition-...} tag instead of diffing."""
        versions = _versions(
            "/movies/Movie (2020)/Movie (2020) {edition-Theatrical} 1080p.mkv",
            "/movies/Movie (2020)/Movie (2020) 2160p.mkv",
        )

        VersionNameExtractor().extract(versions)

        assert versions[0].edition == "Theatrical"
        assert versions[1].edition is None

    def test_existing_edition_kept(self):
        """Should not overwrite an edition set by the provider."""
        versions = _versions("Movie.2020.Unrated.mkv", "Movie.2020.mkv")
        versions[0].edition = "Uncut"

        VersionNameExtractor().extract(versions)

        assert versions[0].edition == "Uncut"

    def test_single_version_gets_label_only(self):
        """Should not derive an edition with nothing to compare against."""
        versions = _versions(
            "Movie.2020.Extended.Cut.2160p.mkv",
            resolution="4K",
            hdr_format="Dolby Vision",
        )

        VersionNameExtractor().extract(versions)

        assert versions[0].edition is None
        assert versions[0].label == "4K Dolby Vision"

    def test_identical_technical_variants(self):
        """Should leave editions unset when only technical tokens differ."""
        versions = _versions(
            "Movie.2020.1080p.x264.mkv",
            "Movie.2020.2160p.HEVC.HDR10.mkv",
        )

        VersionNameExtractor().extract(versions)

        assert versions[0].edition is None
        assert versions[1].edition is None


class TestHelpers:
    """Test the filename helpers."""

    def test_basename_handles_both_separators(self):
        """Should split on / and \\."""
        assert basename("/a/b/c.mkv") == "c.mkv"
        assert basename("D:\\Movies\\c.mkv") == "c.mkv"
        assert basename("c.mkv") == "c.mkv"

    def test_strip_extension_only_media(self):
        """Should leave non-media suffixes alone."""
        assert strip_extension("Movie.mkv") == "Movie"
        assert strip_extension("Album Vol.1") == "Album Vol.1"
        assert strip_extension(".mkv") == ".mkv"

    def test_common_word_prefix(self):
        """Should compare words case-insensitively."""
        assert common_word_prefix(["Movie 2020 Extended", "movie 2020 Theatrical"]) == "Movie 2020"
        assert common_word_prefix(["A", "B"]) == ""
        assert common_word_prefix([]) == ""

    def test_technical_words(self):
        """Should recognize resolutions, codecs and bare numbers."""
        assert is_technical_word("1080p")
        assert is_technical_word("[x265]")
        assert is_technical_word("12bit")
        assert is_technical_word("2020")
        assert not is_technical_word("Extended")

    def test_strip_technical_phrases(self):
        """Should drop multi-word phrases before single words."""
        assert strip_technical_tokens("Remastered Dolby Vision DTS-HD MA 7.1") == "Remastered"

    def test_title_case(self):
        """Should capitalize word starts only."""
        assert title_case("the final cut") == "The Final Cut"

    def test_edition_tag(self):
        """Should read the tag from the file name only."""
        assert edition_tag("/x/Movie {edition-Director's Cut}.mkv") == "Director's Cut"
        assert edition_tag("/x/Movie.mkv") is None

    def test_build_label(self):
        """Should omit HDR "None" and a missing edition."""
        assert build_label("1080p", "None", None) == "1080p"
        assert build_label("4K", "HDR10", "IMAX") == "4K HDR10 IMAX"
