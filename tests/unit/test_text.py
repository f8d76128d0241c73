"""Unit tests for text normalisation utilities."""

from cinewatch.utils.text import extract_year, normalise_title, slugify


class TestNormaliseTitle:
    def test_passthrough_clean_title(self) -> None:
        assert normalise_title("Nosferatu") == "Nosferatu"

    def test_removes_year_suffix(self) -> None:
        assert normalise_title("Nosferatu (2024)") == "Nosferatu"

    def test_removes_year_range_suffix(self) -> None:
        assert normalise_title("The Crown (2016-23)") == "The Crown"

    def test_removes_event_prefixes(self) -> None:
        assert normalise_title("Preview: The Film") == "The Film"
        assert normalise_title("Q&A: The Film") == "The Film"
        assert normalise_title("Relaxed Screening: The Film") == "The Film"
        assert normalise_title("Doc House: The Film") == "The Film"

    def test_removes_stacked_prefixes(self) -> None:
        assert normalise_title("Film Club: Preview: Certain Women") == "Certain Women"

    def test_prefix_removal_is_case_insensitive(self) -> None:
        assert normalise_title("PREVIEW: The Film") == "The Film"

    def test_keeps_colon_that_is_part_of_the_title(self) -> None:
        assert normalise_title("Mission: Impossible (1996)") == "Mission: Impossible"

    def test_removes_dash_suffix_before_year(self) -> None:
        assert normalise_title("Nosferatu (1922) — 4K Restoration") == "Nosferatu"

    def test_keeps_hyphenated_titles(self) -> None:
        assert normalise_title("Spider-Man: Into the Spider-Verse") == "Spider-Man: Into the Spider-Verse"

    def test_removes_square_bracket_tags(self) -> None:
        assert normalise_title("Nosferatu [Q&A] (2024)") == "Nosferatu"

    def test_removes_trailing_non_numeric_parenthetical(self) -> None:
        assert normalise_title("Nosferatu (Director's Cut)") == "Nosferatu"

    def test_collapses_whitespace(self) -> None:
        assert normalise_title("  The   Film  ") == "The Film"

    def test_empty_string(self) -> None:
        assert normalise_title("") == ""


class TestExtractYear:
    def test_year_suffix(self) -> None:
        assert extract_year("Nosferatu (1922)") == 1922

    def test_year_before_dash_suffix(self) -> None:
        assert extract_year("Nosferatu (1922) - Live Score") == 1922

    def test_no_year(self) -> None:
        assert extract_year("Nosferatu") is None
        assert extract_year("2001: A Space Odyssey") is None


class TestSlugify:
    def test_basic(self) -> None:
        assert slugify("The Film") == "the-film"

    def test_strips_punctuation(self) -> None:
        assert slugify("Amélie: Le Fabuleux!") == "amlie-le-fabuleux"

    def test_collapses_separators(self) -> None:
        assert slugify("  A -- B__C ") == "a-b-c"
