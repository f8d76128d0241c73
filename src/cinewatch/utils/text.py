"""Title normalisation shared by the adapters and film matching."""

import re

# Event-series and screening-type labels that cinemas put before the film title
_TITLE_PREFIXES = re.compile(
    r"^(?:"
    r"preview|sneak preview|special screening|member screening|q&a|intro|"
    r"film club|doc ?house|documentary|shorts(?: club)?|"
    r"relaxed(?: screening)?|dementia friendly|autism friendly|"
    r"parent & baby|baby cinema|silver screen|nt live|roh"
    r"):\s+",
    re.IGNORECASE,
)

_DASH_SUFFIX = re.compile(r"\s+[-–—]\s+\S.*$")
_YEAR_SUFFIX = re.compile(r"\s*\((\d{4})(?:-\d{2,4})?\)\s*$")
_BRACKET_TAG = re.compile(r"\s*\[[^\]]+\]\s*")
_TRAILING_NOTE = re.compile(r"\s*\([^)]*(?<!\d)\)\s*$")


def normalise_title(title: str) -> str:
    """
    Reduce a cinema's title string to the bare film title.

    "Preview: Film (1929) — 4K Restoration [35mm]" → "Film". Hyphenated
    titles such as "Spider-Man" are kept intact, and so are mid-title
    parentheses.
    """
    title = title.strip()
    # Dash suffixes go first so a year in front of them becomes a suffix
    title = _DASH_SUFFIX.sub("", title)
    title = _YEAR_SUFFIX.sub("", title)
    title = _BRACKET_TAG.sub(" ", title)
    title = _TRAILING_NOTE.sub("", title)
    while True:
        stripped = _TITLE_PREFIXES.sub("", title)
        if stripped == title:
            break
        title = stripped
    return re.sub(r"\s+", " ", title).strip()


def extract_year(title: str) -> int | None:
    """Release year from a "Title (1999)" suffix, if there is one."""
    m = _YEAR_SUFFIX.search(_DASH_SUFFIX.sub("", title.strip()))
    return int(m.group(1)) if m else None


def slugify(text: str) -> str:
    """
    Convert text to a URL-safe slug.

    Args:
        text: Text to slugify

    Returns:
        Lowercase slug with hyphens
    """
    text = re.sub(r"[\s_]+", "-", text.lower())
    text = re.sub(r"[^a-z0-9-]", "", text)
    return re.sub(r"-+", "-", text).strip("-")
