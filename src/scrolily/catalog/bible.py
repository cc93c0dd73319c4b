"""Canonical book catalog: names, chapter counts, testament split.

Book names are the display names the reader UI sends with chapter
completions ("1 Samuel", "Song of Solomon"). The catalog is authoritative
for chapter bounds and book-completion predicates.
"""

from __future__ import annotations

import re

OLD_TESTAMENT: list[tuple[str, int]] = [
    ("Genesis", 50),
    ("Exodus", 40),
    ("Leviticus", 27),
    ("Numbers", 36),
    ("Deuteronomy", 34),
    ("Joshua", 24),
    ("Judges", 21),
    ("Ruth", 4),
    ("1 Samuel", 31),
    ("2 Samuel", 24),
    ("1 Kings", 22),
    ("2 Kings", 25),
    ("1 Chronicles", 29),
    ("2 Chronicles", 36),
    ("Ezra", 10),
    ("Nehemiah", 13),
    ("Esther", 10),
    ("Job", 42),
    ("Psalms", 150),
    ("Proverbs", 31),
    ("Ecclesiastes", 12),
    ("Song of Solomon", 8),
    ("Isaiah", 66),
    ("Jeremiah", 52),
    ("Lamentations", 5),
    ("Ezekiel", 48),
    ("Daniel", 12),
    ("Hosea", 14),
    ("Joel", 3),
    ("Amos", 9),
    ("Obadiah", 1),
    ("Jonah", 4),
    ("Micah", 7),
    ("Nahum", 3),
    ("Habakkuk", 3),
    ("Zephaniah", 3),
    ("Haggai", 2),
    ("Zechariah", 14),
    ("Malachi", 4),
]

NEW_TESTAMENT: list[tuple[str, int]] = [
    ("Matthew", 28),
    ("Mark", 16),
    ("Luke", 24),
    ("John", 21),
    ("Acts", 28),
    ("Romans", 16),
    ("1 Corinthians", 16),
    ("2 Corinthians", 13),
    ("Galatians", 6),
    ("Ephesians", 6),
    ("Philippians", 4),
    ("Colossians", 4),
    ("1 Thessalonians", 5),
    ("2 Thessalonians", 3),
    ("1 Timothy", 6),
    ("2 Timothy", 4),
    ("Titus", 3),
    ("Philemon", 1),
    ("Hebrews", 13),
    ("James", 5),
    ("1 Peter", 5),
    ("2 Peter", 3),
    ("1 John", 5),
    ("2 John", 1),
    ("3 John", 1),
    ("Jude", 1),
    ("Revelation", 22),
]

BIBLE_BOOKS: dict[str, int] = dict(OLD_TESTAMENT + NEW_TESTAMENT)

TESTAMENTS: dict[str, list[str]] = {
    "old": [name for name, _ in OLD_TESTAMENT],
    "new": [name for name, _ in NEW_TESTAMENT],
}

TOTAL_CHAPTERS = sum(BIBLE_BOOKS.values())


def book_slug(book: str) -> str:
    """'Song of Solomon' -> 'song_of_solomon'."""
    return re.sub(r"\s+", "_", book.strip().lower())


def book_achievement_key(book: str) -> str:
    return f"book_{book_slug(book)}"


def chapter_count(book: str) -> int | None:
    """Number of chapters in ``book``, or None for unknown names."""
    return BIBLE_BOOKS.get(book)


def is_last_chapter(book: str, chapter: int) -> bool:
    return BIBLE_BOOKS.get(book) == chapter


def validate_chapter(book: str, chapter: int) -> None:
    """Raise ValueError unless ``book`` is canonical and ``chapter`` in range."""
    total = BIBLE_BOOKS.get(book)
    if total is None:
        raise ValueError(f"Unknown book: {book}")
    if chapter < 1 or chapter > total:
        raise ValueError(f"{book} has chapters 1-{total}, got {chapter}")
