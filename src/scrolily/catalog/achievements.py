"""Achievement catalog seed data.

Requirement payloads by category:

- ``book_completion``: ``{"type": "complete_book", "value": <book name>}``
- ``streak``: ``{"type": "streak_days", "value": <days>}``
- ``xp_milestone``: ``{"type": "total_xp", "value": <xp>}``
- ``special``: ``chapters_completed`` / ``testament`` / ``full_bible`` /
  ``challenge_wins``

XP milestone achievements carry no XP reward so an XP unlock never feeds
another XP unlock.
"""

from __future__ import annotations

from scrolily.catalog.bible import BIBLE_BOOKS, book_achievement_key

CATEGORIES: tuple[str, ...] = ("book_completion", "streak", "xp_milestone", "special")

BOOK_XP_REWARD = 50
BOOK_TALENT_REWARD = 5

STREAK_MILESTONES: list[dict] = [
    {"days": 3, "name": "Kindled", "icon": "flame", "xp": 10, "talents": 2},
    {"days": 7, "name": "Week Warrior", "icon": "flame", "xp": 25, "talents": 5},
    {"days": 14, "name": "Fortnight Faithful", "icon": "flame", "xp": 50, "talents": 10},
    {"days": 30, "name": "Monthly Master", "icon": "flame", "xp": 100, "talents": 20},
    {"days": 40, "name": "Forty Days", "icon": "flame", "xp": 120, "talents": 25},
    {"days": 60, "name": "Two Month Titan", "icon": "flame", "xp": 150, "talents": 30},
    {"days": 90, "name": "Quarterly Quest", "icon": "flame", "xp": 200, "talents": 40},
    {"days": 100, "name": "Centurion", "icon": "flame", "xp": 250, "talents": 50},
    {"days": 180, "name": "Half Year Hero", "icon": "flame", "xp": 300, "talents": 60},
    {"days": 365, "name": "Year of Faith", "icon": "crown", "xp": 500, "talents": 100},
]

XP_MILESTONES: list[dict] = [
    {"xp": 100, "name": "Century Club", "icon": "star"},
    {"xp": 500, "name": "Rising Scholar", "icon": "star"},
    {"xp": 1000, "name": "Thousand Strong", "icon": "star"},
    {"xp": 5000, "name": "Devoted Reader", "icon": "trophy"},
    {"xp": 10000, "name": "Scripture Master", "icon": "trophy"},
    {"xp": 25000, "name": "Biblical Scholar", "icon": "crown"},
    {"xp": 50000, "name": "Word Warrior", "icon": "crown"},
    {"xp": 100000, "name": "Legendary", "icon": "crown"},
]

CHALLENGE_WIN_MILESTONES: list[dict] = [
    {"wins": 1, "name": "First Victory", "icon": "swords", "xp": 25, "talents": 5},
    {"wins": 5, "name": "Contender", "icon": "swords", "xp": 50, "talents": 10},
    {"wins": 10, "name": "Champion", "icon": "trophy", "xp": 100, "talents": 20},
    {"wins": 25, "name": "Undefeated Spirit", "icon": "crown", "xp": 250, "talents": 50},
]

SPECIAL_ACHIEVEMENTS: list[dict] = [
    {
        "key": "first_chapter",
        "name": "First Steps",
        "description": "Complete your first chapter",
        "icon": "footprints",
        "requirement": {"type": "chapters_completed", "value": 1},
        "xp_reward": 10,
        "talent_reward": 1,
    },
    {
        "key": "old_testament",
        "name": "Old Testament Complete",
        "description": "Complete all books of the Old Testament",
        "icon": "scroll",
        "requirement": {"type": "testament", "value": "old"},
        "xp_reward": 500,
        "talent_reward": 100,
    },
    {
        "key": "new_testament",
        "name": "New Testament Complete",
        "description": "Complete all books of the New Testament",
        "icon": "cross",
        "requirement": {"type": "testament", "value": "new"},
        "xp_reward": 500,
        "talent_reward": 100,
    },
    {
        "key": "full_bible",
        "name": "The Whole Word",
        "description": "Complete the entire Bible",
        "icon": "book-open",
        "requirement": {"type": "full_bible", "value": 1},
        "xp_reward": 1000,
        "talent_reward": 250,
    },
]


def challenge_wins_key(wins: int) -> str:
    return f"challenge_wins_{wins}"


def build_achievement_seed_data() -> list[dict]:
    """Full catalog in display order."""
    rows: list[dict] = []
    order = 0

    for book in BIBLE_BOOKS:
        order += 1
        rows.append({
            "key": book_achievement_key(book),
            "name": f"{book} Complete",
            "description": f"Complete all chapters of {book}",
            "icon": "book",
            "category": "book_completion",
            "requirement": {"type": "complete_book", "value": book},
            "xp_reward": BOOK_XP_REWARD,
            "talent_reward": BOOK_TALENT_REWARD,
            "sort_order": order,
        })

    for milestone in STREAK_MILESTONES:
        order += 1
        rows.append({
            "key": f"streak_{milestone['days']}",
            "name": milestone["name"],
            "description": f"Maintain a {milestone['days']}-day reading streak",
            "icon": milestone["icon"],
            "category": "streak",
            "requirement": {"type": "streak_days", "value": milestone["days"]},
            "xp_reward": milestone["xp"],
            "talent_reward": milestone["talents"],
            "sort_order": order,
        })

    for milestone in XP_MILESTONES:
        order += 1
        rows.append({
            "key": f"xp_{milestone['xp']}",
            "name": milestone["name"],
            "description": f"Earn {milestone['xp']:,} total XP",
            "icon": milestone["icon"],
            "category": "xp_milestone",
            "requirement": {"type": "total_xp", "value": milestone["xp"]},
            "xp_reward": 0,
            "talent_reward": 0,
            "sort_order": order,
        })

    for special in SPECIAL_ACHIEVEMENTS:
        order += 1
        rows.append({**special, "category": "special", "sort_order": order})

    for milestone in CHALLENGE_WIN_MILESTONES:
        order += 1
        noun = "challenge" if milestone["wins"] == 1 else "challenges"
        rows.append({
            "key": challenge_wins_key(milestone["wins"]),
            "name": milestone["name"],
            "description": f"Win {milestone['wins']} group {noun}",
            "icon": milestone["icon"],
            "category": "special",
            "requirement": {"type": "challenge_wins", "value": milestone["wins"]},
            "xp_reward": milestone["xp"],
            "talent_reward": milestone["talents"],
            "sort_order": order,
        })

    return rows


ACHIEVEMENT_SEED_DATA: list[dict] = build_achievement_seed_data()
