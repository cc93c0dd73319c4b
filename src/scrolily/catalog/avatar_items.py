"""Cosmetic avatar item catalog.

Only ``happy`` is free. Everything else is bought with talents, earned
through an achievement, or either (``both``).
"""

from __future__ import annotations

ITEM_CATEGORIES: tuple[str, ...] = ("face", "hat", "top", "bottom", "outfit", "misc")
RARITIES: tuple[str, ...] = ("common", "rare", "epic", "legendary")
UNLOCK_METHODS: tuple[str, ...] = ("free", "store", "achievement", "both")

# Purchasable through the store
STORE_METHODS = frozenset({"store", "both"})
# Claimable with the linked achievement
ACHIEVEMENT_METHODS = frozenset({"achievement", "both"})

EMPTY_SLOT = "none"

AVATAR_ITEM_SEED_DATA: list[dict] = [
    # Face
    {
        "item_key": "happy",
        "name": "Happy",
        "description": "A cheerful smile to brighten your day",
        "category": "face",
        "rarity": "common",
        "unlock_method": "free",
        "talent_cost": None,
        "achievement_key": None,
        "sort_order": 1,
    },
    {
        "item_key": "happy_2",
        "name": "Cute",
        "description": "An adorable expression for the sweetest readers",
        "category": "face",
        "rarity": "common",
        "unlock_method": "store",
        "talent_cost": 50,
        "achievement_key": None,
        "sort_order": 2,
    },
    {
        "item_key": "aviators",
        "name": "Aviators",
        "description": "Cool sunglasses for the coolest readers. Reach a 100-day streak!",
        "category": "face",
        "rarity": "epic",
        "unlock_method": "achievement",
        "talent_cost": None,
        "achievement_key": "streak_100",
        "sort_order": 3,
    },
    # Hat
    {
        "item_key": "pony_tail",
        "name": "Pony Tail",
        "description": "Stylish ponytail for focused reading",
        "category": "hat",
        "rarity": "common",
        "unlock_method": "store",
        "talent_cost": 75,
        "achievement_key": None,
        "sort_order": 10,
    },
    {
        "item_key": "top_hat",
        "name": "Top Hat",
        "description": "Fancy top hat for distinguished readers",
        "category": "hat",
        "rarity": "rare",
        "unlock_method": "store",
        "talent_cost": 150,
        "achievement_key": None,
        "sort_order": 11,
    },
    {
        "item_key": "crusader_helmet",
        "name": "Crusader Helmet",
        "description": "Armor up for your reading crusade. Complete the book of Joshua!",
        "category": "hat",
        "rarity": "epic",
        "unlock_method": "achievement",
        "talent_cost": None,
        "achievement_key": "book_joshua",
        "sort_order": 12,
    },
    {
        "item_key": "crown",
        "name": "Crown",
        "description": "A crown fit for royalty. Complete all 150 chapters of Psalms!",
        "category": "hat",
        "rarity": "legendary",
        "unlock_method": "achievement",
        "talent_cost": None,
        "achievement_key": "book_psalms",
        "sort_order": 13,
    },
    {
        "item_key": "crown_of_thorns",
        "name": "Crown of Thorns",
        "description": "The sacred crown. Complete the book of Revelation!",
        "category": "hat",
        "rarity": "legendary",
        "unlock_method": "achievement",
        "talent_cost": None,
        "achievement_key": "book_revelation",
        "sort_order": 14,
    },
    # Top
    {
        "item_key": "hoodie",
        "name": "Hoodie",
        "description": "Classic comfortable hoodie",
        "category": "top",
        "rarity": "common",
        "unlock_method": "store",
        "talent_cost": 40,
        "achievement_key": None,
        "sort_order": 20,
    },
    {
        "item_key": "white_hoodie",
        "name": "White Hoodie",
        "description": "Clean white hoodie for a fresh look",
        "category": "top",
        "rarity": "common",
        "unlock_method": "store",
        "talent_cost": 75,
        "achievement_key": None,
        "sort_order": 21,
    },
    {
        "item_key": "fancy_dress",
        "name": "Fancy Dress",
        "description": "Elegant formal attire fit for royalty. Complete the book of Esther!",
        "category": "top",
        "rarity": "epic",
        "unlock_method": "achievement",
        "talent_cost": None,
        "achievement_key": "book_esther",
        "sort_order": 22,
    },
    # Bottom
    {
        "item_key": "jeans",
        "name": "Jeans",
        "description": "Classic blue jeans",
        "category": "bottom",
        "rarity": "common",
        "unlock_method": "store",
        "talent_cost": 40,
        "achievement_key": None,
        "sort_order": 30,
    },
    {
        "item_key": "ripped_jeans",
        "name": "Ripped Jeans",
        "description": "Fashionably distressed denim",
        "category": "bottom",
        "rarity": "common",
        "unlock_method": "store",
        "talent_cost": 60,
        "achievement_key": None,
        "sort_order": 31,
    },
    {
        "item_key": "jean_skirt",
        "name": "Jean Skirt",
        "description": "Cute denim skirt",
        "category": "bottom",
        "rarity": "common",
        "unlock_method": "store",
        "talent_cost": 60,
        "achievement_key": None,
        "sort_order": 32,
    },
    {
        "item_key": "suspenders",
        "name": "Suspenders",
        "description": "Classic suspenders for a distinguished look",
        "category": "bottom",
        "rarity": "rare",
        "unlock_method": "store",
        "talent_cost": 100,
        "achievement_key": None,
        "sort_order": 33,
    },
    # Outfit
    {
        "item_key": "sloth_snuggie",
        "name": "Sloth Snuggie",
        "description": "The ultimate cozy outfit. Complete a 40-day reading streak!",
        "category": "outfit",
        "rarity": "legendary",
        "unlock_method": "achievement",
        "talent_cost": None,
        "achievement_key": "streak_40",
        "sort_order": 40,
    },
    # Misc
    {
        "item_key": "number_1",
        "name": "#1 Foam Finger",
        "description": "Show everyone you're number one!",
        "category": "misc",
        "rarity": "rare",
        "unlock_method": "store",
        "talent_cost": 125,
        "achievement_key": None,
        "sort_order": 50,
    },
]

FREE_ITEM_KEYS: list[str] = [
    item["item_key"] for item in AVATAR_ITEM_SEED_DATA if item["unlock_method"] == "free"
]
