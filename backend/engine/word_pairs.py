"""
Static word table.

Read-only configuration handed to the GameMaster at construction time; the
civilians get the first word of a pair, the undercovers the second.
"""
from typing import NamedTuple, Tuple


class WordPair(NamedTuple):
    civilian: str
    undercover: str


WORD_PAIRS: Tuple[WordPair, ...] = (
    WordPair("Doctor", "Nurse"),
    WordPair("Pizza", "Burger"),
    WordPair("Summer", "Winter"),
    WordPair("Coffee", "Tea"),
    WordPair("Dog", "Cat"),
    WordPair("Beach", "Mountain"),
    WordPair("Book", "Movie"),
    WordPair("Car", "Bicycle"),
    WordPair("Apple", "Orange"),
    WordPair("Sun", "Moon"),
    WordPair("School", "University"),
    WordPair("Restaurant", "Cafe"),
    WordPair("Music", "Dance"),
    WordPair("Sport", "Game"),
    WordPair("Trip", "Holiday"),
    WordPair("Mountain", "Hill"),
    WordPair("Ocean", "Lake"),
    WordPair("City", "Countryside"),
    WordPair("Night", "Day"),
    WordPair("Hot", "Cold"),
    WordPair("Guitar", "Violin"),
    WordPair("Train", "Plane"),
    WordPair("Castle", "Palace"),
    WordPair("Wolf", "Fox"),
)
