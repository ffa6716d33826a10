# shelfcast/core/genres.py

from dataclasses import dataclass
from typing import Dict, List, Optional

@dataclass(frozen=True)
class Genre:
    id: str
    name: str
    icon: str
    color: str

FICTION = Genre("fiction", "Fiction", "📚", "#8d6e63")
MYSTERY = Genre("mystery", "Mystery & Thriller", "🔍", "#424242")
ROMANCE = Genre("romance", "Romance", "💕", "#e91e63")
SCIFI = Genre("science-fiction", "Science Fiction", "🚀", "#2196f3")
FANTASY = Genre("fantasy", "Fantasy", "🐉", "#9c27b0")
HISTORICAL = Genre("historical-fiction", "Historical Fiction", "⌛", "#795548")
ADVENTURE = Genre("adventure", "Adventure", "🗺️", "#ff6f00")
HORROR = Genre("horror", "Horror", "👻", "#212121")
HUMOR = Genre("humor", "Humor", "😄", "#ffc107")
NONFICTION = Genre("non-fiction", "Non-Fiction", "📖", "#6d4c41")
BIOGRAPHY = Genre("biography", "Biography & Memoir", "👤", "#546e7a")
HISTORY = Genre("history", "History", "🏛️", "#8d6e63")
PHILOSOPHY = Genre("philosophy", "Philosophy", "💭", "#5e35b1")
SCIENCE = Genre("science", "Science & Nature", "🔬", "#00897b")
RELIGION = Genre("religion", "Religion & Spirituality", "🕊️", "#673ab7")
SELFHELP = Genre("self-help", "Self-Help", "🌟", "#d32f2f")
POETRY = Genre("poetry", "Poetry", "✍️", "#c2185b")
DRAMA = Genre("drama", "Drama & Plays", "🎭", "#7b1fa2")
CHILDREN = Genre("children", "Children's Literature", "🧒", "#ff9800")
YOUNGADULT = Genre("young-adult", "Young Adult", "📱", "#00bcd4")
CLASSICS = Genre("classics", "Classics", "📜", "#5d4037")
SHORTSTORIES = Genre("short-stories", "Short Stories", "📝", "#26a69a")

DEFAULT_GENRE = FICTION

GENRE_CATEGORIES: Dict[str, List[Genre]] = {
    "Fiction": [FICTION, MYSTERY, ROMANCE, SCIFI, FANTASY, HISTORICAL, ADVENTURE, HORROR, HUMOR],
    "Non-Fiction": [NONFICTION, BIOGRAPHY, HISTORY, PHILOSOPHY, SCIENCE, RELIGION, SELFHELP],
    "Other Categories": [POETRY, DRAMA, CHILDREN, YOUNGADULT, CLASSICS, SHORTSTORIES],
}

ALL_GENRES: List[Genre] = [genre for genres in GENRE_CATEGORIES.values() for genre in genres]

# Order matters: the substring scan returns the first keyword found, so
# earlier entries win when several keywords appear in the same text.
GENRE_KEYWORDS: Dict[str, Genre] = {
    "fiction": FICTION,
    "novel": FICTION,
    "literature": FICTION,
    "mystery": MYSTERY,
    "detective": MYSTERY,
    "thriller": MYSTERY,
    "crime": MYSTERY,
    "romance": ROMANCE,
    "love": ROMANCE,
    "science fiction": SCIFI,
    "sci-fi": SCIFI,
    "scifi": SCIFI,
    "fantasy": FANTASY,
    "magic": FANTASY,
    "historical": HISTORICAL,
    "historical fiction": HISTORICAL,
    "adventure": ADVENTURE,
    "action": ADVENTURE,
    "horror": HORROR,
    "gothic": HORROR,
    "humor": HUMOR,
    "humour": HUMOR,
    "comedy": HUMOR,
    "non-fiction": NONFICTION,
    "nonfiction": NONFICTION,
    "biography": BIOGRAPHY,
    "memoir": BIOGRAPHY,
    "autobiography": BIOGRAPHY,
    "history": HISTORY,
    "philosophy": PHILOSOPHY,
    "science": SCIENCE,
    "nature": SCIENCE,
    "natural history": SCIENCE,
    "religion": RELIGION,
    "spirituality": RELIGION,
    "theology": RELIGION,
    "self-help": SELFHELP,
    "self help": SELFHELP,
    "poetry": POETRY,
    "poems": POETRY,
    "verse": POETRY,
    "drama": DRAMA,
    "plays": DRAMA,
    "theatre": DRAMA,
    "theater": DRAMA,
    "children": CHILDREN,
    "juvenile": CHILDREN,
    "young adult": YOUNGADULT,
    "ya": YOUNGADULT,
    "teen": YOUNGADULT,
    "classics": CLASSICS,
    "classic": CLASSICS,
    "short stories": SHORTSTORIES,
    "short story": SHORTSTORIES,
}


def match_genre(text: Optional[str]) -> Genre:
    """
    Maps free-text genre or subject strings onto the fixed taxonomy.
    Exact keyword first, then the first keyword contained in the text,
    then Fiction.
    """
    if not text:
        return DEFAULT_GENRE

    normalized = text.lower().strip()
    if not normalized:
        return DEFAULT_GENRE
    if normalized in GENRE_KEYWORDS:
        return GENRE_KEYWORDS[normalized]

    for keyword, genre in GENRE_KEYWORDS.items():
        if keyword in normalized:
            return genre

    return DEFAULT_GENRE


def get_genre(genre_id: str) -> Optional[Genre]:
    return next((genre for genre in ALL_GENRES if genre.id == genre_id), None)


def get_genre_color(genre_id: str) -> str:
    genre = get_genre(genre_id)
    return genre.color if genre else DEFAULT_GENRE.color


def get_genre_icon(genre_id: str) -> str:
    genre = get_genre(genre_id)
    return genre.icon if genre else DEFAULT_GENRE.icon
