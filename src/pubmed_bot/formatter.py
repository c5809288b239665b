from __future__ import annotations

from .schemas import ArticleRecord

_TITLE_LIMIT = 150

TOPIC_EMOJIS = {
    "cancer": "🎗️",
    "heart": "❤️",
    "brain": "🧠",
    "covid": "🦠",
    "vaccine": "💉",
    "genetics": "🧬",
    "mental health": "🧘",
    "nutrition": "🥗",
    "exercise": "🏃",
    "sleep": "😴",
    "diabetes": "🩺",
    "drug": "💊",
    "surgery": "🏥",
}
DEFAULT_EMOJI = "🔬"


def topic_emoji(text: str) -> str:
    lowered = text.lower()
    for keyword, emoji in TOPIC_EMOJIS.items():
        if keyword in lowered:
            return emoji
    return DEFAULT_EMOJI


def author_line(article: ArticleRecord) -> str:
    if len(article.authors) > 3:
        return f"{article.authors[0]} et al."
    return ", ".join(article.authors)


def format_post(article: ArticleRecord) -> str:
    title = article.title
    if len(title) > _TITLE_LIMIT:
        title = title[: _TITLE_LIMIT - 3] + "..."
    return "\n".join(
        [
            f"{topic_emoji(article.title)} NEW RESEARCH: {title}",
            "",
            f"📚 Published in: {article.journal} ({article.year})",
            f"👥 Authors: {author_line(article)}",
            "",
            "🔗 Read more:",
            article.url,
            "",
            "#MedicalResearch #Science",
        ]
    )


def format_no_results(query: str) -> str:
    return f'No research found for: "{query}". Try rephrasing your search.'


def format_search_failure(query: str) -> str:
    return f'Sorry, I was unable to complete the search for "{query}" right now. Please try again later.'
