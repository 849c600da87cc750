import re

from bs4 import BeautifulSoup

DEFAULT_EXCERPT_LENGTH = 150


def clean_html(raw_html: str) -> str:
    """
    Entfernt HTML-Tags aus einem gegebenen HTML-Text.

    Args:
        raw_html (str): Eingabetext mit HTML (z.B. aus dem Rich-Text-Editor).

    Returns:
        str: Nur noch der sichtbare Text ohne HTML-Tags.
    """
    if not raw_html:
        return ""
    return BeautifulSoup(raw_html, "html.parser").get_text(" ", strip=True)


def slugify(text: str) -> str:
    """'Hello  World!' -> 'hello-world'"""
    text = (text or "").lower().strip()
    text = re.sub(r"\s+", "-", text)
    text = re.sub(r"[^\w\-]+", "", text)
    text = re.sub(r"-{2,}", "-", text)
    return text.strip("-")


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def make_excerpt(content: str, max_length: int = DEFAULT_EXCERPT_LENGTH) -> str:
    return truncate_text(clean_html(content), max_length)
