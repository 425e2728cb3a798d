"""BeautifulSoup helpers for extracting lyrics from scraped pages."""

from bs4 import BeautifulSoup, Tag

from lyrics.quality import clean_lyrics


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def element_text(element: Tag) -> str:
    """Text of an element with <br> and block boundaries turned into newlines."""
    for tag in element.find_all(["script", "style"]):
        tag.decompose()
    for br in element.find_all("br"):
        br.replace_with("\n")
    for block in element.find_all(["p", "div"]):
        block.append("\n")
    lines = [line.strip() for line in element.get_text().split("\n")]
    return clean_lyrics("\n".join(lines))


def first_matching_text(soup: BeautifulSoup, selectors: list[str], min_length: int = 1) -> str | None:
    """Try CSS selectors in order; return the first element text at least ``min_length`` long."""
    for selector in selectors:
        for element in soup.select(selector):
            text = element_text(element)
            if len(text) >= min_length:
                return text
    return None


def joined_text(soup: BeautifulSoup, selector: str) -> str:
    """Concatenate the text of every element matching a selector."""
    return clean_lyrics("\n".join(element_text(element) for element in soup.select(selector)))
