"""
HTML helpers for the activation gate
Turns page markup into script elements and renders them back
"""

from html import escape
from typing import List

from bs4 import BeautifulSoup

from .dom import Document, ScriptElement


def _attribute_value(value) -> str:
    # bs4 returns multi-valued attributes (class, rel) as lists
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return str(value)


def scan_html(markup: str) -> List[ScriptElement]:
    """Script elements in document order, attributes in source order"""
    soup = BeautifulSoup(markup, "html.parser")
    elements = []
    for tag in soup.find_all("script"):
        attributes = [(name, _attribute_value(value)) for name, value in tag.attrs.items()]
        text = "".join(str(child) for child in tag.contents)
        elements.append(ScriptElement(tag="script", attributes=attributes, text=text))
    return elements


def document_from_html(markup: str) -> Document:
    return Document(scan_html(markup))


def render_element(element: ScriptElement) -> str:
    """Serialize an element; inline content is emitted verbatim"""
    parts = [element.tag]
    for name, value in element.attributes:
        parts.append(f'{name}="{escape(value, quote=True)}"')
    return f"<{' '.join(parts)}>{element.text}</{element.tag}>"
