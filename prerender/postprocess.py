"""
Snapshot Post-Processor
=======================
Turns the DOM captured from the browser into markup safe for static hosting:

1. Critical CSS: the styling engine injects ``<style data-emotion>`` fragments
   at runtime.  Their text is concatenated in document order, minified, and
   written into the ``<style prerender>`` slot shipped in the app shell; the
   fragments themselves are removed.
2. Lazy images: ``img[role=presentation]`` placeholders (map tiles) only fade
   in once their load handler fires, which never happens on a static page.
   They are forced to full opacity and tagged with the "loaded" class.
"""

from __future__ import annotations

import logging
from typing import List

import rcssmin
from bs4 import BeautifulSoup, Tag
from bs4.element import Stylesheet

from .errors import PostProcessError

logger = logging.getLogger(__name__)

RUNTIME_STYLE_SELECTOR = "style[data-emotion]"
PRERENDER_STYLE_SELECTOR = "style[prerender]"
PRESENTATION_IMAGE_SELECTOR = 'img[role="presentation"]'
LOADED_IMAGE_CLASS = "leaflet-tile-loaded"

_HTML_PARSER = "lxml"


def minify_css(css: str) -> str:
    """Minify a stylesheet.  Stateless; safe to call from any lane."""
    if not css.strip():
        return ""
    return rcssmin.cssmin(css)


def extract_critical_css(soup: BeautifulSoup) -> str:
    """Concatenate and minify every runtime-injected style fragment."""
    fragments = soup.select(RUNTIME_STYLE_SELECTOR)
    return minify_css("".join(_raw_text(tag) for tag in fragments))


def _raw_text(tag: Tag) -> str:
    return "".join(str(child) for child in tag.contents)


def set_inline_style(tag: Tag, prop: str, value: str) -> None:
    """Set one declaration in a tag's ``style`` attribute, keeping the rest."""
    declarations: List[str] = []
    for decl in (tag.get("style") or "").split(";"):
        name, _, _ = decl.partition(":")
        if not decl.strip() or name.strip().lower() == prop:
            continue
        declarations.append(decl.strip())
    declarations.append(f"{prop}: {value}")
    tag["style"] = "; ".join(declarations) + ";"


def mark_image_loaded(img: Tag) -> None:
    set_inline_style(img, "opacity", "1")
    classes = img.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    if LOADED_IMAGE_CLASS not in classes:
        classes = list(classes) + [LOADED_IMAGE_CLASS]
    img["class"] = classes


class SnapshotPostProcessor:
    """
    Usage::

        processor = SnapshotPostProcessor()
        static_html = processor.process(captured_html)
    """

    def process(self, html: str) -> str:
        """
        Transform a captured DOM string.

        Raises:
            PostProcessError: if the ``style[prerender]`` slot is missing
        """
        soup = BeautifulSoup(html, _HTML_PARSER)

        fragments = soup.select(RUNTIME_STYLE_SELECTOR)
        css = extract_critical_css(soup)
        for tag in fragments:
            tag.decompose()

        images = soup.select(PRESENTATION_IMAGE_SELECTOR)
        for img in images:
            mark_image_loaded(img)

        slot = soup.select_one(PRERENDER_STYLE_SELECTOR)
        if slot is None:
            raise PostProcessError(
                f"No {PRERENDER_STYLE_SELECTOR} slot in captured page"
            )
        # Already-processed snapshots have no fragments left; keep their CSS
        if fragments:
            slot.string = Stylesheet(css)

        logger.debug(
            f"[POST] inlined {len(css)} chars of CSS from {len(fragments)} "
            f"fragments, normalized {len(images)} images"
        )
        return str(soup)
