"""
Content Sanitizer
=================

Reduces arbitrary page or feed HTML to a small allow-listed tag set while
keeping paragraph and list structure, and extracts plain text, images and
page metadata from raw markup.

Sanitization is idempotent: ``sanitize(sanitize(x)) == sanitize(x)``.
"""

import html
import re
from typing import List, Dict, Any, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Comment, NavigableString
from bs4.element import CData, ProcessingInstruction, Doctype, Declaration

from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator


class ContentSanitizer:
    """
    Allow-list HTML sanitizer with text and media extraction.

    Output contains only ``ALLOWED_ELEMENTS``; links keep an absolute
    http(s) ``href`` (and ``title``), every other attribute is dropped.
    Unknown containers become paragraphs when they hold only inline
    content, otherwise they are unwrapped.
    """

    # Removed together with their content
    DANGEROUS_ELEMENTS = {
        "script",
        "style",
        "iframe",
        "frame",
        "frameset",
        "embed",
        "object",
        "applet",
        "form",
        "input",
        "button",
        "select",
        "textarea",
        "meta",
        "link",
        "base",
        "noscript",
        "canvas",
        "svg",
        "math",
        "template",
        "video",
        "audio",
        "picture",
        "img",
        "figure",
        "nav",
        "aside",
        "head",
        "title",
    }

    ALLOWED_ELEMENTS = {
        "p",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "blockquote",
        "ul",
        "ol",
        "li",
        "strong",
        "em",
        "b",
        "i",
        "br",
        "a",
    }

    SAFE_ATTRIBUTES = {
        "a": ["href", "title"],
    }

    BLOCK_ELEMENTS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "ul", "ol", "li"]
    TEXT_BLOCKS = {"p", "h1", "h2", "h3", "h4", "h5", "h6"}
    INLINE_ELEMENTS = {"strong", "em", "b", "i", "a"}
    SPACING_PARENTS = {"[document]", "ul", "ol", "blockquote"}

    # Containers that turn into <p> when they hold only inline content
    CONTAINER_ELEMENTS = {
        "div",
        "section",
        "article",
        "main",
        "header",
        "footer",
        "td",
        "th",
        "dd",
        "dt",
        "figcaption",
        "pre",
        "address",
        "caption",
        "details",
        "summary",
        "center",
    }

    WHITESPACE_PATTERN = re.compile(r"\s+")
    JAVASCRIPT_URL_PATTERN = re.compile(r"^\s*javascript:", re.IGNORECASE)
    DATA_URL_PATTERN = re.compile(r"^\s*data:", re.IGNORECASE)

    LOW_SIGNAL_IMAGE_MARKERS = (
        "pixel", "tracking", "spacer", "blank.", "1x1", "icon", "logo",
        "avatar", "badge", "button", "sprite", "emoji", "gravatar",
    )

    def __init__(self, parser: str = "html.parser"):
        self.parser = parser
        self.logger = get_logger_for_component("sanitizer")

    def sanitize(self, html_content: Optional[str], base_url: Optional[str] = None) -> str:
        """
        Reduce HTML to the allow-listed tag set.

        Args:
            html_content: Raw HTML fragment or document
            base_url: Base URL for resolving relative links

        Returns:
            Sanitized HTML (possibly empty)
        """
        if not html_content or not html_content.strip():
            return ""

        soup = BeautifulSoup(html_content, self.parser)

        self._remove_non_content_elements(soup)
        self._remove_dangerous_elements(soup)
        self._restructure(soup, base_url)
        self._remove_empty_elements(soup)
        self._normalize_whitespace(soup)

        # Serialize through the soup so root-level text stays entity-escaped
        return soup.decode(formatter="minimal").strip()

    def _remove_non_content_elements(self, soup: BeautifulSoup) -> None:
        """Remove comments, CDATA, doctypes and processing instructions."""
        for element in soup.find_all(
            string=lambda text: isinstance(
                text, (Comment, CData, ProcessingInstruction, Doctype, Declaration)
            )
        ):
            element.extract()

    def _remove_dangerous_elements(self, soup: BeautifulSoup) -> None:
        for element in soup.find_all(list(self.DANGEROUS_ELEMENTS)):
            if not element.decomposed:
                element.decompose()

    def _restructure(self, soup: BeautifulSoup, base_url: Optional[str]) -> None:
        # Reversed document order visits descendants before their ancestors
        for element in reversed(soup.find_all(True)):
            name = element.name.lower()

            if name in self.ALLOWED_ELEMENTS:
                self._clean_attributes(element, name, base_url)

                if name == "a" and not element.get("href"):
                    element.unwrap()
                elif name in self.TEXT_BLOCKS or name in self.INLINE_ELEMENTS:
                    if element.find(self.BLOCK_ELEMENTS):
                        element.unwrap()

            elif name in self.CONTAINER_ELEMENTS:
                if element.find(self.BLOCK_ELEMENTS):
                    element.unwrap()
                else:
                    element.name = "p"
                    element.attrs = {}

            else:
                element.unwrap()

    def _clean_attributes(self, element, name: str, base_url: Optional[str]) -> None:
        safe_attrs = self.SAFE_ATTRIBUTES.get(name, [])
        element.attrs = {
            key: value for key, value in element.attrs.items() if key.lower() in safe_attrs
        }

        if name == "a" and "href" in element.attrs:
            href = (element.get("href") or "").strip()
            if base_url and href and not urlparse(href).netloc:
                href = urljoin(base_url, href)
            if urlparse(href).scheme.lower() in ("http", "https") and urlparse(href).netloc:
                element["href"] = href
            else:
                del element["href"]

    def _remove_empty_elements(self, soup: BeautifulSoup) -> None:
        for element in reversed(soup.find_all(True)):
            if element.name == "br":
                continue
            if not element.get_text().strip():
                element.decompose()

    def _normalize_whitespace(self, soup: BeautifulSoup) -> None:
        soup.smooth()
        for text in soup.find_all(string=True):
            parent_name = text.parent.name if text.parent else "[document]"
            collapsed = self.WHITESPACE_PATTERN.sub(" ", str(text))
            if not collapsed.strip() and parent_name in self.SPACING_PARENTS:
                text.extract()
            elif collapsed != str(text):
                text.replace_with(NavigableString(collapsed))

    def extract_text(self, html_content: Optional[str]) -> str:
        """
        Extract plain text from HTML, removing all markup.

        Returns:
            Whitespace-normalized text
        """
        if not html_content or not html_content.strip():
            return ""

        soup = BeautifulSoup(html_content, self.parser)
        for element in soup.find_all(["script", "style", "noscript", "template"]):
            element.decompose()
        self._remove_non_content_elements(soup)

        text = soup.get_text(separator=" ", strip=True)
        return self.WHITESPACE_PATTERN.sub(" ", text).strip()

    def extract_text_fallback(self, html_content: str) -> str:
        """Regex text extraction for markup BeautifulSoup cannot make sense of."""
        content = re.sub(
            r"<(script|style)[^>]*>.*?</\1>", "", html_content, flags=re.IGNORECASE | re.DOTALL
        )
        content = re.sub(r"<[^>]+>", " ", content)
        content = html.unescape(content)
        return self.WHITESPACE_PATTERN.sub(" ", content).strip()

    def text_to_html(self, text: str, min_paragraph_length: int = 0) -> str:
        """Wrap plain text into escaped ``<p>`` paragraphs split on blank lines."""
        if not text:
            return ""

        blocks = re.split(r"\n\s*\n", text)
        if len(blocks) == 1:
            blocks = re.split(r"\n", text)

        paragraphs = []
        for block in blocks:
            block = self.WHITESPACE_PATTERN.sub(" ", block).strip()
            if block and len(block) >= min_paragraph_length:
                paragraphs.append(f"<p>{html.escape(block, quote=False)}</p>")

        return "".join(paragraphs)

    def extract_images(
        self, html_content: Optional[str], base_url: Optional[str] = None
    ) -> List[Dict[str, str]]:
        """
        Extract image references from HTML, page meta images first.

        Returns:
            List of dicts with ``src``, ``alt`` and ``title`` keys, de-duplicated
        """
        images: List[Dict[str, str]] = []
        if not html_content or not html_content.strip():
            return images

        soup = BeautifulSoup(html_content, self.parser)
        seen = set()

        def add(src: str, alt: str = "", title: str = "") -> None:
            src = (src or "").strip()
            if not src or self.DATA_URL_PATTERN.match(src):
                return
            if base_url and not urlparse(src).netloc:
                src = urljoin(base_url, src)
            if src.startswith("//"):
                src = "https:" + src
            if src in seen or self.is_low_signal_image(src):
                return
            if urlparse(src).scheme.lower() not in URLValidator.ALLOWED_SCHEMES:
                return
            seen.add(src)
            images.append({"src": src, "alt": alt.strip(), "title": title.strip()})

        for prop in ("og:image", "og:image:url", "twitter:image", "twitter:image:src"):
            meta = soup.find("meta", attrs={"property": prop}) or soup.find(
                "meta", attrs={"name": prop}
            )
            if meta and meta.get("content"):
                add(meta["content"])

        for img_tag in soup.find_all("img"):
            src = img_tag.get("src") or img_tag.get("data-src") or img_tag.get("data-original")
            if not src and img_tag.get("srcset"):
                src = img_tag["srcset"].split(",")[-1].strip().split(" ")[0]
            add(src or "", img_tag.get("alt", "") or "", img_tag.get("title", "") or "")

        return images

    def is_low_signal_image(self, url: str) -> bool:
        """Tracking pixels, icons, logos and similar non-editorial images."""
        filename = urlparse(url).path.lower().rsplit("/", 1)[-1]
        path = urlparse(url).path.lower()
        return any(marker in filename for marker in self.LOW_SIGNAL_IMAGE_MARKERS) or "/icons/" in path

    def extract_metadata(self, html_content: Optional[str]) -> Dict[str, Any]:
        """
        Read title, description, image, author and publish date from page meta tags.

        Returns:
            Dictionary with the keys found (values are stripped strings)
        """
        metadata: Dict[str, Any] = {}
        if not html_content or not html_content.strip():
            return metadata

        soup = BeautifulSoup(html_content, self.parser)

        def meta_content(*names: str) -> Optional[str]:
            for name in names:
                tag = soup.find("meta", attrs={"property": name}) or soup.find(
                    "meta", attrs={"name": name}
                )
                if tag and tag.get("content") and tag["content"].strip():
                    return tag["content"].strip()
            return None

        title = meta_content("og:title", "twitter:title")
        if not title and soup.title and soup.title.string:
            title = soup.title.string.strip()
        if title:
            metadata["title"] = title

        description = meta_content("og:description", "twitter:description", "description")
        if description:
            metadata["description"] = description

        image = meta_content("og:image", "og:image:url", "twitter:image")
        if image:
            metadata["image"] = image

        author = meta_content("author", "article:author", "byl", "parsely-author")
        if not author:
            byline = soup.select_one('[rel="author"], .author, .byline')
            if byline and byline.get_text(strip=True):
                author = byline.get_text(" ", strip=True)
        if author:
            metadata["author"] = re.sub(r"^by\s+", "", author, flags=re.IGNORECASE)[:120]

        published = meta_content("article:published_time", "pubdate", "date", "dc.date")
        if not published:
            time_tag = soup.find("time", attrs={"datetime": True})
            if time_tag:
                published = time_tag["datetime"].strip()
        if published:
            metadata["published"] = published

        site_name = meta_content("og:site_name", "application-name")
        if site_name:
            metadata["site_name"] = site_name

        return metadata
