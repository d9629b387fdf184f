"""
Content Sanitizer Tests
=======================

Allow-list sanitization, text/image/metadata extraction.
"""

import itertools

import pytest
from bs4 import BeautifulSoup

from newsforge.ingestion.content_sanitizer import ContentSanitizer


MESSY_FRAGMENTS = [
    "<p>Plain paragraph</p>",
    '<div class="wrap"><p onclick="x()">One</p><p style="color:red">Two</p></div>',
    "<div>Hello <b>world</b> and <span>friends</span></div>",
    "<article><h2>Heading</h2><script>alert(1)</script><p>Body <a href='/rel'>link</a></p></article>",
    "<ul><li>first</li><li>second <em>item</em></li></ul><!-- comment -->",
    "<section><div><div>Nested   text\n\n with   spaces</div></div></section>",
    "<p></p><p>   </p><p>kept</p><iframe src='https://ads.example.com'></iframe>",
    "<table><tr><td>cell one</td><td>cell two</td></tr></table>",
]

# Escaped markup and bare ampersands at every nesting depth
ENTITY_TEXTS = [
    "&amp;b ",
    "&lt;script&gt;alert(1)&lt;/script&gt;",
    "&lt;img src=x onerror=alert(1)&gt;",
    "a &lt; b &amp;&amp; c &gt; d",
    "Tom &amp; Jerry &quot;quoted&quot;",
    "AT&amp;T &#60;b&#62;bold&#60;/b&#62;",
]

WRAPPERS = [
    "{}",
    "<span>{}</span>",
    "<div>{}</div>",
    "<div><section>{}</section></div>",
    "<p>lead <em>{}</em></p>",
    "intro {} <b>tail</b>",
]

GENERATED_FRAGMENTS = [wrapper.format(text) for wrapper, text in itertools.product(WRAPPERS, ENTITY_TEXTS)]


class TestSanitize:
    """Allow-list reduction."""

    def setup_method(self):
        self.sanitizer = ContentSanitizer()

    def test_empty_input(self):
        assert self.sanitizer.sanitize(None) == ""
        assert self.sanitizer.sanitize("   ") == ""

    def test_dangerous_elements_removed_with_content(self):
        html = "<p>Safe</p><script>steal()</script><style>p{}</style><iframe>x</iframe>"
        result = self.sanitizer.sanitize(html)

        assert "steal" not in result
        assert "<script" not in result
        assert "<iframe" not in result
        assert "Safe" in result

    def test_attributes_stripped(self):
        result = self.sanitizer.sanitize('<p class="lead" onclick="evil()" style="x">Text</p>')
        assert result == "<p>Text</p>"

    def test_links_keep_absolute_href(self):
        html = '<p>Read <a href="/story" class="x" title="More">more</a></p>'
        result = self.sanitizer.sanitize(html, base_url="https://example.com/news/")

        soup = BeautifulSoup(result, "html.parser")
        link = soup.find("a")
        assert link["href"] == "https://example.com/story"
        assert link["title"] == "More"
        assert "class" not in link.attrs

    def test_javascript_links_unwrapped(self):
        result = self.sanitizer.sanitize('<p>Click <a href="javascript:alert(1)">here</a></p>')
        assert "javascript" not in result
        assert "<a" not in result
        assert "here" in result

    def test_inline_container_becomes_paragraph(self):
        result = self.sanitizer.sanitize("<div>Hello <b>world</b></div>")
        assert result == "<p>Hello <b>world</b></p>"

    @pytest.mark.parametrize("fragment", MESSY_FRAGMENTS + GENERATED_FRAGMENTS)
    def test_output_uses_only_allowed_elements(self, fragment):
        result = self.sanitizer.sanitize(fragment, base_url="https://example.com/")
        soup = BeautifulSoup(result, "html.parser")
        for element in soup.find_all(True):
            assert element.name in ContentSanitizer.ALLOWED_ELEMENTS

    @pytest.mark.parametrize("fragment", MESSY_FRAGMENTS + GENERATED_FRAGMENTS)
    def test_idempotent(self, fragment):
        once = self.sanitizer.sanitize(fragment, base_url="https://example.com/")
        twice = self.sanitizer.sanitize(once, base_url="https://example.com/")
        assert once == twice

    def test_empty_elements_removed(self):
        result = self.sanitizer.sanitize("<p></p><p>   </p><p>kept</p>")
        assert result == "<p>kept</p>"

    def test_root_level_escaped_markup_stays_text(self):
        result = self.sanitizer.sanitize("&lt;script&gt;alert(1)&lt;/script&gt;")

        assert "<script" not in result
        assert "&lt;script&gt;" in result
        assert BeautifulSoup(result, "html.parser").find("script") is None

    def test_escaped_markup_in_unwrapped_container(self):
        result = self.sanitizer.sanitize("<span>&lt;img src=x onerror=alert(1)&gt;</span>")

        assert BeautifulSoup(result, "html.parser").find("img") is None
        assert "&lt;img" in result

    def test_bare_ampersand_escaped(self):
        once = self.sanitizer.sanitize("&b ")
        assert once == "&amp;b"
        assert self.sanitizer.sanitize(once) == once

    @pytest.mark.parametrize("fragment", GENERATED_FRAGMENTS)
    def test_no_executable_markup_from_escaped_text(self, fragment):
        soup = BeautifulSoup(self.sanitizer.sanitize(fragment), "html.parser")
        assert soup.find(["script", "img"]) is None
        for element in soup.find_all(True):
            assert not any(name.startswith("on") for name in element.attrs)


class TestExtraction:
    """Text, image and metadata extraction from raw markup."""

    def setup_method(self):
        self.sanitizer = ContentSanitizer()

    def test_extract_text_normalizes_whitespace(self):
        text = self.sanitizer.extract_text("<p>One\n\n  two</p><script>var x;</script><p>three</p>")
        assert text == "One two three"

    def test_text_to_html_escapes(self):
        html = self.sanitizer.text_to_html("First <para>\n\nSecond & last")
        assert html == "<p>First &lt;para&gt;</p><p>Second &amp; last</p>"

    def test_text_to_html_minimum_paragraph_length(self):
        html = self.sanitizer.text_to_html("short\n\n" + "long enough paragraph " * 3, min_paragraph_length=20)
        assert "short" not in html
        assert html.startswith("<p>long enough")

    def test_extract_images_meta_first_and_deduplicated(self, sample_page):
        images = self.sanitizer.extract_images(sample_page, base_url="https://example.com/a")
        sources = [image["src"] for image in images]

        assert sources[0] == "https://example.com/images/lab-hero.jpg"
        assert "https://example.com/images/molecule-render.jpg" in sources
        assert len(sources) == len(set(sources))

    def test_extract_images_skips_low_signal(self):
        html = (
            '<img src="https://cdn.example.com/pixel.gif">'
            '<img src="https://cdn.example.com/site-logo.png">'
            '<img src="data:image/png;base64,AAAA">'
            '<img src="https://cdn.example.com/photos/flood.jpg" alt="Flooded street">'
        )
        images = self.sanitizer.extract_images(html)
        assert images == [
            {"src": "https://cdn.example.com/photos/flood.jpg", "alt": "Flooded street", "title": ""}
        ]

    def test_extract_metadata(self, sample_page):
        metadata = self.sanitizer.extract_metadata(sample_page)

        assert metadata["title"] == "AI Revolutionizes Drug Discovery"
        assert metadata["description"].startswith("A new system")
        assert metadata["image"] == "https://example.com/images/lab-hero.jpg"
        assert metadata["author"] == "Jane Reporter"
        assert metadata["published"] == "2024-03-01T09:30:00Z"

    def test_extract_metadata_empty(self):
        assert self.sanitizer.extract_metadata("") == {}
