"""
Tests for the HTML content parser.
"""

import unittest

from linkspyder.crawler.parser import ContentParser
from linkspyder.exceptions import ParseError

PAGE = """
<html>
  <head><title>  Example
     Page </title></head>
  <body>
    <a href="/one">one</a>
    <a href="#top">top</a>
    <a href="/one">one again</a>
    <a href="http://b.test/two"> two </a>
    <a>no href</a>
    <video src="/clip.mp4"><source src="/clip.webm"></video>
    <img src="/pic.png"><img src="/pic.png">
  </body>
</html>
"""


class TestContentParser(unittest.TestCase):
    def setUp(self):
        self.parser = ContentParser()

    def test_links_in_document_order_without_duplicates(self):
        parsed = self.parser.parse("http://a.test/", PAGE)
        self.assertEqual(parsed.links, ["/one", "http://b.test/two"])

    def test_title(self):
        parsed = self.parser.parse("http://a.test/", PAGE)
        self.assertEqual(parsed.title, "Example Page")

    def test_media_sources(self):
        parsed = self.parser.parse("http://a.test/", PAGE)
        self.assertEqual(parsed.media['video'], ["/clip.mp4", "/clip.webm"])
        self.assertEqual(parsed.media['img'], ["/pic.png"])
        self.assertNotIn('audio', parsed.media)

    def test_tags_found(self):
        parsed = self.parser.parse("http://a.test/", PAGE)
        self.assertTrue(parsed.has_tag('video'))
        self.assertTrue(parsed.has_tag('VIDEO'))
        self.assertFalse(parsed.has_tag('audio'))

    def test_restricted_media_tags(self):
        parsed = ContentParser(media_tags=['img']).parse("http://a.test/", PAGE)
        self.assertEqual(list(parsed.media), ['img'])

    def test_non_text_content_raises(self):
        with self.assertRaises(ParseError):
            self.parser.parse("http://a.test/", b"<html></html>")


if __name__ == '__main__':
    unittest.main()
