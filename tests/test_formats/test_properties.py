"""Tests for pack_sync.formats.properties module."""

import pytest

from pack_sync.formats.properties import PropertiesParser


class TestPropertiesParse:
    """Test Java properties reading."""

    def test_basic_entries(self):
        """Test '=', ':' and whitespace separators."""
        data = b"a=1\nb: 2\nc 3\nd   =   4\n"
        assert PropertiesParser().parse(data) == {"a": "1", "b": "2", "c": "3", "d": "4"}

    def test_comments_and_blank_lines(self):
        """Test '#' and '!' comments are skipped."""
        data = b"#Minecraft server properties\n! other comment\n\n  motd=Hello\n"
        assert PropertiesParser().parse(data) == {"motd": "Hello"}

    def test_continuation_lines(self):
        """Test a trailing backslash joins the next line."""
        data = b"motd=Hello \\\n    World\n"
        assert PropertiesParser().parse(data) == {"motd": "Hello World"}

    def test_escaped_backslash_is_not_continuation(self):
        """Test an even number of trailing backslashes."""
        data = b"path=C:\\\\\nnext=1\n"
        assert PropertiesParser().parse(data) == {"path": "C:\\", "next": "1"}

    def test_escapes(self):
        """Test standard and unicode escapes."""
        data = b"key\\ with\\ space=tab\\there\nu=caf\\u00e9\nc=a\\:b\\=c\n"
        assert PropertiesParser().parse(data) == {
            "key with space": "tab\there",
            "u": "café",
            "c": "a:b=c",
        }

    def test_latin1_input(self):
        """Test raw bytes are ISO-8859-1."""
        assert PropertiesParser().parse(b"motd=caf\xe9") == {"motd": "café"}

    def test_key_without_value(self):
        """Test a bare key maps to the empty string."""
        assert PropertiesParser().parse(b"flag\n") == {"flag": ""}

    def test_malformed_unicode_escape(self):
        """Test truncated \\u escapes."""
        with pytest.raises(ValueError):
            PropertiesParser().parse(b"a=\\u12")


class TestPropertiesBuild:
    """Test Java properties writing."""

    def test_header_and_entries(self):
        """Test header comment and key=value lines."""
        parser = PropertiesParser(header="Minecraft server properties")
        data = parser.build({"motd": "Hello", "max-players": "20"})
        assert data == b"#Minecraft server properties\nmotd=Hello\nmax-players=20\n"

    def test_no_header(self):
        """Test output without header."""
        assert PropertiesParser().build({"a": "1"}) == b"a=1\n"

    def test_escaping(self):
        """Test special characters are escaped."""
        data = PropertiesParser().build({"a b": "x=y:z", "u": "café", "lead": " space"})
        assert data == b"a\\ b=x\\=y\\:z\nu=caf\\u00E9\nlead=\\ space\n"

    def test_roundtrip(self):
        """Test written entries read back unchanged."""
        parser = PropertiesParser(header="test")
        values = {
            "motd": "A \u00a7cColored\u00a7r server",
            "path": "C:\\games\\mc",
            "multi": "line1\nline2",
            "emoji": "\U0001F600",
            "level-seed": "",
        }
        assert parser.parse(parser.build(values)) == values

    def test_deterministic(self):
        """Test no timestamp is written."""
        parser = PropertiesParser(header="x")
        assert parser.build({"a": "1"}) == parser.build({"a": "1"})
