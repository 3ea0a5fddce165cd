"""Tests for pack_sync.formats.key_value module."""

import io

from pack_sync.formats.key_value import KeyValueParser


class TestKeyValueParser:
    """Test options.txt style parsing."""

    def test_parse(self):
        """Test entries split on the first colon."""
        data = b"version:4325\nlang:en_us\nlastServer:mc.example.com:25565\n"
        assert KeyValueParser().parse(data) == {
            "version": "4325",
            "lang": "en_us",
            "lastServer": "mc.example.com:25565",
        }

    def test_parse_stream(self):
        """Test parsing from a binary stream."""
        assert KeyValueParser().parse(io.BytesIO(b"a:1")) == {"a": "1"}

    def test_lines_without_colon_ignored(self):
        """Test lines without a separator are dropped."""
        assert KeyValueParser().parse(b"garbage\na:1\n\n") == {"a": "1"}

    def test_empty_value(self):
        """Test empty values are kept."""
        assert KeyValueParser().parse(b"a:") == {"a": ""}

    def test_build_preserves_order(self):
        """Test output order follows insertion order, no trailing newline."""
        assert KeyValueParser().build({"b": "2", "a": "1"}) == b"b:2\na:1"

    def test_file_roundtrip(self, temp_dir):
        """Test build_file then parse_file."""
        parser = KeyValueParser()
        path = temp_dir / "options.txt"
        parser.build_file({"version": "4325", "fov": "0.5"}, path)
        assert path.read_bytes() == b"version:4325\nfov:0.5"
        assert parser.parse_file(path) == {"version": "4325", "fov": "0.5"}

    def test_non_utf8_bytes_preserved(self):
        """Test invalid UTF-8 survives a parse and rebuild."""
        data = b"lastServer:caf\xe9\nlang:en_us"
        parser = KeyValueParser()
        entries = parser.parse(data)

        assert entries["lang"] == "en_us"
        assert parser.build(entries) == data
