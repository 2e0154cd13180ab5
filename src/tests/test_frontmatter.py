"""Unit tests for the front-matter codec."""

from datetime import datetime, timedelta, timezone

import pytest
import yaml

from mdblog.core.frontmatter import FrontMatterError, dump_front_matter, split_front_matter


# ============================================================
# YAML front-matter
# ============================================================


class TestYamlFrontMatter:
    def test_valid_frontmatter(self):
        text = "---\ntitle: Hello\ntags:\n  - linux\n---\n\n# Body\n"
        front = split_front_matter(text)
        assert front.format == "yaml"
        assert front.data == {"title": "Hello", "tags": ["linux"]}
        assert front.body.strip() == "# Body"
        assert front.line_count == 5

    def test_timestamp_with_offset(self):
        text = "---\ndate: 2025-03-14T09:00:00-05:00\n---\n"
        front = split_front_matter(text)
        assert front.data["date"] == datetime(
            2025, 3, 14, 9, 0, tzinfo=timezone(timedelta(hours=-5))
        )

    def test_empty_frontmatter(self):
        front = split_front_matter("---\n---\nBody")
        assert front.data == {}
        assert front.body == "Body"

    def test_crlf_line_endings(self):
        front = split_front_matter("---\r\ntitle: Hi\r\n---\r\nBody\r\n")
        assert front.data == {"title": "Hi"}
        assert front.body == "Body\r\n"

    def test_byte_order_mark_ignored(self):
        front = split_front_matter("\ufeff---\ntitle: Hi\n---\n")
        assert front.data == {"title": "Hi"}

    def test_malformed_yaml(self):
        with pytest.raises(FrontMatterError) as exc_info:
            split_front_matter("---\ntitle: [unclosed\n---\nBody")
        assert "invalid YAML" in exc_info.value.message

    def test_malformed_yaml_line_number(self):
        text = "---\ntitle: ok\nbad: : value\n---\n"
        with pytest.raises(FrontMatterError) as exc_info:
            split_front_matter(text)
        assert exc_info.value.line == 3

    def test_non_mapping_rejected(self):
        with pytest.raises(FrontMatterError, match="mapping"):
            split_front_matter("---\n- a\n- b\n---\n")

    def test_impossible_date(self):
        text = "---\ntitle: T\ndate: 2024-13-45\nurl: /t/\n---\n"
        with pytest.raises(FrontMatterError) as exc_info:
            split_front_matter(text)
        assert "invalid YAML value" in exc_info.value.message
        assert exc_info.value.line == 3

    def test_impossible_date_in_list(self):
        text = "---\ntitle: T\nupdates:\n  - 2024-01-01\n  - 2024-02-30\n---\n"
        with pytest.raises(FrontMatterError) as exc_info:
            split_front_matter(text)
        assert exc_info.value.line == 5

    def test_delimiter_inside_body_not_closing(self):
        text = "---\ntitle: A\n---\nBody\n---\nMore"
        front = split_front_matter(text)
        assert front.body == "Body\n---\nMore"


# ============================================================
# TOML front-matter
# ============================================================


class TestTomlFrontMatter:
    def test_valid_frontmatter(self):
        text = '+++\ntitle = "Hello"\ntags = ["etcd"]\ndraft = false\n+++\nBody\n'
        front = split_front_matter(text)
        assert front.format == "toml"
        assert front.data == {"title": "Hello", "tags": ["etcd"], "draft": False}
        assert front.body == "Body\n"

    def test_toml_datetime(self):
        text = "+++\ndate = 2025-02-02T18:30:00-05:00\n+++\n"
        front = split_front_matter(text)
        assert front.data["date"].utcoffset() == timedelta(hours=-5)

    def test_malformed_toml(self):
        with pytest.raises(FrontMatterError, match="invalid TOML"):
            split_front_matter('+++\ntitle = "unterminated\n+++\n')

    def test_impossible_toml_date(self):
        with pytest.raises(FrontMatterError, match="invalid TOML"):
            split_front_matter("+++\ndate = 2024-02-30\n+++\n")

    def test_yaml_closer_does_not_close_toml(self):
        with pytest.raises(FrontMatterError, match="never closed"):
            split_front_matter('+++\ntitle = "x"\n---\n')


# ============================================================
# Delimiters
# ============================================================


class TestDelimiters:
    def test_missing_frontmatter(self):
        with pytest.raises(FrontMatterError) as exc_info:
            split_front_matter("# Just a heading\n")
        assert exc_info.value.line == 1

    def test_unclosed_frontmatter(self):
        with pytest.raises(FrontMatterError, match="never closed"):
            split_front_matter("---\ntitle: A\n\nBody")

    def test_empty_file(self):
        with pytest.raises(FrontMatterError, match="empty"):
            split_front_matter("")

    def test_error_str_includes_line(self):
        error = FrontMatterError("boom", line=4)
        assert str(error) == "line 4: boom"
        assert str(FrontMatterError("boom")) == "boom"


# ============================================================
# Dumping
# ============================================================


class TestDumpFrontMatter:
    def test_empty(self):
        assert dump_front_matter({}) == "---\n---\n"

    def test_keeps_key_order(self):
        result = dump_front_matter({"title": "T", "draft": True, "url": "/t/"})
        assert result.startswith("---\n")
        assert result.endswith("---\n")
        lines = result.splitlines()
        assert lines[1].startswith("title:")
        assert lines[2] == "draft: true"
        assert lines[3].startswith("url:")

    def test_datetime_written_as_iso_string(self):
        dt = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
        result = dump_front_matter({"date": dt})
        assert "2025-01-15T10:30:00+00:00" in result
        data = yaml.safe_load(result.strip("-\n"))
        assert data["date"] == "2025-01-15T10:30:00+00:00"

    def test_dump_then_split(self):
        data = {"title": "Ünïcode", "tags": ["a", "b"]}
        front = split_front_matter(dump_front_matter(data) + "Body")
        assert front.data == data
        assert front.body == "Body"
