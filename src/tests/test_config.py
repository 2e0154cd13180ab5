"""Unit tests for application configuration."""

from pathlib import Path
from unittest.mock import patch

from mdblog.config import Settings


class TestSettings:
    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            s = Settings()
            assert s.content_dir == Path("blog/content/post")
            assert s.web_root == Path("/app/public")
            assert s.debug is False
            assert s.port == 8080
            assert s.metrics_port == 9090
            assert s.use_memory is False
            assert s.access_log_path is None
            assert s.site_author is None

    def test_from_env(self):
        env = {
            "MDBLOG_CONTENT_DIR": "/tmp/posts",
            "MDBLOG_WEB_ROOT": "/tmp/public",
            "MDBLOG_DEBUG": "true",
            "MDBLOG_PORT": "8000",
            "MDBLOG_METRICS_PORT": "9100",
            "MDBLOG_USE_MEMORY": "1",
            "MDBLOG_ACCESS_LOG_PATH": "/tmp/logs/access.log",
            "MDBLOG_SITE_AUTHOR": "Jane Doe",
        }
        with patch.dict("os.environ", env, clear=True):
            s = Settings()
            assert s.content_dir == Path("/tmp/posts")
            assert s.web_root == Path("/tmp/public")
            assert s.debug is True
            assert s.port == 8000
            assert s.metrics_port == 9100
            assert s.use_memory is True
            assert s.access_log_path == Path("/tmp/logs/access.log")
            assert s.site_author == "Jane Doe"

    def test_debug_false_values(self):
        with patch.dict("os.environ", {"MDBLOG_DEBUG": "false"}, clear=True):
            s = Settings()
            assert s.debug is False

    def test_build_info_from_env(self):
        env = {"MDBLOG_GIT_COMMIT": "abc123", "MDBLOG_BUILD_TIME": "2025-01-01T00:00:00Z"}
        with patch.dict("os.environ", env, clear=True):
            s = Settings()
            assert s.git_commit == "abc123"
            assert s.build_time == "2025-01-01T00:00:00Z"

    def test_unprefixed_vars_ignored(self):
        with patch.dict("os.environ", {"PORT": "1234"}, clear=True):
            s = Settings()
            assert s.port == 8080
