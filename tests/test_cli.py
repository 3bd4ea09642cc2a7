"""Tests for the command line interface."""

import json

import httpx
import pytest
import respx
from typer.testing import CliRunner

from web_sourcing.cli import app
from web_sourcing.config import reset_config

runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_disk_cache(tmp_path, monkeypatch):
    """Point configuration at a file that disables the on-disk cache."""
    config_file = tmp_path / "web-sourcing.yaml"
    config_file.write_text("cache:\n  enabled: false\nfetch:\n  retries: 0\n")
    monkeypatch.setenv("WEB_SOURCING_CONFIG", str(config_file))
    reset_config()
    yield config_file
    reset_config()


class TestClassify:
    """Tests for the classify command."""

    def test_png_file(self, tmp_path):
        path = tmp_path / "noext"
        path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 32)

        result = runner.invoke(app, ["classify", str(path)])

        assert result.exit_code == 0
        assert "image/png" in result.output

    def test_url_by_extension(self):
        result = runner.invoke(app, ["classify", "https://example.com/report.pdf", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["mime_type"] == "application/pdf"


class TestFetch:
    """Tests for the fetch command."""

    @respx.mock
    def test_fetch(self, minimal_html):
        respx.get("https://example.com/").mock(return_value=httpx.Response(200, html=minimal_html))

        result = runner.invoke(app, ["fetch", "https://example.com/"])

        assert result.exit_code == 0
        assert "T" in result.output
        assert "Blocks: 1" in result.output

    @respx.mock
    def test_fetch_json(self, minimal_html):
        respx.get("https://example.com/").mock(return_value=httpx.Response(200, html=minimal_html))

        result = runner.invoke(app, ["fetch", "https://example.com/", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["metadata"]["title"] == "T"

    @respx.mock
    def test_fetch_to_file(self, minimal_html, tmp_path):
        respx.get("https://example.com/").mock(return_value=httpx.Response(200, html=minimal_html))
        output = tmp_path / "out.txt"

        result = runner.invoke(app, ["fetch", "https://example.com/", "--output", str(output)])

        assert result.exit_code == 0
        assert "Hello" in output.read_text()

    @respx.mock
    def test_fetch_error(self):
        respx.get("https://example.com/gone").mock(return_value=httpx.Response(404))

        result = runner.invoke(app, ["fetch", "https://example.com/gone"])

        assert result.exit_code == 1


class TestBatch:
    """Tests for the batch command."""

    def test_no_urls(self):
        result = runner.invoke(app, ["batch"])
        assert result.exit_code == 1

    @respx.mock
    def test_url_file(self, tmp_path, minimal_html):
        respx.get("https://example.com/a").mock(return_value=httpx.Response(200, html=minimal_html))
        url_file = tmp_path / "urls.txt"
        url_file.write_text("# sources\nhttps://example.com/a\n\nnot-a-url\n")

        result = runner.invoke(app, ["batch", "--file", str(url_file)])

        assert result.exit_code == 0
        assert "1 imported, 1 failed of 2" in result.output


class TestConfigCommand:
    def test_shows_settings(self):
        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "Cache: disabled" in result.output
        assert "Max retries: 0" in result.output
