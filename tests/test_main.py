"""Tests for the CLI."""
import orjson
import pytest

from modwatch.main import load_config_arg, open_app, parse_args, run_command


def test_parse_check_args():
    """Test check subcommand options."""
    args = parse_args(["check", "--site", "3", "--force-refresh"])
    assert args.command == "check"
    assert args.site == 3
    assert args.force_refresh is True


def test_parse_watch_args():
    """Test watch refetches unless told to use the cache."""
    assert parse_args(["watch", "--interval", "60"]).use_cache is False
    assert parse_args(["watch", "--use-cache"]).use_cache is True


def test_load_config_arg_inline_and_file(tmp_path):
    """Test parser config from JSON text or @file."""
    path = tmp_path / "config.json"
    path.write_text('{"list_selector": ".mod"}')
    assert load_config_arg('{"list_selector": ".card"}') == {"list_selector": ".card"}
    assert load_config_arg(f"@{path}") == {"list_selector": ".mod"}


@pytest.mark.asyncio
async def test_sites_add_and_preview(tmp_path, capsys):
    """Test adding a site and previewing a selector on a local file."""
    html_file = tmp_path / "listing.html"
    html_file.write_text('<div class="mod"><a href="/m/1">One</a></div>')

    async with open_app(tmp_path / "test.db", tmp_path / "snapshots", tmp_path / "saved_pages") as app:
        code = await run_command(
            parse_args(["sites", "add", "Mods", "https://site.example/", '{"list_selector": ".mod"}']), app
        )
        assert code == 0
        added = orjson.loads(capsys.readouterr().out)
        assert added["parser_config"]["list_selector"] == ".mod"

        await run_command(parse_args(["sites", "list"]), app)
        assert [s["name"] for s in orjson.loads(capsys.readouterr().out)] == ["Mods"]

        await run_command(parse_args(["preview", "a", "--html-file", str(html_file)]), app)
        preview = orjson.loads(capsys.readouterr().out)
        assert preview["matches"] == 1
        assert preview["results"][0]["attributes"]["href"] == "/m/1"
