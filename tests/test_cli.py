"""Tests for the click CLI."""

import pytest
from click.testing import CliRunner

from models.block import TextBlock
from models.database import Database
from models.enums import NodeType
from models.outline import ChapterNode


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the CLI at a temp database and keep it from touching logging."""
    db_path = tmp_path / "cli.db"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SQLITE_DB_PATH", str(db_path))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr("cli.main.setup_logging", lambda **kwargs: None)
    return Database(db_path)


@pytest.fixture
def runner():
    return CliRunner()


def _episode_with(db, contents):
    chapter_id = db.chapters.add(ChapterNode(project_id=1, title="Ep", type=NodeType.EPISODE))
    for order, content in enumerate(contents):
        db.text_blocks.add(TextBlock(chapter_id=chapter_id, project_id=1, content=content, order=order))
    return chapter_id


class TestOutlineCommands:
    def test_add_and_tree(self, cli_env, runner):
        from cli.main import cli
        result = runner.invoke(cli, ["add", "-p", "1", "-t", "volume", "Book One"])
        assert result.exit_code == 0, result.output
        volume_id = cli_env.chapters.where(project_id=1)[0].id

        result = runner.invoke(cli, ["add", "-p", "1", "-t", "episode", "--parent", str(volume_id), "Opening"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(cli, ["tree", "-p", "1"])
        assert result.exit_code == 0
        assert "Book One" in result.output
        assert "Opening" in result.output

    def test_add_under_episode_fails(self, cli_env, runner):
        from cli.main import cli
        episode = _episode_with(cli_env, [])
        result = runner.invoke(cli, ["add", "-p", "1", "--parent", str(episode), "Nope"])
        assert result.exit_code == 1

    def test_delete_with_force(self, cli_env, runner):
        from cli.main import cli
        episode = _episode_with(cli_env, ["A"])
        result = runner.invoke(cli, ["delete", "-p", "1", "-f", str(episode)])
        assert result.exit_code == 0, result.output
        assert cli_env.chapters.get(episode) is None
        assert cli_env.text_blocks.count(chapter_id=episode) == 0

    def test_delete_cancelled(self, cli_env, runner):
        from cli.main import cli
        episode = _episode_with(cli_env, ["A"])
        result = runner.invoke(cli, ["delete", "-p", "1", str(episode)], input="n\n")
        assert result.exit_code == 0
        assert cli_env.chapters.get(episode) is not None

    def test_duplicate(self, cli_env, runner):
        from cli.main import cli
        episode = _episode_with(cli_env, ["A", "B"])
        result = runner.invoke(cli, ["duplicate", "-p", "1", str(episode)])
        assert result.exit_code == 0, result.output
        titles = [n.title for n in cli_env.chapters.where(project_id=1)]
        assert titles == ["Ep", "Ep (コピー)"]


class TestBlockCommands:
    def test_show_unknown_chapter(self, cli_env, runner):
        from cli.main import cli
        result = runner.invoke(cli, ["show", "-c", "404"])
        assert result.exit_code == 1

    def test_import_and_export(self, cli_env, runner, tmp_path):
        from cli.main import cli
        episode = _episode_with(cli_env, [])
        result = runner.invoke(cli, ["import", "-c", str(episode), "-"], input="一行目\n|強《・》\n")
        assert result.exit_code == 0, result.output

        out = tmp_path / "out" / "ep.txt"
        result = runner.invoke(cli, ["export", "-c", str(episode), "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert out.read_text(encoding="utf-8") == "一行目\n《《強》》"

    def test_tidy_dialogue_add(self, cli_env, runner):
        from cli.main import cli
        episode = _episode_with(cli_env, ["「hi」", "narrative"])
        result = runner.invoke(cli, ["tidy", "-c", str(episode), "-a", "dialogue-add"])
        assert result.exit_code == 0, result.output
        assert [b.content for b in cli_env.text_blocks.where(chapter_id=episode)] == ["「hi」", "", "narrative"]

    def test_replace(self, cli_env, runner):
        from cli.main import cli
        episode = _episode_with(cli_env, ["猫がいる", "犬"])
        result = runner.invoke(cli, ["replace", "-c", str(episode), "猫", "虎"])
        assert result.exit_code == 0, result.output
        assert "Changed 1 block(s)" in result.output

    def test_backup(self, cli_env, runner, tmp_path):
        from cli.main import cli
        target = tmp_path / "bk" / "copy.db"
        result = runner.invoke(cli, ["backup", str(target)])
        assert result.exit_code == 0, result.output
        assert target.exists()
