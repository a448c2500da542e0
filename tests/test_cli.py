import json
import sys
import types
from pathlib import Path

import pytest
from rich.console import Console

from fixtures import FakeResponse
from geo_quiz import cli
from geo_quiz.catalog import JsonCountryCatalog
from geo_quiz.commands import _runtime as runtime_mod
from geo_quiz.commands import catalog as catalog_cmd
from geo_quiz.commands import play as play_cmd
from geo_quiz.commands import progress as progress_cmd
from geo_quiz.commands import resolve as resolve_cmd
from geo_quiz.commands import stats as stats_cmd
from geo_quiz.core.config import CONFIG_FILENAME
from geo_quiz.core.storage import JsonFileStore
from geo_quiz.errors import PersistenceError
from geo_quiz.progress import ProgressStore
from geo_quiz.regions import Region
from geo_quiz.scoring import Breakdown, ChallengeRepository, ScoringEngine


@pytest.fixture(autouse=True)
def reset_metadata(monkeypatch):
    """Ensure metadata.version is controllable during tests."""

    def fake_version(name: str) -> str:
        assert name == "geo-quiz"
        return "0.0-test"

    monkeypatch.setattr(cli.metadata, "version", fake_version)
    yield


@pytest.fixture
def console() -> Console:
    return Console(record=True, width=100, force_terminal=True)


def make_provider(commands: list[str]):
    iterator = iter(commands)

    def _provider() -> str:
        return next(iterator)

    return _provider


def test_version_command_handles_missing_package(monkeypatch, capsys):
    monkeypatch.setattr(
        cli.metadata,
        "version",
        lambda name: (_ for _ in ()).throw(cli.metadata.PackageNotFoundError()),
    )
    code = cli.main(["version"])
    captured = capsys.readouterr()
    assert code == 0
    assert captured.out.strip() == "unknown"


def test_no_args_prints_usage_and_returns_error(capsys):
    code = cli.main([])
    captured = capsys.readouterr()
    assert code == 2
    assert "Usage: geo-quiz" in captured.out
    assert "Available commands:" in captured.out


def test_help_flag_shows_usage(capsys):
    code = cli.main(["--help"])
    captured = capsys.readouterr()
    assert code == 0
    assert "Usage: geo-quiz" in captured.out


def test_list_outputs_command_table(capsys):
    code = cli.main(["list"])
    captured = capsys.readouterr()
    assert code == 0
    for name in ("init", "play", "stats", "progress", "resolve", "catalog"):
        assert name in captured.out
    assert "(interactive)" in captured.out


def test_help_known_command(capsys):
    code = cli.main(["help", "play"])
    captured = capsys.readouterr()
    assert code == 0
    assert "Run `geo-quiz play --help`" in captured.out


def test_help_unknown_command(capsys):
    code = cli.main(["help", "does-not-exist"])
    captured = capsys.readouterr()
    assert code == 2
    assert "Unknown command" in captured.err


def test_version_flag(capsys):
    code = cli.main(["--version"])
    captured = capsys.readouterr()
    assert code == 0
    assert captured.out.strip() == "0.0-test"


def test_unknown_command_errors(capsys):
    code = cli.main(["bogus"])
    captured = capsys.readouterr()
    assert code == 2
    assert "Unknown command" in captured.err
    assert "Available commands:" in captured.err


def test_dispatch_invokes_module_main_with_passthrough(monkeypatch):
    before = list(sys.argv)
    captured: dict[str, list[str]] = {}

    def fake_import(module_name: str):
        assert module_name == "geo_quiz.commands.stats"

        def stub_main(argv):
            captured["argv"] = list(argv)
            captured["sys_argv"] = list(sys.argv)
            return 7

        return types.SimpleNamespace(main=stub_main)

    monkeypatch.setattr(cli, "import_module", fake_import)
    code = cli.main(["stats", "--clear"])
    assert code == 7
    assert captured["argv"] == ["--clear"]
    assert captured["sys_argv"] == ["geo-quiz stats", "--clear"]
    assert list(sys.argv) == before


def test_dispatch_handles_system_exit_message(monkeypatch, capsys):
    def fake_import(module_name: str):
        def stub_main(argv):
            raise SystemExit("boom")

        return types.SimpleNamespace(main=stub_main)

    monkeypatch.setattr(cli, "import_module", fake_import)
    code = cli.main(["resolve"])
    captured = capsys.readouterr()
    assert code == 1
    assert captured.err.strip() == "boom"


def test_dispatch_treats_system_exit_none_as_success(monkeypatch):
    def fake_import(module_name: str):
        def stub_main():
            raise SystemExit()

        return types.SimpleNamespace(main=stub_main)

    monkeypatch.setattr(cli, "import_module", fake_import)
    assert cli.main(["catalog"]) == 0


def test_init_end_to_end(tmp_path, capsys):
    target = tmp_path / "home"

    code = cli.main(["init", "--path", str(target)])

    captured = capsys.readouterr()
    assert code == 0
    assert "Workspace ready" in captured.out
    for entry in ("config", "logs", "store"):
        assert (target / entry).is_dir()
    config_path = target / "config" / CONFIG_FILENAME
    assert config_path.exists()
    assert f"Config: {config_path.resolve()} (written)" in captured.out


def test_init_keeps_existing_config_unless_forced(tmp_path, capsys):
    target = tmp_path / "home"
    cli.main(["init", "--path", str(target), "--quiet"])
    config_path = target / "config" / CONFIG_FILENAME
    config_path.write_text("[session]\nnormal_length = 4\n", encoding="utf-8")
    capsys.readouterr()

    cli.main(["init", "--path", str(target)])
    assert "(kept)" in capsys.readouterr().out
    assert "normal_length = 4" in config_path.read_text(encoding="utf-8")

    cli.main(["init", "--path", str(target), "--force"])
    assert "(written)" in capsys.readouterr().out
    assert "normal_length = 10" in config_path.read_text(encoding="utf-8")


def test_init_quiet_prints_nothing(tmp_path, capsys):
    code = cli.main(["init", "--path", str(tmp_path / "q"), "--quiet"])

    assert code == 0
    assert capsys.readouterr().out == ""


def test_play_quit_immediately(data_home, console):
    code = play_cmd.main(
        ["--length", "2", "--seed", "1"],
        console=console,
        input_provider=make_provider(["q"]),
    )

    assert code == 0
    assert "Ending session" in console.export_text()
    assert (data_home / "logs" / "geo_quiz.log").exists()


def test_play_normal_session_saves_level_score(data_home, console):
    code = play_cmd.main(
        ["--region", "europe", "--length", "1", "--seed", "4"],
        console=console,
        input_provider=make_provider(["a", "s", ""]),
    )

    assert code == 0
    assert "Game Over" in console.export_text()
    assert (data_home / "store" / "level_score_1.json").exists()


def test_play_locked_level_is_rejected(data_home, console, capsys):
    code = play_cmd.main(
        ["--region", "europe", "--level", "2"],
        console=console,
        input_provider=make_provider(["q"]),
    )

    assert code == 2
    assert "Level 2 is locked for Europe" in capsys.readouterr().err


def test_play_unknown_region_is_a_usage_error(data_home):
    with pytest.raises(SystemExit) as excinfo:
        play_cmd.main(["--region", "atlantis"])

    assert excinfo.value.code == 2


def test_play_reports_config_errors(data_home, tmp_path, capsys):
    bad = tmp_path / "bad.toml"
    bad.write_text("[session]\nnormal_length = -1\n", encoding="utf-8")

    code = play_cmd.main(["--config", str(bad)])

    assert code == 2
    assert "normal_length" in capsys.readouterr().err


def test_stats_without_records(data_home, console):
    code = stats_cmd.main([], console=console)

    assert code == 0
    rendered = console.export_text()
    assert "No Challenge runs recorded yet." in rendered
    assert "Attempts" in rendered


def test_stats_lists_best_and_history_then_clears(data_home, console):
    engine = ScoringEngine(
        ChallengeRepository(JsonFileStore(data_home / "store"))
    )
    engine.save_if_record(
        score=42,
        total_questions=43,
        time_spent_ms=125_000,
        level_reached=1,
        breakdown=Breakdown(easy_correct=42, flag_questions=43),
    )

    assert stats_cmd.main([], console=console) == 0
    rendered = console.export_text()
    assert "Best score: 42" in rendered
    assert "2m 5s" in rendered
    assert "Recent runs" in rendered

    assert stats_cmd.main(["--clear"], console=console) == 0
    assert "Cleared Challenge records." in console.export_text()
    assert not (data_home / "store" / "best_score.json").exists()


def test_progress_table_and_reset(data_home, console):
    progress = ProgressStore(
        JsonFileStore(data_home / "store"), JsonCountryCatalog()
    )
    progress.record_correct(Region.EUROPE, 1, 2)

    assert progress_cmd.main(["--region", "europe"], console=console) == 0
    rendered = console.export_text()
    assert "Europe" in rendered
    assert "1/25" in rendered
    assert "Overall: 1/25 countries (4.00%)" in rendered

    assert progress_cmd.main(["--reset"], console=console) == 0
    assert "Removed 1 progress record(s)." in console.export_text()


def test_resolve_prints_country(data_home, http_session, capsys):
    http_session.queue(
        "nominatim",
        FakeResponse(payload={"address": {"country": "Russian Federation"}}),
    )

    code = resolve_cmd.main(["55.75", "37.62"], http_session=http_session)

    assert code == 0
    assert capsys.readouterr().out.strip() == "Russia"


def test_resolve_undetected(data_home, http_session, capsys):
    code = resolve_cmd.main(["0", "-30"], http_session=http_session)

    assert code == 1
    assert capsys.readouterr().out.strip() == "undetected"


def test_catalog_command_accepts_bundled_catalog(data_home, console):
    code = catalog_cmd.main([], console=console)

    assert code == 0
    rendered = console.export_text()
    assert "200 countries" in rendered
    assert "Catalog OK" in rendered


def _config_with_catalog(tmp_path: Path, catalog_path: Path) -> Path:
    config = tmp_path / "geo_quiz.toml"
    config.write_text(
        f'[paths]\ncatalog = "{catalog_path.as_posix()}"\n', encoding="utf-8"
    )
    return config


def test_catalog_command_reports_issues(data_home, tmp_path, console):
    catalog_path = tmp_path / "countries.json"
    catalog_path.write_text(
        json.dumps(
            {
                "countries": [
                    {"id": 1, "name": "France", "level": 1,
                     "region": "europe", "countryCode": "FR"},
                    {"id": 1, "name": "Spain", "level": 5,
                     "region": "europe", "countryCode": "ES"},
                ]
            }
        ),
        encoding="utf-8",
    )
    config = _config_with_catalog(tmp_path, catalog_path)

    code = catalog_cmd.main(["--config", str(config)], console=console)

    assert code == 1
    rendered = console.export_text()
    assert "Duplicate id 1" in rendered
    assert "Invalid level 5" in rendered


def test_catalog_command_missing_file(data_home, tmp_path, capsys):
    config = _config_with_catalog(tmp_path, tmp_path / "missing.json")

    code = catalog_cmd.main(["--config", str(config)])

    assert code == 2
    assert "Unable to read country catalog" in capsys.readouterr().err


@pytest.mark.parametrize(
    "module,argv",
    [
        (play_cmd, ["--length", "1"]),
        (stats_cmd, []),
        (progress_cmd, []),
        (catalog_cmd, []),
    ],
)
def test_unwritable_store_is_reported(
    data_home, monkeypatch, capsys, module, argv
):
    def broken_store(root):
        raise PersistenceError(f"Unable to prepare store directory: {root}")

    monkeypatch.setattr(runtime_mod, "JsonFileStore", broken_store)

    code = module.main(argv)

    assert code == 2
    assert "Unable to prepare store directory" in capsys.readouterr().err
