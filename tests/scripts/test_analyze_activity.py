"""Tests for the analyze_activity CLI."""

import json
import logging

import duckdb
import pytest

from run_analytics.history import insert_workouts
from run_analytics.scripts.analyze_activity import load_input, main


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("RUN_ANALYTICS_UNIT", "RUN_ANALYTICS_HISTORY_DB", "RUN_ANALYTICS_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    yield
    logger = logging.getLogger("run_analytics")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def activity_file(tmp_path, make_stream):
    def _write(**extra):
        data = {"workout": {"date": "2024-06-30", "stream": make_stream().model_dump()}}
        data.update(extra)
        path = tmp_path / "activity.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


class TestLoadInput:
    @pytest.mark.unit
    def test_workout_only(self, activity_file):
        workout, settings, history = load_input(activity_file())
        assert workout.stream is not None
        assert settings is None
        assert history == []

    @pytest.mark.unit
    def test_with_settings_and_history(self, activity_file, make_history):
        records = [w.model_dump(mode="json") for w in make_history()]
        path = activity_file(settings={"known_vdot": 45}, history=records)
        _, settings, history = load_input(path)
        assert settings.known_vdot == 45
        assert len(history) == 11

    @pytest.mark.unit
    def test_missing_workout_key(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"settings": {}}), encoding="utf-8")
        with pytest.raises(ValueError, match="workout"):
            load_input(path)


class TestMain:
    @pytest.mark.unit
    def test_prints_json(self, activity_file, capsys):
        main([str(activity_file())])

        result = json.loads(capsys.readouterr().out)
        assert result["splits"]["status"] == "ok"
        assert len(result["splits"]["splits"]) == 3
        assert result["vdot"]["status"] == "ok"

    @pytest.mark.unit
    def test_km_unit(self, activity_file, capsys):
        main([str(activity_file()), "--unit", "km"])

        result = json.loads(capsys.readouterr().out)
        assert result["splits"]["unit_m"] == 1000.0
        assert len(result["splits"]["splits"]) == 4

    @pytest.mark.unit
    def test_bad_unit(self, activity_file):
        with pytest.raises(SystemExit) as exc_info:
            main([str(activity_file()), "--unit", "furlong"])
        assert exc_info.value.code == 2

    @pytest.mark.unit
    def test_writes_output_file(self, activity_file, tmp_path, capsys):
        out = tmp_path / "analysis.json"
        main([str(activity_file()), "--output", str(out)])

        assert capsys.readouterr().out == ""
        result = json.loads(out.read_text(encoding="utf-8"))
        assert result["best_segment"]["status"] == "ok"

    @pytest.mark.unit
    def test_history_from_file(self, activity_file, make_history, capsys):
        records = [w.model_dump(mode="json") for w in make_history()]
        main([str(activity_file(history=records))])

        result = json.loads(capsys.readouterr().out)
        assert result["threshold"]["threshold_pace_s_per_unit"] == pytest.approx(430.0)

    @pytest.mark.unit
    def test_missing_file_exits(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main([str(tmp_path / "nope.json")])
        assert exc_info.value.code == 1

    @pytest.mark.unit
    def test_invalid_json_exits(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main([str(path)])
        assert exc_info.value.code == 1

    @pytest.mark.integration
    def test_history_from_duckdb(self, activity_file, make_history, temp_db_path, capsys):
        conn = duckdb.connect(str(temp_db_path))
        try:
            insert_workouts(conn, make_history())
        finally:
            conn.close()

        main([str(activity_file()), "--db", str(temp_db_path)])

        result = json.loads(capsys.readouterr().out)
        assert result["threshold"]["method"] != "insufficient_data"
        assert result["threshold"]["evidence"]["workouts_analyzed"] == 11
