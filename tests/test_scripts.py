"""
Tests for the command line scripts.

Run with: python -m pytest tests/test_scripts.py -v
"""

import sqlite3
from unittest.mock import Mock, patch

import pytest

from core.ingest import IngestSummary
from core.pipeline import DailyDocument
from scripts import daily_compute, scrape_runs


class TestDailyComputeScript:
    """Tests for scripts/daily_compute.py."""

    @patch("scripts.daily_compute.TopazAPI", side_effect=ValueError("API key required"))
    def test_missing_key_exits_1(self, mock_api):
        assert daily_compute.main([]) == 1

    @patch("scripts.daily_compute.run_daily_compute")
    @patch("scripts.daily_compute.TopazAPI")
    def test_success(self, mock_api, mock_run, tmp_path, capsys):
        mock_run.return_value = DailyDocument(
            date="2025-11-24", computed_at="now", data={"VIC": [{}], "NSW": []}, runner_count=8,
        )

        code = daily_compute.main([
            "--date", "2025-11-24", "--extended",
            "--runs-db", str(tmp_path / "runs.db"),
            "--daily-db", str(tmp_path / "daily.db"),
        ])

        assert code == 0
        assert mock_run.call_args.kwargs == {"date": "2025-11-24", "extended": True}
        assert "Runners: 8" in capsys.readouterr().out

    @patch("scripts.daily_compute.run_daily_compute", side_effect=sqlite3.OperationalError("locked"))
    @patch("scripts.daily_compute.TopazAPI")
    def test_store_error_exits_1(self, mock_api, mock_run, tmp_path):
        code = daily_compute.main([
            "--runs-db", str(tmp_path / "runs.db"),
            "--daily-db", str(tmp_path / "daily.db"),
        ])
        assert code == 1


class TestScrapeRunsScript:
    """Tests for scripts/scrape_runs.py."""

    def test_month_must_be_valid(self):
        with pytest.raises(SystemExit):
            scrape_runs.build_parser().parse_args(["month", "2025", "13"])

    @patch("scripts.scrape_runs.scrape_month", return_value=IngestSummary(1, 1, 0, 5))
    @patch("scripts.scrape_runs.TopazAPI")
    def test_month(self, mock_api, mock_scrape, tmp_path):
        code = scrape_runs.main(["--db", str(tmp_path / "runs.db"), "--jurisdiction", "VIC",
                                 "month", "2025", "11"])

        assert code == 0
        args, kwargs = mock_scrape.call_args
        assert args[2:] == (2025, 11)
        assert kwargs["jurisdictions"] == ["VIC"]

    @patch("scripts.scrape_runs.scrape_years", side_effect=sqlite3.OperationalError("disk full"))
    @patch("scripts.scrape_runs.TopazAPI")
    def test_store_error_exits_1(self, mock_api, mock_scrape, tmp_path):
        assert scrape_runs.main(["--db", str(tmp_path / "runs.db"), "years"]) == 1

    @patch("scripts.scrape_runs.TopazAPI")
    def test_tracks(self, mock_api, capsys):
        mock_api.return_value = Mock(get_track_codes=Mock(return_value=[
            {"trackCode": "RICH", "trackName": "Richmond"},
        ]))

        assert scrape_runs.main(["tracks"]) == 0
        assert "Richmond" in capsys.readouterr().out
