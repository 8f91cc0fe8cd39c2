"""Tests for the command-line interface."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from invoice_ocr.cli import USAGE_ERROR, build_parser, main
from invoice_ocr.pipeline.analytics_store import AnalyticsStoreError
from invoice_ocr.pipeline.orchestrator import PipelineOrchestrator


class TestParser:
    """Tests for argument parsing."""

    def test_filename(self) -> None:
        args = build_parser().parse_args(["--filename", "invoice1"])
        assert args.filename == "invoice1"
        assert args.all is False

    def test_all(self) -> None:
        args = build_parser().parse_args(["--all"])
        assert args.all is True
        assert args.filename is None


class TestUsage:
    """Tests for help and usage errors."""

    def test_help_exits_zero(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--help"])
        assert exc_info.value.code == 0
        assert "--filename" in capsys.readouterr().out

    def test_no_mode_exits_one(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.chdir(tmp_path)
        with patch("invoice_ocr.cli.PipelineOrchestrator") as mock_orch:
            with pytest.raises(SystemExit) as exc_info:
                main([])
        assert exc_info.value.code == 1
        assert USAGE_ERROR in capsys.readouterr().err
        mock_orch.assert_not_called()
        assert list(tmp_path.iterdir()) == []

    def test_both_modes_exit_one(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch("invoice_ocr.cli.PipelineOrchestrator") as mock_orch:
            with pytest.raises(SystemExit) as exc_info:
                main(["--all", "--filename", "invoice1"])
        assert exc_info.value.code == 1
        mock_orch.assert_not_called()


class TestRun:
    """Tests for running the pipeline from the CLI."""

    @patch("invoice_ocr.cli.AnalyticsStore")
    @patch("invoice_ocr.cli.PipelineOrchestrator")
    @patch("invoice_ocr.cli.load_config")
    def test_single_file(
        self,
        mock_load: MagicMock,
        mock_orch_cls: MagicMock,
        mock_store_cls: MagicMock,
        app_config,
    ) -> None:
        mock_load.return_value = app_config
        batch = [MagicMock()]
        mock_orch_cls.return_value.run_single.return_value = batch

        main(["--filename", "invoice1"])

        mock_orch_cls.return_value.run_single.assert_called_once_with("invoice1")
        mock_orch_cls.return_value.run_all.assert_not_called()
        mock_store_cls.assert_called_once_with(app_config.paths.analytics_file)
        mock_store_cls.return_value.finish.assert_called_once_with(batch)

    @patch("invoice_ocr.cli.AnalyticsStore")
    @patch("invoice_ocr.cli.PipelineOrchestrator")
    @patch("invoice_ocr.cli.load_config")
    def test_all(
        self,
        mock_load: MagicMock,
        mock_orch_cls: MagicMock,
        mock_store_cls: MagicMock,
        app_config,
    ) -> None:
        mock_load.return_value = app_config
        main(["--all"])
        mock_orch_cls.return_value.run_all.assert_called_once_with()
        mock_store_cls.return_value.finish.assert_called_once()

    @patch("invoice_ocr.cli.load_config")
    def test_init_analytics_only(self, mock_load: MagicMock, app_config) -> None:
        mock_load.return_value = app_config
        with pytest.raises(SystemExit) as exc_info:
            main(["--init-analytics"])
        assert exc_info.value.code == 0
        assert json.loads(Path(app_config.paths.analytics_file).read_text()) == []

    @patch("invoice_ocr.cli.load_config")
    def test_end_to_end_batch(
        self,
        mock_load: MagicMock,
        app_config,
        make_pdf,
        fake_rasterizer,
        fake_engine,
        fake_extractor,
    ) -> None:
        mock_load.return_value = app_config
        analytics = Path(app_config.paths.analytics_file)
        analytics.write_text('[{"filename": "earlier.pdf"}]')
        make_pdf("a")
        make_pdf("b")
        (Path(app_config.paths.input_dir) / "notes.txt").write_text("skip")

        def _build(config):
            return PipelineOrchestrator(
                config,
                rasterizer=fake_rasterizer,
                engine=fake_engine,
                extractor=fake_extractor,
            )

        with patch("invoice_ocr.cli.PipelineOrchestrator", side_effect=_build):
            with pytest.raises(SystemExit) as exc_info:
                main(["--all"])

        assert exc_info.value.code == 0
        history = json.loads(analytics.read_text())
        assert [r["filename"] for r in history] == ["earlier.pdf", "a.pdf", "b.pdf"]
        assert history[1]["page_count"] == 3

    @patch("invoice_ocr.cli.load_config")
    def test_missing_history_is_fatal(
        self,
        mock_load: MagicMock,
        app_config,
        make_pdf,
        fake_rasterizer,
        fake_engine,
        fake_extractor,
    ) -> None:
        mock_load.return_value = app_config
        make_pdf("invoice1")

        def _build(config):
            return PipelineOrchestrator(
                config,
                rasterizer=fake_rasterizer,
                engine=fake_engine,
                extractor=fake_extractor,
            )

        with patch("invoice_ocr.cli.PipelineOrchestrator", side_effect=_build):
            with pytest.raises(AnalyticsStoreError):
                main(["--filename", "invoice1"])
