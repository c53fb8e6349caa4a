"""
Unit Tests - Command Line
"""
from collections import Counter

import pytest

from electronica_dw.join import RunMetrics, SkipReason
from electronica_dw.main import build_parser, fact_build_exit_code


class TestParser:
    """Tests for argument parsing"""

    def test_overrides(self):
        args = build_parser().parse_args([
            "build-facts", "--batch-size", "25", "--pace-ms", "0",
            "--log-level", "DEBUG", "--log-format", "json",
        ])

        assert args.command == "build-facts"
        assert args.batch_size == 25
        assert args.pace_ms == 0
        assert args.log_level == "DEBUG"
        assert args.log_format == "json"

    def test_defaults_leave_settings_untouched(self):
        args = build_parser().parse_args(["run"])

        assert args.batch_size is None
        assert args.pace_ms is None
        assert args.log_format is None
        assert args.timeout is None

    def test_unknown_log_format(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["run", "--log-format", "xml"])


class TestFactBuildExitCode:
    """Tests for mapping run metrics to an exit code"""

    def test_clean_run(self):
        metrics = RunMetrics(rows_processed=5, batches_processed=1, facts_emitted=5)

        assert fact_build_exit_code(metrics) == 0

    def test_skipped_records(self):
        metrics = RunMetrics(
            rows_processed=5,
            facts_emitted=4,
            skipped=Counter({SkipReason.SINK_FAILURE: 1}),
        )

        assert fact_build_exit_code(metrics) == 1

    def test_truncated_source(self):
        """A source that failed mid-stream is an incomplete run"""
        metrics = RunMetrics(rows_processed=12, batches_processed=2, facts_emitted=12, source_truncated=True)

        assert fact_build_exit_code(metrics) == 1
