"""Verification Test: failure containment across a whole sampling run.

A failure in one observation (a process, a session line) must never abort
the batch, and the only run-fatal failure is losing the final write.
"""

import math
import random
from datetime import timezone

from avdusage.models import RawProcessEntry
from avdusage.pipeline import ProcessPipeline, RunState, SessionPipeline
from avdusage.writer import RecordWriter
from conftest import QUSER_OUTPUT, FakeProcessSource, FakeSessionSource, make_entry


def chaotic_entries(count: int, seed: int = 1234) -> tuple[list[RawProcessEntry], int]:
    """Mix valid entries with randomly corrupted ones. Returns entries and valid count."""
    rng = random.Random(seed)
    corruptions = [
        {"name": None},
        {"name": 4711},
        {"cpu_seconds": math.inf},
        {"memory_bytes": math.inf},
        {"username": b"jdoe"},
        {"pid": None},
        {"memory_bytes": None},
        {"memory_bytes": -5},
        {"cpu_seconds": "??"},
        {"session_id": None},
    ]
    entries = []
    valid = 0
    for pid in range(100, 100 + count):
        if rng.random() < 0.3:
            entries.append(make_entry(**{"pid": pid, **rng.choice(corruptions)}))
        else:
            entries.append(make_entry(pid=pid, session_id=rng.choice([1, 4, 5, 9])))
            valid += 1
    return entries, valid


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_process_run_survives_corrupt_entries(self, settings, logger, utc_clock, local_clock):
        entries, valid = chaotic_entries(500)
        writer = RecordWriter(settings.process_dir, "ProcessUsage", logger, local_clock)
        pipeline = ProcessPipeline(
            settings,
            logger,
            session_source=FakeSessionSource(),
            process_source=FakeProcessSource(entries),
            writer=writer,
            utc_clock=utc_clock,
            local_tz=timezone.utc,
        )

        result = pipeline.run()

        assert result.state is RunState.COMPLETED
        assert result.records_written == valid
        assert len(result.warnings) == len(entries) - valid

        lines = result.output_path.read_bytes().decode("utf-8").split("\r\n")[:-1]
        pids = [int(line.split(",")[3]) for line in lines]
        assert pids == sorted(pids)
        for line in lines:
            fields = line.split(",")
            assert len(fields) == 9
            assert int(fields[6]) > 0

    def test_session_run_survives_noise(self, settings, logger, utc_clock, local_clock):
        noise = ["", "*** garbage ***", "\t", "jdoe rdp-tcp#3 x Active . now", "12345"]
        lines = QUSER_OUTPUT.splitlines()
        text = "\n".join(noise[:2] + lines[:2] + noise[2:] + lines[2:])
        writer = RecordWriter(settings.session_dir, "SessionUsage", logger, local_clock)

        result = SessionPipeline(
            settings,
            logger,
            source=FakeSessionSource(text),
            writer=writer,
            utc_clock=utc_clock,
            local_tz=timezone.utc,
        ).run()

        assert result.state is RunState.COMPLETED
        assert result.records_written == 3

    def test_consecutive_runs_overwrite_within_minute(self, settings, logger, utc_clock, local_clock):
        """Test overlapping ticks in the same minute leave one artifact."""
        writer = RecordWriter(settings.session_dir, "SessionUsage", logger, local_clock)
        for _ in range(3):
            SessionPipeline(
                settings,
                logger,
                source=FakeSessionSource(),
                writer=writer,
                utc_clock=utc_clock,
            ).run()

        assert len(list(settings.session_dir.iterdir())) == 1
