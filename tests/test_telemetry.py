from __future__ import annotations

import pytest

from labsched.telemetry import EventRecorder, RunTelemetryLogger, SolverEvent, append_jsonl, read_jsonl


def test_run_logger_writes_run_and_step_records(tmp_path):
    log_path = tmp_path / "telemetry" / "runs.jsonl"
    with RunTelemetryLogger(
        log_path=log_path,
        scenario="demo",
        config={"dispatch_rule": "EDD"},
        context={"source": "test"},
    ) as logger:
        logger.log_stage(SolverEvent("demo", 1, 3, "rooms", 12, 6, evaluations=1))
        logger.log_stage(SolverEvent("demo", 1, 3, "sample_search", 9, 7, evaluations=20))
        logger.log_stage(SolverEvent("demo", 2, 3, "rooms", 11, 7, evaluations=1))
        logger.finalize(metrics={"total_lateness": 9})

    runs = read_jsonl(log_path)
    assert len(runs) == 1
    record = runs[0]
    assert record["record_type"] == "run"
    assert record["status"] == "ok"
    assert record["metrics"] == {"total_lateness": 9}
    assert record["config"]["dispatch_rule"] == "EDD"
    assert record["run_id"] == logger.run_id
    assert (record["steps"], record["best_lateness"]) == (3, 9)

    steps = read_jsonl(logger.steps_path)
    assert [step["stage"] for step in steps] == ["rooms", "sample_search", "rooms"]
    assert [step["best_lateness"] for step in steps] == [12, 9, 9]
    assert {step["run_id"] for step in steps} == {logger.run_id}


def test_run_logger_records_errors(tmp_path):
    log_path = tmp_path / "runs.jsonl"
    with pytest.raises(RuntimeError):
        with RunTelemetryLogger(log_path=log_path, scenario="demo", log_steps=False) as logger:
            raise RuntimeError("boom")
    record = read_jsonl(log_path)[0]
    assert record["status"] == "error"
    assert "boom" in record["error"]
    assert logger.steps_path is None


def test_jsonl_helpers_skip_blank_lines_and_filter_record_types(tmp_path):
    path = tmp_path / "nested" / "data.jsonl"
    append_jsonl(path, {"record_type": "run", "log": tmp_path / "x.jsonl"})
    with path.open("a", encoding="utf-8") as handle:
        handle.write("\n")
    append_jsonl(path, {"record_type": "step", "stage": "rooms"})
    records = read_jsonl(path)
    assert [record["record_type"] for record in records] == ["run", "step"]
    assert records[0]["log"] == str(tmp_path / "x.jsonl")
    assert read_jsonl(path, record_type="step") == [{"record_type": "step", "stage": "rooms"}]


def test_event_recorder_collects_stages():
    recorder = EventRecorder()
    recorder(SolverEvent("demo", 1, 4, "rooms", 10, 6))
    recorder(SolverEvent("demo", 2, 4, "converged", 8, 6))
    assert recorder.stages() == ["rooms", "converged"]
    assert recorder.events[0].progress_ratio == pytest.approx(0.25)
