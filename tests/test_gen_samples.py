import json

import numpy as np
import pytest
import torch

import gen_samples
from alias_sampler import AliasTable
from gen_samples import (
    format_report,
    get_logger,
    sample_counts,
    triangular_weights,
    )

cpu = torch.device("cpu")


def test_triangular_weights():
    weights = triangular_weights()
    assert len(weights) == 32
    assert weights[:3] == [0, 1000, 2000]
    assert sum(weights) == 496000
    assert triangular_weights(3, 5) == [0, 5, 10]


def test_sample_counts_sum_and_support():
    table = AliasTable(triangular_weights())
    counts = sample_counts(
        table, num_samples=200_000, batch_size=30_000, seed=0, device=cpu
        )
    assert counts.shape == (32,)
    assert counts.sum() == 200_000
    assert counts[0] == 0
    freq = counts / counts.sum()
    np.testing.assert_allclose(freq, table.probabilities(), atol=0.005)


def test_sample_counts_is_reproducible():
    table = AliasTable([1, 2, 3, 4])
    a = sample_counts(table, num_samples=10_000, seed=7, device=cpu)
    b = sample_counts(table, num_samples=10_000, seed=7, device=cpu)
    assert a.tolist() == b.tolist()


def test_sample_counts_single_outcome():
    table = AliasTable([5])
    counts = sample_counts(table, num_samples=1000, seed=1, device=cpu)
    assert counts.tolist() == [1000]


def test_sample_counts_rejects_bad_arguments():
    table = AliasTable([1, 2, 3, 4])
    with pytest.raises(ValueError):
        sample_counts(table, num_samples=-1, device=cpu)
    with pytest.raises(ValueError):
        sample_counts(table, batch_size=0, device=cpu)
    huge = AliasTable([2**62, 2**62], dtype=object)
    with pytest.raises(ValueError, match="int64"):
        sample_counts(huge, num_samples=1, device=cpu)


def test_format_report_layout():
    table = AliasTable([0, 1, 3])
    lines = format_report(table, np.array([0, 250, 750]))
    assert lines == [
        "Probabilities:",
        "  0: 0",
        "  1: 1",
        "  2: 3",
        "Total: 4",
        "",
        "Sampling results (1000 samples):",
        "  1: 250 - 25.00 %",
        "  2: 750 - 75.00 %",
    ]


def test_get_logger_writes_json_lines(tmp_path, capsys):
    log_file = tmp_path / "nested" / "log.json"
    log_fn = get_logger(str(log_file), print_to_console=False)
    log_fn({"n": 4})
    log_fn({"n": 5})
    records = [json.loads(line) for line in log_file.read_text().splitlines()]
    assert [r["n"] for r in records] == [4, 5]
    assert all("timestamp" in r for r in records)
    assert capsys.readouterr().out == ""


def test_main_runs(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr(gen_samples, "device", cpu)
    log_file = tmp_path / "run.json"
    code = gen_samples.main([
        "--weights", "1,2,3,4",
        "--num-samples", "5000",
        "--seed", "3",
        "--log-file", str(log_file),
        "--quiet",
    ])
    assert code == 0
    out = capsys.readouterr().out
    assert "Total: 10" in out
    assert "Sampling results (5000 samples):" in out
    record = json.loads(log_file.read_text())
    assert record["n"] == 4
    assert record["total"] == 10
    assert sum(record["counts"]) == 5000


def test_main_rejects_decreasing_weights(tmp_path, capsys):
    code = gen_samples.main([
        "--weights", "4,3",
        "--log-file", str(tmp_path / "run.json"),
    ])
    assert code == 2
    assert "non-decreasing" in capsys.readouterr().err
    assert not (tmp_path / "run.json").exists()
