import random

import pytest

from kiwikv.bench import (
    KSIZE,
    VSIZE,
    MixResult,
    ThreadStats,
    format_environment,
    format_header,
    format_mix_report,
    get_monotonic_us,
    main,
    random_key,
    read_test,
    run_mix,
    write_test,
)
from kiwikv.db import DB


def test_monotonic_clock_does_not_go_back():
    first = get_monotonic_us()
    second = get_monotonic_us()
    assert second >= first


def test_random_key_length_and_alphabet():
    key = random_key(KSIZE, random.Random(7))
    assert len(key) == KSIZE
    assert set(key) <= set("abcdefghijklmnopqrstuvwxyz0123456789")


def test_random_key_is_reproducible_with_seed():
    rng = random.Random(3)
    first = random_key(20, rng)
    second = random_key(20, rng)
    assert len(first) == 20
    assert first == random_key(20, random.Random(3))
    assert first != second


def test_format_header_lines():
    text = format_header(5)
    assert "Keys:\t\t16 bytes each" in text
    assert "Values: \t1000 bytes each" in text
    assert "Entries:\t5" in text


def test_format_environment_reads_cpuinfo(tmp_path):
    info = tmp_path / "cpuinfo"
    info.write_text(
        "processor\t: 0\nmodel name\t: Test CPU\ncache size\t: 512 KB\n"
        "processor\t: 1\nmodel name\t: Other CPU\ncache size\t: 1 KB\n"
    )
    text = format_environment(info)
    assert "CPU:\t\t2 * Test CPU" in text
    assert "CPUCache:\t512 KB" in text
    assert text.startswith("Date:\t\t")


def test_format_environment_missing_file(tmp_path):
    text = format_environment(tmp_path / "absent")
    assert "CPUCache:\tUnavailable" in text


def test_run_mix_all_writes_stores_values(tmp_path):
    path = tmp_path / "db"
    result = run_mix(10, 100, 2, False, path)
    assert result.writes == 10
    assert result.reads == 0
    assert [t.ops_count for t in result.threads] == [5, 5]
    with DB(path) as db:
        assert db.get(b"key-000000000000") == b"val-0".ljust(VSIZE, b"\0")
        assert db.get(b"key-000000000005") == b"val-0".ljust(VSIZE, b"\0")


def test_run_mix_all_reads(tmp_path):
    result = run_mix(8, 0, 3, True, tmp_path / "db")
    assert result.reads == 8
    assert result.writes == 0
    assert result.ops_done == result.assigned_ops


def test_run_mix_spreads_remainder(tmp_path):
    result = run_mix(7, 50, 3, False, tmp_path / "db")
    assert [t.ops_count for t in result.threads] == [3, 2, 2]
    assert sum(t.ops_done for t in result.threads) == 7


@pytest.mark.parametrize("args", [(0, 10, 1), (5, 10, 0), (5, 101, 1), (5, -1, 1)])
def test_run_mix_rejects_bad_arguments(tmp_path, args):
    total, ratio, threads = args
    with pytest.raises(ValueError):
        run_mix(total, ratio, threads, False, tmp_path / "db")


def test_format_mix_report_rows():
    result = MixResult(4, 50, False, duration_us=2_000_000)
    result.threads = [
        ThreadStats(0, 2, reads_done=1, writes_done=1, read_time_us=10, write_time_us=30),
        ThreadStats(1, 2, reads_done=2, writes_done=0, read_time_us=20),
    ]
    text = format_mix_report(result)
    assert "| Overall Statistics             |                                |" in text
    assert result.avg_op_latency_us == pytest.approx(15.0)
    assert text.count("\n| 0      |") + text.count("\n| 1      |") == 2


def test_write_then_read_finds_everything(tmp_path):
    path = tmp_path / "db"
    written = write_test(20, False, path)
    assert written.count == 20
    outcome = read_test(20, False, path)
    assert outcome.found == 20
    assert "found:20" in outcome.report


def test_read_on_empty_db_finds_nothing(tmp_path):
    outcome = read_test(5, False, tmp_path / "db")
    assert outcome.found == 0


def test_main_without_arguments_fails(capsys):
    assert main([]) == 1
    assert "Usage" in capsys.readouterr().err


def test_main_mix_wrong_argument_count(capsys):
    assert main(["mix", "10"]) == 1
    assert "Usage" in capsys.readouterr().err


def test_main_mix_invalid_ratio(capsys):
    assert main(["mix", "10", "150", "2", "0"]) == 1
    assert "Invalid arguments" in capsys.readouterr().err


def test_main_mix_runs(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["mix", "6", "50", "2", "0"]) == 0
    out = capsys.readouterr().out
    assert "Starting benchmark..." in out
    assert "Per-Thread Details:" in out
    assert (tmp_path / "testdb").is_dir()


def test_main_unknown_command(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["frob", "3"]) == 1
    assert "Unknown command 'frob'" in capsys.readouterr().err


def test_main_invalid_count(capsys):
    assert main(["write", "zero"]) == 1
    assert "Invalid count 'zero'" in capsys.readouterr().err


def test_main_write_and_read(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["write", "4"]) == 0
    assert main(["read", "4"]) == 0
    out = capsys.readouterr().out
    assert "found:4" in out
    assert "[read ] Total time:" in out