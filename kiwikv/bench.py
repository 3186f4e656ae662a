"""Benchmark driver: mixed read/write workloads and sequential write/read runs."""

from __future__ import annotations

import logging
import random
import re
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

from kiwikv.db import DB

logger = logging.getLogger(__name__)

KSIZE = 16
VSIZE = 1000
DEFAULT_PATH = "testdb"
CPUINFO_PATH = "/proc/cpuinfo"

LINE = "+-----------------------------+----------------+------------------------------+-------------------+"
LINE1 = "---------------------------------------------------------------------------------------------------"

_SALT = "abcdefghijklmnopqrstuvwxyz0123456789"
_MIX_USAGE = "Usage: ./kiwi-bench mix <total_ops> <write_%> <threads> <random(0|1)>"
_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")


def get_monotonic_us() -> int:
    """Monotonic clock reading in microseconds."""
    return time.monotonic_ns() // 1000


def random_key(length: int, rng: random.Random | None = None) -> str:
    """Random key of ``length`` lowercase letters and digits."""
    source = rng if rng is not None else random
    return "".join(source.choice(_SALT) for _ in range(length))


def _atoi(text: str) -> int:
    match = _INT_PREFIX.match(text)
    return int(match.group(1)) if match else 0


def _sequential_key(n: int) -> bytes:
    return f"key-{n:0{KSIZE - 4}d}"[:KSIZE].encode()


def _legacy_key(n: int) -> bytes:
    return f"key-{n}"[:KSIZE - 1].encode().ljust(KSIZE, b"\0")


def _value(n: int) -> bytes:
    return f"val-{n}"[:VSIZE - 1].encode().ljust(VSIZE, b"\0")


def format_header(count: int) -> str:
    """Describe entry sizes and the estimated index and data volume."""
    index_mib = (KSIZE + 8 + 1) * count / (1024.0 * 1024.0)
    data_mib = (VSIZE + 4) * count / (1024.0 * 1024.0)
    return "\n".join([
        f"Keys:\t\t{KSIZE} bytes each",
        f"Values: \t{VSIZE} bytes each",
        f"Entries:\t{count}",
        f"IndexSize:\t{index_mib:.2f} MiB (estimated)",
        f"DataSize:\t{data_mib:.2f} MiB (estimated)",
        LINE1,
    ]) + "\n"


def format_environment(cpuinfo_path: str | Path = CPUINFO_PATH) -> str:
    """Current date and the processor summary read from a cpuinfo file."""
    lines = [f"Date:\t\t{time.ctime()}"]
    try:
        with open(cpuinfo_path, encoding="utf-8", errors="replace") as fh:
            text = fh.read()
    except OSError:
        lines.append("CPU:\t\tUnavailable (/proc/cpuinfo not found)")
        lines.append("CPUCache:\tUnavailable")
    else:
        cores = 0
        cpu_type = ""
        cache_size = ""
        for raw in text.splitlines():
            line = raw.strip()
            if line.startswith("processor"):
                cores += 1
            elif line.startswith("model name") and not cpu_type:
                _, sep, rest = line.partition(":")
                if sep:
                    cpu_type = rest.lstrip()
            elif line.startswith("cache size") and not cache_size:
                _, sep, rest = line.partition(":")
                if sep:
                    cache_size = rest.lstrip()
        lines.append(f"CPU:\t\t{cores} * {cpu_type or 'Unknown'}")
        lines.append(f"CPUCache:\t{cache_size or 'Unknown'}")
    lines.append(LINE1)
    return "\n".join(lines) + "\n"


@dataclass
class ThreadStats:
    """Work assigned to one worker thread and what it measured."""

    thread_id: int
    ops_count: int
    reads_done: int = 0
    writes_done: int = 0
    read_time_us: int = 0
    write_time_us: int = 0
    total_time_ms: int = 0

    @property
    def ops_done(self) -> int:
        return self.reads_done + self.writes_done


@dataclass
class MixResult:
    """Outcome of a mixed workload run."""

    requested_ops: int
    write_ratio_percent: int
    use_random_keys: bool
    duration_us: int = 0
    threads: list[ThreadStats] = field(default_factory=list)

    @property
    def assigned_ops(self) -> int:
        return sum(t.ops_count for t in self.threads)

    @property
    def reads(self) -> int:
        return sum(t.reads_done for t in self.threads)

    @property
    def writes(self) -> int:
        return sum(t.writes_done for t in self.threads)

    @property
    def ops_done(self) -> int:
        return self.reads + self.writes

    @property
    def read_time_us(self) -> int:
        return sum(t.read_time_us for t in self.threads)

    @property
    def write_time_us(self) -> int:
        return sum(t.write_time_us for t in self.threads)

    @property
    def duration_sec(self) -> float:
        return self.duration_us / 1_000_000.0

    @property
    def throughput(self) -> float:
        return self.ops_done / self.duration_sec if self.duration_sec > 0 else 0.0

    @property
    def avg_read_latency_us(self) -> float:
        return self.read_time_us / self.reads if self.reads else 0.0

    @property
    def avg_write_latency_us(self) -> float:
        return self.write_time_us / self.writes if self.writes else 0.0

    @property
    def avg_op_latency_us(self) -> float:
        total = self.read_time_us + self.write_time_us
        return total / self.ops_done if self.ops_done else 0.0

    @property
    def max_thread_time_ms(self) -> int:
        return max((t.total_time_ms for t in self.threads), default=0)


def _mix_worker(db: DB, stats: ThreadStats, write_ratio: int, use_random: bool) -> None:
    rng = random.Random()
    start = get_monotonic_us()
    for i in range(stats.ops_count):
        do_write = rng.randrange(100) < write_ratio
        if use_random:
            key = random_key(KSIZE, rng).encode()
        else:
            key = _sequential_key(i + stats.thread_id * stats.ops_count)
        if do_write:
            value = _value(i)
            t0 = get_monotonic_us()
            db.add(key, value)
            stats.write_time_us += get_monotonic_us() - t0
            stats.writes_done += 1
        else:
            t0 = get_monotonic_us()
            db.get(key)
            stats.read_time_us += get_monotonic_us() - t0
            stats.reads_done += 1
    stats.total_time_ms = (get_monotonic_us() - start) // 1000


def run_mix(
    total_ops: int,
    write_ratio_percent: int,
    num_threads: int,
    use_random_keys: bool,
    path: str | Path = DEFAULT_PATH,
) -> MixResult:
    """Run ``total_ops`` reads and writes spread over ``num_threads`` threads."""
    if total_ops <= 0:
        raise ValueError("total_ops must be positive")
    if num_threads <= 0:
        raise ValueError("num_threads must be positive")
    if not 0 <= write_ratio_percent <= 100:
        raise ValueError("write_ratio_percent must be between 0 and 100")

    per_thread, remainder = divmod(total_ops, num_threads)
    result = MixResult(total_ops, write_ratio_percent, bool(use_random_keys))
    result.threads = [
        ThreadStats(i, per_thread + (1 if i < remainder else 0)) for i in range(num_threads)
    ]

    start = get_monotonic_us()
    db = DB(path)
    try:
        workers = [
            threading.Thread(
                target=_mix_worker,
                args=(db, stats, write_ratio_percent, bool(use_random_keys)),
            )
            for stats in result.threads
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()
        result.duration_us = get_monotonic_us() - start
    finally:
        db.close()

    if result.ops_done != result.assigned_ops:
        logger.warning(
            "Mismatch between assigned ops (%d) and completed ops (%d)",
            result.assigned_ops,
            result.ops_done,
        )
    return result


def _format_mix_preamble(total_ops: int, write_ratio: int, threads: int, use_random: bool) -> str:
    return "\n".join([
        "Starting benchmark...",
        f"Requested Total Ops: {total_ops}",
        f"Threads: {threads}, Write Ratio: {write_ratio}%",
        f"Random Keys: {'Yes' if use_random else 'No'}",
        LINE1,
    ]) + "\n"


def format_mix_report(result: MixResult) -> str:
    """Summary table and per-thread details of a mixed run."""
    sep = "+--------------------------------+--------------------------------+"
    dash = "---------------------------------------------------------------------------------------"
    total_op_time = result.read_time_us + result.write_time_us
    lines = [
        sep,
        "| Overall Statistics             |                                |",
        sep,
        f"| Wall Clock Time                | {result.duration_sec:10.3f} sec                  |",
        f"| Total Operations Completed     | {result.ops_done:10d} ops                 |",
        f"|   Reads                        | {result.reads:10d} ops                 |",
        f"|   Writes                       | {result.writes:10d} ops                 |",
        f"| Throughput                     | {result.throughput:10.1f} ops/sec             |",
        sep,
        "| Average Latencies              |                                |",
        sep,
        f"| Average Operation Latency    | {result.avg_op_latency_us:10.1f} us                   |",
        f"|   Average Read Latency         | {result.avg_read_latency_us:10.1f} us                   |",
        f"|   Average Write Latency        | {result.avg_write_latency_us:10.1f} us                   |",
        sep,
        f"| Total DB Ops CPU Time (Sum)    | {total_op_time / 1_000_000.0:10.3f} sec                  |",
        f"| Max Thread Wall Time           | {result.max_thread_time_ms:10d} ms                  |",
        sep,
        "",
        "Per-Thread Details:",
        dash,
        "| Thread | Ops Done | Reads  | Writes | Read Time (us) | Write Time (us) | Wall Time (ms) |",
        "|--------|----------|--------|--------|----------------|-----------------|----------------|",
    ]
    for t in result.threads:
        lines.append(
            f"| {t.thread_id:<6d} | {t.ops_done:<8d} | {t.reads_done:<6d} | {t.writes_done:<6d} "
            f"| {t.read_time_us:<14d} | {t.write_time_us:<15d} | {t.total_time_ms:<14d} |"
        )
    lines.append(dash)
    return "\n".join(lines) + "\n"


class _Outcome(NamedTuple):
    kind: str
    count: int
    found: int | None
    cost_sec: float

    @property
    def report(self) -> str:
        per_op = self.cost_sec / self.count if self.count else 0.0
        rate = self.count / self.cost_sec if self.cost_sec else float("inf")
        if self.found is None:
            body = (
                f"|Random-Write\t(done:{self.count}): {per_op:.6f} sec/op; "
                f"{rate:.1f} writes/sec(estimated); cost:{self.cost_sec:.3f}(sec);"
            )
        else:
            body = (
                f"|Random-Read\t(done:{self.count}, found:{self.found}): {per_op:.6f} sec/op; "
                f"{rate:.1f} reads /sec(estimated); cost:{self.cost_sec:.3f}(sec)"
            )
        return f"{LINE}\n{body}\n"


def _legacy_key_for(i: int, use_random: bool) -> bytes:
    return random_key(KSIZE).encode() if use_random else _legacy_key(i)


def write_test(count: int, use_random_keys: bool = False, path: str | Path = DEFAULT_PATH) -> _Outcome:
    """Write ``count`` entries and time the run."""
    db = DB(path)
    start = time.monotonic()
    try:
        for i in range(count):
            key = _legacy_key_for(i, use_random_keys)
            logger.debug("%d adding %r", i, key)
            db.add(key, _value(i))
            if i % 10000 == 0:
                sys.stderr.write(f"random write finished {i} ops{'':30s}\r")
                sys.stderr.flush()
    finally:
        db.close()
    return _Outcome("write", count, None, time.monotonic() - start)


def read_test(count: int, use_random_keys: bool = False, path: str | Path = DEFAULT_PATH) -> _Outcome:
    """Look up ``count`` keys, counting those found, and time the run."""
    db = DB(path)
    start = time.monotonic()
    found = 0
    try:
        for i in range(count):
            key = _legacy_key_for(i, use_random_keys)
            logger.debug("%d searching %r", i, key)
            if db.get(key) is not None:
                found += 1
            else:
                logger.info("not found key#%r", key)
            if i % 10000 == 0:
                sys.stderr.write(f"random read finished {i} ops{'':30s}\r")
                sys.stderr.flush()
    finally:
        db.close()
    return _Outcome("read", count, found, time.monotonic() - start)


def _main_mix(argv: list[str]) -> int:
    if len(argv) != 5:
        print(_MIX_USAGE, file=sys.stderr)
        print("  Example: ./kiwi-bench mix 1000000 10 4 1", file=sys.stderr)
        return 1
    total_ops = _atoi(argv[1])
    write_ratio = _atoi(argv[2])
    threads = _atoi(argv[3])
    use_random = _atoi(argv[4])
    if total_ops <= 0 or not 0 <= write_ratio <= 100 or threads <= 0 or use_random not in (0, 1):
        print("Error: Invalid arguments.", file=sys.stderr)
        print(_MIX_USAGE, file=sys.stderr)
        return 1
    if total_ops < threads:
        print(
            f"Warning: Total operations ({total_ops}) is less than thread count ({threads}). "
            f"Adjusting threads to {total_ops}.",
            file=sys.stderr,
        )
        threads = total_ops

    sys.stdout.write(format_header(total_ops))
    sys.stdout.write(format_environment())
    sys.stdout.write(_format_mix_preamble(total_ops, write_ratio, threads, bool(use_random)))
    result = run_mix(total_ops, write_ratio, threads, bool(use_random), DEFAULT_PATH)
    sys.stdout.write(format_mix_report(result))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point; returns the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    prog = "kiwi-bench"

    if args and args[0] == "mix":
        return _main_mix(args)

    if len(args) < 2:
        print(f"Usage: {prog} <write | read> <count> [random]", file=sys.stderr)
        print(f"       {prog} mix <total_ops> <write_%> <threads> <random(0|1)>", file=sys.stderr)
        return 1

    count = _atoi(args[1])
    if count <= 0:
        print(f"Error: Invalid count '{args[1]}'", file=sys.stderr)
        return 1

    sys.stdout.write(format_header(count))
    sys.stdout.write(format_environment())

    start = get_monotonic_us()
    use_random = len(args) == 3 and _atoi(args[2]) == 1
    if args[0] == "write":
        outcome = write_test(count, use_random, DEFAULT_PATH)
    elif args[0] == "read":
        outcome = read_test(count, use_random, DEFAULT_PATH)
    else:
        print(f"Error: Unknown command '{args[0]}'", file=sys.stderr)
        print(f"Usage: {prog} <write | read | mix> ...", file=sys.stderr)
        return 1
    sys.stdout.write(outcome.report)

    duration = (get_monotonic_us() - start) / 1_000_000.0
    print(f"[{args[0]:<5s}] Total time: {duration:.3f} sec")
    return 0


if __name__ == "__main__":
    sys.exit(main())