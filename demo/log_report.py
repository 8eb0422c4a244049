#!/usr/bin/env python3
"""Server error report built from ordinary Unix tools.

Generates a log file, then counts 5xx responses per path with a
grep | cut | sort | uniq pipeline and prints the trace of every stage.

Usage:
    python demo/log_report.py [LINES]
"""

import os
import shlex
import sys
import tempfile
import time

# Add parent directory to path for local development
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shellrun import CommandFailed, RecordingSink, Tracer, run_cmd, run_fun

lines = int(sys.argv[1]) if len(sys.argv) > 1 else 200_000
generator = os.path.join(os.path.dirname(os.path.abspath(__file__)), "generate_logs.py")
log_path = os.path.join(tempfile.mkdtemp(prefix="shellrun-demo-"), "access.log")

sink = RecordingSink()
tracer = Tracer(sink)

print(f"Generating {lines:,} log lines into {log_path}")
run_cmd(
    f"{shlex.quote(sys.executable)} {shlex.quote(generator)} {lines} > {shlex.quote(log_path)}",
    tracer=tracer,
)

start = time.time()
report = run_fun(
    f"grep -E ' 5[0-9][0-9] [0-9]+$' {shlex.quote(log_path)}"
    " | cut -d ' ' -f 4,5 | sort | uniq -c | sort -rn",
    tracer=tracer,
)
elapsed = time.time() - start

print()
print("Stages:")
for line in sink.lines[1:]:
    print(f"  {line}")
print()
print(f"{'Count':>8}  {'Path':<20} Status")
print("-" * 40)
for row in report.splitlines():
    count, path, status = row.split()
    print(f"{count:>8}  {path:<20} {status}")
print(f"\nCompleted in {elapsed:.2f} seconds")

# grep exits 1 when nothing matches, which fails the whole pipeline
try:
    run_fun(f"grep ' 418 ' {shlex.quote(log_path)} | wc -l")
except CommandFailed as e:
    print(f"\nNo 418 responses (pipeline failed with exit code {e.exit_code} "
          f"at stages {[s.index for s in e.outcome.failed_stages]})")
