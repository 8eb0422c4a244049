#!/usr/bin/env python3
"""Classic word count over a text file.

Usage:
    python demo/word_count.py FILE
"""

import os
import shlex
import sys

# Add parent directory to path for local development
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shellrun import run_fun

if len(sys.argv) < 2:
    print(__doc__)
    sys.exit(2)

path = shlex.quote(sys.argv[1])

print("=== Word Count Demo ===")
print(f"Lines: {run_fun(f'wc -l < {path}').strip()}")
print()

# head exits after 20 lines, so earlier stages may die of SIGPIPE: only head counts
top = run_fun(
    f"tr -cs 'A-Za-z' '\\n' < {path} | tr A-Z a-z | sort | uniq -c | sort -rn | head -20",
    pipefail=False,
)
for row in top.splitlines():
    count, word = row.split()
    print(f"{word:<15} {count:>8}")
