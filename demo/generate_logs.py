#!/usr/bin/env python3
"""Generate access-log style text lines for the demos.

Each line: <epoch> <ip> <method> <path> <status> <ms>
"""

import random
import sys

PATHS = [
    "/api/users", "/api/orders", "/api/products", "/api/auth/login",
    "/api/cart", "/api/checkout", "/health", "/metrics",
]

STATUS_WEIGHTS = {200: 75, 201: 8, 304: 4, 404: 7, 500: 4, 503: 2}

METHODS = ["GET", "POST", "PUT", "DELETE"]
METHOD_WEIGHTS = [60, 20, 15, 5]


def generate_line(rng: random.Random) -> str:
    status = rng.choices(list(STATUS_WEIGHTS), list(STATUS_WEIGHTS.values()))[0]
    base_time = 400 if status >= 500 else 80
    return " ".join(
        [
            str(1704067200 + rng.randint(0, 86400)),
            f"10.0.{rng.randint(0, 3)}.{rng.randint(1, 254)}",
            rng.choices(METHODS, METHOD_WEIGHTS)[0],
            rng.choice(PATHS),
            str(status),
            str(max(1, int(rng.gauss(base_time, base_time * 0.5)))),
        ]
    )


if __name__ == "__main__":
    n = int(sys.argv[1]) if len(sys.argv) > 1 else 100_000
    rng = random.Random(42)
    for _ in range(n):
        print(generate_line(rng))
