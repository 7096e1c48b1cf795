"""Carbon-intensity pipeline modules for the GB grid intensity project."""

from . import client, coefficients, compute, config, feed, history, load, merge, run, stats, status

__all__ = [
    "client",
    "coefficients",
    "compute",
    "config",
    "feed",
    "history",
    "load",
    "merge",
    "run",
    "stats",
    "status",
]
