"""Simulated MIPS workstation hardware: CPU, memory translation, interrupts and devices."""

__version__ = "0.1.0"

__all__ = [
    "console",
    "disk",
    "host",
    "instructions",
    "interrupt",
    "machine",
    "network",
    "stats",
    "timer",
    "translate",
]