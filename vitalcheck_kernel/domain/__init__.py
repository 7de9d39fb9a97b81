"""Kernel domain primitives (no I/O beyond the system clock)."""

from vitalcheck_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = ["Clock", "DeterministicClock", "SystemClock"]
