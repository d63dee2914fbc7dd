"""avdusage - per-user process and session sampler for AVD session hosts."""

__version__ = "0.1.0"
