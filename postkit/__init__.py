"""Building blocks for digital cinema and IMF tools: hashing, J2K analysis and encoding, jobs, loudness, MCA, CPL metadata, ingest and mpv preview."""

__version__ = "0.1.0"

__all__ = [
    "grok",
    "grok_encoder",
    "grok_subprocess",
    "hash",
    "ingest",
    "j2k",
    "job_queue",
    "loudness",
    "mca",
    "metadata_edit",
    "mpv",
]