"""Release Manager Pipeline - Core application modules.

- SQLite models and persistence gateway
- Object store client and upload use cases
- Release status transitions
- Core utilities: atomic_io, audio_meta, failpoints, paths
"""

__version__ = "0.1.0"
