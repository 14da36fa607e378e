"""BAC (Batch Audio Converter)

Core package for converting batches of audio files between MP3, WAV, M4A
and FLAC by driving an external ffmpeg binary from a bounded worker pool.
"""

__all__ = [
    "__version__",
]

# Keep in sync with pyproject.toml
__version__ = "0.1.0"
