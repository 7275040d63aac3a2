"""
ffmpeg-builder: run ffmpeg conversions as tracked jobs and stream their
output live to connected observers.
"""

__version__ = "1.0.0"
