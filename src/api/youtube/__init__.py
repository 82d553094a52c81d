"""
YouTube Package - video search through the YouTube Data API.
"""

from api.youtube.core import YouTubeClient, format_video, parse_duration

__all__ = ["YouTubeClient", "format_video", "parse_duration"]
