"""
Podcast Package - PodcastIndex person and title search.
"""

from api.podcast.podcastindex import GENRE_CATEGORIES, PodcastIndexClient

__all__ = ["PodcastIndexClient", "GENRE_CATEGORIES"]
