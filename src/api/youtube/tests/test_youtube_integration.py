"""
Integration tests against the live YouTube Data API.
Run with: pytest -m integration
"""

import pytest

from api.youtube import YouTubeClient
from contracts.models import SearchRequest, SearchType, YouTubePayload

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_live_video_search(youtube_api_key):
    client = YouTubeClient(youtube_api_key)
    request = SearchRequest(term="podcast interview", search_type=SearchType.BY_YOUTUBE, page_size=5)

    result = await client.search(request)

    assert isinstance(result, YouTubePayload), result
    assert result.count <= 5
