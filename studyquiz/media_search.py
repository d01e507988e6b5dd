"""
Related media lookup - YouTube videos and Unsplash images for the
keywords extracted from a document.
"""
import asyncio
import logging
from typing import List, Optional

import requests

from .models import MediaSuggestion

logger = logging.getLogger(__name__)


class MediaSearchClient:
    """
    Searches YouTube and Unsplash for material related to a document.
    Lookups are best-effort: missing keys or API failures yield empty lists.
    """

    YOUTUBE_SEARCH_URL = 'https://www.googleapis.com/youtube/v3/search'
    UNSPLASH_SEARCH_URL = 'https://api.unsplash.com/search/photos'

    def __init__(
        self,
        youtube_api_key: Optional[str] = None,
        unsplash_access_key: Optional[str] = None,
        timeout: float = 10.0
    ):
        self.youtube_api_key = youtube_api_key
        self.unsplash_access_key = unsplash_access_key
        self.timeout = timeout

    @staticmethod
    def build_query(keywords: List[str], max_keywords: int = 3) -> str:
        return " ".join(k for k in keywords[:max_keywords] if k)

    def _search_videos_sync(self, query: str, limit: int) -> List[MediaSuggestion]:
        if not self.youtube_api_key:
            logger.warning("YouTube API key not configured, skipping video search")
            return []

        try:
            params = {
                'part': 'snippet',
                'q': query,
                'type': 'video',
                'maxResults': min(limit, 50),
                'safeSearch': 'strict',
                'key': self.youtube_api_key,
            }
            response = requests.get(self.YOUTUBE_SEARCH_URL, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.warning(f"YouTube search failed for '{query}': {e}")
            return []
        except ValueError as e:
            logger.warning(f"YouTube returned invalid JSON for '{query}': {e}")
            return []

        if not isinstance(data, dict):
            logger.warning(f"Unexpected YouTube response shape for '{query}': {type(data).__name__}")
            return []

        videos = []
        for item in data.get('items', []):
            if not isinstance(item, dict):
                continue
            video_id = item.get('id', {}).get('videoId')
            snippet = item.get('snippet', {})
            if not video_id:
                continue
            thumbnails = snippet.get('thumbnails', {})
            thumbnail = (thumbnails.get('high') or thumbnails.get('default') or {}).get('url', '')
            videos.append(MediaSuggestion(
                title=snippet.get('title', 'Untitled video'),
                url=f"https://www.youtube.com/watch?v={video_id}",
                thumbnail_url=thumbnail
            ))
        logger.info(f"Found {len(videos)} related videos for '{query}'")
        return videos[:limit]

    def _search_images_sync(self, query: str, limit: int) -> List[MediaSuggestion]:
        if not self.unsplash_access_key:
            logger.warning("Unsplash API key not configured, skipping image search")
            return []

        try:
            params = {
                'query': query,
                'per_page': min(limit, 30),  # Max 30 per request
                'content_filter': 'high'
            }
            headers = {
                'Authorization': f'Client-ID {self.unsplash_access_key}',
                'Accept-Version': 'v1'
            }
            response = requests.get(
                self.UNSPLASH_SEARCH_URL, params=params, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.warning(f"Unsplash search failed for '{query}': {e}")
            return []
        except ValueError as e:
            logger.warning(f"Unsplash returned invalid JSON for '{query}': {e}")
            return []

        if not isinstance(data, dict):
            logger.warning(f"Unexpected Unsplash response shape for '{query}': {type(data).__name__}")
            return []

        images = []
        for photo in data.get('results', []):
            if not isinstance(photo, dict):
                continue
            urls = photo.get('urls', {})
            link = photo.get('links', {}).get('html') or urls.get('regular')
            if not link:
                continue
            images.append(MediaSuggestion(
                title=photo.get('alt_description') or photo.get('description') or query,
                url=link,
                thumbnail_url=urls.get('small') or urls.get('thumb', '')
            ))
        logger.info(f"Found {len(images)} related images for '{query}'")
        return images[:limit]

    async def search_videos(self, keywords: List[str], limit: int = 3) -> List[MediaSuggestion]:
        query = self.build_query(keywords)
        if not query:
            return []
        return await asyncio.to_thread(self._search_videos_sync, query, limit)

    async def search_images(self, keywords: List[str], limit: int = 3) -> List[MediaSuggestion]:
        query = self.build_query(keywords)
        if not query:
            return []
        return await asyncio.to_thread(self._search_images_sync, query, limit)
