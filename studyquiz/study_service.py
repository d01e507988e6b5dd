"""
Study pipeline: uploaded document -> text -> AI study pack -> related media.
"""
import asyncio
import logging
from typing import Optional

from .ai_client import GeminiStudyClient
from .config_manager import ConfigManager
from .document_processor import DocumentProcessor
from .media_search import MediaSearchClient
from .models import StudyResult


class StudyService:
    """Runs one uploaded document through extraction, generation and enrichment."""

    def __init__(
        self,
        config_manager: ConfigManager,
        document_processor: Optional[DocumentProcessor] = None,
        ai_client: Optional[GeminiStudyClient] = None,
        media_client: Optional[MediaSearchClient] = None
    ):
        self.logger = logging.getLogger(__name__)
        self.config_manager = config_manager
        self.document_processor = document_processor or DocumentProcessor(
            max_file_size_bytes=config_manager.max_file_size_bytes,
            max_text_chars=config_manager.max_text_chars
        )
        self.ai_client = ai_client or GeminiStudyClient(
            api_key=config_manager.get_credential('gemini_api_key'),
            model_name=config_manager.gemini_model
        )
        self.media_client = media_client or MediaSearchClient(
            youtube_api_key=config_manager.get_credential('youtube_api_key'),
            unsplash_access_key=config_manager.get_credential('unsplash_access_key')
        )

    def validate_upload(self, filename: str, size: int, content_type: Optional[str] = None) -> str:
        """Reject oversized or unsupported uploads before they are downloaded."""
        return self.document_processor.validate_upload(filename, size, content_type)

    async def process_document(
        self,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None
    ) -> StudyResult:
        """
        Build a complete study pack for an uploaded document.

        Raises:
            DocumentError: If the upload is invalid or has no text
            AIResponseError: If the model call fails or returns unusable output
        """
        # PDF parsing is CPU-bound, keep it off the event loop
        text = await asyncio.to_thread(self.document_processor.process, filename, data, content_type)

        result = await self.ai_client.generate_study_pack(
            text, question_count=self.config_manager.get_question_count()
        )
        result.source_name = filename

        if result.keywords:
            videos, images = await asyncio.gather(
                self.media_client.search_videos(result.keywords),
                self.media_client.search_images(result.keywords)
            )
            result.related_videos = videos
            result.related_images = images
        else:
            self.logger.info(f"No search keywords for {filename}, skipping media enrichment")

        self.logger.info(
            f"Study pack ready for {filename}: {len(result.quiz)} questions, "
            f"{len(result.related_videos)} videos, {len(result.related_images)} images"
        )
        return result
