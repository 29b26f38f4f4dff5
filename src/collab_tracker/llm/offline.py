# src/collab_tracker/llm/offline.py

from __future__ import annotations

import logging

from ..tasks.image_analysis import ImageAnalysis, parse_data_url

logger = logging.getLogger(__name__)


class OfflineImageTaskExtractor:
    """
    Offline deterministic extractor used when no vision endpoint is configured.

    Validates the data URL like the real extractor, then returns an empty
    analysis so callers can still walk through the ingestion flow.
    """

    def extract(self, image_data_url: str, context: str | None = None) -> ImageAnalysis:
        parse_data_url(image_data_url)
        logger.info("Image analysis is offline; set TRACKER_OPENROUTER_API_KEY to enable it")
        return ImageAnalysis(summary="Offline mode: image analysis is not configured.")
