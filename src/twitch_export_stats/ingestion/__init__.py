"""Ingestion pipeline for Twitch data export archives."""

from .repository import AggregateStore
from .schemas import PipelineResult, PipelineSettings
from .service import IngestionService, summarize_archive

__all__ = ["AggregateStore", "IngestionService", "PipelineResult", "PipelineSettings", "summarize_archive"]
