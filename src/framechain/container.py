"""Wires repositories, collaborators and services from configuration."""

import os
from dataclasses import dataclass
from typing import Optional

from databases import Database

from .capabilities import ModelCapabilitiesService
from .enhancement import (
    EnhancementJobRepository,
    EnhancementService,
    EnhancementWorker,
    UpscalerRepository,
)
from .generation import SegmentGenerationService
from .models import FrameChainConfig
from .orchestrator import RunRegistry, TimelineOrchestrator
from .providers import (
    BlobStorage,
    Cache,
    EnhancementProvider,
    FrameExtractor,
    GenerationProvider,
    LocalBlobStorage,
    MemoryCache,
    StorageFrameExtractor,
)
from .providers.http import HttpEnhancementProvider, HttpFrameExtractor, HttpGenerationProvider
from .store import SegmentRepository, TimelineRepository


@dataclass
class Services:
    config: FrameChainConfig
    database: Database
    timelines: TimelineRepository
    segments: SegmentRepository
    capabilities: ModelCapabilitiesService
    generation: SegmentGenerationService
    orchestrator: TimelineOrchestrator
    registry: RunRegistry
    upscalers: UpscalerRepository
    jobs: EnhancementJobRepository
    enhancement: EnhancementService
    worker: EnhancementWorker


def _frame_extractor(config: FrameChainConfig, storage: BlobStorage) -> FrameExtractor:
    if config.frames.extractor == "http":
        if not config.frames.base_url:
            raise ValueError("frames.base_url is required when frames.extractor is 'http'")
        return HttpFrameExtractor(
            config.frames.base_url,
            api_token=os.getenv(config.generation.api_token_env),
            timeout_s=config.frames.timeout_s,
        )
    return StorageFrameExtractor(storage)


def build_services(
    database: Database,
    config: FrameChainConfig,
    *,
    generation_provider: Optional[GenerationProvider] = None,
    frame_extractor: Optional[FrameExtractor] = None,
    enhancement_provider: Optional[EnhancementProvider] = None,
    storage: Optional[BlobStorage] = None,
    cache: Optional[Cache] = None,
) -> Services:
    """Build the service graph. Collaborators default to the configured HTTP clients."""
    storage = storage or LocalBlobStorage(config.storage.root_dir, config.storage.public_base_url)
    cache = cache or MemoryCache()

    generation_provider = generation_provider or HttpGenerationProvider(
        config.generation.base_url,
        api_token=os.getenv(config.generation.api_token_env),
        timeout_s=config.generation.timeout_s,
    )
    frame_extractor = frame_extractor or _frame_extractor(config, storage)
    enhancement_provider = enhancement_provider or HttpEnhancementProvider(
        config.enhancement.base_url,
        api_token=os.getenv(config.enhancement.api_token_env),
        timeout_s=config.enhancement.timeout_s,
        poll_interval_s=config.enhancement.poll_interval_s,
    )

    timelines = TimelineRepository(database)
    segments = SegmentRepository(database)
    capabilities = ModelCapabilitiesService(database, cache, config.cache.capabilities_ttl_s)
    generation = SegmentGenerationService(
        segments, generation_provider, frame_extractor, storage, capabilities
    )
    registry = RunRegistry()
    orchestrator = TimelineOrchestrator(timelines, segments, generation, registry)

    upscalers = UpscalerRepository(database, cache, config.cache.upscalers_ttl_s)
    jobs = EnhancementJobRepository(database)
    enhancement = EnhancementService(
        segments,
        jobs,
        upscalers,
        enhancement_provider,
        default_scale_factor=config.enhancement.default_scale_factor,
    )
    worker = EnhancementWorker(enhancement, jobs)

    return Services(
        config=config,
        database=database,
        timelines=timelines,
        segments=segments,
        capabilities=capabilities,
        generation=generation,
        orchestrator=orchestrator,
        registry=registry,
        upscalers=upscalers,
        jobs=jobs,
        enhancement=enhancement,
        worker=worker,
    )
