"""
Message geometry pipeline: extraction -> coordinates -> features.

Usage:
    pipeline = MessageGeometryPipeline.from_settings()
    collection = pipeline.run(extraction)   # None when nothing could be placed
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .extraction import LocationExtraction
from .geocoding.base import GeocodeCache
from .geocoding.factory import ProviderKind, ProviderRegistry, build_router
from .geocoding.router import GeocodingOutcome, GeocodingRouter
from .synthesis.closure import CenterlineSource, ClosureSynthesizer
from .synthesis.converter import convert_to_features, missing_addresses
from .synthesis.features import FeatureCollection
from .utils.pipeline_mixin import PipelineMixin, PipelineStep

logger = logging.getLogger(__name__)


def build_synthesizer(registry: ProviderRegistry) -> ClosureSynthesizer:
    """Closure synthesizer wired to the centerline source named in the settings."""
    s = registry.settings
    source = CenterlineSource(s.centerline_source)
    network = registry.get(ProviderKind.OVERPASS) if source == CenterlineSource.NETWORK else None
    router = registry.get(ProviderKind.GOOGLE_DIRECTIONS) if source == CenterlineSource.ROUTING else None
    return ClosureSynthesizer(
        network=network,
        router=router,
        centerline_source=source,
        half_widths=s.street_half_widths,
        ref_lat=s.center_lat,
        degenerate_m=s.degenerate_endpoint_m,
    )


class MessageGeometryPipeline(PipelineMixin):
    """Turns one message's location extraction into a FeatureCollection."""

    MODALITY = "geometry"

    def __init__(self, router: GeocodingRouter, synthesizer: ClosureSynthesizer):
        self.router = router
        self.synthesizer = synthesizer

    @classmethod
    def from_settings(
        cls,
        settings=None,
        session: Optional[requests.Session] = None,
        cache: Optional[GeocodeCache] = None,
    ) -> "MessageGeometryPipeline":
        if settings is None:
            from .settings import settings
        registry = ProviderRegistry(settings, session=session)
        return cls(build_router(registry, cache=cache), build_synthesizer(registry))

    def _load_pipeline(self, extraction: LocationExtraction) -> list[PipelineStep]:
        return [
            PipelineStep('Geocode Locations', self._geocode, {'extraction': extraction}),
            PipelineStep('Build Features', self._build_features, {'extraction': extraction}),
            PipelineStep('Finalize Collection', self._finalize),
        ]

    def run(self, extraction: Optional[LocationExtraction], progress: bool = True) -> Optional[FeatureCollection]:
        if extraction is None or extraction.is_empty():
            logger.info("Nothing to geocode")
            return None
        return self._execute_pipeline(progress=progress, extraction=extraction)

    def _geocode(self, extraction: LocationExtraction) -> GeocodingOutcome:
        outcome = self.router.geocode(extraction)
        missing = missing_addresses(extraction, outcome.points)
        if missing:
            logger.warning(f"Missing coordinates for {len(missing)} addresses: {missing}")
        return outcome

    def _build_features(self, outcome: GeocodingOutcome, extraction: LocationExtraction) -> FeatureCollection:
        return convert_to_features(extraction, outcome.points, self.synthesizer)

    def _finalize(self, collection: FeatureCollection) -> Optional[FeatureCollection]:
        if collection.is_empty():
            logger.warning("No feature could be produced, finalizing without geometry")
            return None
        return collection
