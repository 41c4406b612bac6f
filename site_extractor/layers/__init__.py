"""Layers package initialization."""
from site_extractor.layers.discovery import DiscoveryReport, SelectorDiscoveryLayer
from site_extractor.layers.enrichment import EnrichmentLayer, EnrichmentReconciler
from site_extractor.layers.fetch_strategy import ProcessingStage, enrichment_decision, headless_decision
from site_extractor.layers.pipeline import PageProcessingLayer

__all__ = [
    "DiscoveryReport",
    "SelectorDiscoveryLayer",
    "EnrichmentLayer",
    "EnrichmentReconciler",
    "ProcessingStage",
    "enrichment_decision",
    "headless_decision",
    "PageProcessingLayer",
]
