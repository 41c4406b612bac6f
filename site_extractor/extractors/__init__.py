"""Extractors package initialization."""
from site_extractor.extractors.assembler import BaseRecordAssembler, assemble
from site_extractor.extractors.classifier import Classification, PageTypeClassifier
from site_extractor.extractors.structured_data import StructuredData, StructuredDataExtractor

__all__ = [
    "BaseRecordAssembler",
    "assemble",
    "Classification",
    "PageTypeClassifier",
    "StructuredData",
    "StructuredDataExtractor",
]
