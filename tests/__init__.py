"""Test package for the site extractor."""
