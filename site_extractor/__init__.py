"""Site extractor: structured page records for e-commerce and content sites."""
