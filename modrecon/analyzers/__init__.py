"""Consumer-side usage analysis of imported bindings."""

from .usage import aggregate_usage, analyze_usage, filter_usage_by_source, unique_import_sources

__all__ = ["aggregate_usage", "analyze_usage", "filter_usage_by_source", "unique_import_sources"]
