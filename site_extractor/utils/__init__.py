"""Utils package initialization."""
from site_extractor.utils.logger import get_logger, LayerLogger, set_trace_id, get_trace_id, start_request

__all__ = ["get_logger", "LayerLogger", "set_trace_id", "get_trace_id", "start_request"]
