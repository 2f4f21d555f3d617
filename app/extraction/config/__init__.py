from app.extraction.config.loader import get_extraction_settings
from app.extraction.config.models import ExtractionOptions, ExtractionSettings

__all__ = ["ExtractionOptions", "ExtractionSettings", "get_extraction_settings"]
