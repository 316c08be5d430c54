"""Main-content extraction for fetched HTML.

Callers depend on the Extractor protocol; TrafilaturaExtractor is the
shipped implementation.
"""

from src.extract.errors import ExtractionError
from src.extract.links import extract_links
from src.extract.models import ExtractConfig, ExtractionResult, Link
from src.extract.normalize import escape_yaml, normalize_markdown
from src.extract.protocols import Extractor
from src.extract.trafilatura_extractor import TrafilaturaExtractor, extract_title


__all__ = [
    "Extractor",
    "TrafilaturaExtractor",
    "ExtractConfig",
    "ExtractionResult",
    "ExtractionError",
    "Link",
    "extract_links",
    "normalize_markdown",
    "escape_yaml",
    "extract_title",
]
