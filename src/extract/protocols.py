"""Protocol interface for content extractors."""

from typing import Protocol, runtime_checkable

from src.extract.models import ExtractConfig, ExtractionResult


@runtime_checkable
class Extractor(Protocol):
    """Protocol for HTML main-content extractors.

    Any extractor that implements ``extract`` with the matching signature
    can be used by the open and batch services without changes to their
    orchestration code.
    """

    @property
    def name(self) -> str:
        """Stable extractor name stored with snapshots."""
        ...

    @property
    def version(self) -> str:
        """Extractor version stored with snapshots."""
        ...

    def extract(
        self,
        html: str,
        base_url: str,
        config: ExtractConfig,
    ) -> ExtractionResult:
        """Extract title, markdown, text, and links from a document.

        Args:
            html: Document source.
            base_url: URL the document was fetched from, for link resolution.
            config: Tuning parameters.

        Returns:
            Extraction result.

        Raises:
            ExtractionError: If no content could be extracted.
        """
        ...
