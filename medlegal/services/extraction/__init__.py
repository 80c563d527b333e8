from medlegal.services.extraction.document_intelligence import (
    DocumentIntelligenceService,
    TextExtractionResult,
)

__all__ = ["DocumentIntelligenceService", "TextExtractionResult"]
