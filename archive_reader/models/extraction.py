from dataclasses import dataclass, field
from typing import Optional

MODE_READABILITY = "readability"
MODE_DOM_FALLBACK = "dom_fallback"
MODE_STRUCTURED_DATA = "structured_data"


@dataclass(frozen=True)
class ExtractionQuality:
    extracted_text_length: int = 0
    source_text_length: int = 0
    coverage: float = 0.0
    has_warning: bool = False
    warning: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "extractedTextLength": self.extracted_text_length,
            "sourceTextLength": self.source_text_length,
            "coverage": round(self.coverage, 4),
            "hasWarning": self.has_warning,
        }


@dataclass(frozen=True)
class ExtractionResult:
    """Article content and metadata extracted from one fetched capture."""

    title: str = ""
    byline: Optional[str] = None
    excerpt: Optional[str] = None
    content_html: str = ""
    hero_image: Optional[str] = None
    publication_name: str = ""
    published_date: Optional[str] = None
    extraction_mode: str = MODE_READABILITY
    quality: ExtractionQuality = field(default_factory=ExtractionQuality)

    def to_dict(self) -> dict:
        payload = {
            "title": self.title,
            "byline": self.byline,
            "excerpt": self.excerpt,
            "contentHtml": self.content_html,
            "heroImage": self.hero_image,
            "publicationName": self.publication_name,
            "publishedDate": self.published_date,
            "extractionMode": self.extraction_mode,
            "quality": self.quality.to_dict(),
        }
        if self.quality.warning:
            payload["warning"] = self.quality.warning
        return payload
