from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any


@dataclass
class VideoRef:
    """A stored video belonging to a submission."""
    path: str
    name: str = "video.webm"
    size: int = 0
    question_index: Optional[int] = None  # 0-based index into PRESET_QUESTIONS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VideoRef":
        return cls(
            path=data.get("path") or "",
            name=data.get("name") or "video.webm",
            size=int(data.get("size") or 0),
            question_index=data.get("question_index"),
        )


@dataclass
class ExtractionResult:
    """Outcome of document text extraction.

    ``succeeded`` is False when ``text`` is a human-readable placeholder
    rather than content taken from the document.
    """
    text: str
    succeeded: bool
    strategy: str = ""
    warning: Optional[str] = None

    @classmethod
    def failed(cls, placeholder: str, strategy: str = "", warning: Optional[str] = None) -> "ExtractionResult":
        return cls(text=placeholder, succeeded=False, strategy=strategy, warning=warning or placeholder)


@dataclass
class ProcessingOutcome:
    """HTTP-shaped result of one pipeline invocation."""
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReprocessSummary:
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    updated_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "message": (
                f"Reprocessing completed: {self.processed} submissions processed, "
                f"{self.updated} updated"
            ),
            "processedCount": self.processed,
            "updatedCount": self.updated,
            "skippedCount": self.skipped,
            "failedCount": self.failed,
        }
