"""
Worker module for the submission processing pipeline.
"""

from .processor import SubmissionProcessor
from .reprocess import TranscriptReprocessor
from .transcriber import WhisperTranscriber
from .extractor import DocumentExtractor
from .analyzer import InsightAnalyzer
from .llm import ChatClient
