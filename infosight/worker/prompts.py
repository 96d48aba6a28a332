"""
Prompt templates for insight extraction and document text extraction.
"""

from typing import Optional

from .types import ExtractionResult

PRESET_QUESTIONS = [
    "What was your biggest achievement this week?",
    "What challenges did you face and how did you overcome them?",
    "What metrics or KPIs show your impact this week?",
]

NO_TRANSCRIPT = "No video transcript available"
NO_DOCUMENT = "No document content available"
NO_NOTES = "No additional notes provided"

_JSON_FORMAT = """You MUST respond with ONLY a valid JSON object. NO markdown formatting, NO code blocks, NO explanations outside the JSON.

Format your response as this exact JSON structure:
{{
  "key_points": ["Achievement or insight 1", "Achievement or insight 2", "Achievement or insight 3", "Achievement or insight 4", "Achievement or insight 5"],
  "extracted_kpis": ["Order Fulfillment Time: 7.2 minutes", "Meal Satisfaction Score: 4.4/5", "Food Wastage Reduction: 28%", "Feedback Response Rate: 87%"],
  "sentiment": "positive|neutral|negative",
  "ai_quotes": ["Relevant quote 1", "Relevant quote 2", "Relevant quote 3"]
}}"""

SUBMISSION_SYSTEM_MESSAGE = (
    "You are an expert business analyst that specializes in extracting specific, measurable KPIs "
    "and metrics from various content sources including video transcripts, supporting documents "
    "and text notes. You MUST respond with valid JSON only, without any markdown formatting or "
    "code blocks. Your primary focus is finding concrete numbers, percentages, monetary values, "
    "and quantifiable business achievements from ALL provided content sources. Be thorough and "
    "extract EVERY quantifiable metric you can find."
)

SUBMISSION_PROMPT = """
You are analyzing a weekly business submission with multiple content sources. Your PRIMARY GOAL is to extract specific, measurable KPIs and business metrics from ALL sources provided.

CONTENT SOURCES:

1. VIDEO TRANSCRIPT:
{transcript}

2. SUPPORTING DOCUMENT CONTENT{document_status}:
{document}

3. ADDITIONAL NOTES:
{notes}

CRITICAL ANALYSIS INSTRUCTIONS:

Extract comprehensive business metrics and insights from ALL content sources above. Focus on:

1. **NUMERICAL DATA**: numbers, percentages, monetary values, quantities, timeframes
2. **FINANCIAL METRICS**: revenue, sales, costs, profits, budgets, ROI, growth rates, margins
3. **PERFORMANCE INDICATORS**: customer metrics, conversion rates, efficiency, quality, satisfaction scores, response rates
4. **COMPARATIVE DATA**: before/after, year-over-year, targets vs. actuals
5. **TIME-BASED METRICS**: weekly, monthly, quarterly and annual figures, project timelines
6. **DOCUMENT DATA**: structured data, tables and formal reports in the supporting document

EXTRACTION REQUIREMENTS:
- If document content was extracted, it should contribute significantly to the KPI findings
- Write every KPI as "Metric Name: Value" and include units and time period where known
- Even simple accomplishments like "completed 3 tasks" become "Tasks Completed: 3"
- sentiment must be exactly one of: positive, neutral, negative

""" + _JSON_FORMAT + """

CRITICAL: Extract ACTUAL NUMBERS and QUANTIFIABLE ACHIEVEMENTS from all sources.
"""

REPROCESS_SYSTEM_MESSAGE = (
    "You are an expert business analyst that specializes in extracting specific, measurable KPIs "
    "and metrics from transcripts. You MUST respond with valid JSON only, without any markdown "
    "formatting or code blocks. Extract EVERY quantifiable metric you find, no matter how small."
)

REPROCESS_PROMPT = """
You are analyzing a business submission transcript. Your PRIMARY GOAL is to extract specific, measurable KPIs and business metrics.

TRANSCRIPT CONTENT:
{transcript}

ADDITIONAL NOTES:
{notes}

EXTRACTION REQUIREMENTS:
- Extract EVERY quantifiable metric you can find, no matter how small
- Write every KPI as "Metric Name: Value" and include units and time period where known
- Even simple accomplishments like "completed 3 tasks" become "Tasks Completed: 3"
- sentiment must be exactly one of: positive, neutral, negative

""" + _JSON_FORMAT + """

CRITICAL: DO NOT return empty arrays unless there are truly no quantifiable metrics in the content.
"""

PDF_EXTRACTION_PROMPT = (
    "Extract all readable text from this PDF document. Preserve numbers, percentages, "
    "table rows and headings. If pages are scanned images, transcribe the visible text. "
    "Respond with the document text only."
)

DOCUMENT_INFERENCE_SYSTEM_MESSAGE = (
    "You are a document analysis expert. You will receive a partial base64 representation of a "
    "DOCX file. Based on the binary patterns and any readable text you can identify, extract or "
    "infer the business metrics, KPIs, numbers and key information the document likely contains."
)

DOCUMENT_INFERENCE_PROMPT = (
    "Analyze this partial DOCX file data and extract/infer key business information, "
    "metrics, and KPIs that might be contained within: {data}"
)


def build_submission_prompt(transcript: str, document: Optional[ExtractionResult], notes: Optional[str]) -> str:
    """Compose the analysis prompt for a freshly processed submission."""
    if document is None:
        document_status = ""
        document_text = NO_DOCUMENT
    else:
        document_status = " (Successfully Extracted - PRIORITIZE THIS)" if document.succeeded else " (Processing Issues)"
        document_text = document.text or NO_DOCUMENT

    return SUBMISSION_PROMPT.format(
        transcript=transcript or NO_TRANSCRIPT,
        document_status=document_status,
        document=document_text,
        notes=notes or NO_NOTES,
    )


def build_reprocess_prompt(transcript: str, notes: Optional[str]) -> str:
    """Compose the analysis prompt from a stored transcript and notes."""
    return REPROCESS_PROMPT.format(transcript=transcript, notes=notes or NO_NOTES)
