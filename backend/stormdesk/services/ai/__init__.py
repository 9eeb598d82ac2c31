"""
StormDesk - AI Documents
"""
from .document_generator import DOCUMENT_BRIEFS, DocumentDraft, DocumentGenerator
from .llm_client import LLMClient, json_candidates, strip_code_fences

__all__ = [
    "DOCUMENT_BRIEFS",
    "DocumentDraft",
    "DocumentGenerator",
    "LLMClient",
    "json_candidates",
    "strip_code_fences",
]
