"""Vision adapters: one per provider wire protocol.

SDK-backed adapters (OpenAI-compatible, Anthropic, Gemini) import their SDK
lazily and live in their own modules; import them directly.
"""

from .azure import AzureDocumentAdapter, AzureVisionAdapter
from .base import HTTPAdapter, VisionAdapter
from .errors import classify_exception, error_for_status
from .google_vision import GoogleCloudVisionAdapter
from .huggingface import HuggingFaceAdapter
from .json_extract import extract_json
from .ollama import OllamaAdapter
from .replicate import ReplicateAdapter

__all__ = [
    "AzureDocumentAdapter",
    "AzureVisionAdapter",
    "GoogleCloudVisionAdapter",
    "HTTPAdapter",
    "HuggingFaceAdapter",
    "OllamaAdapter",
    "ReplicateAdapter",
    "VisionAdapter",
    "classify_exception",
    "error_for_status",
    "extract_json",
]
