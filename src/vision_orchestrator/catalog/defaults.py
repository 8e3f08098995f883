"""Built-in provider catalog.

Each entry pairs a descriptor with the adapter instance that serves it.
Entries whose SDK is not installed are left out with a warning, so a
minimal install still routes across the plain-HTTP providers.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..clock import Clock
from ..config import OrchestratorConfig
from ..reasoning.providers.azure import AzureDocumentAdapter, AzureVisionAdapter
from ..reasoning.providers.base import VisionAdapter
from ..reasoning.providers.google_vision import GoogleCloudVisionAdapter
from ..reasoning.providers.huggingface import HuggingFaceAdapter
from ..reasoning.providers.ollama import OllamaAdapter
from ..reasoning.providers.replicate import ReplicateAdapter
from ..settings_store import SettingsStore
from .models import (
    MB,
    Capability,
    ProviderCategory,
    ProviderDescriptor,
    ProviderTier,
)
from .registry import ProviderCatalog

logger = logging.getLogger("vision-orchestrator")

_NO_DOCUMENT = {Capability.OCR, Capability.OBJECT, Capability.SCENE, Capability.UI}

OLLAMA_LLAVA = ProviderDescriptor(
    id="ollama_llava",
    name="Ollama LLaVA",
    category=ProviderCategory.COMPLETELY_FREE,
    tier=ProviderTier.LOCAL,
    endpoint="http://localhost:11434/api/generate",
    probe_url="http://localhost:11434/api/tags",
    is_local=True,
    available=False,  # Until the probe finds the daemon
    max_image_size=20 * MB,
    max_concurrent_requests=4,
    avg_response_time_ms=2500,
    quality_score=8.5,
    requires_api_key=False,
    setup_complexity="medium",
    supported_models=["llava", "llava:13b", "llava-llama3", "bakllava"],
    default_model="llava",
    custom_model_support=True,
    description="Local unlimited vision analysis with complete privacy",
    strengths=["Unlimited usage", "Complete privacy", "No internet required"],
    limitations=["Requires local installation", "Uses system resources"],
    best_use_cases=["Privacy-sensitive analysis", "High-volume processing", "Offline usage"],
)

GEMINI_FLASH_FREE = ProviderDescriptor(
    id="gemini_flash_free",
    name="Google Gemini 2.5 Flash Free",
    category=ProviderCategory.COMPLETELY_FREE,
    tier=ProviderTier.FREE_CLOUD,
    service="google",
    endpoint="https://generativelanguage.googleapis.com",
    daily_limit=500,
    monthly_limit=15000,
    max_image_size=20 * MB,
    max_concurrent_requests=10,
    avg_response_time_ms=1800,
    quality_score=9.2,
    setup_complexity="none",
    supported_models=["gemini-2.5-flash", "gemini-2.0-flash"],
    default_model="gemini-2.5-flash",
    description="State-of-the-art vision model with generous free tier",
    strengths=["Excellent quality", "High daily limits", "Fast processing"],
    limitations=["Daily rate limits", "Requires internet"],
    best_use_cases=["High-quality analysis", "Complex scene understanding"],
)

OPENROUTER_QWEN_FREE = ProviderDescriptor(
    id="openrouter_qwen_free",
    name="OpenRouter Qwen2.5-VL Free",
    category=ProviderCategory.COMPLETELY_FREE,
    tier=ProviderTier.FREE_CLOUD,
    service="openrouter",
    endpoint="https://openrouter.ai/api/v1/chat/completions",
    daily_limit=100,
    monthly_limit=3000,
    max_image_size=10 * MB,
    max_concurrent_requests=5,
    avg_response_time_ms=2100,
    quality_score=9.0,
    setup_complexity="none",
    supported_models=[
        "qwen/qwen-2.5-vl-32b-instruct:free",
        "qwen/qwen-2.5-vl-7b-instruct:free",
        "meta-llama/llama-3.2-90b-vision-instruct",
        "microsoft/phi-3.5-vision-instruct",
    ],
    default_model="qwen/qwen-2.5-vl-32b-instruct:free",
    custom_model_support=True,
    description="Qwen2.5-VL with strong UI reasoning and custom model support",
    strengths=["Advanced reasoning", "Excellent for UI analysis", "Custom model support"],
    limitations=["Lower daily limits"],
    best_use_cases=["UI analysis", "Complex reasoning tasks", "Model experimentation"],
)

GROQ_VISION_FREE = ProviderDescriptor(
    id="groq_llava_free",
    name="Groq Vision Free",
    category=ProviderCategory.COMPLETELY_FREE,
    tier=ProviderTier.FREE_CLOUD,
    service="groq",
    endpoint="https://api.groq.com/openai/v1/chat/completions",
    daily_limit=100,
    monthly_limit=3000,
    max_image_size=8 * MB,
    max_concurrent_requests=8,
    avg_response_time_ms=800,
    quality_score=7.8,
    capabilities=set(_NO_DOCUMENT),
    setup_complexity="none",
    supported_models=["meta-llama/llama-4-scout-17b-16e-instruct"],
    default_model="meta-llama/llama-4-scout-17b-16e-instruct",
    custom_model_support=True,
    description="Ultra-fast vision analysis with sub-second response times",
    strengths=["Ultra-fast inference", "Low latency"],
    limitations=["Smaller image size limit", "Limited document analysis"],
)

TOGETHER_FREE = ProviderDescriptor(
    id="together_ai_free",
    name="Together AI Vision Free",
    category=ProviderCategory.FREE_TRIAL,
    tier=ProviderTier.FREE_CREDITS,
    service="together",
    endpoint="https://api.together.xyz/v1/chat/completions",
    free_credits=5.0,
    monthly_limit=200,
    max_image_size=10 * MB,
    max_concurrent_requests=5,
    avg_response_time_ms=2000,
    quality_score=8.2,
    supported_models=["meta-llama/Llama-3.2-11B-Vision-Instruct-Turbo"],
    default_model="meta-llama/Llama-3.2-11B-Vision-Instruct-Turbo",
    custom_model_support=True,
    description="Llama 3.2 Vision with monthly free credits",
)

DEEPINFRA_FREE = ProviderDescriptor(
    id="deepinfra_free",
    name="DeepInfra Vision Free",
    category=ProviderCategory.FREE_TRIAL,
    tier=ProviderTier.FREE_CREDITS,
    service="deepinfra",
    endpoint="https://api.deepinfra.com/v1/openai/chat/completions",
    free_credits=5.0,
    monthly_limit=500,
    max_image_size=10 * MB,
    max_concurrent_requests=3,
    avg_response_time_ms=1500,
    quality_score=7.5,
    capabilities=set(_NO_DOCUMENT),
    supported_models=["meta-llama/Llama-3.2-11B-Vision-Instruct"],
    default_model="meta-llama/Llama-3.2-11B-Vision-Instruct",
    custom_model_support=True,
    description="Cost-effective vision analysis with multiple model options",
)

FIREWORKS_FREE = ProviderDescriptor(
    id="fireworks_ai_free",
    name="Fireworks AI Vision Free",
    category=ProviderCategory.FREE_TRIAL,
    tier=ProviderTier.FREE_CREDITS,
    service="fireworks",
    endpoint="https://api.fireworks.ai/inference/v1/chat/completions",
    free_credits=1.0,
    monthly_limit=50,
    max_image_size=8 * MB,
    max_concurrent_requests=2,
    avg_response_time_ms=1700,
    quality_score=7.8,
    capabilities=set(_NO_DOCUMENT),
    supported_models=["accounts/fireworks/models/llama-v3p2-11b-vision-instruct"],
    default_model="accounts/fireworks/models/llama-v3p2-11b-vision-instruct",
    custom_model_support=True,
    description="Enterprise-grade inference with a small free tier",
)

HUGGINGFACE_BLIP = ProviderDescriptor(
    id="huggingface_inference",
    name="Hugging Face Inference API",
    category=ProviderCategory.FREEMIUM,
    tier=ProviderTier.FREEMIUM,
    service="huggingface",
    endpoint=(
        "https://api-inference.huggingface.co/models/"
        "Salesforce/blip-image-captioning-large"
    ),
    daily_limit=1000,
    max_image_size=5 * MB,
    supported_formats=["jpg", "jpeg", "png"],
    max_concurrent_requests=2,
    avg_response_time_ms=3200,
    quality_score=6.5,
    capabilities={Capability.SCENE},
    requires_api_key=False,  # A token raises the limit but is optional
    setup_complexity="none",
    default_model="Salesforce/blip-image-captioning-large",
    description="BLIP image captioning with rate-limited free tier",
    strengths=["No setup required", "Reliable fallback"],
    limitations=["Basic captioning only", "Rate limited", "Lower quality"],
)

REPLICATE_LLAVA = ProviderDescriptor(
    id="replicate_free",
    name="Replicate Vision Models",
    category=ProviderCategory.FREEMIUM,
    tier=ProviderTier.FREEMIUM,
    service="replicate",
    endpoint="https://api.replicate.com/v1/predictions",
    free_credits=0.1,
    monthly_limit=10,
    max_image_size=10 * MB,
    max_concurrent_requests=1,
    avg_response_time_ms=4000,
    quality_score=8.0,
    cost_per_request=0.01,
    requires_credit_card=True,
    setup_complexity="medium",
    custom_model_support=True,
    description="Access to open-source vision models",
    limitations=["Very limited free tier", "Requires credit card", "Slower"],
)

OPENAI_GPT4O = ProviderDescriptor(
    id="openai_gpt4o",
    name="OpenAI GPT-4o Vision",
    category=ProviderCategory.PREMIUM_OPTIONAL,
    tier=ProviderTier.PREMIUM,
    service="openai",
    endpoint="https://api.openai.com/v1/chat/completions",
    max_image_size=20 * MB,
    max_concurrent_requests=20,
    avg_response_time_ms=2500,
    quality_score=9.5,
    cost_per_request=0.015,
    requires_credit_card=True,
    supported_models=["gpt-4o", "gpt-4o-mini", "gpt-4-turbo"],
    default_model="gpt-4o",
    custom_model_support=True,
    description="Premium OpenAI vision model with custom model support",
)

ANTHROPIC_CLAUDE = ProviderDescriptor(
    id="anthropic_claude_sonnet",
    name="Anthropic Claude Sonnet Vision",
    category=ProviderCategory.PREMIUM_OPTIONAL,
    tier=ProviderTier.PREMIUM,
    service="anthropic",
    endpoint="https://api.anthropic.com/v1/messages",
    max_image_size=100 * MB,
    supported_formats=["jpg", "jpeg", "png", "gif", "webp"],
    max_concurrent_requests=15,
    avg_response_time_ms=3000,
    quality_score=9.7,
    cost_per_request=0.018,
    requires_credit_card=True,
    supported_models=["claude-3-5-sonnet-20241022", "claude-sonnet-4-20250514"],
    default_model="claude-3-5-sonnet-20241022",
    custom_model_support=True,
    description="Premium Anthropic vision model with exceptional reasoning",
)

GEMINI_PRO = ProviderDescriptor(
    id="google_gemini_pro",
    name="Google Gemini 2.5 Pro Vision",
    category=ProviderCategory.PREMIUM_OPTIONAL,
    tier=ProviderTier.PREMIUM,
    service="google",
    endpoint="https://generativelanguage.googleapis.com",
    max_image_size=20 * MB,
    max_concurrent_requests=25,
    avg_response_time_ms=2200,
    quality_score=9.6,
    cost_per_request=0.012,
    requires_credit_card=True,
    supported_models=["gemini-2.5-pro"],
    default_model="gemini-2.5-pro",
    custom_model_support=True,
    description="Premium Google vision model with excellent performance",
)

GOOGLE_CLOUD_VISION = ProviderDescriptor(
    id="google_cloud_vision",
    name="Google Cloud Vision",
    category=ProviderCategory.PREMIUM_OPTIONAL,
    tier=ProviderTier.PREMIUM,
    service="google",
    endpoint="https://vision.googleapis.com/v1/images:annotate",
    max_image_size=20 * MB,
    max_concurrent_requests=10,
    avg_response_time_ms=1500,
    quality_score=8.4,
    capabilities={Capability.OCR, Capability.OBJECT},
    cost_per_request=0.0015,
    requires_credit_card=True,
    description="Text detection and object localization with pixel bounds",
)

AZURE_COMPUTER_VISION = ProviderDescriptor(
    id="azure_computer_vision",
    name="Azure AI Vision",
    category=ProviderCategory.PREMIUM_OPTIONAL,
    tier=ProviderTier.PREMIUM,
    service="azure",
    endpoint="https://api.cognitive.microsoft.com",
    max_image_size=4 * MB,
    supported_formats=["jpg", "jpeg", "png", "gif", "bmp"],
    max_concurrent_requests=10,
    avg_response_time_ms=1600,
    quality_score=8.0,
    capabilities={Capability.OBJECT, Capability.SCENE},
    cost_per_request=0.001,
    description="Captions, tags and object detection",
)

AZURE_DOCUMENT_INTELLIGENCE = ProviderDescriptor(
    id="azure_document_intelligence",
    name="Azure Document Intelligence",
    category=ProviderCategory.SPECIALIZED,
    tier=ProviderTier.FREEMIUM,
    service="azure",
    endpoint="",  # Resource-specific; set providers.azure_document_intelligence.endpoint
    monthly_limit=500,
    max_image_size=50 * MB,
    supported_formats=["jpg", "jpeg", "png", "pdf", "tiff"],
    max_concurrent_requests=5,
    avg_response_time_ms=5000,
    quality_score=9.0,
    capabilities={Capability.OCR, Capability.DOCUMENT},
    cost_per_request=0.01,
    setup_complexity="medium",
    description="Specialized document analysis and OCR service",
    strengths=["Excellent OCR", "Document structure analysis", "PDF support"],
    limitations=["Document-focused only", "Slower processing"],
)


def _sdk_adapter(factory: Callable[[], VisionAdapter]) -> VisionAdapter | None:
    try:
        return factory()
    except ImportError as e:
        logger.warning("%s Skipping providers that need it.", e)
        return None


def default_entries(
    clock: Clock, timeout_seconds: float = 30.0
) -> list[tuple[ProviderDescriptor, VisionAdapter]]:
    """(descriptor, adapter) pairs for every built-in provider."""
    from ..reasoning.providers.anthropic import AnthropicAdapter
    from ..reasoning.providers.google import GeminiAdapter
    from ..reasoning.providers.openai_compat import OpenAICompatAdapter

    ollama = OllamaAdapter(timeout_seconds)
    huggingface = HuggingFaceAdapter(timeout_seconds)
    replicate = ReplicateAdapter(clock, timeout_seconds)
    cloud_vision = GoogleCloudVisionAdapter(timeout_seconds)
    azure_vision = AzureVisionAdapter(timeout_seconds)
    azure_document = AzureDocumentAdapter(clock, timeout_seconds)
    openai = _sdk_adapter(lambda: OpenAICompatAdapter(timeout_seconds, confidence=0.95))
    open_models = _sdk_adapter(
        lambda: OpenAICompatAdapter(timeout_seconds, confidence=0.85)
    )
    anthropic = _sdk_adapter(lambda: AnthropicAdapter(timeout_seconds))
    gemini_flash = _sdk_adapter(lambda: GeminiAdapter(confidence=0.9))
    gemini_pro = _sdk_adapter(lambda: GeminiAdapter(confidence=0.96))

    pairs: list[tuple[ProviderDescriptor, VisionAdapter | None]] = [
        (OLLAMA_LLAVA, ollama),
        (GEMINI_FLASH_FREE, gemini_flash),
        (OPENROUTER_QWEN_FREE, open_models),
        (GROQ_VISION_FREE, open_models),
        (TOGETHER_FREE, open_models),
        (DEEPINFRA_FREE, open_models),
        (FIREWORKS_FREE, open_models),
        (HUGGINGFACE_BLIP, huggingface),
        (REPLICATE_LLAVA, replicate),
        (OPENAI_GPT4O, openai),
        (ANTHROPIC_CLAUDE, anthropic),
        (GEMINI_PRO, gemini_pro),
        (GOOGLE_CLOUD_VISION, cloud_vision),
        (AZURE_COMPUTER_VISION, azure_vision),
        (AZURE_DOCUMENT_INTELLIGENCE, azure_document),
    ]
    return [(d, a) for d, a in pairs if a is not None]


def build_default_catalog(
    config: OrchestratorConfig,
    clock: Clock,
    store: SettingsStore | None = None,
) -> ProviderCatalog:
    catalog = ProviderCatalog(store)
    for descriptor, adapter in default_entries(
        clock, config.analysis.call_timeout_seconds
    ):
        override = config.providers.get(descriptor.id)
        if override is not None:
            descriptor = descriptor.model_copy(deep=True)
            if override.endpoint:
                descriptor.endpoint = override.endpoint
            if override.model:
                descriptor.default_model = override.model
        catalog.register(descriptor, adapter)
    unknown = set(config.providers) - set(catalog.ids())
    for provider_id in sorted(unknown):
        logger.warning("Config override for unknown provider '%s' ignored", provider_id)
    logger.info("Provider catalog ready with %d providers", len(catalog))
    return catalog
