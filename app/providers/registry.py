"""Provider registry: maps each ProviderId to its adapter instance."""

from typing import Dict, Iterable, List, Optional

from app.config import Settings, settings as default_settings
from app.jobs.models import ProviderId
from app.providers.aws_transcribe import AwsTranscribeAdapter
from app.providers.base import TranscriptionAdapter
from app.providers.deepgram import DeepgramAdapter


class ProviderRegistry:
    """Holds one adapter per provider and resolves requested provider sets."""

    def __init__(self, adapters: Iterable[TranscriptionAdapter] = ()):
        self._adapters: Dict[ProviderId, TranscriptionAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: TranscriptionAdapter) -> None:
        self._adapters[adapter.provider_id] = adapter

    def get(self, provider: ProviderId) -> Optional[TranscriptionAdapter]:
        return self._adapters.get(provider)

    def require(self, provider: ProviderId) -> TranscriptionAdapter:
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise ValueError(f"Provider '{provider.value}' is not registered")
        return adapter

    def list_providers(self) -> List[ProviderId]:
        return list(self._adapters)

    def configured(self) -> Dict[str, bool]:
        return {p.value: a.is_configured() for p, a in self._adapters.items()}


def build_registry(config: Optional[Settings] = None) -> ProviderRegistry:
    """Create the registry with every known provider, configured from settings."""
    config = config or default_settings
    return ProviderRegistry([
        AwsTranscribeAdapter(
            region=config.aws_region,
            bucket=config.aws_s3_bucket,
            access_key_id=config.aws_access_key_id,
            secret_access_key=config.aws_secret_access_key,
            poll_interval=config.aws_poll_interval_seconds,
        ),
        DeepgramAdapter(
            api_key=config.deepgram_api_key,
            base_url=config.deepgram_base_url,
            default_model=config.deepgram_model,
            timeout=config.provider_timeout_seconds,
        ),
    ])
