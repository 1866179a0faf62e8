"""External provider API clients."""

from .whatsapp import WhatsAppClient, ProviderResponse, PROVIDER_NAME

__all__ = ["WhatsAppClient", "ProviderResponse", "PROVIDER_NAME"]
