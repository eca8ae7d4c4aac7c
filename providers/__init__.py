"""
Analysis providers and the gateway that selects between them.
"""

from providers.base import AnalysisProvider, ProviderResponse
from providers.gateway import InferenceGateway
from providers.local_provider import LocalProvider
from providers.remote_provider import RemoteProvider
