"""E-signature provider implementations - Infrastructure Layer.

Architecture:
- Domain layer defines the port: domain.signatures.ports
- Infrastructure layer provides implementations: infrastructure.signatures
"""

from .docuseal_provider import DocuSealProvider
from .simulated_provider import SimulatedSignatureProvider
from .webhook import parse_webhook_event, verify_webhook_signature

__all__ = [
    "DocuSealProvider",
    "SimulatedSignatureProvider",
    "parse_webhook_event",
    "verify_webhook_signature",
]
