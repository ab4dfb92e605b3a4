"""Signature Provider Port - Domain interface for the e-signature SaaS.

The lifecycle manager owns submission state; a provider only creates
remote submissions, lists templates and hands back signed documents.
Status changes arrive either through inbound webhooks (real providers) or
through timers driven by the manager (simulated provider).

Architecture: Hexagonal - Port interface in domain layer
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from domain.signatures.models import Submitter, Template


@dataclass
class ProviderSubmitter:
    """Provider-side identity of one signer.

    Attributes:
        email: Signer email, used to match the local submitter entry
        id: Provider submitter id (used for reminders)
        slug: Short token that forms the signing link
        embed_src: Full signing URL for embedding
    """
    email: str
    id: Optional[str] = None
    slug: Optional[str] = None
    embed_src: Optional[str] = None


@dataclass
class ProviderSubmission:
    """Provider response to a submission create/get call."""
    id: str
    submitters: List[ProviderSubmitter] = field(default_factory=list)
    status: Optional[str] = None
    documents_url: Optional[str] = None
    raw: Dict = field(default_factory=dict)

    def submitter_for(self, email: str) -> Optional[ProviderSubmitter]:
        wanted = email.lower()
        for submitter in self.submitters:
            if submitter.email.lower() == wanted:
                return submitter
        return None


class SignatureProviderPort(ABC):
    """Port interface for e-signature provider operations.

    Key Design Principles:
    - Every call may perform network I/O and is awaited
    - Failures raise ProviderError; the lifecycle manager converts them
      into result objects
    - delivers_webhooks tells the manager whether status events arrive
      from outside or must be scheduled locally
    """

    provider_name: str = "provider"
    delivers_webhooks: bool = True

    @abstractmethod
    async def test_connection(self) -> None:
        """Verify credentials and reachability.

        Raises:
            ProviderError: If the provider cannot be reached or rejects credentials
        """
        pass

    @abstractmethod
    async def list_templates(self) -> List[Template]:
        """Fetch every template available to the account.

        Raises:
            ProviderError: If the listing fails
        """
        pass

    @abstractmethod
    async def create_submission(
        self,
        template: Template,
        submitters: List[Submitter],
        send_email: bool = False,
        message: Optional[Dict[str, str]] = None,
        expires_at: Optional[datetime] = None,
    ) -> ProviderSubmission:
        """Create a remote submission for the given template.

        Raises:
            ProviderError: If the provider rejects the request or is unreachable
        """
        pass

    @abstractmethod
    async def get_submission(self, submission_id: str) -> ProviderSubmission:
        pass

    @abstractmethod
    async def download_documents(self, submission_id: str) -> Optional[bytes]:
        """Fetch the signed PDF for a completed submission.

        Returns:
            Optional[bytes]: PDF bytes, or None when the provider keeps no copy
                and the caller should render one itself

        Raises:
            ProviderError: If the download fails
        """
        pass

    @abstractmethod
    async def send_reminder(self, submitter_id: str) -> None:
        pass

    async def close(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None
