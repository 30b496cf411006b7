"""E-signature client (DocuSeal) with exponential backoff retry logic"""

import asyncio
import base64
import httpx
from rentease_ledger.config import settings
from rentease_ledger.domain.exceptions import GatewayError
from rentease_ledger.domain.models import SigningSubmission
from rentease_ledger.infrastructure.observability.metrics import gateway_failure_counter, signing_latency_histogram


class DocuSealClient:
    """Client for sending tenancy agreements out for signature"""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.docuseal_api_url
        self.api_key = api_key if api_key is not None else settings.docuseal_api_key
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.signing_max_retries
        self.backoff_base = settings.signing_backoff_base
        self.transport = transport

    async def send_for_signature(
        self,
        document: bytes,
        signer_email: str,
        signer_name: str,
        document_name: str = "Rent Plan Agreement",
    ) -> SigningSubmission:
        """
        Submit a PDF for one signer; DocuSeal emails the signing link.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s (base * 2^attempt)
        - Retries on 5xx errors and network failures, never on 4xx

        Raises:
            GatewayError: Not configured, rejected, or still failing after retries
        """
        if not self.api_key:
            raise GatewayError("DocuSeal API key not configured")

        payload = {
            "name": document_name,
            "send_email": True,
            "documents": [
                {"name": f"{document_name}.pdf", "file": base64.b64encode(document).decode("ascii")},
            ],
            "submitters": [{"role": "Signer", "email": signer_email, "name": signer_name}],
        }

        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    with signing_latency_histogram.time():
                        response = await client.post(
                            f"{self.base_url}/submissions/init",
                            json=payload,
                            headers={"X-Auth-Token": self.api_key},
                        )
                        response.raise_for_status()
                    return self._parse_submission(response.json())

                except httpx.HTTPStatusError as e:
                    gateway_failure_counter.labels(service="signing").inc()
                    if e.response.status_code < 500:
                        raise GatewayError(f"DocuSeal rejected submission: {e.response.status_code}") from e
                    attempt += 1
                    if attempt >= self.max_retries:
                        raise GatewayError(f"DocuSeal error: {e.response.status_code}") from e

                except httpx.RequestError as e:
                    gateway_failure_counter.labels(service="signing").inc()
                    attempt += 1
                    if attempt >= self.max_retries:
                        raise GatewayError(f"DocuSeal unreachable: {e}") from e

                await asyncio.sleep(self.backoff_base * (2 ** (attempt - 1)))

    @staticmethod
    def _parse_submission(data) -> SigningSubmission:
        try:
            submitter = data[0]
            slug = submitter.get("slug")
            return SigningSubmission(
                submission_id=str(submitter["submission_id"]),
                submitter_id=str(submitter["id"]) if submitter.get("id") is not None else None,
                signing_url=f"https://docuseal.com/s/{slug}" if slug else None,
            )
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise GatewayError(f"Invalid submission data from DocuSeal: {e}") from e
