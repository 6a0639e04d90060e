"""
DocuSeal e-signature API client (httpx).

Cloud hosts (api.docuseal.com / api.docuseal.eu) serve the API at the root,
self-hosted instances under /api. Every call authenticates with X-Auth-Token.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from solarsign.config import Settings, get_settings
from solarsign.pdf.errors import SigningServiceError
from solarsign.utils.logging import mask_email

logger = logging.getLogger(__name__)

CLOUD_API_HOSTS = ("api.docuseal.com", "api.docuseal.eu")
DEFAULT_SIGNER_ROLE = "Signer1"


@dataclass
class Signer:
    name: str
    email: str
    role: str = DEFAULT_SIGNER_ROLE


@dataclass
class Submitter:
    """Subset of the submitter record returned when a submission is created."""
    id: Optional[int] = None
    submission_id: Optional[int] = None
    email: Optional[str] = None
    slug: Optional[str] = None
    uuid: Optional[str] = None
    embed_src: Optional[str] = None
    status: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Submitter":
        return cls(
            id=data.get("id"),
            submission_id=data.get("submission_id"),
            email=data.get("email"),
            slug=data.get("slug"),
            uuid=data.get("uuid"),
            embed_src=data.get("embed_src"),
            status=data.get("status"),
            raw=data,
        )


@dataclass
class Template:
    id: int
    name: Optional[str] = None
    slug: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Template":
        return cls(
            id=int(data["id"]),
            name=data.get("name"),
            slug=data.get("slug") or data.get("template_slug"),
        )


class DocuSealClient:
    """Thin async wrapper over the DocuSeal REST API."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = self.settings.docuseal_base_url.rstrip("/")
        self.api_key = self.settings.docuseal_api_key.strip()
        self.timeout = self.settings.docuseal_timeout_seconds
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def is_cloud(self) -> bool:
        return any(host in self.base_url for host in CLOUD_API_HOSTS)

    def api_url(self, path: str) -> str:
        """Full URL for an API path such as '/templates/pdf'."""
        if self.is_cloud:
            return f"{self.base_url}{path}"
        return f"{self.base_url}/api{path}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self) -> Dict[str, str]:
        return {
            "X-Auth-Token": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        if not self.is_configured():
            raise SigningServiceError("DOCUSEAL_API_KEY is not configured", code="SIGNING_SERVICE_NOT_CONFIGURED")

        url = self.api_url(path)
        try:
            async with self._client() as client:
                response = await client.request(method, url, json=json, headers=self._headers())
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            body = e.response.text[:500]
            logger.error(f"DocuSeal {method} {path} failed: {e.response.status_code} - {body}")
            raise SigningServiceError(
                f"DocuSeal request failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            )
        except httpx.HTTPError as e:
            logger.error(f"DocuSeal {method} {path} error: {e}")
            raise SigningServiceError(f"DocuSeal request failed: {e}")
        except ValueError as e:
            raise SigningServiceError(f"DocuSeal returned invalid JSON: {e}")

    async def create_template_from_pdf(
        self,
        name: str,
        file_base64: str,
        fields: List[Dict[str, Any]],
        external_id: Optional[str] = None,
        document_name: Optional[str] = None,
    ) -> Template:
        """
        POST /templates/pdf with a single base64 document and its fields.

        Args:
            name: Template name
            file_base64: PDF bytes, base64 encoded
            fields: Vendor field payload (see to_vendor_fields)
            external_id: Our reference, usually the opportunity id
        """
        body: Dict[str, Any] = {
            "name": name,
            "documents": [
                {
                    "name": document_name or name,
                    "file": file_base64,
                    "fields": fields,
                }
            ],
        }
        if external_id:
            body["external_id"] = external_id

        logger.info(f"Creating DocuSeal template '{name}' with {len(fields)} fields")
        data = await self._request("POST", "/templates/pdf", json=body)
        template = Template.from_api(data)
        logger.info(f"Template created successfully with ID: {template.id}")
        return template

    async def get_template(self, template_id: int) -> Template:
        data = await self._request("GET", f"/templates/{template_id}")
        return Template.from_api(data)

    async def create_submission(
        self,
        template_id: int,
        signers: List[Signer],
        values: Optional[Dict[str, Any]] = None,
        send_email: bool = True,
    ) -> List[Submitter]:
        """
        POST /submissions for a template. Values prefill fields by name.

        Returns:
            Submitters in the order DocuSeal returns them
        """
        submitters = []
        for signer in signers:
            item: Dict[str, Any] = {
                "name": signer.name,
                "email": signer.email,
                "role": signer.role or DEFAULT_SIGNER_ROLE,
                "send_email": send_email,
            }
            if values:
                item["values"] = values
            submitters.append(item)

        body = {
            "template_id": int(template_id),
            "send_email": send_email,
            "submitters": submitters,
        }

        logger.info(
            f"Creating submission for template {template_id}, signers: "
            f"{', '.join(mask_email(s.email) for s in signers)}"
        )
        data = await self._request("POST", "/submissions", json=body)

        # Cloud returns a list of submitters, some versions wrap it
        if isinstance(data, dict):
            data = data.get("submitters", [])
        result = [Submitter.from_api(item) for item in data or []]
        if not result:
            raise SigningServiceError("No submitters returned from submission creation")
        logger.info(f"Submission created successfully: {result[0].submission_id}")
        return result

    async def get_submission(self, submission_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"/submissions/{submission_id}")

    def build_signing_url(self, submitter: Submitter) -> Optional[str]:
        """embed_src, else /s/<slug>, else /s/<uuid>."""
        if submitter.embed_src:
            return submitter.embed_src
        if submitter.slug:
            return f"{self.base_url}/s/{submitter.slug}"
        if submitter.uuid:
            return f"{self.base_url}/s/{submitter.uuid}"
        return None


# Singleton instance
_docuseal_client: Optional[DocuSealClient] = None


def get_docuseal_client() -> DocuSealClient:
    """Get the DocuSeal client singleton."""
    global _docuseal_client
    if _docuseal_client is None:
        _docuseal_client = DocuSealClient()
    return _docuseal_client
