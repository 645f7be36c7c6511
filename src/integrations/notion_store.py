"""
Notion database as the job application tracking store.

Each application is one database page identified by its Company (title) and
Position (rich text) properties. upsert() updates the matching page or creates
a new one.

Expected database properties:
    Company   title
    Position  rich_text
    Status    select
    Date      date
    Email     email
"""

import logging
import os
from typing import Any, Dict, Optional

import httpx

from domain.errors import ConfigurationError, StoreConnectionError
from domain.models import ApplicationStatus, ReconcileResult, StructuredRecord

logger = logging.getLogger(__name__)

NOTION_API_URL = 'https://api.notion.com/v1'
DEFAULT_NOTION_VERSION = '2022-06-28'


def _rich_text(value: str) -> list:
    if not value:
        return []
    return [{"type": "text", "text": {"content": value}}]


def _text_condition(value: str) -> Dict[str, Any]:
    return {"equals": value} if value else {"is_empty": True}


def build_properties(record: StructuredRecord) -> Dict[str, Any]:
    """
    Map a structured record to Notion page properties.

    Empty optional fields and an Unknown status are omitted so an update
    never blanks an existing value.
    """
    properties: Dict[str, Any] = {
        "Company": {"title": _rich_text(record.company)},
        "Position": {"rich_text": _rich_text(record.position)},
    }
    if record.status is not ApplicationStatus.UNKNOWN:
        properties["Status"] = {"select": {"name": record.status.value}}
    if record.source_date:
        properties["Date"] = {"date": {"start": record.source_date.date().isoformat()}}
    if record.source_email:
        properties["Email"] = {"email": record.source_email}
    return properties


def build_identity_filter(record: StructuredRecord) -> Dict[str, Any]:
    """Database query filter matching the record's (company, position) identity."""
    return {
        "and": [
            {"property": "Company", "title": _text_condition(record.company)},
            {"property": "Position", "rich_text": _text_condition(record.position)},
        ]
    }


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    return f"HTTP {response.status_code} {body.get('code', '')}: {body.get('message', '')}".strip()


class NotionStore:
    """
    Upserts structured records into a Notion database.

    Args:
        token: Notion integration token
        database_id: Target database id
        client: Optional preconfigured httpx.Client (used by tests)
    """

    def __init__(
        self,
        token: str,
        database_id: str,
        notion_version: str = DEFAULT_NOTION_VERSION,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        self.database_id = database_id
        self._client = client or httpx.Client(base_url=NOTION_API_URL, timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Notion-Version": notion_version,
            "Content-Type": "application/json",
        }

    @classmethod
    def from_env(cls) -> "NotionStore":
        """
        Build a store from NOTION_TOKEN, NOTION_DB_ID and NOTION_VERSION.

        Raises:
            ConfigurationError: If token or database id is missing
        """
        token = os.environ.get('NOTION_TOKEN', '').strip()
        database_id = os.environ.get('NOTION_DB_ID', '').strip()
        if not token or not database_id:
            raise ConfigurationError("NOTION_TOKEN and NOTION_DB_ID environment variables are required")
        return cls(
            token=token,
            database_id=database_id,
            notion_version=os.environ.get('NOTION_VERSION', DEFAULT_NOTION_VERSION),
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        response = self._client.request(method, path, headers=self._headers, json=payload)
        if response.is_error:
            raise httpx.HTTPStatusError(
                _error_detail(response), request=response.request, response=response
            )
        return response.json()

    def check_connection(self) -> None:
        """
        Verify the token can read the database.

        Raises:
            StoreConnectionError: If the database cannot be retrieved
        """
        try:
            data = self._request('GET', f'/databases/{self.database_id}')
        except httpx.HTTPError as e:
            raise StoreConnectionError(f"Cannot access Notion database {self.database_id}: {e}")
        title = ''.join(t.get('plain_text', '') for t in data.get('title', []))
        logger.info(f"Connected to Notion database {title or self.database_id}")

    def find_page_id(self, record: StructuredRecord) -> Optional[str]:
        """Return the id of the page matching the record's identity, if any."""
        data = self._request(
            'POST',
            f'/databases/{self.database_id}/query',
            {"filter": build_identity_filter(record), "page_size": 1},
        )
        results = data.get('results') or []
        return results[0]['id'] if results else None

    def upsert(self, record: StructuredRecord) -> ReconcileResult:
        """
        Create or update the page for a record.

        Returns:
            ReconcileResult.ok with the page id, or ReconcileResult.failure
            with the HTTP error (never raises for API errors)
        """
        properties = build_properties(record)
        try:
            page_id = self.find_page_id(record)
            if page_id:
                self._request('PATCH', f'/pages/{page_id}', {"properties": properties})
                logger.info(f"Updated {record.company} / {record.position} -> {record.status.value}")
                return ReconcileResult.ok(page_id=page_id, created=False)

            properties.setdefault("Status", {"select": {"name": ApplicationStatus.UNKNOWN.value}})
            data = self._request('POST', '/pages', {
                "parent": {"database_id": self.database_id},
                "properties": properties,
            })
            logger.info(f"Created {record.company} / {record.position} ({record.status.value})")
            return ReconcileResult.ok(page_id=data.get('id', ''), created=True)

        except httpx.HTTPError as e:
            logger.error(f"Notion upsert failed for {record.company} / {record.position}: {e}")
            return ReconcileResult.failure(str(e))
