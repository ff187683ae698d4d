"""
Search index boundary for canonical postings.

Index writes mirror store writes on a best-effort basis; the orchestrator
treats a failed push like any other persistence failure.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

import meilisearch
from meilisearch.errors import MeilisearchError

from core.errors import PersistenceError
from core.models import CanonicalJobPosting

logger = logging.getLogger(__name__)

FILTERABLE_ATTRIBUTES = [
    'workMode',
    'seniority',
    'employmentType',
    'tags',
    'company',
    'locationText',
    'sourceName',
    'postedAt',
]
SORTABLE_ATTRIBUTES = [
    'postedAt',
    'capturedAt',
]

# Index uids configured by this process
_ensured_indexes: Set[str] = set()


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def to_search_document(posting: CanonicalJobPosting) -> Dict[str, Any]:
    """Flat search document for a stored posting (must have an id)."""
    return {
        'id': posting.id,
        'title': posting.title,
        'companyName': posting.company.name,
        'company': posting.company.name,
        'locationText': posting.location_text,
        'workMode': posting.work_mode.value,
        'seniority': posting.seniority.value,
        'employmentType': posting.employment_type.value,
        'tags': list(posting.tags),
        'postedAt': _iso(posting.posted_at),
        'capturedAt': _iso(posting.captured_at),
        'sourceName': posting.source.name,
        'sourceUrl': posting.source.url,
        'fingerprint': posting.dedupe.fingerprint,
        'status': posting.status.value,
    }


class SearchIndex(ABC):
    @abstractmethod
    def ensure_index(self):
        pass

    @abstractmethod
    def upsert(self, document: Dict[str, Any]):
        pass

    @abstractmethod
    def delete_all(self):
        """Drop every document. Tests and maintenance only."""


class InMemorySearchIndex(SearchIndex):
    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.ensured = False

    def ensure_index(self):
        self.ensured = True

    def upsert(self, document):
        self.documents[document['id']] = dict(document)

    def delete_all(self):
        self.documents.clear()

    def search_ids(self) -> List[str]:
        return list(self.documents.keys())


class MeiliSearchIndex(SearchIndex):
    """Meilisearch-backed index"""

    def __init__(self, host: str, api_key: Optional[str], index_name: str = "jobs"):
        self.index_name = index_name
        self.client = meilisearch.Client(host, api_key)

    def ensure_index(self):
        """Create the index and apply settings once per process."""
        if self.index_name in _ensured_indexes:
            return

        try:
            try:
                self.client.get_index(self.index_name)
            except MeilisearchError:
                task = self.client.create_index(self.index_name, {'primaryKey': 'id'})
                self.client.wait_for_task(task.task_uid)

            index = self.client.index(self.index_name)
            index.update_filterable_attributes(FILTERABLE_ATTRIBUTES)
            index.update_sortable_attributes(SORTABLE_ATTRIBUTES)
        except MeilisearchError as e:
            logger.error(f"[search] Failed to configure Meilisearch index '{self.index_name}': {e}")
            raise PersistenceError(f"Meilisearch index setup failed: {e}") from e

        _ensured_indexes.add(self.index_name)
        logger.info(f"[search] Meilisearch index '{self.index_name}' configured")

    def upsert(self, document):
        try:
            self.client.index(self.index_name).add_documents([document], primary_key='id')
        except MeilisearchError as e:
            raise PersistenceError(f"Meilisearch upsert failed for {document.get('id')}: {e}") from e

    def delete_all(self):
        try:
            self.client.index(self.index_name).delete_all_documents()
        except MeilisearchError as e:
            raise PersistenceError(f"Meilisearch delete_all failed: {e}") from e
