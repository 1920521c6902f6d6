"""Clients for collaborator services."""

from broker_ai.clients.http import create_http_client
from broker_ai.clients.knowledge_base import KnowledgeBaseClient, KnowledgeSearch

__all__ = [
    "create_http_client",
    "KnowledgeBaseClient",
    "KnowledgeSearch",
]
