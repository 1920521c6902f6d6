"""Broker AI - request orchestration and resilience layer.

Import the orchestrator from ``broker_ai.services.orchestrator``.
"""

__version__ = "1.0.0"

__all__ = [
    "clients",
    "core",
    "models",
    "observability",
    "prompts",
    "providers",
    "resilience",
    "services",
]
