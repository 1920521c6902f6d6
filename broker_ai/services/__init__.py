"""
Service layer: orchestration, metering and usage aggregation.

Import BrokerAIOrchestrator from broker_ai.services.orchestrator.
"""

from broker_ai.services.cost_table import ModelCostTable
from broker_ai.services.metrics_collector import MetricRecord, MetricsCollector

__all__ = [
    "ModelCostTable",
    "MetricRecord",
    "MetricsCollector",
]
