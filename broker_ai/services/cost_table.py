"""
Model Cost Table

Static mapping from model identifier to USD cost per 1000 tokens, used by
MetricsCollector to derive the cost of a finished call.

Pattern: Prefix matching so dated model ids ("gpt-4o-2024-08-06") resolve
to their family entry. Unknown models cost 0 rather than a guessed default.
"""

from decimal import Decimal
from typing import Mapping, Optional


# =============================================================================
# Pricing - USD per 1K tokens (blended prompt+completion)
# =============================================================================

DEFAULT_COST_PER_1K: dict[str, Decimal] = {
    # OpenAI chat
    "gpt-4o": Decimal("0.005"),
    "gpt-4o-mini": Decimal("0.00015"),
    "gpt-4-turbo": Decimal("0.01"),
    "gpt-3.5-turbo": Decimal("0.0015"),
    # OpenAI embeddings
    "text-embedding-3-small": Decimal("0.0001"),
    "text-embedding-3-large": Decimal("0.00013"),
    # Anthropic
    "claude-3-5-sonnet": Decimal("0.003"),
    "claude-3-5-haiku": Decimal("0.0008"),
    "claude-3-opus": Decimal("0.015"),
}

_THOUSAND = Decimal("1000")


class ModelCostTable:
    """
    Model to cost-per-1000-tokens lookup.

    Example:
        >>> table = ModelCostTable()
        >>> table.cost_for("gpt-4o", 2000)
        0.01
    """

    def __init__(self, rates: Optional[Mapping[str, Decimal]] = None) -> None:
        """
        Args:
            rates: Custom rates; defaults to DEFAULT_COST_PER_1K
        """
        source = rates if rates is not None else DEFAULT_COST_PER_1K
        self._rates: dict[str, Decimal] = {k: Decimal(str(v)) for k, v in source.items()}
        # longest prefix first so "gpt-4o-mini-..." beats "gpt-4o"
        self._prefixes = sorted(self._rates, key=len, reverse=True)

    @property
    def rates(self) -> dict[str, Decimal]:
        """Copy of the configured rates."""
        return dict(self._rates)

    def rate_for(self, model: str) -> Decimal:
        """
        Cost per 1000 tokens for a model.

        Exact match, then longest prefix match, else 0.
        """
        if model in self._rates:
            return self._rates[model]

        for prefix in self._prefixes:
            if model.startswith(prefix):
                return self._rates[prefix]

        return Decimal("0")

    def cost_for(self, model: str, tokens: Optional[int]) -> Optional[float]:
        """
        Derive the cost of a call.

        Args:
            model: Model identifier
            tokens: Total tokens used, None when unknown

        Returns:
            Cost in USD, or None when tokens are unknown
        """
        if tokens is None:
            return None
        return float(self.rate_for(model) * Decimal(tokens) / _THOUSAND)
