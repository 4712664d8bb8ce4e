"""Context strategy decider - direct vs. proxy-compressed delivery."""

import logging
from collections.abc import Sequence

from context_compliance.domain.model.message import Message
from context_compliance.domain.ports.compliance_port import ContextStrategy
from context_compliance.infrastructure.context.compliance_config import (
    DEFAULT_PROXY_THRESHOLD_TOKENS,
)
from context_compliance.infrastructure.context.token_estimator import TokenEstimator

logger = logging.getLogger(__name__)


class ContextStrategyDecider:
    """
    Chooses how a history reaches the provider.

    Below the threshold the history goes direct (lower latency). At or above
    it, a collaborating proxy service compresses the history; this class only
    makes the routing decision. Extended thinking is always requested.
    """

    def __init__(
        self,
        threshold_tokens: int = DEFAULT_PROXY_THRESHOLD_TOKENS,
        estimator: TokenEstimator | None = None,
    ) -> None:
        self.threshold_tokens = threshold_tokens
        self.estimator = estimator or TokenEstimator()

    def decide(self, messages: Sequence[Message]) -> ContextStrategy:
        """
        Decide the delivery strategy for ``messages``.

        Args:
            messages: Full conversation history

        Returns:
            ContextStrategy with routing decision and token estimate
        """
        estimated_tokens = self.estimator.estimate_total(messages)

        if estimated_tokens < self.threshold_tokens:
            strategy = ContextStrategy(
                use_extended_thinking=True,
                use_proxy_delivery=False,
                estimated_tokens=estimated_tokens,
                reason=(
                    f"Context within threshold ({estimated_tokens} < "
                    f"{self.threshold_tokens} tokens), direct delivery"
                ),
            )
        else:
            strategy = ContextStrategy(
                use_extended_thinking=True,
                use_proxy_delivery=True,
                estimated_tokens=estimated_tokens,
                reason=(
                    f"Context exceeds threshold ({estimated_tokens} >= "
                    f"{self.threshold_tokens} tokens), proxy-compressed delivery"
                ),
            )

        logger.debug(f"Context strategy: {strategy.reason}")
        return strategy
