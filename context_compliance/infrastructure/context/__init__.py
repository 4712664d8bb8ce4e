"""Context compliance module for outbound conversation history.

This module provides:
- Heuristic token estimation for messages
- Token budget enforcement (priority windowing, tool result truncation)
- Tool protocol validation and deterministic repair
- Reasoning-block compliance for reasoning-mode requests
- Direct vs. proxy-compressed delivery routing
"""

from .budget_enforcer import BudgetEnforcementResult, BudgetEnforcer, ScoredMessage, WindowResult
from .compliance_config import ComplianceConfig
from .compliance_facade import ComplianceFacade
from .errors import ComplianceError, EmptyHistoryError, InvalidMessageError
from .message_codec import decode_messages, describe_structure, encode_messages
from .reasoning_compliance import (
    PLACEHOLDER_REASONING_TEXT,
    ensure_reasoning_block_first,
    find_messages_missing_reasoning,
    strip_unsigned_reasoning,
)
from .strategy_decider import ContextStrategyDecider
from .structure_repairer import RepairResult, StructureRepairer
from .structure_validator import StructureValidator
from .token_estimator import TokenEstimator
from .tool_result_truncation import truncate_tool_result

__all__ = [
    # Facade (recommended entry point)
    "ComplianceFacade",
    "ComplianceConfig",
    # Estimation
    "TokenEstimator",
    # Budget
    "BudgetEnforcer",
    "BudgetEnforcementResult",
    "ScoredMessage",
    "WindowResult",
    "truncate_tool_result",
    # Structure
    "StructureValidator",
    "StructureRepairer",
    "RepairResult",
    # Reasoning
    "PLACEHOLDER_REASONING_TEXT",
    "ensure_reasoning_block_first",
    "find_messages_missing_reasoning",
    "strip_unsigned_reasoning",
    # Routing
    "ContextStrategyDecider",
    # Codec
    "decode_messages",
    "encode_messages",
    "describe_structure",
    # Errors
    "ComplianceError",
    "EmptyHistoryError",
    "InvalidMessageError",
]
