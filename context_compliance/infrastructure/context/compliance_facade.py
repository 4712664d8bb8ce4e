"""
Compliance Facade - Unified entry point for outbound history preparation.

Combines, in order:
1. ContextStrategyDecider - direct vs. proxy-compressed delivery
2. BudgetEnforcer - token ceiling (direct delivery only)
3. strip_unsigned_reasoning - drop unsigned reasoning from replayed history
4. StructureRepairer - tool invocation/result placement and pairing
5. ensure_reasoning_block_first - reasoning-mode compliance
6. StructureValidator - safety-net re-validation

Structure repair always runs after budget enforcement: dropping or
truncating messages can orphan tool invocations. When placeholder reasoning
or message splits push the result over the ceiling, enforcement reruns with
the overshoot taken off its budget.
"""

import logging
from collections.abc import Sequence
from dataclasses import replace

from context_compliance.domain.model.message import Message
from context_compliance.domain.ports.compliance_port import (
    ComplianceRequest,
    ComplianceResult,
    ContextCompliancePort,
    MissingReasoningPolicy,
)
from context_compliance.infrastructure.context.budget_enforcer import BudgetEnforcer
from context_compliance.infrastructure.context.compliance_config import ComplianceConfig
from context_compliance.infrastructure.context.errors import EmptyHistoryError, ErrorContext
from context_compliance.infrastructure.context.message_codec import describe_structure
from context_compliance.infrastructure.context.reasoning_compliance import (
    ensure_reasoning_block_first,
    find_messages_missing_reasoning,
    strip_unsigned_reasoning,
)
from context_compliance.infrastructure.context.strategy_decider import ContextStrategyDecider
from context_compliance.infrastructure.context.structure_repairer import (
    RepairResult,
    StructureRepairer,
)
from context_compliance.infrastructure.context.structure_validator import (
    StructureValidator,
    log_validation,
)
from context_compliance.infrastructure.context.token_estimator import TokenEstimator

logger = logging.getLogger(__name__)

# Enforcement passes before an over-ceiling history is sent as is
MAX_BUDGET_PASSES = 3


class ComplianceFacade(ContextCompliancePort):
    """
    Prepares a conversation history for the model-calling adapter.

    Implements ContextCompliancePort protocol.

    Example:
        facade = ComplianceFacade(ComplianceConfig())
        result = facade.prepare(ComplianceRequest(messages=history))
        # result.messages is structurally valid; result.strategy picks headers/options
    """

    def __init__(
        self,
        config: ComplianceConfig | None = None,
        estimator: TokenEstimator | None = None,
        enforcer: BudgetEnforcer | None = None,
        validator: StructureValidator | None = None,
        repairer: StructureRepairer | None = None,
        decider: ContextStrategyDecider | None = None,
        debug_logging: bool = False,
    ):
        """
        Initialize compliance facade.

        Args:
            config: Engine configuration. Uses defaults if None.
            estimator: Optional shared token estimator
            enforcer: Optional pre-configured budget enforcer
            validator: Optional structure validator
            repairer: Optional structure repairer
            decider: Optional pre-configured strategy decider
            debug_logging: Log full message structure before and after processing
        """
        self.config = config or ComplianceConfig()
        self._estimator = estimator or TokenEstimator()
        self._enforcer = enforcer or BudgetEnforcer(self.config, self._estimator)
        self._validator = validator or StructureValidator()
        self._repairer = repairer or StructureRepairer()
        self._decider = decider or ContextStrategyDecider(
            self.config.proxy_threshold_tokens, self._estimator
        )
        self._debug = debug_logging

    @property
    def enforcer(self) -> BudgetEnforcer:
        return self._enforcer

    @property
    def validator(self) -> StructureValidator:
        return self._validator

    @property
    def repairer(self) -> StructureRepairer:
        return self._repairer

    @property
    def decider(self) -> ContextStrategyDecider:
        return self._decider

    def prepare(self, request: ComplianceRequest) -> ComplianceResult:
        """
        Run the full pipeline on one request's history.

        Args:
            request: Compliance request

        Returns:
            ComplianceResult with processed messages, strategy and diagnostics

        Raises:
            EmptyHistoryError: If nothing would be left to send
        """
        messages = list(request.messages)
        reasoning_mode = (
            self.config.reasoning_mode if request.reasoning_mode is None else request.reasoning_mode
        )
        if self._debug:
            logger.debug(describe_structure(messages, "Inbound history"))

        strategy = self._decider.decide(messages)
        result = ComplianceResult(
            messages=messages,
            strategy=strategy,
            original_message_count=len(messages),
            original_tokens=strategy.estimated_tokens,
            tokens_estimate=strategy.estimated_tokens,
        )

        if strategy.use_proxy_delivery:
            current = self._shape(messages, None, request, reasoning_mode, result)
        else:
            ceiling = (
                self.config.ceiling_tokens
                if request.ceiling_tokens is None
                else request.ceiling_tokens
            )
            budget = ceiling
            for attempt in range(1, MAX_BUDGET_PASSES + 1):
                current = self._shape(messages, budget, request, reasoning_mode, result)
                overshoot = self._estimator.estimate_total(current) - ceiling
                if overshoot <= 0:
                    break
                if attempt == MAX_BUDGET_PASSES:
                    logger.warning(
                        f"Prepared history still exceeds ceiling {ceiling} by {overshoot} "
                        f"tokens after {MAX_BUDGET_PASSES} budget passes"
                    )
                    break
                # Placeholder reasoning and message splits land after enforcement
                budget = max(1, budget - overshoot)
                logger.info(
                    f"Prepared history is {overshoot} tokens over ceiling {ceiling}, "
                    f"re-enforcing with budget {budget}"
                )

        use_reasoning = reasoning_mode and not result.reasoning_disabled
        if not use_reasoning and strategy.use_extended_thinking:
            result.strategy = replace(strategy, use_extended_thinking=False)

        result.validation = self._validator.validate(
            current, require_reasoning_first=use_reasoning
        )
        if not result.validation.is_valid:
            log_validation(result.validation, "Outbound history")

        result.messages = current
        result.tokens_estimate = self._estimator.estimate_total(current)

        if self._debug:
            logger.debug(describe_structure(current, "Outbound history"))
        logger.info(
            f"Prepared history: {result.original_message_count} -> {len(current)} messages, "
            f"{result.original_tokens} -> {result.tokens_estimate} tokens, "
            f"proxy={strategy.use_proxy_delivery}, fixes={len(result.fixes_applied)}"
        )
        return result

    def validate_and_fix(
        self,
        messages: Sequence[Message],
        fix_errors: bool = True,
    ) -> RepairResult:
        """
        Validate, repair if invalid, and re-validate.

        Args:
            messages: Message sequence
            fix_errors: Repair when validation finds errors

        Returns:
            RepairResult (unchanged messages and no fixes when already valid)

        Raises:
            EmptyHistoryError: If repair would remove every message
        """
        validation = self._validator.validate(messages)
        log_validation(validation, "Inbound history")

        if not fix_errors or validation.is_valid:
            return RepairResult(fixed_messages=list(messages))

        repair = self._repairer.repair(messages)
        revalidation = self._validator.validate(repair.fixed_messages)
        if not revalidation.is_valid:
            logger.error(
                f"{len(revalidation.errors)} structural errors remain after repair: "
                + "; ".join(str(issue) for issue in revalidation.errors)
            )
        return repair

    def _apply_reasoning_compliance(self, messages: list[Message]) -> tuple[list[Message], bool]:
        """Return (messages, reasoning_disabled)."""
        policy = self.config.missing_reasoning_policy
        if policy == MissingReasoningPolicy.DISABLE_REASONING:
            missing = find_messages_missing_reasoning(messages)
            if missing:
                logger.warning(
                    f"{len(missing)} assistant messages with tool invocations lack a "
                    "reasoning block - disabling reasoning mode for this request"
                )
                return messages, True
        return ensure_reasoning_block_first(messages, policy), False

    def _shape(
        self,
        messages: list[Message],
        budget: int | None,
        request: ComplianceRequest,
        reasoning_mode: bool,
        result: ComplianceResult,
    ) -> list[Message]:
        """Enforce ``budget`` (skipped when None), then repair and apply reasoning compliance."""
        current = messages
        if budget is not None:
            enforcement = self._enforcer.enforce(current, budget)
            current = enforcement.messages
            result.truncated_tool_results = enforcement.truncated_tool_results
            result.windowed_messages = enforcement.windowed_messages

        if request.strip_unsigned_reasoning:
            current, result.removed_unsigned_reasoning = strip_unsigned_reasoning(current)

        repair = self.validate_and_fix(current)
        current = repair.fixed_messages
        result.fixes_applied = repair.fixes_applied

        result.reasoning_disabled = False
        if reasoning_mode:
            current, result.reasoning_disabled = self._apply_reasoning_compliance(current)

        if messages and not current:
            raise EmptyHistoryError(
                "No messages left to send after compliance processing",
                original_count=len(messages),
                context=ErrorContext(operation="prepare"),
            )
        return current
