"""Engine configuration passed explicitly to every component."""

from dataclasses import dataclass

from context_compliance.configuration.config import Settings
from context_compliance.domain.ports.compliance_port import MissingReasoningPolicy

DEFAULT_CEILING_TOKENS = 180_000
DEFAULT_PROTECTED_RECENT_COUNT = 5
DEFAULT_TOOL_RESULT_FLOOR_TOKENS = 500
DEFAULT_PROXY_THRESHOLD_TOKENS = 80_000
DEFAULT_EMERGENCY_WINDOW_RATIO = 0.9


@dataclass(frozen=True)
class ComplianceConfig:
    """Configuration for budget enforcement, routing and reasoning compliance."""

    # Leaves headroom for provider output plus system instructions
    ceiling_tokens: int = DEFAULT_CEILING_TOKENS
    protected_recent_count: int = DEFAULT_PROTECTED_RECENT_COUNT
    tool_result_floor_tokens: int = DEFAULT_TOOL_RESULT_FLOOR_TOKENS
    emergency_window_ratio: float = DEFAULT_EMERGENCY_WINDOW_RATIO

    proxy_threshold_tokens: int = DEFAULT_PROXY_THRESHOLD_TOKENS

    reasoning_mode: bool = True
    missing_reasoning_policy: MissingReasoningPolicy = MissingReasoningPolicy.PLACEHOLDER

    def __post_init__(self):
        """Validate configuration."""
        if self.ceiling_tokens <= 0:
            raise ValueError(f"ceiling_tokens must be positive, got {self.ceiling_tokens}")
        if self.protected_recent_count < 0:
            raise ValueError(
                f"protected_recent_count must be >= 0, got {self.protected_recent_count}"
            )
        if self.tool_result_floor_tokens < 0:
            raise ValueError(
                f"tool_result_floor_tokens must be >= 0, got {self.tool_result_floor_tokens}"
            )
        if not 0.0 < self.emergency_window_ratio <= 1.0:
            raise ValueError(
                f"emergency_window_ratio must be in (0, 1], got {self.emergency_window_ratio}"
            )
        if self.proxy_threshold_tokens <= 0:
            raise ValueError(
                f"proxy_threshold_tokens must be positive, got {self.proxy_threshold_tokens}"
            )
        if not isinstance(self.missing_reasoning_policy, MissingReasoningPolicy):
            object.__setattr__(
                self,
                "missing_reasoning_policy",
                MissingReasoningPolicy(self.missing_reasoning_policy),
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ComplianceConfig":
        """Build engine configuration from environment settings."""
        return cls(
            ceiling_tokens=settings.context_ceiling_tokens,
            protected_recent_count=settings.context_protected_recent_count,
            tool_result_floor_tokens=settings.context_tool_result_floor_tokens,
            emergency_window_ratio=settings.context_emergency_window_ratio,
            proxy_threshold_tokens=settings.context_proxy_threshold_tokens,
            reasoning_mode=settings.context_reasoning_mode,
            missing_reasoning_policy=MissingReasoningPolicy(
                settings.context_missing_reasoning_policy
            ),
        )
