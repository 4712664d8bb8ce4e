"""Domain ports for the compliance engine."""

from context_compliance.domain.ports.compliance_port import (
    ComplianceRequest,
    ComplianceResult,
    ContextCompliancePort,
    ContextStrategy,
    MissingReasoningPolicy,
    RepairFix,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    "ComplianceRequest",
    "ComplianceResult",
    "ContextCompliancePort",
    "ContextStrategy",
    "MissingReasoningPolicy",
    "RepairFix",
    "ValidationIssue",
    "ValidationResult",
]
