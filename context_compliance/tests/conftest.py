"""Pytest configuration and shared fixtures for testing."""

import pytest

from context_compliance.domain.model.message import (
    Message,
    MessageRole,
    ReasoningPart,
    TextPart,
    ToolInvocationPart,
    ToolResultPart,
)
from context_compliance.infrastructure.context.compliance_config import ComplianceConfig
from context_compliance.infrastructure.context.compliance_facade import ComplianceFacade
from context_compliance.infrastructure.context.token_estimator import TokenEstimator


def pytest_configure(config):
    """Configure pytest markers"""
    config.addinivalue_line("markers", "unit: fast in-process unit test")
    config.addinivalue_line("markers", "property: hypothesis property-based test")


def pytest_collection_modifyitems(config, items):
    """Mark everything under property/ as a property test"""
    for item in items:
        if "property" in item.path.parts:
            item.add_marker(pytest.mark.property)


@pytest.fixture
def estimator() -> TokenEstimator:
    """Default heuristic token estimator."""
    return TokenEstimator()


@pytest.fixture
def config() -> ComplianceConfig:
    """Default engine configuration."""
    return ComplianceConfig()


@pytest.fixture
def facade(config: ComplianceConfig) -> ComplianceFacade:
    """Compliance facade with default configuration."""
    return ComplianceFacade(config)


@pytest.fixture
def tool_exchange() -> list[Message]:
    """A well-formed search exchange: question, signed call, result, answer."""
    return [
        Message(id="u1", role=MessageRole.USER, parts=(TextPart("Search for SOL news"),)),
        Message(
            id="a1",
            role=MessageRole.ASSISTANT,
            parts=(
                ReasoningPart("I should search the web", signature="sig-1"),
                TextPart("Let me search for that"),
                ToolInvocationPart(call_id="c1", name="searchWeb", args={"query": "SOL"}),
            ),
        ),
        Message(
            id="u2",
            role=MessageRole.USER,
            parts=(ToolResultPart(call_id="c1", name="searchWeb", result=[{"title": "SOL up"}]),),
        ),
        Message(id="a2", role=MessageRole.ASSISTANT, parts=(TextPart("SOL is up today."),)),
    ]
