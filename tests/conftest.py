"""Pytest configuration and fixtures for agentmem tests.

Memory services are exercised against the in-memory store implementations;
the language model is replaced by a scripted completer.
"""

import os

import pytest

from agentmem.config import MemoryConfig
from agentmem.memory.consolidation import ConsolidationEngine
from agentmem.memory.ltm import LTM
from agentmem.memory.orchestrator import MemoryOrchestrator
from agentmem.memory.stm import STM
from agentmem.memory.working import WorkingMemoryService
from agentmem.persistence.memory_backend import InMemoryKeyValueStore, InMemorySemanticStore
from tests.mocks.fakes import FakeClock, ScriptedCompleter


@pytest.fixture
def memory_config() -> MemoryConfig:
    return MemoryConfig()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store(clock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def semantic_store() -> InMemorySemanticStore:
    return InMemorySemanticStore()


@pytest.fixture
def completer() -> ScriptedCompleter:
    return ScriptedCompleter()


@pytest.fixture
def stm(kv_store, memory_config) -> STM:
    return STM(kv_store, memory_config)


@pytest.fixture
def working(kv_store, memory_config) -> WorkingMemoryService:
    return WorkingMemoryService(kv_store, memory_config)


@pytest.fixture
def ltm(semantic_store, memory_config) -> LTM:
    return LTM(semantic_store, memory_config)


@pytest.fixture
def engine(stm, ltm, kv_store, completer, memory_config) -> ConsolidationEngine:
    return ConsolidationEngine(stm, ltm, kv_store, completer, memory_config)


@pytest.fixture
def orchestrator(kv_store, semantic_store, completer, memory_config) -> MemoryOrchestrator:
    return MemoryOrchestrator(kv_store, semantic_store, completer, config=memory_config)


# Pytest configuration hooks


def pytest_configure(config):
    """Configure pytest environment."""
    os.environ["AGENTMEM_ENV"] = "test"

    config.addinivalue_line("markers", "unit: unit tests that don't require external services")


def pytest_collection_modifyitems(config, items):
    """Mark tests under tests/unit automatically."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
