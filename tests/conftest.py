"""Pytest configuration and fixtures for reactorai tests."""

import os
import pytest
from unittest.mock import MagicMock, AsyncMock

# Set demo mode for tests
os.environ["REACTORAI_DEMO_MODE"] = "true"

ACCOUNT = "0x" + "a1" * 20
PAIR_ADDRESS = "0x" + "b2" * 20
UNI_ADDRESS = "0x1f9840a85d5af5bf1d1762f925bdaddc4201f984"
SEPOLIA = 11155111


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config file at a temp dir and start each test with fresh settings."""
    from reactorai.config import settings as settings_module

    monkeypatch.setattr(settings_module, "get_config_path", lambda: tmp_path / "config.yml")
    settings_module.reset_settings_cache()
    yield tmp_path / "config.yml"
    settings_module.reset_settings_cache()


@pytest.fixture
def mock_ledger():
    """Mock LedgerClient answering like a healthy ETH/USDC pool."""
    from reactorai.data.ledger import LendingPosition, PairInfo, TokenInfo

    ledger = MagicMock()
    ledger.is_available = False

    ledger.get_balance = AsyncMock(return_value=2.5)
    ledger.find_pair = AsyncMock(
        return_value=PairInfo(address=PAIR_ADDRESS, token0="ETH", token1="USDC", chain_id=SEPOLIA)
    )
    ledger.get_price = AsyncMock(return_value=3000.0)
    ledger.check_liquidity = AsyncMock(return_value=2_500_000.0)
    ledger.validate_token_contract = AsyncMock(
        return_value=TokenInfo(address=UNI_ADDRESS, symbol="UNI", decimals=18, chain_id=SEPOLIA)
    )
    ledger.get_lending_position = AsyncMock(
        return_value=LendingPosition(
            account=ACCOUNT,
            chain_id=SEPOLIA,
            has_position=True,
            health_factor=1.85,
            total_collateral_usd=12500.0,
            total_debt_usd=5400.0,
        )
    )
    ledger.close = AsyncMock()

    return ledger


@pytest.fixture
def mock_llm():
    """LLM client that always answers from the built-in knowledge base."""
    from reactorai.chat.knowledge import KnowledgeBase

    knowledge = KnowledgeBase()
    llm = MagicMock()
    llm.is_available = False
    llm.answer = AsyncMock(side_effect=lambda question, state: knowledge.answer(question))
    llm.close = AsyncMock()
    return llm


@pytest.fixture
def manager(mock_llm):
    """Dialogue manager backed by the demo-mode ledger client."""
    from reactorai.chat.state_machine import DialogueManager
    from reactorai.data.ledger import LedgerClient

    return DialogueManager(ledger=LedgerClient(), llm=mock_llm)


@pytest.fixture
def mocked_manager(mock_ledger, mock_llm):
    """Dialogue manager backed by the mock ledger."""
    from reactorai.chat.state_machine import DialogueManager

    return DialogueManager(ledger=mock_ledger, llm=mock_llm)


@pytest.fixture
def stop_order_state():
    """Conversation with every stop-order slot filled: all ETH -> USDC at a 10% drop."""
    from reactorai.chat.context import ConversationState, TaskType

    state = ConversationState(id="test-stop-order", connected_account=ACCOUNT, selected_network=SEPOLIA)
    state.start_task(TaskType.STOP_ORDER)
    state.data.token_to_sell = "ETH"
    state.data.token_to_buy = "USDC"
    state.data.amount = "all"
    state.data.drop_percentage = 10.0
    return state


@pytest.fixture
def aave_state():
    """Conversation with every debt-repayment Aave slot filled."""
    from reactorai.chat.context import ConversationState, ProtectionType, TaskType

    state = ConversationState(id="test-aave", connected_account=ACCOUNT, selected_network=SEPOLIA)
    state.start_task(TaskType.AAVE_PROTECTION)
    state.data.protection_type = ProtectionType.DEBT_REPAYMENT
    state.data.health_factor_threshold = 1.2
    state.data.target_health_factor = 1.5
    state.data.debt_asset = "USDC"
    return state
