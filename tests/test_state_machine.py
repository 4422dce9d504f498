"""End-to-end conversation tests for the dialogue manager."""

import pytest

from reactorai.chat.context import DialogueStep, ProtectionType, TaskType
from reactorai.chat.state_machine import TurnRequest
from reactorai.errors.translator import OutcomeKind, RecoveryAction
from reactorai.utils.errors import LedgerError

ACCOUNT = "0x" + "a1" * 20
SEPOLIA = 11155111
UNI_ADDRESS = "0x1f9840a85d5af5bf1d1762f925bdaddc4201f984"
OTHER_ACCOUNT = "0x" + "c3" * 20
AVALANCHE = 43114


async def say(manager, text, conversation_id="conv", **context):
    """Send one turn with the test wallet connected unless another is given."""
    context.setdefault("connected_account", ACCOUNT)
    request = TurnRequest(text=text, conversation_id=conversation_id, **context)
    return await manager.handle_turn(request)


class TestStopOrderFlow:
    """Collecting a stop order one answer at a time."""

    @pytest.mark.asyncio
    async def test_happy_path(self, manager):
        """A stop order walks from first message to a ready configuration."""
        response = await say(manager, "create a stop order for my ETH")
        state = manager.get_or_create("conv")
        assert state.active_task == TaskType.STOP_ORDER
        assert state.data.token_to_sell == "ETH"
        assert state.current_slot == "selected_network"

        response = await say(manager, "sepolia")
        assert manager.get_or_create("conv").current_slot == "token_to_buy"

        response = await say(manager, "USDC")
        assert response.next_step == "awaiting-amount"

        await say(manager, "all")
        response = await say(manager, "10%")
        state = manager.get_or_create("conv")
        assert state.step == DialogueStep.FINAL_CONFIRMATION
        assert "Stop order summary" in response.message
        assert response.configuration is None
        assert state.pending_config["threshold"] == 900
        assert state.pending_config["target_price"] == pytest.approx(2700.0)

        response = await say(manager, "yes")
        state = manager.get_or_create("conv")
        assert state.step == DialogueStep.READY
        assert state.active_task == TaskType.NONE
        assert response.needs_input is False
        config = response.configuration
        assert config["task"] == "stop_order"
        assert config["client_address"] == ACCOUNT
        assert config["amount"] == 2.5
        assert config["deployment_ready"] is True

    @pytest.mark.asyncio
    async def test_single_sentence(self, manager):
        """Every slot stated up front goes straight to the summary."""
        await say(manager, "sell 2 ETH for USDC if it drops 15%", network=SEPOLIA)

        state = manager.get_or_create("conv")
        assert state.step == DialogueStep.FINAL_CONFIRMATION
        assert state.data.amount == "2"
        assert state.data.drop_percentage == 15.0

    @pytest.mark.asyncio
    async def test_unclear_slot_answer(self, manager):
        """An answer without the expected value repeats the question."""
        await say(manager, "create a stop order for my ETH", network=SEPOLIA)
        response = await say(manager, "hmm not sure")

        assert "couldn't find a token" in response.message
        assert manager.get_or_create("conv").current_slot == "token_to_buy"

    @pytest.mark.asyncio
    async def test_same_token_rejected(self, manager):
        """The token received must differ from the token sold."""
        await say(manager, "create a stop order for my ETH", network=SEPOLIA)
        response = await say(manager, "ETH")

        assert "already selling ETH" in response.message
        assert manager.get_or_create("conv").current_slot == "token_to_buy"

    @pytest.mark.asyncio
    async def test_missing_wallet_is_asked_first(self, manager):
        """Without a connected wallet the first question is the account."""
        response = await manager.handle_turn(TurnRequest(text="create a stop order", conversation_id="anon"))

        assert "connect your wallet" in response.message
        assert manager.get_or_create("anon").current_slot == "connected_account"

    @pytest.mark.asyncio
    async def test_reject_at_final_confirmation(self, manager):
        """Saying no to the summary discards the task."""
        await say(manager, "sell 2 ETH for USDC if it drops 15%", network=SEPOLIA)
        response = await say(manager, "no")

        state = manager.get_or_create("conv")
        assert state.step == DialogueStep.CANCELLED
        assert state.active_task == TaskType.NONE
        assert state.data is None
        assert state.connected_account == ACCOUNT
        assert [o.value for o in response.options][0] == "create a stop order"

    @pytest.mark.asyncio
    async def test_unclear_confirmation(self, manager):
        """Anything but yes or no at a confirmation asks again."""
        await say(manager, "sell 2 ETH for USDC if it drops 15%", network=SEPOLIA)
        response = await say(manager, "maybe later")

        assert "clear yes or no" in response.message
        assert manager.get_or_create("conv").step == DialogueStep.FINAL_CONFIRMATION

    @pytest.mark.asyncio
    async def test_yes_with_negative_words(self, manager):
        """A leading yes confirms even when the rest of the reply says "don't"."""
        await say(manager, "sell 2 ETH for USDC if it drops 15%", network=SEPOLIA)
        response = await say(manager, "yes, I don't need changes")

        assert manager.get_or_create("conv").step == DialogueStep.READY
        assert response.configuration["amount"] == 2.0

    @pytest.mark.asyncio
    async def test_restart_after_reject_asks_everything(self, manager):
        """Starting the same task after a rejection asks every task question again."""
        await say(manager, "sell 2 ETH for USDC if it drops 15%", network=SEPOLIA)
        await say(manager, "no")
        response = await say(manager, "create a stop order")

        state = manager.get_or_create("conv")
        assert state.active_task == TaskType.STOP_ORDER
        assert state.current_slot == "token_to_sell"
        assert state.data.token_to_buy is None
        assert state.data.amount is None
        assert state.data.drop_percentage is None
        assert state.selected_network == SEPOLIA
        assert response.next_step == "awaiting-token-to-sell"

    @pytest.mark.asyncio
    async def test_out_of_order_answers_asked_in_order(self, manager):
        """Details given early are kept and the missing ones asked first to last."""
        await say(manager, "create a stop order that sells everything if it drops 10%", network=SEPOLIA)
        state = manager.get_or_create("conv")
        assert state.data.amount == "all"
        assert state.data.drop_percentage == 10.0
        assert state.current_slot == "token_to_sell"

        await say(manager, "ETH")
        assert manager.get_or_create("conv").current_slot == "token_to_buy"

        await say(manager, "USDC")
        assert manager.get_or_create("conv").step == DialogueStep.FINAL_CONFIRMATION

    @pytest.mark.asyncio
    async def test_conversational_answers(self, manager):
        """Answers opening with "how about" or "do" fill the slot being asked."""
        await say(manager, "create a stop order for my ETH", network=SEPOLIA)
        response = await say(manager, "how about USDC")
        assert manager.get_or_create("conv").data.token_to_buy == "USDC"
        assert response.next_step == "awaiting-amount"

        await say(manager, "all")
        await say(manager, "do 10%")

        state = manager.get_or_create("conv")
        assert state.data.drop_percentage == 10.0
        assert state.step == DialogueStep.FINAL_CONFIRMATION


class TestSoftWarnings:
    """Low liquidity and short balances need explicit confirmation."""

    @pytest.mark.asyncio
    async def test_low_liquidity_accepted(self, manager):
        """A thin pool is flagged, and accepting it continues to the summary."""
        await say(manager, "sell all my LINK for DAI if it drops 10%", network=SEPOLIA)
        state = manager.get_or_create("conv")
        assert state.step == DialogueStep.CONFIRM_LOW_LIQUIDITY

        await say(manager, "yes")
        state = manager.get_or_create("conv")
        assert state.step == DialogueStep.FINAL_CONFIRMATION
        assert state.data.low_liquidity_accepted is True

    @pytest.mark.asyncio
    async def test_low_liquidity_declined(self, manager):
        """Declining a thin pool asks for a different token to receive."""
        await say(manager, "sell all my LINK for DAI if it drops 10%", network=SEPOLIA)
        await say(manager, "no")

        state = manager.get_or_create("conv")
        assert state.current_slot == "token_to_buy"
        assert state.data.token_to_sell == "LINK"
        assert state.data.token_to_buy is None

    @pytest.mark.asyncio
    async def test_insufficient_balance_declined(self, mocked_manager):
        """Declining an amount above the balance asks for the amount again."""
        await say(mocked_manager, "sell 5 ETH for USDC if it drops 10%", network=SEPOLIA)
        assert mocked_manager.get_or_create("conv").step == DialogueStep.CONFIRM_INSUFFICIENT_BALANCE

        response = await say(mocked_manager, "no")
        state = mocked_manager.get_or_create("conv")
        assert state.current_slot == "amount"
        assert state.data.amount is None
        assert response.next_step == "awaiting-amount"

    @pytest.mark.asyncio
    async def test_insufficient_balance_accepted(self, mocked_manager):
        """Keeping the amount anyway continues to the summary."""
        await say(mocked_manager, "sell 5 ETH for USDC if it drops 10%", network=SEPOLIA)
        await say(mocked_manager, "yes")

        state = mocked_manager.get_or_create("conv")
        assert state.step == DialogueStep.FINAL_CONFIRMATION
        assert state.pending_config["amount"] == 5.0


class TestRecovery:
    """Failed ledger lookups and the recovery choices offered."""

    @pytest.mark.asyncio
    async def test_pair_not_found_then_change_tokens(self, mocked_manager, mock_ledger):
        """A missing pair offers new tokens, which clears both token slots."""
        mock_ledger.find_pair.side_effect = LedgerError("pair not found", "pair")
        response = await say(mocked_manager, "sell all my ETH for DAI if it drops 10%", network=SEPOLIA)

        state = mocked_manager.get_or_create("conv")
        assert state.step == DialogueStep.AWAITING_RECOVERY
        assert state.recovery == OutcomeKind.PAIR_NOT_FOUND
        assert response.intent == "PAIR_NOT_FOUND"
        assert "change_tokens" in [o.value for o in response.options]

        await say(mocked_manager, "choose different tokens")
        state = mocked_manager.get_or_create("conv")
        assert state.current_slot == "token_to_sell"
        assert state.data.token_to_buy is None
        assert state.data.amount == "all"

    @pytest.mark.asyncio
    async def test_retry_after_transient_failure(self, mocked_manager, mock_ledger):
        """Trying again re-runs the lookups."""
        mock_ledger.get_balance.side_effect = [LedgerError("request timed out", "balance"), 2.5]
        await say(mocked_manager, "sell all my ETH for USDC if it drops 10%", network=SEPOLIA)
        assert mocked_manager.get_or_create("conv").step == DialogueStep.AWAITING_RECOVERY

        await say(mocked_manager, "try again")

        assert mocked_manager.get_or_create("conv").step == DialogueStep.FINAL_CONFIRMATION
        assert mock_ledger.get_balance.await_count == 2

    @pytest.mark.asyncio
    async def test_new_tokens_given_directly(self, mocked_manager, mock_ledger):
        """Naming tokens during recovery replaces the old ones."""
        mock_ledger.find_pair.side_effect = [LedgerError("pair not found", "pair"), mock_ledger.find_pair.return_value]
        await say(mocked_manager, "sell all my ETH for DAI if it drops 10%", network=SEPOLIA)

        await say(mocked_manager, "ETH for USDC then")

        state = mocked_manager.get_or_create("conv")
        assert state.data.token_to_buy == "USDC"
        assert state.step == DialogueStep.FINAL_CONFIRMATION

    @pytest.mark.asyncio
    async def test_tokens_read_before_action_words(self, mocked_manager, mock_ledger):
        """Tokens named in the reply win over words that contain an action keyword."""
        mock_ledger.find_pair.side_effect = [LedgerError("pair not found", "pair"), mock_ledger.find_pair.return_value]
        await say(mocked_manager, "sell all my ETH for DAI if it drops 10%", network=SEPOLIA)

        await say(mocked_manager, "exchange ETH for USDC instead")

        state = mocked_manager.get_or_create("conv")
        assert state.data.token_to_sell == "ETH"
        assert state.data.token_to_buy == "USDC"
        assert state.step == DialogueStep.FINAL_CONFIRMATION

    @pytest.mark.parametrize(
        "text,action",
        [
            ("try again", RecoveryAction.RETRY),
            ("let me choose other tokens", RecoveryAction.CHANGE_TOKENS),
            ("switch to something else", RecoveryAction.SWITCH_TASK),
            ("exchange rates look odd", None),
            ("againstall", None),
        ],
    )
    def test_recovery_keywords_match_whole_words(self, manager, text, action):
        """Recovery keywords only count as whole words."""
        assert manager._recovery_action(text) == action

    @pytest.mark.asyncio
    async def test_unclear_recovery_choice(self, mocked_manager, mock_ledger):
        """A reply that picks no action lists the choices again."""
        mock_ledger.find_pair.side_effect = LedgerError("pair not found", "pair")
        await say(mocked_manager, "sell all my ETH for DAI if it drops 10%", network=SEPOLIA)

        response = await say(mocked_manager, "hmm")

        assert response.message == "How would you like to continue?"
        assert mocked_manager.get_or_create("conv").step == DialogueStep.AWAITING_RECOVERY

    @pytest.mark.asyncio
    async def test_unexpected_error_resets_task(self, mocked_manager, mock_ledger):
        """Unexpected exceptions start over with the help menu."""
        mock_ledger.get_balance.side_effect = RuntimeError("boom")
        response = await say(mocked_manager, "sell all my ETH for USDC if it drops 10%", network=SEPOLIA)

        state = mocked_manager.get_or_create("conv")
        assert response.intent == "help"
        assert "start over" in response.message
        assert state.active_task == TaskType.NONE
        assert state.step == DialogueStep.INITIAL


class TestCustomTokens:
    """Tokens given by contract address."""

    @pytest.mark.asyncio
    async def test_address_registers_token(self, mocked_manager, mock_ledger):
        """A contract address is verified and recorded under its symbol."""
        await say(mocked_manager, "create a stop order for my ETH", network=SEPOLIA)
        response = await say(mocked_manager, UNI_ADDRESS)

        state = mocked_manager.get_or_create("conv")
        assert response.message.startswith("Found UNI")
        assert state.data.token_to_buy == "UNI"
        assert state.custom_tokens == {"UNI": UNI_ADDRESS}
        assert state.current_slot == "amount"

    @pytest.mark.asyncio
    async def test_invalid_address(self, mocked_manager, mock_ledger):
        """An address that is not a token contract enters recovery."""
        mock_ledger.validate_token_contract.side_effect = LedgerError("not a token contract", "token")
        await say(mocked_manager, "create a stop order for my ETH", network=SEPOLIA)
        await say(mocked_manager, "0x" + "0" * 40)

        state = mocked_manager.get_or_create("conv")
        assert state.step == DialogueStep.AWAITING_RECOVERY
        assert state.recovery == OutcomeKind.TOKEN_INVALID


class TestAaveFlow:
    """Collecting Aave liquidation protection."""

    @pytest.mark.asyncio
    async def test_debt_repayment(self, manager):
        """Debt repayment asks only for the debt asset."""
        response = await say(manager, "protect my aave position", network=SEPOLIA)
        assert response.next_step == "awaiting-protection-type"

        await say(manager, "repay debt")
        await say(manager, "1.2")
        await say(manager, "1.5")
        response = await say(manager, "USDC")

        state = manager.get_or_create("conv")
        assert state.step == DialogueStep.FINAL_CONFIRMATION
        assert state.data.collateral_asset is None
        assert "Aave liquidation protection summary" in response.message

        response = await say(manager, "yes")
        config = response.configuration
        assert config["task"] == "aave_protection"
        assert config["protection_type"] == ProtectionType.DEBT_REPAYMENT.value
        assert config["debt_asset"] == "USDC"
        assert config["prefer_debt_repayment"] is None
        assert config["reactive_network"] == "KOPLI"

    @pytest.mark.asyncio
    async def test_unsupported_network(self, manager):
        """Aave protection on a chain without it asks for another network."""
        response = await say(manager, "protect my aave position", network=1)

        assert "not available on Ethereum Mainnet" in response.message
        assert manager.get_or_create("conv").current_slot == "selected_network"

    @pytest.mark.asyncio
    async def test_target_must_exceed_trigger(self, manager):
        """A target at or below the trigger is refused."""
        await say(manager, "protect my aave position with debt repayment", network=SEPOLIA)
        await say(manager, "1.5")
        response = await say(manager, "1.3")

        assert "must be above the trigger" in response.message
        assert manager.get_or_create("conv").current_slot == "target_health_factor"

    @pytest.mark.asyncio
    async def test_no_open_position(self, mocked_manager, mock_ledger):
        """An account without a borrow position still gets a summary, with a note."""
        mock_ledger.get_lending_position.return_value.has_position = False
        await say(
            mocked_manager,
            "protect my aave position with debt repayment, trigger at 1.2 and restore to 1.6",
            network=SEPOLIA,
        )
        response = await say(mocked_manager, "USDC")

        assert mocked_manager.get_or_create("conv").step == DialogueStep.FINAL_CONFIRMATION
        assert "no open Aave borrow position" in response.message


class TestInterruptions:
    """Questions, declined queries and task switches mid-flow."""

    @pytest.mark.asyncio
    async def test_declined_query_keeps_progress(self, manager):
        """Unsupported queries are declined and the pending question restated."""
        await say(manager, "create a stop order for my ETH", network=SEPOLIA)
        response = await say(manager, "what is my balance")

        assert response.intent == "declined"
        assert "Back to your stop order" in response.message
        assert manager.get_or_create("conv").current_slot == "token_to_buy"

    @pytest.mark.asyncio
    async def test_declined_during_confirmation(self, manager):
        """Declined queries win even while a yes/no is pending."""
        await say(manager, "sell 2 ETH for USDC if it drops 15%", network=SEPOLIA)
        response = await say(manager, "what's the price of ETH")

        assert response.intent == "declined"
        assert manager.get_or_create("conv").step == DialogueStep.FINAL_CONFIRMATION

    @pytest.mark.asyncio
    async def test_question_answered_mid_flow(self, manager, mock_llm):
        """Questions are answered and followed by the pending question."""
        await say(manager, "create a stop order for my ETH", network=SEPOLIA)
        response = await say(manager, "what is the reactive network?")

        assert response.intent == "question"
        assert mock_llm.answer.await_count == 1
        assert manager.get_or_create("conv").current_slot == "token_to_buy"

    @pytest.mark.asyncio
    async def test_switch_task_keeps_context(self, manager):
        """Switching tasks drops task details but keeps wallet and network."""
        await say(manager, "create a stop order for my ETH", network=SEPOLIA)
        response = await say(manager, "actually set up aave liquidation protection")

        state = manager.get_or_create("conv")
        assert state.active_task == TaskType.AAVE_PROTECTION
        assert state.connected_account == ACCOUNT
        assert state.selected_network == SEPOLIA
        assert state.current_slot == "protection_type"
        assert "Switching from your stop order" in response.message

    @pytest.mark.asyncio
    async def test_switch_back_to_stop_order(self, manager):
        """Switching from Aave protection to a stop order reads the new request."""
        await say(manager, "protect my aave position", network=SEPOLIA)
        await say(manager, "repay debt")
        response = await say(manager, "switch to a stop order for my ETH")

        state = manager.get_or_create("conv")
        assert state.active_task == TaskType.STOP_ORDER
        assert state.data.token_to_sell == "ETH"
        assert state.selected_network == SEPOLIA
        assert state.current_slot == "token_to_buy"
        assert "Switching from your Aave liquidation protection" in response.message

    @pytest.mark.asyncio
    async def test_unknown_message_gets_help(self, manager):
        """Messages that match nothing get the help menu."""
        response = await say(manager, "hello there")

        assert response.intent == "help"
        assert len(response.options) == 3


class TestContextChanges:
    """Wallet or network switched in the client while a task is open."""

    @pytest.mark.asyncio
    async def test_network_change_at_final_confirmation(self, manager):
        """A yes sent from another network re-checks instead of deploying."""
        await say(manager, "sell 2 ETH for USDC if it drops 15%", network=SEPOLIA)
        response = await say(manager, "yes", network=AVALANCHE)

        state = manager.get_or_create("conv")
        assert state.step == DialogueStep.FINAL_CONFIRMATION
        assert response.configuration is None
        assert response.message.startswith("Your wallet or network changed")
        assert state.pending_config["chain_id"] == AVALANCHE

        response = await say(manager, "yes", network=AVALANCHE)
        assert response.configuration["chain_id"] == AVALANCHE

    @pytest.mark.asyncio
    async def test_network_change_to_unsupported_chain(self, manager):
        """Moving an Aave summary to a chain without Aave asks for the network."""
        await say(
            manager,
            "protect my aave position with debt repayment, trigger at 1.2 and restore to 1.6",
            network=SEPOLIA,
        )
        await say(manager, "USDC")
        assert manager.get_or_create("conv").step == DialogueStep.FINAL_CONFIRMATION

        response = await say(manager, "yes", network=1)

        state = manager.get_or_create("conv")
        assert state.current_slot == "selected_network"
        assert state.pending_config is None
        assert "not available on Ethereum Mainnet" in response.message

    @pytest.mark.asyncio
    async def test_account_change_at_final_confirmation(self, mocked_manager, mock_ledger):
        """A new wallet gets its own balance lookup and summary."""
        await say(mocked_manager, "sell all my ETH for USDC if it drops 10%", network=SEPOLIA)
        mock_ledger.get_balance.return_value = 1.0

        await say(mocked_manager, "yes", connected_account=OTHER_ACCOUNT)

        state = mocked_manager.get_or_create("conv")
        assert state.step == DialogueStep.FINAL_CONFIRMATION
        assert mock_ledger.get_balance.await_args.args[0] == OTHER_ACCOUNT
        assert state.pending_config["client_address"] == OTHER_ACCOUNT
        assert state.pending_config["amount"] == 1.0

    @pytest.mark.asyncio
    async def test_account_change_while_collecting(self, mocked_manager, mock_ledger):
        """Changes before the lookups just carry on with the pending question."""
        await say(mocked_manager, "create a stop order for my ETH", network=SEPOLIA)
        response = await say(mocked_manager, "USDC", connected_account=OTHER_ACCOUNT)

        state = mocked_manager.get_or_create("conv")
        assert state.connected_account == OTHER_ACCOUNT
        assert state.data.token_to_buy == "USDC"
        assert response.next_step == "awaiting-amount"


class TestConversationLifecycle:
    """Storage of conversations across turns."""

    @pytest.mark.asyncio
    async def test_state_persisted_and_cleared(self, manager):
        """Turns are stored and clearing forgets the conversation."""
        await say(manager, "create a stop order for my ETH")
        assert "conv" in manager.store
        assert len(manager.get_or_create("conv").history) == 2

        assert manager.clear_conversation("conv") is True
        assert manager.get_or_create("conv").active_task == TaskType.NONE

    @pytest.mark.asyncio
    async def test_conversations_are_independent(self, manager):
        """Two ids never share state."""
        await say(manager, "create a stop order for my ETH", conversation_id="one")
        await say(manager, "protect my aave position", conversation_id="two")

        assert manager.get_or_create("one").active_task == TaskType.STOP_ORDER
        assert manager.get_or_create("two").active_task == TaskType.AAVE_PROTECTION

    def test_invalid_account_rejected(self):
        """Malformed wallet addresses never reach the manager."""
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            TurnRequest(text="hi", conversation_id="x", connected_account="not-an-address")
