"""Tests for intent classification and the confirmation resolver."""

import pytest

from reactorai.chat.confirmation import ConfirmationResolver, Resolution
from reactorai.chat.context import TaskType
from reactorai.chat.intents import (
    IntentClassifier,
    IntentType,
    declined_topic,
    is_question,
    match_task_creation,
)

# Phrases that start a task; none of them may ever read as a rejection
TASK_CREATION_PHRASES = [
    "create a stop order",
    "stop order",
    "stop-loss for my ETH",
    "I want a stop loss",
    "set up a stop order on sepolia",
    "don't let my ETH drop, set a stop loss",
    "sell my ETH if it drops 10%",
    "protect my ETH from a price crash",
    "set up aave liquidation protection",
    "protect my aave position",
    "stop my aave position from getting liquidated, set up liquidation protection",
]


@pytest.fixture
def classifier():
    return IntentClassifier()


class TestTaskCreation:
    """Task creation phrase matching."""

    @pytest.mark.parametrize(
        "text",
        [
            "create a stop order",
            "I need a stop-loss",
            "sell my WBTC when the price drops",
            "protect my ETH against a price drop",
        ],
    )
    def test_stop_order_phrases(self, text):
        """Stop order phrasings are recognized."""
        assert match_task_creation(text) == TaskType.STOP_ORDER

    @pytest.mark.parametrize(
        "text",
        [
            "set up aave liquidation protection",
            "protect my aave position",
            "help me avoid liquidation",
            "I want liquidation protection",
        ],
    )
    def test_aave_phrases(self, text):
        """Aave protection phrasings are recognized."""
        assert match_task_creation(text) == TaskType.AAVE_PROTECTION

    def test_question_is_not_creation(self):
        """Asking about a task does not start it."""
        assert match_task_creation("what is a stop order?") is None
        assert match_task_creation("how does aave protection work") is None


class TestClassifier:
    """Intent precedence."""

    def test_declined_wins(self, classifier):
        """Live-data lookups are declined even mid-task."""
        intent = classifier.classify("what is my ETH balance?", TaskType.STOP_ORDER)
        assert intent.type == IntentType.DECLINED
        assert intent.declined_topic == "balance"

    @pytest.mark.parametrize(
        "text,topic",
        [
            ("what's the price of ETH", "price"),
            ("show my portfolio", "portfolio"),
            ("what is my health factor", "position"),
            ("show me my recent transactions", "history"),
        ],
    )
    def test_declined_topics(self, text, topic):
        """Each out-of-scope query class has its own topic."""
        assert declined_topic(text) == topic

    def test_start_when_idle(self, classifier):
        """A creation phrase with no active task starts that task."""
        intent = classifier.classify("create a stop order")
        assert intent.type == IntentType.START_STOP_ORDER
        assert intent.task == TaskType.STOP_ORDER

    def test_switch_when_other_task_active(self, classifier):
        """A creation phrase for the other task switches to it."""
        intent = classifier.classify("set up aave liquidation protection", TaskType.STOP_ORDER)
        assert intent.type == IntentType.SWITCH_TASK
        assert intent.task == TaskType.AAVE_PROTECTION

    def test_same_task_continues(self, classifier):
        """Naming the active task again just continues it."""
        intent = classifier.classify("stop order for ETH", TaskType.STOP_ORDER)
        assert intent.type == IntentType.CONTINUE

    def test_question(self, classifier):
        """Concept questions are questions, not task starts."""
        assert classifier.classify("what is a stop order?").type == IntentType.QUESTION
        assert classifier.classify("tell me about reactive smart contracts").type == IntentType.QUESTION

    @pytest.mark.parametrize("text", ["do 10%", "how about USDC", "what about half", "is 20 percent"])
    def test_conversational_answers_continue(self, classifier, text):
        """Answers opening with a question-like word still continue the task."""
        assert classifier.classify(text, TaskType.STOP_ORDER).type == IntentType.CONTINUE

    @pytest.mark.parametrize("text", ["do i need gas for this", "is it safe", "how does a stop order work"])
    def test_real_questions_still_detected(self, text):
        """Question words followed by a subject are questions."""
        assert is_question(text)

    def test_short_question_mark_is_not_question(self):
        """A bare answer with a question mark is still an answer."""
        assert not is_question("USDC?")

    def test_continue_and_unknown(self, classifier):
        """Plain answers continue an active task and are unknown otherwise."""
        assert classifier.classify("USDC", TaskType.STOP_ORDER).type == IntentType.CONTINUE
        assert classifier.classify("USDC").type == IntentType.UNKNOWN


class TestConfirmationResolver:
    """Yes/no/cancel detection."""

    @pytest.fixture
    def resolver(self):
        return ConfirmationResolver()

    @pytest.mark.parametrize("text", ["yes", "Yes please", "ok", "sure", "go ahead", "looks good", "deploy it"])
    def test_confirm(self, resolver, text):
        """Affirmative replies confirm."""
        assert resolver.resolve(text) == Resolution.CONFIRM

    @pytest.mark.parametrize("text", ["no", "nope", "don't", "not now", "that's wrong"])
    def test_reject(self, resolver, text):
        """Negative replies reject."""
        assert resolver.resolve(text) == Resolution.REJECT

    @pytest.mark.parametrize("text", ["cancel", "abort that", "never mind", "start over"])
    def test_cancel(self, resolver, text):
        """Cancel phrases cancel."""
        assert resolver.resolve(text) == Resolution.CANCEL

    def test_unclear(self, resolver):
        """Anything else is unclear."""
        assert resolver.resolve("maybe later") == Resolution.NONE
        assert resolver.resolve("") == Resolution.NONE

    @pytest.mark.parametrize("text", TASK_CREATION_PHRASES)
    def test_task_phrases_never_reject(self, resolver, text):
        """Task creation phrases share words like 'stop' and 'don't' but are never rejections."""
        assert match_task_creation(text) is not None
        assert resolver.resolve(text) not in (Resolution.REJECT, Resolution.CANCEL)

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("yes, I don't need changes", Resolution.CONFIRM),
            ("ok, nothing wrong there", Resolution.CONFIRM),
            ("no, let's go back", Resolution.REJECT),
            ("no, cancel it", Resolution.CANCEL),
        ],
    )
    def test_leading_answer_wins(self, resolver, text, expected):
        """An opening yes or no outweighs keywords later in the reply."""
        assert resolver.resolve(text) == expected

    @pytest.mark.parametrize("text", ["yes, cancel it", "go for it, or don't", "i accept, stop"])
    def test_mixed_signals_unclear(self, resolver, text):
        """Replies saying both yes and no are asked again."""
        assert resolver.resolve(text) == Resolution.NONE
