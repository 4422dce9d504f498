"""Built-in knowledge base for open questions.

Answers platform and concept questions without a language model, and
supplies grounding context when one is configured.
"""

import re
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class KnowledgeEntry:
    """One FAQ answer and the phrases that lead to it."""

    key: str
    answer: str
    keywords: list[str] = field(default_factory=list)
    related: list[str] = field(default_factory=list)


FAQ = [
    KnowledgeEntry(
        key="what is reactor",
        keywords=["reactor", "platform", "this app", "what can you do"],
        answer=(
            "REACTOR is a DeFi automation platform built on Reactive Smart Contracts. "
            "You describe the protection you want in plain language, and it prepares contracts "
            "that watch the chain and act for you, with no manual monitoring."
        ),
        related=["What are RSCs?", "Create a stop order", "Aave protection"],
    ),
    KnowledgeEntry(
        key="what are rscs",
        keywords=["rsc", "rscs", "reactive smart contract", "reactive contract", "reactive network"],
        answer=(
            "Reactive Smart Contracts (RSCs) subscribe to events on other chains, check your "
            "conditions around the clock and trigger a callback on the destination chain when "
            "they are met. They live on the Reactive Network and are paid for in REACT "
            "(KOPLI on the testnet)."
        ),
        related=["What is REACTOR?", "Supported networks"],
    ),
    KnowledgeEntry(
        key="stop order",
        keywords=["stop order", "stop loss", "stop-loss"],
        answer=(
            "A stop order watches a Uniswap V2 style pair and sells your token for another one "
            "once the price falls by the percentage you choose. You pick the tokens, the amount "
            "and the drop; the contract executes the swap from your wallet when it triggers."
        ),
        related=["Create a stop order", "Supported networks", "Pricing"],
    ),
    KnowledgeEntry(
        key="aave protection",
        keywords=["aave protection", "liquidation protection", "protect aave", "aave"],
        answer=(
            "Aave liquidation protection watches your account's health factor. When it falls "
            "to your trigger, the automation deposits more collateral, repays part of the debt, "
            "or both, until the target health factor is restored."
        ),
        related=["What is a health factor?", "Protection strategies"],
    ),
    KnowledgeEntry(
        key="health factor",
        keywords=["health factor", "hf"],
        answer=(
            "The health factor is (collateral x liquidation threshold) / debt. Above 1.5 is "
            "comfortable, between 1.0 and 1.5 needs attention, and below 1.0 the position can be "
            "liquidated. A trigger around 1.2 with a target of 1.5 is a common setup."
        ),
        related=["Aave liquidation", "Create Aave protection"],
    ),
    KnowledgeEntry(
        key="aave liquidation",
        keywords=["liquidation", "liquidated", "liquidate"],
        answer=(
            "When the health factor drops below 1.0, liquidators may repay part of your debt and "
            "take collateral at a discount, usually 5-10%. Protection that acts earlier costs far "
            "less than that penalty."
        ),
        related=["What is a health factor?", "Create Aave protection"],
    ),
    KnowledgeEntry(
        key="protection strategies",
        keywords=["strategy", "strategies", "collateral deposit", "debt repayment", "combined"],
        answer=(
            "Collateral deposit adds tokens from your wallet as collateral. Debt repayment pays "
            "back borrowed tokens. Combined tries your preferred option first and falls back to "
            "the other one."
        ),
        related=["Aave protection", "Supported assets"],
    ),
    KnowledgeEntry(
        key="supported networks",
        keywords=["network", "networks", "chain", "chains", "sepolia", "avalanche", "mainnet"],
        answer=(
            "Stop orders run on Ethereum Mainnet, Avalanche C-Chain (Pangolin) and Ethereum "
            "Sepolia. Aave liquidation protection is currently available on Ethereum Sepolia."
        ),
        related=["Create a stop order", "Aave protection"],
    ),
    KnowledgeEntry(
        key="pricing",
        keywords=["price of deploying", "cost", "costs", "fee", "fees", "pricing", "how much does"],
        answer=(
            "Deploying an automation is a one-time cost: the destination contract is funded with "
            "a little native currency (0.03 ETH, or 0.01 AVAX on Avalanche) and the reactive "
            "contract with 0.05 REACT or KOPLI, plus gas."
        ),
        related=["Getting started"],
    ),
    KnowledgeEntry(
        key="getting started",
        keywords=["get started", "getting started", "how do i start", "how do i use", "how to use"],
        answer=(
            "Connect your wallet, tell me what you want to protect, answer a few questions and "
            "confirm the summary. I hand the finished configuration to the deployment screen "
            "where you sign the transactions."
        ),
        related=["Create a stop order", "Aave protection"],
    ),
]

FALLBACK_ANSWER = (
    "I don't have a detailed answer for that. I can explain stop orders, Aave liquidation "
    "protection, health factors, supported networks and costs, or help you set one up."
)


class KnowledgeBase:
    """Keyword search over the FAQ."""

    def __init__(self, entries: Optional[list[KnowledgeEntry]] = None):
        self.entries = entries if entries is not None else FAQ

    def search(self, message: str) -> Optional[KnowledgeEntry]:
        """Find the best FAQ entry for a message.

        Args:
            message: The user's question

        Returns:
            Matching entry, or None
        """
        lowered = message.lower().strip()
        # Whole key phrase, or every word of it
        for entry in self.entries:
            if entry.key in lowered or all(
                re.search(rf"\b{re.escape(w)}\b", lowered) for w in entry.key.split()
            ):
                return entry

        best: Optional[KnowledgeEntry] = None
        best_score = 0
        for entry in self.entries:
            score = sum(1 for k in entry.keywords if re.search(rf"\b{re.escape(k)}\b", lowered))
            if score > best_score:
                best, best_score = entry, score
        return best

    def answer(self, message: str) -> str:
        """FAQ answer for a message, or the canned fallback."""
        entry = self.search(message)
        return entry.answer if entry else FALLBACK_ANSWER

    def context_for(self, message: str) -> str:
        """Grounding text for a language model prompt."""
        entry = self.search(message)
        if entry is None:
            return "\n".join(f"- {e.key}: {e.answer}" for e in self.entries[:3])
        return f"- {entry.key}: {entry.answer}"
