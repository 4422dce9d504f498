"""Entity extraction for reactorai.

Pulls typed values out of free text. The slot currently being asked for
decides how text is read: "1" is a chain id while a network is expected
and a plain number elsewhere. Extraction never raises; None means nothing
usable was found and the question is asked again.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from reactorai.chat.context import ProtectionType
from reactorai.chat.schemas import SlotKind
from reactorai.data.networks import NETWORKS, SUPPORTED_TOKENS, TOKEN_SYNONYMS

ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")
NUMBER_RE = re.compile(r"(?<![\w.])(\d+(?:\.\d+)?)(?!\w|\.\d)")
PERCENT_RE = re.compile(r"(?<![\w.])(\d+(?:\.\d+)?)\s*(?:%|percent\b|pct\b)")

HEALTH_FACTOR_RANGE = (1.0, 10.0)

# Names that identify a network on their own, anywhere in a sentence
NETWORK_FULL_NAMES: dict[str, int] = {
    "ethereum mainnet": 1,
    "ethereum sepolia": 11155111,
    "avalanche c-chain": 43114,
    "sepolia": 11155111,
    "testnet": 11155111,
    "avalanche": 43114,
    "mainnet": 1,
}

# Extra names accepted only when a network is being asked for
NETWORK_CONTEXT_NAMES: dict[str, int] = {
    "ethereum": 1,
    "eth": 1,
    "avax": 43114,
    "c-chain": 43114,
}

ALL_WORDS = ("all", "everything", "entire", "max", "whole")
HALF_WORDS = ("half",)

YES_WORDS = ("yes", "yeah", "yep", "sure", "ok", "okay", "true", "y")
NO_WORDS = ("no", "nope", "nah", "false", "n")


@dataclass
class CustomTokenRef:
    """A raw contract address given where a token symbol was expected."""

    address: str


def _words(text: str) -> str:
    return " " + re.sub(r"[^a-z0-9.%\-]+", " ", text.lower()) + " "


def _contains_word(text: str, word: str) -> bool:
    return re.search(rf"(?<![\w-]){re.escape(word)}(?![\w-])", text, re.IGNORECASE) is not None


def _to_number(raw: str) -> Optional[float]:
    try:
        return float(Decimal(raw))
    except (InvalidOperation, ValueError):
        return None


def _format_number(value: float) -> str:
    text = f"{value:f}".rstrip("0").rstrip(".")
    return text or "0"


class EntityExtractor:
    """Turns raw text into slot values.

    Args:
        custom_symbols: Symbols of tokens registered in this conversation,
            recognized alongside the built-in allow-list.
    """

    # Two-token phrasings, checked in order. "a" is sold, "b" is received.
    DIRECTION_PATTERNS = [
        r"\bsell\s+(?:(?:all|my|some|of|the)\s+)*(?:[\d.]+\s+)?(?P<a>[a-z0-9]+)\s+(?:for|to|into)\s+(?P<b>[a-z0-9]+)",
        r"\b(?:trade|swap|convert|exchange)\s+(?:(?:all|my|some|of|the)\s+)*(?:[\d.]+\s+)?"
        r"(?P<a>[a-z0-9]+)\s+(?:for|to|into)\s+(?P<b>[a-z0-9]+)",
        r"\b(?:buy|get|receive)\s+(?P<b>[a-z0-9]+)\s+(?:with|using)\s+(?:my\s+)?(?P<a>[a-z0-9]+)",
        r"\b(?P<a>[a-z0-9]+)\s+(?:to|into|for)\s+(?P<b>[a-z0-9]+)\b",
    ]

    def __init__(self, custom_symbols: Iterable[str] = ()):
        self.custom_symbols = tuple(s.upper() for s in custom_symbols)

    @property
    def known_symbols(self) -> tuple[str, ...]:
        return SUPPORTED_TOKENS + tuple(s for s in self.custom_symbols if s not in SUPPORTED_TOKENS)

    def extract(self, text: str, kind: SlotKind) -> Any:
        """Extract one value of the given kind.

        Args:
            text: Raw user message
            kind: Type expected by the slot being asked for

        Returns:
            The extracted value, a CustomTokenRef for addresses given as
            tokens, or None when nothing unambiguous was found
        """
        if not text or not text.strip():
            return None
        if kind == SlotKind.TOKEN:
            address = self.extract_address(text)
            if address:
                return CustomTokenRef(address)
            return self.extract_token(text)
        if kind == SlotKind.ACCOUNT:
            return self.extract_address(text)
        if kind == SlotKind.NETWORK:
            return self.extract_network(text, in_context=True)
        if kind == SlotKind.AMOUNT:
            return self.extract_amount(text)
        if kind == SlotKind.PERCENTAGE:
            return self.extract_percentage(text)
        if kind == SlotKind.HEALTH_FACTOR:
            return self.extract_health_factor(text)
        if kind == SlotKind.STRATEGY:
            return self.extract_strategy(text)
        if kind == SlotKind.BOOLEAN:
            return self.extract_boolean(text)
        return None

    # -- individual types ----------------------------------------------------

    def extract_address(self, text: str) -> Optional[str]:
        match = ADDRESS_RE.search(text)
        return match.group(0) if match else None

    def normalize_token(self, word: str) -> Optional[str]:
        """Map a single word or phrase to a known ticker."""
        lowered = word.strip().lower()
        if lowered in TOKEN_SYNONYMS:
            return TOKEN_SYNONYMS[lowered]
        upper = lowered.upper()
        return upper if upper in self.known_symbols else None

    def find_tokens(self, text: str) -> list[str]:
        """All known tokens in order of first appearance, without duplicates."""
        cleaned = self._strip_network_names(ADDRESS_RE.sub(" ", text.lower()))
        hits: list[tuple[int, str]] = []
        for name, symbol in TOKEN_SYNONYMS.items():
            for match in re.finditer(rf"(?<![\w-]){re.escape(name)}(?![\w-])", cleaned):
                hits.append((match.start(), symbol))
            cleaned = re.sub(rf"(?<![\w-]){re.escape(name)}(?![\w-])", lambda m: " " * len(m.group(0)), cleaned)
        for symbol in self.known_symbols:
            for match in re.finditer(rf"(?<![\w-]){re.escape(symbol.lower())}(?![\w-])", cleaned):
                hits.append((match.start(), symbol))

        ordered: list[str] = []
        for _, symbol in sorted(hits):
            if symbol not in ordered:
                ordered.append(symbol)
        return ordered

    def extract_token(self, text: str) -> Optional[str]:
        tokens = self.find_tokens(text)
        return tokens[0] if tokens else None

    def extract_network(self, text: str, in_context: bool = False) -> Optional[int]:
        """Find a network.

        Outside a network question only unmistakable names count, so that
        "ETH" in "sell my ETH" is not read as Ethereum Mainnet.
        """
        lowered = _words(text)
        names = dict(NETWORK_FULL_NAMES)
        if in_context:
            names.update(NETWORK_CONTEXT_NAMES)
        for name in sorted(names, key=len, reverse=True):
            if _contains_word(lowered, name):
                return names[name]
        if in_context:
            for raw in NUMBER_RE.findall(ADDRESS_RE.sub(" ", text)):
                if raw.isdigit() and int(raw) in NETWORKS:
                    return int(raw)
        return None

    def extract_amount(self, text: str) -> Optional[str]:
        """Find an amount: "all", a share like "50%", or a decimal string.

        Text offering more than one candidate is ambiguous and yields None.
        """
        cleaned = ADDRESS_RE.sub(" ", text.lower())
        candidates: list[str] = []

        if any(_contains_word(cleaned, w) for w in ALL_WORDS):
            candidates.append("all")
        if any(_contains_word(cleaned, w) for w in HALF_WORDS):
            candidates.append("50%")

        percents = PERCENT_RE.findall(cleaned)
        for raw in percents:
            value = _to_number(raw)
            if value is not None and 0 < value <= 100:
                candidates.append(f"{_format_number(value)}%")
        without_percents = PERCENT_RE.sub(" ", cleaned)
        for raw in NUMBER_RE.findall(without_percents):
            value = _to_number(raw)
            if value is not None and value > 0:
                candidates.append(_format_number(value))

        unique = list(dict.fromkeys(candidates))
        return unique[0] if len(unique) == 1 else None

    def extract_percentage(self, text: str) -> Optional[float]:
        """First bare number, accepted only inside (0, 100)."""
        value = self._first_number(text)
        if value is None or not 0 < value < 100:
            return None
        return value

    def extract_health_factor(self, text: str) -> Optional[float]:
        """First bare number, discarded unless within [1.0, 10.0]."""
        value = self._first_number(text)
        low, high = HEALTH_FACTOR_RANGE
        if value is None or not low <= value <= high:
            return None
        return value

    def extract_strategy(self, text: str) -> Optional[ProtectionType]:
        lowered = text.lower().replace("_", " ")
        if re.search(r"\b(combined|both|combination|hybrid)\b", lowered):
            return ProtectionType.COMBINED
        if re.search(r"\b(repay|repayment|pay back|debt)\b", lowered):
            return ProtectionType.DEBT_REPAYMENT
        if re.search(r"\b(collateral|deposit|top up|add funds)\b", lowered):
            return ProtectionType.COLLATERAL_DEPOSIT
        return None

    def extract_boolean(self, text: str) -> Optional[bool]:
        lowered = text.lower()
        if re.search(r"\b(repay|debt)\b.*\bfirst\b", lowered):
            return True
        if re.search(r"\b(collateral|deposit)\b.*\bfirst\b", lowered):
            return False
        words = set(re.findall(r"[a-z]+", lowered))
        if words & set(YES_WORDS):
            return True
        if words & set(NO_WORDS):
            return False
        return None

    # -- multi-slot helpers --------------------------------------------------

    def assign_trade_direction(self, text: str) -> tuple[Optional[str], Optional[str]]:
        """Work out which token is sold and which is received.

        Returns:
            (token_to_sell, token_to_buy); either may be None
        """
        tokens = self.find_tokens(text)
        if not tokens:
            return None, None
        if len(tokens) == 1:
            return tokens[0], None

        normalized = self._strip_network_names(text.lower())
        for phrase, symbol in TOKEN_SYNONYMS.items():
            normalized = re.sub(rf"(?<![\w-]){re.escape(phrase)}(?![\w-])", symbol.lower(), normalized)

        for pattern in self.DIRECTION_PATTERNS:
            for match in re.finditer(pattern, normalized):
                sold = self.normalize_token(match.group("a"))
                bought = self.normalize_token(match.group("b"))
                if sold and bought and sold != bought:
                    return sold, bought

        # First mention is assumed to be the token given up
        return tokens[0], tokens[1]

    def extract_stop_order_details(self, text: str, sell_hint: Optional[str] = None) -> dict[str, Any]:
        """Slots stated unambiguously anywhere in a stop-order message.

        Tokens come back under the "tokens" key as (sold, bought); deciding
        which empty slot a lone token fills is left to the caller.

        Args:
            text: Raw user message
            sell_hint: Token already chosen for selling, used to read "2 ETH"
        """
        found: dict[str, Any] = {}
        sell, buy = self.assign_trade_direction(text)
        if sell:
            found["tokens"] = (sell, buy)

        network = self.extract_network(text)
        if network is not None:
            found["selected_network"] = network

        lowered = text.lower()
        drop = re.search(
            r"(\d+(?:\.\d+)?)\s*(?:%|percent)\s*(?:price\s+)?(?:drop|fall|decline|dip|down|lower)"
            r"|(?:drop|drops|falls?|declines?|dips?|down)\s+(?:by\s+|of\s+)?(?:more\s+than\s+)?"
            r"(\d+(?:\.\d+)?)\s*(?:%|percent)",
            lowered,
        )
        if drop:
            value = _to_number(drop.group(1) or drop.group(2))
            if value is not None and 0 < value < 100:
                found["drop_percentage"] = value

        held = sell_hint or sell
        if re.search(r"\b(all|everything|entire)\b", lowered):
            found["amount"] = "all"
        elif re.search(r"\bhalf\b", lowered):
            found["amount"] = "50%"
        elif held:
            quantity = re.search(rf"(?<![\w.])(\d+(?:\.\d+)?)\s+{re.escape(held.lower())}\b", lowered)
            if quantity:
                found["amount"] = quantity.group(1)
        return found

    def extract_aave_details(self, text: str) -> dict[str, Any]:
        """Slots stated unambiguously anywhere in an Aave protection message."""
        found: dict[str, Any] = {}
        network = self.extract_network(text)
        if network is not None:
            found["selected_network"] = network

        lowered = text.lower()
        if re.search(r"\b(repay|repayment|deposit|collateral|combined|both)\b", lowered):
            strategy = self.extract_strategy(text)
            if strategy is not None:
                found["protection_type"] = strategy

        trigger = re.search(r"(?:below|under|drops to|falls to|trigger(?:s)? at)\s+(\d+(?:\.\d+)?)", lowered)
        if trigger:
            value = _to_number(trigger.group(1))
            if value is not None and HEALTH_FACTOR_RANGE[0] <= value <= HEALTH_FACTOR_RANGE[1]:
                found["health_factor_threshold"] = value
        target = re.search(r"(?:back to|restore(?: it)? to|target(?: of)?)\s+(\d+(?:\.\d+)?)", lowered)
        if target:
            value = _to_number(target.group(1))
            if value is not None and HEALTH_FACTOR_RANGE[0] <= value <= HEALTH_FACTOR_RANGE[1]:
                found["target_health_factor"] = value
        return found

    # -- internals -------------------------------------------------------------

    def _first_number(self, text: str) -> Optional[float]:
        cleaned = ADDRESS_RE.sub(" ", text)
        match = NUMBER_RE.search(cleaned)
        return _to_number(match.group(1)) if match else None

    @staticmethod
    def _strip_network_names(text: str) -> str:
        for name in sorted(NETWORK_FULL_NAMES, key=len, reverse=True):
            text = re.sub(rf"(?<![\w-]){re.escape(name)}(?![\w-])", " ", text)
        return text
