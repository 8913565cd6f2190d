"""Rule-based canned responder.

Used whenever no usable model is loaded or real inference fails, so the
service always answers. Rules are checked in a fixed priority order:
emergency first, then survival topics, conversation, programming,
arithmetic, and finally a default that always matches.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Literal, Sequence

logger = logging.getLogger(__name__)

Category = Literal["emergency", "survival", "conversational", "technical", "arithmetic", "default"]


@dataclass(frozen=True)
class FallbackRule:
    """Keyword trigger plus a canned response.

    Matches a lower-cased prompt when every `all_of` keyword occurs in it and,
    if `any_of` is non-empty, at least one `any_of` keyword does too. A rule
    with a `handler` answers with the handler's result; a handler returning
    None lets later rules try.
    """

    name: str
    category: Category
    any_of: tuple[str, ...] = ()
    all_of: tuple[str, ...] = ()
    response: str = ""
    handler: Callable[[str], str | None] | None = None

    def matches(self, lowered: str) -> bool:
        if not all(k in lowered for k in self.all_of):
            return False
        if self.any_of and not any(k in lowered for k in self.any_of):
            return False
        return True

    def answer(self, prompt: str) -> str | None:
        if self.handler is not None:
            return self.handler(prompt)
        return self.response


_INT_RE = re.compile(r"[+-]?\d+")


def _parse_int(text: str) -> int | None:
    if not _INT_RE.fullmatch(text):
        return None
    return int(text)


def evaluate_arithmetic(expression: str) -> str | None:
    """Evaluate `a+b` or `a-b` over integer literals.

    Whitespace is removed first. Returns None when the expression is not of
    that shape.
    """
    clean = "".join(expression.split())

    plus = clean.find("+")
    if plus != -1:
        a, b = _parse_int(clean[:plus]), _parse_int(clean[plus + 1 :])
        if a is None or b is None:
            return None
        return str(a + b)

    minus = clean.find("-")
    if minus > 0:
        a, b = _parse_int(clean[:minus]), _parse_int(clean[minus + 1 :])
        if a is None or b is None:
            return None
        return str(a - b)

    return None


EMERGENCY_RESPONSE = (
    "I understand this may be an emergency situation. For immediate safety:\n\n"
    "1. Move to the safest available location\n"
    "2. Stay low if there's debris or smoke\n"
    "3. Check for injuries and provide basic first aid\n"
    "4. Signal for help if possible\n"
    "5. Conserve water, food, and battery power\n\n"
    "What specific emergency assistance do you need?"
)

WATER_RESPONSE = (
    "Water purification methods using available materials:\n\n"
    "**Immediate options:**\n"
    "• Boiling: Use any heat source for 1-3 minutes\n"
    "• Solar disinfection: Clear bottles in direct sunlight for 6+ hours\n"
    "• Sand filtration: Layer fine sand, gravel, cloth in container\n\n"
    "**Materials needed:**\n"
    "• Cloth or fabric for initial filtering\n"
    "• Sand and gravel (if available)\n"
    "• Clear containers or bottles\n"
    "• Heat source (wood, solar cooker)\n\n"
    "These methods remove most harmful bacteria and particles. "
    "Always use the clearest water source available as starting point."
)

FIRST_AID_RESPONSE = (
    "Basic first aid using available materials:\n\n"
    "**For wounds:**\n"
    "• Clean cloth or fabric for bandages\n"
    "• Clean water for washing\n"
    "• Apply direct pressure to stop bleeding\n"
    "• Elevate injured area if possible\n\n"
    "**For burns:**\n"
    "• Cool running water or clean wet cloth\n"
    "• Avoid ice or very cold water\n"
    "• Cover with clean, dry cloth\n\n"
    "**Important:** These are emergency measures. Seek professional medical help when possible."
)

SHELTER_RESPONSE = (
    "Creating protective shelter with available materials:\n\n"
    "**Basic structure:**\n"
    "• Use walls, debris, or natural features\n"
    "• Create windbreaks with fabric, tarps, or boards\n"
    "• Insulate from ground with blankets, cardboard, or clothing\n\n"
    "**For weather protection:**\n"
    "• Slope roof materials to shed water\n"
    "• Block wind from dominant direction\n"
    "• Create small, enclosed space to retain body heat\n\n"
    "**Safety priorities:**\n"
    "• Avoid unstable structures\n"
    "• Ensure ventilation\n"
    "• Have clear exit routes"
)

COMMUNICATION_RESPONSE = (
    "Communication methods when networks are down:\n\n"
    "**Visual signals:**\n"
    "• Mirrors or reflective surfaces for sunlight signals\n"
    "• Bright cloth or clothing as markers\n"
    "• Smoke signals (safely controlled fires)\n\n"
    "**Audio signals:**\n"
    "• Whistles, horns, or loud objects\n"
    "• Rhythmic patterns (3 blasts = distress)\n"
    "• Shouting at regular intervals\n\n"
    "**Written messages:**\n"
    "• Leave notes in visible locations\n"
    "• Use improvised writing materials\n"
    "• Include date, time, direction of travel"
)

GREETING_RESPONSE = (
    "Hello! I'm NaseerAI, running locally on your device. I'm designed to provide "
    "assistance even without internet connectivity. How can I help you today?"
)

WELLBEING_RESPONSE = (
    "I'm functioning well and ready to assist you. As a local AI model, I can help with "
    "information, problem-solving, and guidance even when you're offline. What do you need help with?"
)

IDENTITY_RESPONSE = (
    "I'm an AI assistant running locally on your device using a lightweight language model. "
    "I can help with explanations, problem-solving, emergency guidance, and general questions "
    "without requiring an internet connection."
)

PROGRAMMING_RESPONSE = (
    "I can help with programming concepts and coding questions. What specific programming "
    "language or problem are you working with? I can explain concepts, help debug issues, "
    "or suggest approaches."
)

DEFAULT_RESPONSE = (
    "I'm here to help with a wide range of topics including emergency guidance, technical "
    "questions, explanations, and problem-solving. I work completely offline, so you can rely "
    "on me even without internet access. What specific information or assistance do you need?"
)

DEFAULT_RULE = FallbackRule(name="default", category="default", response=DEFAULT_RESPONSE)

# Order is priority: first match wins.
DEFAULT_RULES: tuple[FallbackRule, ...] = (
    FallbackRule("emergency", "emergency", any_of=("emergency", "danger", "help"), response=EMERGENCY_RESPONSE),
    FallbackRule(
        "water_purification", "survival", any_of=("clean", "purify"), all_of=("water",), response=WATER_RESPONSE
    ),
    FallbackRule("first_aid", "survival", any_of=("medical", "injury", "first aid"), response=FIRST_AID_RESPONSE),
    FallbackRule("shelter", "survival", any_of=("shelter", "protection"), response=SHELTER_RESPONSE),
    FallbackRule(
        "communication", "survival", any_of=("communication", "signal", "contact"), response=COMMUNICATION_RESPONSE
    ),
    FallbackRule("greeting", "conversational", any_of=("hello", "hi"), response=GREETING_RESPONSE),
    FallbackRule("wellbeing", "conversational", any_of=("how are you",), response=WELLBEING_RESPONSE),
    FallbackRule("identity", "conversational", all_of=("what", "ai"), response=IDENTITY_RESPONSE),
    FallbackRule("programming", "technical", any_of=("programming", "code"), response=PROGRAMMING_RESPONSE),
    FallbackRule("arithmetic", "arithmetic", any_of=("+", "-", "calculate"), handler=evaluate_arithmetic),
    DEFAULT_RULE,
)


class FallbackResponder:
    """Maps a prompt to a canned response. `respond` never fails."""

    def __init__(self, rules: Sequence[FallbackRule] | None = None) -> None:
        rules = tuple(DEFAULT_RULES if rules is None else rules)
        if not rules or rules[-1].any_of or rules[-1].all_of or rules[-1].handler is not None:
            rules = rules + (DEFAULT_RULE,)
        self._rules = rules

    @property
    def rules(self) -> tuple[FallbackRule, ...]:
        return self._rules

    def resolve(self, prompt: str) -> tuple[FallbackRule, str]:
        """Return the winning rule and its response text."""
        lowered = (prompt or "").lower()
        for rule in self._rules:
            if not rule.matches(lowered):
                continue
            try:
                text = rule.answer(prompt or "")
            except Exception:
                logger.warning("fallback rule %r failed; trying the next rule", rule.name, exc_info=True)
                text = None
            if text:
                return rule, text
        return DEFAULT_RULE, DEFAULT_RESPONSE

    def match(self, prompt: str) -> FallbackRule:
        return self.resolve(prompt)[0]

    def respond(self, prompt: str) -> str:
        return self.resolve(prompt)[1]
