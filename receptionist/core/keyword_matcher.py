"""Keyword rule matching.

Rules are evaluated before any AI call.  The winner is the matching rule
with the highest ``priority``; on a tie the rule loaded first wins.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence

from receptionist.models import ConversationFlow, KeywordRule, MatchType, ResponseType

logger = logging.getLogger(__name__)


class KeywordMatcher:
    """Matches free text against an ordered, read-only rule set."""

    def __init__(self, rules: Iterable[KeywordRule] | None = None) -> None:
        # Insertion order is the load order used for tie-breaks.
        self._rules: dict[str, KeywordRule] = {}
        if rules is not None:
            self.load_rules(rules)

    # ── Rule loading ─────────────────────────────────────────────────

    def load_rules(self, rules: Iterable[KeywordRule]) -> int:
        """Replace the rule set.  Disabled rules are dropped.  Returns count kept."""
        self._rules.clear()
        for rule in rules:
            if rule.enabled:
                self.add_rule(rule)
        logger.info("Loaded %d keyword rules", len(self._rules))
        return len(self._rules)

    def add_rule(self, rule: KeywordRule) -> None:
        """Insert or replace a rule; a replaced rule keeps its position."""
        self._rules[rule.id] = rule

    @property
    def rules(self) -> tuple[KeywordRule, ...]:
        return tuple(self._rules.values())

    # ── Matching ─────────────────────────────────────────────────────

    def match(self, message: str, response_type: ResponseType | str) -> KeywordRule | None:
        """Return the best enabled rule of *response_type* matching *message*."""
        best: KeywordRule | None = None
        for rule in self._rules.values():
            if not rule.enabled or rule.response_type != response_type:
                continue
            if not self.matches_rule(message, rule):
                continue
            # Strictly greater: an equal priority never displaces an earlier rule.
            if best is None or rule.priority > best.priority:
                best = rule
        if best is not None:
            logger.debug("Rule %s (%s) matched as %s", best.id, best.name, response_type)
        return best

    @staticmethod
    def matches_rule(message: str, rule: KeywordRule) -> bool:
        text = message if rule.case_sensitive else message.lower()

        for keyword in rule.keywords:
            kw = keyword if rule.case_sensitive else keyword.lower()

            if rule.match_type == MatchType.EXACT:
                if text == kw:
                    return True
            elif rule.match_type == MatchType.CONTAINS:
                if kw in text:
                    return True
            elif rule.match_type == MatchType.STARTS_WITH:
                if text.startswith(kw):
                    return True
            elif rule.match_type == MatchType.REGEX:
                flags = 0 if rule.case_sensitive else re.IGNORECASE
                try:
                    if re.search(keyword, message, flags):
                        return True
                except re.error:
                    logger.debug("Rule %s: invalid regex %r ignored", rule.id, keyword)

        return False

    @staticmethod
    def match_flow_trigger(
        message: str, flows: Sequence[ConversationFlow],
    ) -> ConversationFlow | None:
        """Return the first flow with a trigger phrase contained in *message*."""
        text = message.lower()
        for flow in flows:
            for trigger in flow.triggers:
                if trigger and trigger.lower() in text:
                    return flow
        return None
