"""Rule and flow stores.

The engine reads keyword rules and conversation flows once, at
initialisation.  :class:`FileRuleStore` reads the JSON exported by the
dashboard; a database-backed store only needs the same two coroutines.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter, ValidationError

from receptionist.models import ConversationFlow, KeywordRule

logger = logging.getLogger(__name__)

_RULES = TypeAdapter(list[KeywordRule])
_FLOWS = TypeAdapter(list[ConversationFlow])


class RuleStoreError(Exception):
    """Raised when a rule or flow source cannot be read or parsed."""


class RuleStore(Protocol):
    async def load_rules(self) -> list[KeywordRule]: ...

    async def load_flows(self) -> list[ConversationFlow]: ...


class InMemoryRuleStore:
    """Store backed by lists handed in at construction (tests, CLI)."""

    def __init__(
        self,
        rules: list[KeywordRule] | None = None,
        flows: list[ConversationFlow] | None = None,
    ) -> None:
        self._rules = list(rules or [])
        self._flows = list(flows or [])

    async def load_rules(self) -> list[KeywordRule]:
        return list(self._rules)

    async def load_flows(self) -> list[ConversationFlow]:
        return list(self._flows)


class FileRuleStore:
    """Reads ``rules.json`` / ``flows.json`` style files.

    Either file may be omitted; a missing path yields an empty list.  A file
    that exists but cannot be parsed raises :class:`RuleStoreError`.
    """

    def __init__(
        self,
        rules_path: str | Path | None = None,
        flows_path: str | Path | None = None,
    ) -> None:
        self._rules_path = Path(rules_path) if rules_path else None
        self._flows_path = Path(flows_path) if flows_path else None

    @staticmethod
    def _read(path: Path | None, key: str) -> list:
        if path is None:
            return []
        if not path.exists():
            logger.warning("Rule store file %s does not exist", path)
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise RuleStoreError(f"Cannot read {path}: {exc}") from exc
        # Accept either a bare list or a {"<key>": [...]} wrapper
        if isinstance(data, dict):
            if key not in data:
                raise RuleStoreError(f"{path} has no {key!r} list")
            data = data[key]
        return data

    async def load_rules(self) -> list[KeywordRule]:
        try:
            rules = _RULES.validate_python(self._read(self._rules_path, "rules"))
        except ValidationError as exc:
            raise RuleStoreError(f"Invalid rules in {self._rules_path}: {exc}") from exc
        logger.info("Read %d keyword rules from %s", len(rules), self._rules_path)
        return rules

    async def load_flows(self) -> list[ConversationFlow]:
        try:
            flows = _FLOWS.validate_python(self._read(self._flows_path, "flows"))
        except ValidationError as exc:
            raise RuleStoreError(f"Invalid flows in {self._flows_path}: {exc}") from exc
        logger.info("Read %d conversation flows from %s", len(flows), self._flows_path)
        return flows
