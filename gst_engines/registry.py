"""
Module: gst_engines.registry
Responsibility:
    Immutable, versioned table of HSN/SAC codes notified for reverse charge
    under Sections 9(3) and 9(4) of the CGST Act, and the matcher that
    resolves a code to the rule in force on a given date.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Seed data is loaded by
    ``gst_config.load_default_registry()``; this module never reads files.

Invariants enforced:
    - A NotifiedRule is frozen.  Superseding a notification means adding a
      rule with a later ``effective_from`` or a higher ``priority``.
    - A registry never changes in place: ``with_rule`` returns a new one.
    - Rule ids are unique within a registry (DuplicateRuleError).
    - Effective windows are inclusive at both ends.
    - Among matching rules, priority descending then ``effective_from``
      descending decides; ties fall back to registry order.

Failure modes:
    - DuplicateRuleError on a repeated rule id.
    - InvalidRuleError when a rule fails structural validation.
    - An unmatched code is a normal ``None`` result.

Audit relevance:
    ``version`` is a SHA-256 checksum of the rule set.  Detection results
    record it so a classification can be replayed against the exact table
    that produced it.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from gst_engines.codes import CodeType, codes_overlap, get_code_type, normalize_code
from gst_kernel.exceptions import DuplicateRuleError, InvalidRuleError
from gst_kernel.logging_config import get_logger

logger = get_logger("engines.registry")


class RuleKind(str, Enum):
    """What a notified rule covers."""

    SERVICE = "SERVICE"
    GOODS = "GOODS"


@dataclass(frozen=True)
class NotifiedRule:
    """A single reverse-charge notification entry."""

    rule_id: str
    kind: RuleKind
    codes: tuple[str, ...]
    description: str
    gst_rate: Decimal
    effective_from: date
    effective_to: date | None = None
    notification_ref: str | None = None
    is_active: bool = True
    priority: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.codes, tuple):
            object.__setattr__(self, "codes", tuple(self.codes))
        if not isinstance(self.gst_rate, Decimal):
            object.__setattr__(self, "gst_rate", Decimal(str(self.gst_rate)))
        if not isinstance(self.kind, RuleKind):
            object.__setattr__(self, "kind", RuleKind(self.kind))

    def is_effective_on(self, as_of: date) -> bool:
        """Active and ``effective_from <= as_of <= effective_to``."""
        if not self.is_active or self.effective_from > as_of:
            return False
        return self.effective_to is None or self.effective_to >= as_of

    def is_in_force_during(self, start: date, end: date) -> bool:
        """Active at any point of the inclusive range ``[start, end]``."""
        if not self.is_active or self.effective_from > end:
            return False
        return self.effective_to is None or self.effective_to >= start

    def matches(self, code: str) -> bool:
        return any(codes_overlap(code, pattern) for pattern in self.codes)


def validate_rule(rule: NotifiedRule, as_of: date | None = None) -> list[str]:
    """
    Report structural problems with ``rule``.

    When ``as_of`` is given, a rule that only takes effect after it is also
    reported.  An empty list means the rule is valid.
    """
    problems: list[str] = []
    if not rule.rule_id or not rule.rule_id.strip():
        problems.append("rule id is required")
    if not rule.codes:
        problems.append("at least one HSN/SAC code is required")
    for code in rule.codes:
        if get_code_type(normalize_code(code)) == CodeType.INVALID:
            problems.append(f"invalid HSN/SAC code: {code}")
    if not rule.description or not rule.description.strip():
        problems.append("description is required")
    if rule.gst_rate <= 0:
        problems.append("GST rate must be greater than 0")
    if rule.effective_to is not None and rule.effective_to <= rule.effective_from:
        problems.append("effective_to must be after effective_from")
    if as_of is not None and rule.effective_from > as_of:
        problems.append("effective_from is in the future")
    return problems


def _rule_fingerprint(rule: NotifiedRule) -> dict:
    return {
        "rule_id": rule.rule_id,
        "kind": rule.kind.value,
        "codes": list(rule.codes),
        "description": rule.description,
        "gst_rate": str(rule.gst_rate),
        "effective_from": rule.effective_from.isoformat(),
        "effective_to": rule.effective_to.isoformat() if rule.effective_to else None,
        "notification_ref": rule.notification_ref,
        "is_active": rule.is_active,
        "priority": rule.priority,
    }


class NotifiedRuleRegistry:
    """
    Read-only lookup over a fixed set of notified rules.

    Instances are immutable; ``with_rule`` and ``with_rules`` return new
    registries.  Inject a registry wherever detection runs so tests and
    jurisdiction updates can swap the table.
    """

    def __init__(self, rules: Iterable[NotifiedRule] = ()):
        ordered: list[NotifiedRule] = []
        seen: set[str] = set()
        for rule in rules:
            if rule.rule_id in seen:
                raise DuplicateRuleError(rule.rule_id)
            problems = validate_rule(rule)
            if problems:
                raise InvalidRuleError(rule.rule_id, problems)
            seen.add(rule.rule_id)
            ordered.append(rule)
        self._rules: tuple[NotifiedRule, ...] = tuple(ordered)
        self._by_id = {rule.rule_id: rule for rule in self._rules}
        payload = json.dumps(
            sorted((_rule_fingerprint(r) for r in self._rules), key=lambda d: d["rule_id"]),
            sort_keys=True,
        )
        self._version = hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]

    @property
    def rules(self) -> tuple[NotifiedRule, ...]:
        return self._rules

    @property
    def version(self) -> str:
        """Deterministic checksum of the rule set (independent of insertion order)."""
        return self._version

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[NotifiedRule]:
        return iter(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id

    def get(self, rule_id: str) -> NotifiedRule | None:
        return self._by_id.get(rule_id)

    def with_rule(self, rule: NotifiedRule) -> NotifiedRuleRegistry:
        """Return a new registry that also contains ``rule``."""
        if rule.rule_id in self._by_id:
            raise DuplicateRuleError(rule.rule_id)
        registry = NotifiedRuleRegistry(self._rules + (rule,))
        logger.info(
            "notified_rule_added",
            extra={
                "rule_id": rule.rule_id,
                "priority": rule.priority,
                "effective_from": rule.effective_from,
                "registry_version": registry.version,
            },
        )
        return registry

    def with_rules(self, rules: Iterable[NotifiedRule]) -> NotifiedRuleRegistry:
        return NotifiedRuleRegistry(self._rules + tuple(rules))

    def rules_effective_on(
        self, as_of: date, kind: RuleKind | None = None
    ) -> list[NotifiedRule]:
        """Rules in force on ``as_of``, optionally restricted to one kind."""
        return [
            r for r in self._rules
            if r.is_effective_on(as_of) and (kind is None or r.kind == kind)
        ]

    def rules_in_range(self, start: date, end: date) -> list[NotifiedRule]:
        """Rules in force at any point of ``[start, end]``."""
        if end < start:
            start, end = end, start
        return [r for r in self._rules if r.is_in_force_during(start, end)]

    def candidates(
        self, code: str, as_of: date, kind: RuleKind | None = None
    ) -> list[NotifiedRule]:
        """All rules matching ``code`` on ``as_of``, best first."""
        normalized = normalize_code(code)
        if get_code_type(normalized) == CodeType.INVALID:
            return []
        matches = [
            r for r in self.rules_effective_on(as_of, kind)
            if r.matches(normalized)
        ]
        # stable sort keeps registry order for full ties
        matches.sort(key=lambda r: (-r.priority, -r.effective_from.toordinal()))
        return matches

    def match_rule(
        self, code: str, as_of: date, kind: RuleKind | None = None
    ) -> NotifiedRule | None:
        """
        Resolve ``code`` to the notified rule in force on ``as_of``.

        Returns None when nothing applies; "not notified" is not an error.
        """
        found = self.candidates(code, as_of, kind)
        return found[0] if found else None

    def latest_notification_date(self, code: str) -> date | None:
        """Most recent ``effective_from`` among active rules matching ``code``."""
        dates = [r.effective_from for r in self._rules if r.is_active and r.matches(code)]
        return max(dates) if dates else None

    def __repr__(self) -> str:
        return f"<NotifiedRuleRegistry rules={len(self._rules)} version={self._version}>"


def match_rule(
    registry: NotifiedRuleRegistry,
    code: str,
    as_of: date,
    kind: RuleKind | None = None,
) -> NotifiedRule | None:
    """Functional form of ``NotifiedRuleRegistry.match_rule``."""
    return registry.match_rule(code, as_of, kind)
