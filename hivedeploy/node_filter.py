"""Node filters given with ``--on``."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatchcase
from typing import Any

from hivedeploy.errors import EmptyFilterRuleError, UnknownError

log = logging.getLogger(__name__)


class RuleKind(Enum):
    """What a filter rule matches against."""

    NAME = "name"
    TAG = "tag"


@dataclass(frozen=True)
class Rule:
    """A glob rule matching node names or tags."""

    kind: RuleKind
    pattern: str

    def matches_node_config(self) -> bool:
        """Return whether the rule needs the node's deployment config."""
        return self.kind is RuleKind.TAG

    def matches(self, value: str) -> bool:
        """Return whether ``value`` matches the glob pattern."""
        return fnmatchcase(value, self.pattern)


class NodeFilter:
    """A list of rules OR'd together."""

    def __init__(self, filter: str) -> None:
        trimmed = filter.strip()
        if not trimmed:
            log.warning('Filter "%s" is blank and will match nothing', filter)
            self.rules: list[Rule] = []
            return

        rules = []
        for pattern in trimmed.split(","):
            pattern = pattern.strip()
            if not pattern:
                raise EmptyFilterRuleError()
            if pattern.startswith("@"):
                rules.append(Rule(RuleKind.TAG, pattern[1:]))
            else:
                rules.append(Rule(RuleKind.NAME, pattern))
        self.rules = rules

    def has_node_config_rules(self) -> bool:
        """Return whether any rule needs deployment configs to be evaluated."""
        return any(rule.matches_node_config() for rule in self.rules)

    def filter_node_configs(
        self, nodes: Mapping[str, Any] | Iterable[tuple[str, Any]]
    ) -> set[str]:
        """Return the names of nodes whose name or tags match a rule."""
        if not self.rules:
            return set()
        items = nodes.items() if isinstance(nodes, Mapping) else nodes
        return {
            name
            for name, config in items
            if any(self._matches_config(rule, name, config) for rule in self.rules)
        }

    @staticmethod
    def _matches_config(rule: Rule, name: str, config: Any) -> bool:
        if rule.kind is RuleKind.NAME:
            return rule.matches(name)
        return any(rule.matches(tag) for tag in config.tags)

    def filter_node_names(self, nodes: Iterable[str]) -> set[str]:
        """Return the matching names; tag rules cannot be run on names alone."""
        selected = set()
        for name in nodes:
            for rule in self.rules:
                if rule.kind is not RuleKind.NAME:
                    raise UnknownError(
                        f"Not enough information to run rule {rule!r} - "
                        "We only have node names"
                    )
                if rule.matches(name):
                    selected.add(name)
                    break
        return selected