"""Publish policy: pluggable rules evaluated against a package description.

Configuration mirrors the YAML ``policy`` section::

    policy:
      mode: block            # block | warn | audit
      rules:
        - type: regex
          target: package_name
          exclude: ["^evil/"]
        - type: native
          whitelist_file: native-whitelist.json

With no rules configured every package is allowed.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .description import Description

logger = logging.getLogger(__name__)

DECISION_MODES = ("block", "warn", "audit")


@dataclass
class PolicyDecision:
    """Outcome of evaluating the policy for one package."""

    decision: str
    violated_rules: List[str] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.decision == "allow"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.decision,
            "violated_rules": list(self.violated_rules),
            "message": self.message,
        }


class RuleEvaluator:
    """Base class for rule evaluators."""

    def evaluate(self, facts: Dict[str, Any], config: Dict[str, Any]) -> PolicyDecision:
        """Evaluate a rule against facts.

        Args:
            facts: The facts dictionary built from a Description.
            config: The rule configuration.
        """
        raise NotImplementedError


class RegexRuleEvaluator(RuleEvaluator):
    """Include/exclude patterns over a single fact."""

    def evaluate(self, facts: Dict[str, Any], config: Dict[str, Any]) -> PolicyDecision:
        target = config.get("target", "package_name")
        include_patterns = config.get("include", [])
        exclude_patterns = config.get("exclude", [])
        flags = 0 if config.get("case_sensitive", True) else re.IGNORECASE
        full_match = config.get("full_match", False)

        actual_value = facts.get(target)
        if actual_value is None:
            return PolicyDecision("deny", [f"missing target value: {target}"])
        value_str = str(actual_value)

        # Exclude takes precedence
        for pattern in exclude_patterns:
            try:
                if re.search(pattern, value_str, flags):
                    return PolicyDecision("deny", [f"excluded by pattern: {pattern}"])
            except re.error:
                logger.warning("Ignoring invalid exclude pattern: %s", pattern)

        if include_patterns:
            for pattern in include_patterns:
                try:
                    matcher = re.fullmatch if full_match else re.search
                    if matcher(pattern, value_str, flags):
                        return PolicyDecision("allow")
                except re.error:
                    logger.warning("Ignoring invalid include pattern: %s", pattern)
            return PolicyDecision("deny", ["not matched by any include pattern"])

        return PolicyDecision("allow")


class NativeRuleEvaluator(RuleEvaluator):
    """Packages declaring native modules must be on a reviewed whitelist."""

    def evaluate(self, facts: Dict[str, Any], config: Dict[str, Any]) -> PolicyDecision:
        if not facts.get("native_modules"):
            return PolicyDecision("allow")

        name = facts.get("package_name", "")
        if name in self._whitelist(config):
            return PolicyDecision("allow")

        return PolicyDecision(
            "deny",
            ["native modules require review"],
            message=native_review_message(name, config.get("issues_url")),
        )

    @staticmethod
    def _whitelist(config: Dict[str, Any]) -> List[str]:
        names = list(config.get("whitelist", []))
        whitelist_file = config.get("whitelist_file")
        if whitelist_file:
            # Re-read on each evaluation so reviews take effect without a restart.
            with open(Path(whitelist_file), "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError(f"whitelist file must contain a JSON list: {whitelist_file}")
            names.extend(str(n) for n in data)
        return names


def native_review_message(name: str, issues_url: Optional[str] = None) -> str:
    """Remediation text for packages held for native-code review."""
    issues_url = issues_url or "the catalog issue tracker"
    return (
        "You are trying to publish a project that has native-modules. For now,\n"
        "any modules that use Native code must go through a formal review process to\n"
        "make sure the exposed API is pure and the Native code is absolutely\n"
        "necessary. Please open an issue with the title:\n\n"
        f'    "Native review for {name}"\n\n'
        f"to begin the review process at {issues_url}"
    )


class RuleEvaluatorRegistry:
    """Registry for rule evaluators."""

    def __init__(self):
        self._evaluators: Dict[str, RuleEvaluator] = {
            "regex": RegexRuleEvaluator(),
            "native": NativeRuleEvaluator(),
        }

    def get_evaluator(self, rule_type: str) -> RuleEvaluator:
        """Get a rule evaluator by type.

        Raises:
            ValueError: If evaluator not found.
        """
        if rule_type not in self._evaluators:
            raise ValueError(f"Unknown rule type: {rule_type}")
        return self._evaluators[rule_type]

    def register_evaluator(self, rule_type: str, evaluator: RuleEvaluator) -> None:
        """Register a new rule evaluator."""
        self._evaluators[rule_type] = evaluator


class PublishPolicy:
    """Evaluates configured rules for a description."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        registry: Optional[RuleEvaluatorRegistry] = None,
    ):
        """Initialize the policy.

        Args:
            config: Policy configuration dict (from YAML).
            registry: Rule evaluators; defaults to the built-in set.

        Raises:
            ValueError: On an unknown decision mode or rule type.
        """
        self._config = config or {}
        self._registry = registry or RuleEvaluatorRegistry()
        self._mode = self._config.get("mode", "block")
        if self._mode not in DECISION_MODES:
            raise ValueError(f"Invalid decision mode: {self._mode}")
        for rule in self._rules():
            self._registry.get_evaluator(rule.get("type", ""))

    def _rules(self) -> List[Dict[str, Any]]:
        return [r for r in self._config.get("rules", []) if isinstance(r, dict)]

    def evaluate(self, description: Description) -> PolicyDecision:
        """Evaluate every rule; all violations are collected."""
        rules = self._rules()
        if not rules:
            return PolicyDecision("allow")

        facts = description.to_facts()
        violations: List[str] = []
        message: Optional[str] = None
        for rule in rules:
            result = self._registry.get_evaluator(rule["type"]).evaluate(facts, rule)
            if not result.allowed:
                violations.extend(result.violated_rules)
                message = message or result.message

        if not violations:
            return PolicyDecision("allow")
        if self._mode == "block":
            return PolicyDecision("deny", violations, message)

        log = logger.warning if self._mode == "warn" else logger.info
        log("Policy violation (%s mode) for %s: %s", self._mode, description.name, violations)
        return PolicyDecision("allow", violations)
