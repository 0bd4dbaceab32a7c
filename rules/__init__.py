"""
Rules Engine Package

Provides rule representation and evaluation for deciding when a credited
deposit pays out the referral bonus.
"""

from .rule_engine import (
    RuleEngine,
    Rule,
    Condition,
    ConditionGroup,
    Action,
    ConditionOperator,
    LogicalOperator,
    ActionType,
    TriggerEvent,
    referral_rules,
)

__all__ = [
    "RuleEngine",
    "Rule",
    "Condition",
    "ConditionGroup",
    "Action",
    "ConditionOperator",
    "LogicalOperator",
    "ActionType",
    "TriggerEvent",
    "referral_rules",
]
