from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Union, Optional


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    IN = "in"
    IS_TRUE = "is_true"
    IS_FALSE = "is_false"


_ORDERING_OPERATORS = (
    ConditionOperator.GREATER_THAN,
    ConditionOperator.LESS_THAN,
    ConditionOperator.GREATER_THAN_OR_EQUAL,
    ConditionOperator.LESS_THAN_OR_EQUAL,
)


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class ActionType(str, Enum):
    GRANT_REFERRAL_BONUS = "grant_referral_bonus"


class TriggerEvent(str, Enum):
    DEPOSIT_CREDITED = "deposit_credited"


@dataclass
class Condition:
    field: str
    operator: ConditionOperator
    value: Any = None

    def evaluate(self, context: dict) -> bool:
        field_value = self._get_field_value(context, self.field)
        if field_value is None and self.operator in _ORDERING_OPERATORS:
            return False
        return self._apply_operator(field_value, self.value)

    def _get_field_value(self, context: dict, field_path: str) -> Any:
        value = context
        for part in field_path.split("."):
            if isinstance(value, dict):
                value = value.get(part)
            else:
                return None
        return value

    def _apply_operator(self, field_value: Any, compare_value: Any) -> bool:
        op = self.operator
        if op == ConditionOperator.EQUALS: return field_value == compare_value
        if op == ConditionOperator.NOT_EQUALS: return field_value != compare_value
        if op == ConditionOperator.GREATER_THAN: return field_value > compare_value
        if op == ConditionOperator.LESS_THAN: return field_value < compare_value
        if op == ConditionOperator.GREATER_THAN_OR_EQUAL: return field_value >= compare_value
        if op == ConditionOperator.LESS_THAN_OR_EQUAL: return field_value <= compare_value
        if op == ConditionOperator.IN: return field_value in compare_value if compare_value else False
        if op == ConditionOperator.IS_TRUE: return bool(field_value) is True
        if op == ConditionOperator.IS_FALSE: return bool(field_value) is False
        return False


@dataclass
class ConditionGroup:
    operator: LogicalOperator
    conditions: list[Union[Condition, "ConditionGroup"]]

    def evaluate(self, context: dict) -> bool:
        if not self.conditions:
            return True
        results = [cond.evaluate(context) for cond in self.conditions]
        return all(results) if self.operator == LogicalOperator.AND else any(results)


@dataclass
class Action:
    type: ActionType
    params: dict = field(default_factory=dict)


@dataclass
class Rule:
    id: str
    name: str
    trigger: TriggerEvent
    conditions: Union[Condition, ConditionGroup]
    actions: list[Action]
    description: str = ""
    is_active: bool = True
    priority: int = 0

    def evaluate(self, context: dict) -> bool:
        if not self.is_active:
            return False
        return self.conditions.evaluate(context)


class RuleEngine:
    def __init__(self, rules: Optional[list[Rule]] = None):
        self.rules: dict[str, Rule] = {}
        for rule in rules or []:
            self.add_rule(rule)

    def add_rule(self, rule: Rule) -> None:
        self.rules[rule.id] = rule

    def remove_rule(self, rule_id: str) -> None:
        self.rules.pop(rule_id, None)

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        return self.rules.get(rule_id)

    def list_rules(self, trigger: Optional[TriggerEvent] = None) -> list[Rule]:
        rules = list(self.rules.values())
        if trigger:
            rules = [r for r in rules if r.trigger == trigger]
        rules.sort(key=lambda r: r.priority, reverse=True)
        return rules

    def evaluate(self, trigger: TriggerEvent, context: dict) -> list[Rule]:
        return [rule for rule in self.list_rules(trigger) if rule.evaluate(context)]

    def matching_actions(self, trigger: TriggerEvent, context: dict, action_type: ActionType) -> list[Action]:
        return [
            action
            for rule in self.evaluate(trigger, context)
            for action in rule.actions
            if action.type == action_type
        ]


def referral_rules(qualifying_amount: Decimal, bonus: Decimal) -> list[Rule]:
    """A credited deposit of at least ``qualifying_amount`` pays the referral bonus."""
    return [
        Rule(
            id="rule-qualifying-deposit", name="Qualifying Deposit Referral Bonus",
            trigger=TriggerEvent.DEPOSIT_CREDITED,
            conditions=ConditionGroup(operator=LogicalOperator.AND, conditions=[
                Condition(field="transaction.type", operator=ConditionOperator.EQUALS, value="deposit"),
                Condition(field="transaction.amount", operator=ConditionOperator.GREATER_THAN_OR_EQUAL,
                          value=qualifying_amount),
                Condition(field="user.referred_by", operator=ConditionOperator.IS_TRUE),
            ]),
            actions=[Action(type=ActionType.GRANT_REFERRAL_BONUS, params={"amount": bonus})],
            priority=10,
        ),
    ]
