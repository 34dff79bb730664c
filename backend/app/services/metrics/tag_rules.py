"""
Customer tag rules, applied after a metrics batch.

Rule: active, ordered by priority desc; match_type all|any over its conditions
(no conditions = always matches). Condition: {field, operator, value, type}
  number   = == != <> > >= < <=
  string   = != contains starts_with ends_with in not_in is_null is_not_null (case-insensitive)
  boolean  is_true is_false
Fields resolve against the metric first, then the customer.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.db.model.customer import Customer, CustomerMetric, CustomerTagRule
from app.repository import metrics_repo

logger = logging.getLogger(__name__)

NUMBER_FIELDS = {
    "orders_count", "total_spent", "total_spent_base",
    "average_order_value", "average_order_value_base",
}
BOOLEAN_FIELDS = {"is_vip"}


@dataclass
class TagEvaluation:
    tags: List[Dict[str, Any]] = field(default_factory=list)
    vip_matched: bool = False
    vip_rules_present: bool = False


def _default_type(field_name: str) -> str:
    if field_name in NUMBER_FIELDS:
        return "number"
    if field_name in BOOLEAN_FIELDS:
        return "boolean"
    return "string"


def _as_float(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def compare_number(actual: Any, expected: Any, operator: str) -> bool:
    a, e = _as_float(actual), _as_float(expected)
    if a is None or e is None:
        return False
    if operator in ("=", "=="):
        return a == e
    if operator in ("!=", "<>"):
        return a != e
    if operator == ">":
        return a > e
    if operator == ">=":
        return a >= e
    if operator == "<":
        return a < e
    if operator == "<=":
        return a <= e
    return False


def compare_string(actual: Any, expected: Any, operator: str) -> bool:
    if operator == "is_null":
        return actual is None or actual == ""
    if operator == "is_not_null":
        return actual is not None and actual != ""
    if expected is None or expected == "" or actual is None:
        return False

    a = str(actual).lower()
    if operator in ("in", "not_in"):
        options = expected if isinstance(expected, list) else str(expected).split(",")
        options = {str(o).strip().lower() for o in options if str(o).strip()}
        return (a in options) if operator == "in" else (a not in options)

    e = str(expected).lower()
    if operator in ("=", "=="):
        return a == e
    if operator in ("!=", "<>"):
        return a != e
    if operator == "contains":
        return e in a
    if operator == "starts_with":
        return a.startswith(e)
    if operator == "ends_with":
        return a.endswith(e)
    return False


def compare_boolean(actual: Any, operator: str) -> bool:
    if operator == "is_true":
        return bool(actual) is True
    if operator == "is_false":
        return not bool(actual)
    return False


class CustomerTagRuleEngine:

    def __init__(self, db: Session, rules: Optional[List[CustomerTagRule]] = None) -> None:
        self.db = db
        self._rules = rules

    @property
    def rules(self) -> List[CustomerTagRule]:
        if self._rules is None:
            self._rules = metrics_repo.list_active_tag_rules(self.db)
        return self._rules

    # ---------- Evaluate ----------
    def evaluate(self, customer: Customer, metric: Optional[CustomerMetric]) -> TagEvaluation:
        matched: Dict[str, Dict[str, Any]] = {}
        vip_matched = False

        for rule in self.rules:
            if not self._rule_matches(rule, customer, metric):
                continue
            if rule.tag_key not in matched:
                matched[rule.tag_key] = {
                    "key": rule.tag_key,
                    "label": rule.label,
                    "color": rule.color or "gray",
                    "source_rule_id": rule.id,
                    "priority": int(rule.priority or 0),
                }
            if rule.set_vip:
                vip_matched = True

        tags = sorted(matched.values(), key=lambda t: -t["priority"])
        return TagEvaluation(
            tags=tags,
            vip_matched=vip_matched,
            vip_rules_present=any(r.set_vip for r in self.rules),
        )

    def _rule_matches(self, rule: CustomerTagRule, customer: Customer, metric: Optional[CustomerMetric]) -> bool:
        conditions = rule.conditions or []
        if not conditions:
            return True
        results = [
            self._condition_matches(c, customer, metric) if isinstance(c, dict) else False
            for c in conditions
        ]
        if (rule.match_type or "all").lower() == "any":
            return any(results)
        return all(results)

    def _condition_matches(self, condition: Dict[str, Any], customer: Customer, metric: Optional[CustomerMetric]) -> bool:
        field_name = str(condition.get("field") or "")
        operator = str(condition.get("operator") or "").lower()
        if not field_name or not operator:
            return False

        kind = str(condition.get("type") or _default_type(field_name)).lower()
        actual = self._field_value(field_name, customer, metric)
        if kind == "number":
            return compare_number(actual, condition.get("value"), operator)
        if kind == "string":
            return compare_string(actual, condition.get("value"), operator)
        if kind == "boolean":
            return compare_boolean(actual, operator)
        return False

    @staticmethod
    def _field_value(field_name: str, customer: Customer, metric: Optional[CustomerMetric]) -> Any:
        if field_name in NUMBER_FIELDS:
            # no metric row = no completed orders
            return getattr(metric, field_name, None) if metric is not None else 0
        if hasattr(customer, field_name):
            return getattr(customer, field_name)
        return (customer.data or {}).get(field_name)

    # ---------- Apply ----------
    def apply(self, customer: Customer, metric: Optional[CustomerMetric]) -> TagEvaluation:
        """Write auto_tags into customer.data and toggle is_vip when VIP rules exist; no commit."""
        result = self.evaluate(customer, metric)
        data = dict(customer.data or {})
        data["auto_tags"] = [{k: v for k, v in tag.items() if k != "priority"} for tag in result.tags]
        customer.data = data

        if result.vip_matched:
            customer.is_vip = True
        elif result.vip_rules_present:
            customer.is_vip = False
        return result

    def apply_to_guids(self, guids: Iterable[str]) -> int:
        customers = metrics_repo.list_customers(self.db, list(guids))
        for customer in customers:
            self.apply(customer, metrics_repo.get_customer_metric(self.db, customer.guid))
        self.db.commit()
        logger.info("Customer tag rules applied customers=%d rules=%d", len(customers), len(self.rules))
        return len(customers)
