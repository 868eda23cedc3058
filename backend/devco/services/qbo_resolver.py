# Overview: Maps a changed QuickBooks entity onto the internal project ids it affects.

"""
Entity resolution.

Each entity type has an ordered tuple of strategies. A strategy is a pure
function of one fetched record and returns the project ids it can see plus
references to parent records worth following (for example a Payment's
linked Invoices). The resolver fetches records, runs the strategies, and
follows parent references breadth-first up to MAX_DEPTH with a visited set.

Resolution never raises: unknown types, missing entities and provider errors
produce an empty set and a log line.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ExternalServiceError
from .qbo_client import get_qbo_client


MAX_DEPTH = 3

LINE_DETAIL_KEYS = (
    "AccountBasedExpenseLineDetail",
    "ItemBasedExpenseLineDetail",
    "JournalEntryLineDetail",
    "SalesItemLineDetail",
    "DepositLineDetail",
)


@dataclass(frozen=True)
class StrategyResult:
    project_ids: frozenset[str] = frozenset()
    parents: tuple[tuple[str, str], ...] = ()


@dataclass
class Resolution:
    project_ids: set[str] = field(default_factory=set)
    # False when the root entity was missing or the provider failed
    complete: bool = True


Strategy = Callable[[dict], StrategyResult]


def _ref_value(ref: Any) -> str | None:
    if isinstance(ref, dict) and ref.get("value"):
        return str(ref["value"])
    return None


def _lines(record: dict) -> Iterable[dict]:
    lines = record.get("Line") or []
    if isinstance(lines, dict):
        lines = [lines]
    return (line for line in lines if isinstance(line, dict))


def customer_is_project(record: dict) -> StrategyResult:
    """A Customer counts only when it is itself a project or sub-job."""
    if record.get("Job") is True or record.get("IsProject") is True:
        return StrategyResult(project_ids=frozenset({str(record["Id"])}))
    return StrategyResult()


def header_customer_ref(record: dict) -> StrategyResult:
    customer_id = _ref_value(record.get("CustomerRef"))
    return StrategyResult(project_ids=frozenset({customer_id}) if customer_id else frozenset())


def line_customer_refs(record: dict) -> StrategyResult:
    """CustomerRef in any line detail flavour, and Customer entities on journal/deposit lines."""
    found: set[str] = set()
    for line in _lines(record):
        for key in LINE_DETAIL_KEYS:
            details = line.get(key)
            if not isinstance(details, dict):
                continue

            customer_id = _ref_value(details.get("CustomerRef"))
            if customer_id:
                found.add(customer_id)

            entity = details.get("Entity")
            if isinstance(entity, dict):
                ref = entity.get("EntityRef") if isinstance(entity.get("EntityRef"), dict) else entity
                entity_type = ref.get("type") or entity.get("Type") or ""
                entity_id = _ref_value(ref)
                if entity_id and str(entity_type).lower() == "customer":
                    found.add(entity_id)
    return StrategyResult(project_ids=frozenset(found))


def linked_transactions(txn_type: str) -> Strategy:
    """Follow Line[].LinkedTxn references of one transaction type."""

    def strategy(record: dict) -> StrategyResult:
        parents: list[tuple[str, str]] = []
        for line in _lines(record):
            linked = line.get("LinkedTxn") or []
            if isinstance(linked, dict):
                linked = [linked]
            for txn in linked:
                if isinstance(txn, dict) and txn.get("TxnType") == txn_type and txn.get("TxnId"):
                    parents.append((txn_type, str(txn["TxnId"])))
        return StrategyResult(parents=tuple(parents))

    strategy.__name__ = f"linked_{txn_type.lower()}s"
    return strategy


STRATEGIES: dict[str, tuple[Strategy, ...]] = {
    "Customer": (customer_is_project,),
    "Invoice": (header_customer_ref,),
    "Estimate": (header_customer_ref,),
    "SalesReceipt": (header_customer_ref,),
    "CreditMemo": (header_customer_ref,),
    "RefundReceipt": (header_customer_ref,),
    "Payment": (header_customer_ref, linked_transactions("Invoice")),
    "Bill": (line_customer_refs,),
    "Purchase": (line_customer_refs,),
    "JournalEntry": (line_customer_refs,),
    "VendorCredit": (line_customer_refs,),
    "CreditCardCredit": (line_customer_refs,),
    "Deposit": (line_customer_refs,),
    "BillPayment": (linked_transactions("Bill"),),
}


def supported_entity_types() -> list[str]:
    return sorted(STRATEGIES)


class QBOEntityResolver:
    def __init__(self, client, max_depth: int = MAX_DEPTH):
        self._client = client
        self._max_depth = max_depth

    def resolve_detailed(self, entity_type: str, entity_id: str) -> Resolution:
        if entity_type not in STRATEGIES:
            current_app.logger.info("QBO entity type %s is not mapped to projects", entity_type)
            return Resolution()

        result = Resolution()
        visited: set[tuple[str, str]] = set()
        frontier: list[tuple[str, str]] = [(entity_type, str(entity_id))]

        try:
            for depth in range(self._max_depth):
                next_frontier: list[tuple[str, str]] = []
                for node in frontier:
                    if node in visited or node[0] not in STRATEGIES:
                        continue
                    visited.add(node)

                    record = self._client.get_entity(*node)
                    if record is None:
                        if depth == 0:
                            current_app.logger.warning("QBO %s %s not found", *node)
                            return Resolution(complete=False)
                        continue

                    for strategy in STRATEGIES[node[0]]:
                        outcome = strategy(record)
                        result.project_ids.update(outcome.project_ids)
                        next_frontier.extend(p for p in outcome.parents if p not in visited)
                frontier = next_frontier
                if not frontier:
                    break
        except (ExternalServiceError, SQLAlchemyError) as exc:
            current_app.logger.warning("Could not resolve QBO %s %s: %s", entity_type, entity_id, exc)
            return Resolution(complete=False)
        except (KeyError, TypeError, ValueError) as exc:
            current_app.logger.warning("Malformed QBO %s %s record: %s", entity_type, entity_id, exc)
            return Resolution(complete=False)

        return result

    def resolve(self, entity_type: str, entity_id: str) -> set[str]:
        return self.resolve_detailed(entity_type, entity_id).project_ids


def resolve_project_ids_from_entity(entity_type: str, entity_id: str, client=None) -> set[str]:
    return QBOEntityResolver(client or get_qbo_client()).resolve(entity_type, entity_id)
