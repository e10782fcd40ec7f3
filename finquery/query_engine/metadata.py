"""
Metadata descriptors sent to the backend before structured queries.

The descriptor tells the backend what the records look like (fields, value
domains, ranges, totals) and how to answer: a JSON query object whose
filterCode is a JavaScript-style predicate.
"""
import logging
import math
from typing import Any, Dict, List, Optional

from configs import EXCHANGE_RATE
from finquery.adapters.dataset_store import DatasetStore
from finquery.query_engine.predicate import parse_date_string, parse_float

logger = logging.getLogger("finquery.metadata")


EXPENSE_FIELDS = [
    {"name": "id", "type": "number", "description": "Unique expense ID"},
    {"name": "title", "type": "string", "description": "Expense title/name"},
    {"name": "description", "type": "string", "description": "Additional details (optional)"},
    {"name": "amount", "type": "number", "description": "Expense amount in INR"},
    {"name": "category", "type": "string", "description": "Expense category"},
    {"name": "date", "type": "string", "description": "Expense date (YYYY-MM-DD format)"},
    {"name": "createdAt", "type": "number", "description": "Timestamp when expense was added"},
    {"name": "suggestedCard", "type": "string", "description": "Suggested card for this expense (optional)"},
    {"name": "recurringId", "type": "number", "description": "Link to recurring expense (optional)"},
]

INVESTMENT_FIELDS = [
    {"name": "id", "type": "number", "description": "Unique investment ID"},
    {"name": "name", "type": "string", "description": 'Investment name (e.g., "Apple", "ICICI FD")'},
    {"name": "type", "type": "string", "description": "Investment type (SHARES, GOLD, FD, EPF)"},
    {"name": "goal", "type": "string", "description": "Investment goal/term (SHORT_TERM or LONG_TERM)"},
    {"name": "amount", "type": "number", "description": "Total investment amount in INR"},
    {"name": "quantity", "type": "number", "description": "Quantity (for SHARES/GOLD)"},
    {"name": "price", "type": "number", "description": "Unit price (for SHARES/GOLD)"},
    {"name": "currency", "type": "string", "description": "Currency (INR or USD)"},
    {"name": "description", "type": "string", "description": "Additional notes (optional)"},
    {"name": "createdAt", "type": "number", "description": "Timestamp when added"},
    {"name": "lastUpdated", "type": "number", "description": "Last update timestamp"},
]

EXPENSES_QUERY_INSTRUCTIONS = """
To query expenses data, return a JSON object with this structure:
{
  "operation": "filter",
  "filterCode": "e => e.category === 'Groceries' && new Date(e.date).getMonth() === 10",
  "aggregation": "sum" | "count" | "average" | "group" | "none",
  "aggregationField": "amount" | "id" | null,
  "groupBy": "category" | "month" | "year" | null,
  "explanation": "Human-readable explanation of what the query does"
}

Examples:
1. Total groceries in November 2024:
   { "operation": "filter", "filterCode": "e => e.category === 'Groceries' && new Date(e.date).getMonth() === 10 && new Date(e.date).getFullYear() === 2024", "aggregation": "sum", "aggregationField": "amount" }

2. Count expenses by category:
   { "operation": "filter", "filterCode": "e => true", "aggregation": "group", "groupBy": "category", "aggregationField": "amount" }

3. Expenses above ₹5000:
   { "operation": "filter", "filterCode": "e => e.amount > 5000", "aggregation": "none" }

Important:
- Use JavaScript arrow function syntax
- Access fields as e.fieldName (e.g., e.amount, e.category)
- For dates, use new Date(e.date)
- Month is 0-indexed (Jan=0, Dec=11)
- filterCode runs in a restricted JavaScript subset, not a full engine:
  arrow functions (or a { ... } body with const/let, if/else, return),
  comparison and logical operators, ?: and optional chaining (?.),
  new Date(x) (dates are UTC), parseFloat, parseInt, Number, String,
  Boolean, isNaN, Math.abs/round/floor/ceil/min/max,
  date methods getMonth, getFullYear, getDate, getDay, getTime, toISOString,
  string methods toLowerCase, toUpperCase, trim, includes, startsWith,
  endsWith, indexOf, slice, substring, split, and .length,
  array methods includes, indexOf, slice, and [index] access
- Anything else (other methods, assignment, loops, nested functions,
  window/fetch/eval) is rejected
"""

INVESTMENTS_QUERY_INSTRUCTIONS = """
To query investments data, return a JSON object with this structure:
{
  "operation": "filter",
  "filterCode": "i => i.type === 'SHARES' && i.goal === 'LONG_TERM'",
  "aggregation": "sum" | "count" | "average" | "group" | "none",
  "aggregationField": "amount" | "quantity" | null,
  "groupBy": "type" | "goal" | "currency" | null,
  "explanation": "Human-readable explanation of what the query does"
}

IMPORTANT - Field Clarifications:
- "type" field contains: SHARES, GOLD, FD (Fixed Deposit), EPF (Employee Provident Fund)
- "goal" field contains: SHORT_TERM, LONG_TERM (NOT in type field!)
- Always use i.goal for SHORT_TERM/LONG_TERM, NOT i.type

Examples:
1. Total long-term investments:
   { "operation": "filter", "filterCode": "i => i.goal === 'LONG_TERM'", "aggregation": "sum", "aggregationField": "amount" }

2. All stock investments (shares):
   { "operation": "filter", "filterCode": "i => i.type === 'SHARES'", "aggregation": "none" }

3. Short-term fixed deposits:
   { "operation": "filter", "filterCode": "i => i.type === 'FD' && i.goal === 'SHORT_TERM'", "aggregation": "sum", "aggregationField": "amount" }

4. Count investments by type:
   { "operation": "filter", "filterCode": "i => true", "aggregation": "group", "groupBy": "type", "aggregationField": "amount" }

5. USD investments:
   { "operation": "filter", "filterCode": "i => i.currency === 'USD'", "aggregation": "none" }

Important:
- Use JavaScript arrow function syntax
- Access fields as i.fieldName (e.g., i.amount, i.type, i.goal)
- Use i.goal for SHORT_TERM/LONG_TERM (not i.term or i.type!)
- Use i.type for SHARES/GOLD/FD/EPF
- filterCode runs in a restricted JavaScript subset, not a full engine:
  arrow functions (or a { ... } body with const/let, if/else, return),
  comparison and logical operators, ?: and optional chaining (?.),
  new Date(x) (dates are UTC), parseFloat, parseInt, Number, String,
  Boolean, isNaN, Math.abs/round/floor/ceil/min/max,
  date methods getMonth, getFullYear, getDate, getDay, getTime, toISOString,
  string methods toLowerCase, toUpperCase, trim, includes, startsWith,
  endsWith, indexOf, slice, substring, split, and .length,
  array methods includes, indexOf, slice, and [index] access
- Anything else (other methods, assignment, loops, nested functions,
  window/fetch/eval) is rejected
- For USD to INR conversion, use exchangeRate: {exchange_rate}
"""


def _distinct(records: List[Dict[str, Any]], field: str) -> List[Any]:
    """Distinct truthy values in first-seen order."""
    seen: List[Any] = []
    for record in records:
        value = record.get(field)
        if value and value not in seen:
            seen.append(value)
    return seen


def _numbers(records: List[Dict[str, Any]], field: str) -> List[float]:
    values = []
    for record in records:
        number = parse_float(record.get(field))
        if math.isfinite(number):
            values.append(number)
    return values


def _amount_range(records: List[Dict[str, Any]]) -> Dict[str, int]:
    amounts = _numbers(records, "amount")
    if not amounts:
        return {"min": 0, "max": 0}
    return {"min": math.floor(min(amounts) + 0.5), "max": math.floor(max(amounts) + 0.5)}


def _total(records: List[Dict[str, Any]], field: str) -> float:
    return sum(_numbers(records, field))


def _date_range(records: List[Dict[str, Any]]) -> Dict[str, Optional[str]]:
    dates = []
    for record in records:
        value = record.get("date")
        if not isinstance(value, str):
            continue
        parsed = parse_date_string(value)
        if parsed.valid:
            dates.append(parsed.as_datetime())
    if not dates:
        return {"min": None, "max": None}
    return {"min": min(dates).date().isoformat(), "max": max(dates).date().isoformat()}


def _with_values(fields: List[Dict[str, Any]], values: Dict[str, List[Any]]) -> List[Dict[str, Any]]:
    described = []
    for field in fields:
        entry = dict(field)
        if field["name"] in values:
            entry["values"] = values[field["name"]]
        described.append(entry)
    return described


class MetadataGenerator:
    """Builds the per-mode schema/statistics descriptor from the dataset store."""

    def __init__(self, store: DatasetStore, exchange_rate: float = EXCHANGE_RATE):
        self.store = store
        self.exchange_rate = exchange_rate

    def generate(self, mode: str) -> Dict[str, Any]:
        """
        Build the descriptor for a data mode.

        Raises:
            ValueError: mode is not "expenses" or "investments"
        """
        if mode == "expenses":
            return self.expenses_metadata()
        if mode == "investments":
            return self.investments_metadata()
        raise ValueError(f"Unsupported metadata mode: {mode}")

    def expenses_metadata(self) -> Dict[str, Any]:
        expenses = self.store.get_collection("expenses")
        if not expenses:
            return {"mode": "expenses", "totalRecords": 0, "message": "No expenses data available"}

        categories = _distinct(expenses, "category")
        sample = expenses[0]
        logger.debug("Generated expenses metadata for %d records", len(expenses))

        return {
            "mode": "expenses",
            "schema": {
                "fields": _with_values(EXPENSE_FIELDS, {"category": categories}),
                "availableCategories": categories,
                "sampleStructure": {
                    "id": sample.get("id"),
                    "title": 'string (e.g., "Grocery Shopping")',
                    "amount": "number (e.g., 5000)",
                    "category": f"string (one of: {', '.join(map(str, categories))})",
                    "date": 'string (e.g., "2024-11-22")',
                },
            },
            "statistics": {
                "totalRecords": len(expenses),
                "dateRange": _date_range(expenses),
                "amountRange": _amount_range(expenses),
                "totalAmount": _total(expenses, "amount"),
            },
            "queryInstructions": EXPENSES_QUERY_INSTRUCTIONS,
        }

    def investments_metadata(self) -> Dict[str, Any]:
        investments = self.store.get_collection("investments")
        if not investments:
            return {"mode": "investments", "totalRecords": 0, "message": "No investments data available"}

        types = _distinct(investments, "type")
        goals = _distinct(investments, "goal")
        currencies = _distinct(investments, "currency")
        sample = investments[0]
        rate = int(self.exchange_rate) if float(self.exchange_rate).is_integer() else self.exchange_rate
        logger.debug("Generated investments metadata for %d records", len(investments))

        return {
            "mode": "investments",
            "schema": {
                "fields": _with_values(
                    INVESTMENT_FIELDS,
                    {"type": types, "goal": goals, "currency": currencies},
                ),
                "availableTypes": types,
                "availableGoals": goals,
                "availableCurrencies": currencies,
                "sampleStructure": {
                    "id": sample.get("id"),
                    "name": 'string (e.g., "Apple", "ICICI FD")',
                    "type": f"string (one of: {', '.join(map(str, types))})",
                    "goal": f"string (one of: {', '.join(map(str, goals))})",
                    "amount": "number (e.g., 50000)",
                    "currency": f"string (one of: {', '.join(map(str, currencies))})",
                },
            },
            "statistics": {
                "totalRecords": len(investments),
                "amountRange": _amount_range(investments),
                "totalPortfolioValue": _total(investments, "amount"),
                "exchangeRate": rate,
            },
            "queryInstructions": INVESTMENTS_QUERY_INSTRUCTIONS.replace("{exchange_rate}", str(rate)),
        }
