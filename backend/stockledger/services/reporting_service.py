# Overview: Report aggregation; folds detailed movement rows into per-product summaries.

from __future__ import annotations

from typing import Iterable


def movement_unit_price(row: dict) -> float:
    """Unit price of one movement row; 0.0 when quantity or price is zero."""
    quantity = abs(row.get("quantity_change") or 0.0)
    total_price = row.get("total_price") or 0.0
    if quantity == 0 or total_price == 0:
        return 0.0
    return total_price / quantity


def summarize_movements(rows: Iterable[dict]) -> dict:
    """
    Group detailed-report rows by product name.

    Groups keep first-seen order and first-seen unit. Quantities are summed
    as absolute values (a removal counts as volume moved); prices are summed
    signed. unit_price is total_price / quantity, 0.0 for a zero quantity.
    """
    groups: dict[str, dict] = {}
    total_value = 0.0
    total_quantity = 0.0
    count = 0

    for row in rows:
        name = row.get("product_name") or ""
        quantity = abs(row.get("quantity_change") or 0.0)
        price = row.get("total_price") or 0.0

        group = groups.get(name)
        if group is None:
            group = {
                "product_name": name,
                "product_category": row.get("product_category"),
                "unit": row.get("unit") or "",
                "quantity": 0.0,
                "total_price": 0.0,
                "movement_count": 0,
            }
            groups[name] = group

        group["quantity"] += quantity
        group["total_price"] += price
        group["movement_count"] += 1

        total_value += price
        total_quantity += quantity
        count += 1

    summary_rows = []
    for group in groups.values():
        quantity = group["quantity"]
        group["unit_price"] = group["total_price"] / quantity if quantity > 0 else 0.0
        summary_rows.append(group)

    return {
        "rows": summary_rows,
        "totals": {
            "total_value": total_value,
            "total_quantity": total_quantity,
            "movement_count": count,
        },
    }
