"""Transaction group engine."""

from finance_tracker.engine.groups import (
    RECURRING_SUFFIX,
    apply_edit,
    apply_group_edit,
    expand,
    group_edit_fields,
    pick_new_original,
    recurring_dates,
    split_installments,
)

__all__ = [
    "RECURRING_SUFFIX",
    "apply_edit",
    "apply_group_edit",
    "expand",
    "group_edit_fields",
    "pick_new_original",
    "recurring_dates",
    "split_installments",
]
