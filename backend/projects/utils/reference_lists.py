"""
Ordered reference list helpers.

Projects and users keep ordered id lists (``sub_project_ids``, ``task_ids``,
``transaction_ids``, ``comment_ids``, ``project_ids``) next to the foreign
keys held by the referenced records. These helpers mutate a list field on a
model instance and save only that field, so callers can combine several of
them inside one ``transaction.atomic`` block.
"""

import logging

# Get structured logger for this module
logger = logging.getLogger(__name__)


def _current(instance, field):
    return list(getattr(instance, field) or [])


def _store(instance, field, values, save):
    setattr(instance, field, values)
    if save:
        instance.save(update_fields=[field])


def prepend_reference(instance, field, ref_id, save=True):
    """Put ``ref_id`` at the head of ``instance.<field>`` (moved there if present)."""
    values = [value for value in _current(instance, field) if value != ref_id]
    values.insert(0, ref_id)
    _store(instance, field, values, save)
    return values


def append_reference(instance, field, ref_id, save=True):
    """Add ``ref_id`` at the end of ``instance.<field>`` unless already listed."""
    values = _current(instance, field)
    if ref_id not in values:
        values.append(ref_id)
        _store(instance, field, values, save)
    return values


def pull_reference(instance, field, ref_id, save=True):
    """
    Remove every occurrence of ``ref_id`` from ``instance.<field>``.

    Returns:
        bool: True if the list contained the id
    """
    values = _current(instance, field)
    remaining = [value for value in values if value != ref_id]
    if len(remaining) == len(values):
        return False
    _store(instance, field, remaining, save)
    return True


def replace_reference(instance, field, old_id, new_id, save=True):
    """
    Replace ``old_id`` with ``new_id`` keeping its position.

    An id replaced by itself is left in place without a write. A missing
    entry is put back at the head of the list and logged, so the reference
    list never silently loses a record.
    """
    values = _current(instance, field)
    if old_id in values:
        if old_id == new_id:
            return values
        values[values.index(old_id)] = new_id
    else:
        logger.warning(
            "Reference missing from list, restoring it",
            extra={
                "model": instance.__class__.__name__,
                "instance_id": instance.pk,
                "field": field,
                "reference_id": new_id,
                "action": "reference_restored",
                "component": "reference_lists",
                "severity": "medium",
            },
        )
        values.insert(0, new_id)
    _store(instance, field, values, save)
    return values


def reorder_references(instance, field, ref_ids, save=True):
    """
    Make ``ref_ids`` the new order of ``instance.<field>``.

    Raises:
        ValueError: If ``ref_ids`` is not a permutation of the current list
    """
    try:
        values = [int(ref_id) for ref_id in ref_ids]
    except (TypeError, ValueError):
        raise ValueError("Ids must be integers.")
    if sorted(values) != sorted(_current(instance, field)):
        raise ValueError("The new order must contain exactly the current entries.")
    _store(instance, field, values, save)
    return values
