"""Constraint evaluation over trailing time windows.

Evaluation is pure: doses are never dropped or changed. Violations and unit
mismatches are returned in a ConstraintReport for the caller to display.
"""

from __future__ import annotations

import logging
from bisect import bisect_left, bisect_right
from collections.abc import Sequence
from dataclasses import replace
from itertools import accumulate

from .extraction import doses_by_medication
from .models import (
    ConfiguredDose,
    ConstraintReport,
    ConstraintScope,
    ConstraintViolation,
    ParsedDose,
    UnitMismatch,
)
from .rules import GlobalLimit, MedicationRule, RuleSet
from .timeline import shift_hours

logger = logging.getLogger(__name__)


def evaluate_window(
    doses: Sequence[ParsedDose],
    *,
    window_hours: float,
    max_amount: float,
    unit: str,
    scope: ConstraintScope,
    subject: str,
) -> ConstraintReport:
    """Check every dose against the sum of its trailing window.

    For a candidate at time t the window is [t - window_hours, t], both ends
    inclusive, so doses sharing t are counted together. Doses without an
    amount add nothing. Doses in another unit are reported as mismatches and
    left out of the sum.
    """
    mismatches: list[UnitMismatch] = []
    counted: list[ParsedDose] = []
    for d in doses:
        if d.amount is None:
            continue
        if d.unit.strip() != unit.strip():
            mismatches.append(
                UnitMismatch(
                    scope=scope,
                    subject=subject,
                    expected_unit=unit,
                    actual_unit=d.unit,
                    dose=d,
                )
            )
            continue
        counted.append(d)

    counted.sort(key=lambda d: d.timestamp)
    times = [d.timestamp for d in counted]
    prefix = [0.0, *accumulate(float(d.amount) for d in counted)]

    violations: list[ConstraintViolation] = []
    for d in counted:
        start = shift_hours(d.timestamp, -window_hours)
        lo = bisect_left(times, start)
        hi = bisect_right(times, d.timestamp)
        total = prefix[hi] - prefix[lo]
        if total > max_amount:
            violations.append(
                ConstraintViolation(
                    scope=scope,
                    subject=subject,
                    window_hours=window_hours,
                    max_amount=max_amount,
                    unit=unit,
                    cumulative_amount=total,
                    window_start=start,
                    window_end=d.timestamp,
                    dose=d,
                )
            )

    if violations:
        logger.info(
            "%s limit for %s exceeded %d time(s) (max %s %s / %sh)",
            scope,
            subject,
            len(violations),
            max_amount,
            unit,
            window_hours,
        )
    return ConstraintReport(violations=tuple(violations), unit_mismatches=tuple(mismatches))


def evaluate_hourly_constraints(doses: Sequence[ParsedDose], rule: MedicationRule) -> ConstraintReport:
    """Evaluate all of a rule's hourly constraints over its own doses."""
    own = [d for d in doses if d.medication_id == rule.id]
    report = ConstraintReport()
    for c in rule.constraints:
        report = report.merge(
            evaluate_window(
                own,
                window_hours=c.window_hours,
                max_amount=c.max_amount,
                unit=c.unit,
                scope="hourly",
                subject=rule.id,
            )
        )
    return report


def _convert_ingredient(
    doses: Sequence[ParsedDose],
    rules: RuleSet,
    ingredient_name: str,
) -> tuple[list[ConfiguredDose], list[UnitMismatch]]:
    members = rules.medications_with(ingredient_name)
    converted: list[ConfiguredDose] = []
    mismatches: list[UnitMismatch] = []
    for d in doses:
        if d.medication_id not in members or d.amount is None:
            continue
        rule = rules.lookup(d.medication_id)
        if rule is None:
            continue
        ing = rule.ingredient(ingredient_name)
        if ing is None:
            continue
        # amounts are in the standard dose's unit; without one, in the ingredient's
        expected = rule.standard_doses[0].unit if rule.standard_doses else ing.unit
        if d.unit.strip() != expected.strip():
            mismatches.append(
                UnitMismatch(
                    scope="global",
                    subject=ingredient_name,
                    expected_unit=expected,
                    actual_unit=d.unit,
                    dose=d,
                )
            )
            continue
        base = rule.standard_doses[0].amount if rule.standard_doses else d.amount
        units = d.amount / base if base else 0.0
        converted.append(replace(d, amount=ing.amount_per_unit * units, unit=ing.unit))
    return converted, mismatches


def ingredient_doses(
    doses: Sequence[ParsedDose],
    rules: RuleSet,
    ingredient_name: str,
) -> list[ConfiguredDose]:
    """Convert doses of every medication containing an ingredient into
    amounts of that ingredient.

    A dose counts as ``amount / standard_doses[0].amount`` units (one unit
    when the medication has no standard dose), each worth the ingredient's
    ``amount_per_unit``. Doses whose unit differs from the standard dose
    (or, without one, from the ingredient) are left out; see
    :func:`evaluate_global_limit`.
    """
    return _convert_ingredient(doses, rules, ingredient_name)[0]


def evaluate_global_limit(
    doses: Sequence[ParsedDose],
    rules: RuleSet,
    limit: GlobalLimit,
) -> ConstraintReport:
    """Evaluate one shared-ingredient limit across all product lines.

    Doses that cannot be converted because of their unit are reported as
    unit mismatches and left out of the sum.
    """
    converted, mismatches = _convert_ingredient(doses, rules, limit.ingredient_name)
    report = evaluate_window(
        converted,
        window_hours=limit.window_hours,
        max_amount=limit.max_amount,
        unit=limit.unit,
        scope="global",
        subject=limit.ingredient_name,
    )
    return ConstraintReport(unit_mismatches=tuple(mismatches)).merge(report)


def evaluate_all(doses: Sequence[ParsedDose], rules: RuleSet) -> ConstraintReport:
    """Evaluate every hourly constraint and every global limit."""
    grouped = doses_by_medication(doses)
    report = ConstraintReport()
    for rule in rules.rules:
        if rule.constraints and rule.id in grouped:
            report = report.merge(evaluate_hourly_constraints(grouped[rule.id], rule))
    for limit in rules.global_limits:
        report = report.merge(evaluate_global_limit(doses, rules, limit))
    return report
