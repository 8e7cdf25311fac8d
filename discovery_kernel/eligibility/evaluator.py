"""
Eligibility Evaluator — decides whether a citizen qualifies for a service.

Evaluates each criterion of a service against a CitizenProfile through a
small tagged predicate language (range | enum | membership | custom).

Behavioral Contract:
- Every criterion is evaluated independently and without side effects
- A criterion the profile cannot answer evaluates UNKNOWN, never MATCHED
- A criterion with no predicate (or an unregistered custom rule) is UNKNOWN
- Malformed criteria never raise; they degrade to UNKNOWN
- Status resolution order:
    1. disqualifying matched       -> INELIGIBLE
    2. required unmatched          -> INELIGIBLE
    3. required / checkable preferred unknown -> UNKNOWN
    4. no preferred unmatched      -> ELIGIBLE
    5. otherwise                   -> PARTIAL
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from discovery_kernel.models.match import (
    CriterionEvaluation,
    EligibilityResult,
    EligibilityStatus,
)
from discovery_kernel.models.profile import CitizenProfile
from discovery_kernel.models.service import (
    Criterion,
    CriterionOutcome,
    CriterionType,
    Predicate,
    PredicateKind,
)

logger = logging.getLogger(__name__)

# A custom rule returns MATCHED / UNMATCHED / UNKNOWN plus a reason
CustomRule = Callable[[CitizenProfile, dict], Tuple[CriterionOutcome, str]]


def _normalize(value: Any) -> str:
    return str(value).strip().lower()


def _check_range(
    predicate: Predicate, profile: CitizenProfile
) -> Tuple[CriterionOutcome, str]:
    """Numeric attribute within [minimum, maximum], both bounds inclusive."""
    if not predicate.attribute:
        return CriterionOutcome.UNKNOWN, "Range predicate has no attribute."
    value = profile.attribute(predicate.attribute)
    if value is None:
        return CriterionOutcome.UNKNOWN, f"Profile has no {predicate.attribute}."
    try:
        number = float(value)
    except (TypeError, ValueError):
        return CriterionOutcome.UNKNOWN, f"{predicate.attribute} is not numeric."

    if predicate.minimum is not None and number < predicate.minimum:
        return (
            CriterionOutcome.UNMATCHED,
            f"{predicate.attribute} {value} is below the minimum {predicate.minimum:g}.",
        )
    if predicate.maximum is not None and number > predicate.maximum:
        return (
            CriterionOutcome.UNMATCHED,
            f"{predicate.attribute} {value} is above the maximum {predicate.maximum:g}.",
        )
    return CriterionOutcome.MATCHED, f"{predicate.attribute} {value} is within range."


def _check_enum(
    predicate: Predicate, profile: CitizenProfile
) -> Tuple[CriterionOutcome, str]:
    """Attribute value is one of the allowed values (case-insensitive)."""
    if not predicate.attribute or not predicate.values:
        return CriterionOutcome.UNKNOWN, "Enum predicate is incomplete."
    value = profile.attribute(predicate.attribute)
    if value is None:
        return CriterionOutcome.UNKNOWN, f"Profile has no {predicate.attribute}."
    allowed = {_normalize(v) for v in predicate.values}
    if _normalize(value) in allowed:
        return CriterionOutcome.MATCHED, f"{predicate.attribute} is {value}."
    return (
        CriterionOutcome.UNMATCHED,
        f"{predicate.attribute} {value} is not one of {sorted(allowed)}.",
    )


def _check_membership(
    predicate: Predicate, profile: CitizenProfile
) -> Tuple[CriterionOutcome, str]:
    """
    Profile membership flags intersect the required flags.

    An empty membership list cannot prove absence, so it evaluates UNKNOWN.
    """
    if not predicate.values:
        return CriterionOutcome.UNKNOWN, "Membership predicate lists no groups."
    if not profile.memberships:
        return CriterionOutcome.UNKNOWN, "Profile lists no memberships."
    held = {_normalize(m) for m in profile.memberships}
    wanted = {_normalize(v) for v in predicate.values}
    common = held & wanted
    if common:
        return CriterionOutcome.MATCHED, f"Member of {sorted(common)}."
    return CriterionOutcome.UNMATCHED, f"Not a member of {sorted(wanted)}."


def _rule_income_below(
    profile: CitizenProfile, parameters: dict
) -> Tuple[CriterionOutcome, str]:
    """Annual income strictly below `limit`."""
    limit = parameters.get("limit")
    if limit is None:
        return CriterionOutcome.UNKNOWN, "Income rule has no limit."
    if profile.income is None:
        return CriterionOutcome.UNKNOWN, "Profile has no income."
    try:
        limit = float(limit)
    except (TypeError, ValueError):
        return CriterionOutcome.UNKNOWN, "Income rule limit is not numeric."
    if profile.income < limit:
        return CriterionOutcome.MATCHED, f"Income {profile.income:g} is below {limit:g}."
    return CriterionOutcome.UNMATCHED, f"Income {profile.income:g} is not below {limit:g}."


def _rule_senior_citizen(
    profile: CitizenProfile, parameters: dict
) -> Tuple[CriterionOutcome, str]:
    """Age at or above the senior threshold (default 60)."""
    if profile.age is None:
        return CriterionOutcome.UNKNOWN, "Profile has no age."
    try:
        threshold = float(parameters.get("age", 60))
    except (TypeError, ValueError):
        return CriterionOutcome.UNKNOWN, "Senior age threshold is not numeric."
    if profile.age >= threshold:
        return CriterionOutcome.MATCHED, f"Age {profile.age} is {threshold:g} or over."
    return CriterionOutcome.UNMATCHED, f"Age {profile.age} is under {threshold:g}."


class EligibilityEvaluator:
    """
    Pure interpreter for service criteria.

    Custom rules are looked up by name in a registry; callers may register
    their own rules without changing the predicate data.
    """

    def __init__(self):
        self._custom_rules: Dict[str, CustomRule] = {}
        self._register_default_rules()

    def _register_default_rules(self) -> None:
        """Register the built-in custom rules."""
        self._custom_rules["income_below"] = _rule_income_below
        self._custom_rules["senior_citizen"] = _rule_senior_citizen

    def register_custom_rule(self, name: str, rule: CustomRule) -> None:
        """Register a named custom rule."""
        self._custom_rules[name] = rule

    def evaluate_criterion(
        self, criterion: Criterion, profile: CitizenProfile
    ) -> CriterionEvaluation:
        """Evaluate one criterion. Never raises."""
        outcome, reason = self._run_predicate(criterion.predicate, profile)
        return CriterionEvaluation(
            criterion_id=criterion.id,
            type=criterion.type,
            checkable=criterion.checkable,
            outcome=outcome,
            reason=reason,
        )

    def _run_predicate(
        self, predicate: Optional[Predicate], profile: CitizenProfile
    ) -> Tuple[CriterionOutcome, str]:
        if predicate is None:
            return CriterionOutcome.UNKNOWN, "Criterion has no predicate."

        if predicate.kind == PredicateKind.RANGE:
            return _check_range(predicate, profile)
        if predicate.kind == PredicateKind.ENUM:
            return _check_enum(predicate, profile)
        if predicate.kind == PredicateKind.MEMBERSHIP:
            return _check_membership(predicate, profile)

        rule = self._custom_rules.get(predicate.rule or "")
        if rule is None:
            logger.debug("No custom rule registered for %r", predicate.rule)
            return CriterionOutcome.UNKNOWN, f"No rule named '{predicate.rule}'."
        try:
            return rule(profile, predicate.parameters)
        except Exception as exc:
            logger.warning("Custom rule %r failed: %s", predicate.rule, exc)
            return CriterionOutcome.UNKNOWN, f"Rule '{predicate.rule}' could not be evaluated."

    def evaluate(
        self, criteria: List[Criterion], profile: CitizenProfile
    ) -> EligibilityResult:
        """
        Evaluate all criteria and resolve the overall status.

        All criteria are evaluated even after a disqualifier fires, so the
        matched/failed/unknown lists are always complete.
        """
        evaluations = [self.evaluate_criterion(c, profile) for c in criteria]

        matched: List[str] = []
        failed: List[str] = []
        unknown: List[str] = []
        missing: List[str] = []

        for ev in evaluations:
            if ev.outcome == CriterionOutcome.UNKNOWN:
                unknown.append(ev.criterion_id)
                if ev.checkable:
                    missing.append(ev.criterion_id)
            elif ev.type == CriterionType.DISQUALIFYING:
                # A disqualifier that matches is a failure for the citizen
                if ev.outcome == CriterionOutcome.MATCHED:
                    failed.append(ev.criterion_id)
                else:
                    matched.append(ev.criterion_id)
            elif ev.outcome == CriterionOutcome.MATCHED:
                matched.append(ev.criterion_id)
            else:
                failed.append(ev.criterion_id)

        return EligibilityResult(
            status=_resolve_status(evaluations),
            matched=matched,
            failed=failed,
            unknown=unknown,
            missing=missing,
            evaluations=evaluations,
        )


def _resolve_status(evaluations: List[CriterionEvaluation]) -> EligibilityStatus:
    """Apply the status resolution rules in priority order."""
    def any_of(ctype: CriterionType, outcome: CriterionOutcome) -> bool:
        return any(e.type == ctype and e.outcome == outcome for e in evaluations)

    # 1. Disqualifier matched
    if any_of(CriterionType.DISQUALIFYING, CriterionOutcome.MATCHED):
        return EligibilityStatus.INELIGIBLE

    # 2. Required criterion unmatched
    if any_of(CriterionType.REQUIRED, CriterionOutcome.UNMATCHED):
        return EligibilityStatus.INELIGIBLE

    # 3. Not enough information
    for e in evaluations:
        if e.outcome != CriterionOutcome.UNKNOWN:
            continue
        if e.type == CriterionType.REQUIRED:
            return EligibilityStatus.UNKNOWN
        if e.type == CriterionType.PREFERRED and e.checkable:
            return EligibilityStatus.UNKNOWN

    # 4/5. All required matched; preferred decide eligible vs partial
    if any_of(CriterionType.PREFERRED, CriterionOutcome.UNMATCHED):
        return EligibilityStatus.PARTIAL
    return EligibilityStatus.ELIGIBLE
