"""Tests for the Service Matcher."""

from datetime import datetime

from discovery_kernel.errors import DEGRADED_SCORE, ScoreUnavailable
from discovery_kernel.matching.matcher import ServiceMatcher
from discovery_kernel.models.config import DiscoveryConfig
from discovery_kernel.models.match import EligibilityStatus, NoMatchReason
from discovery_kernel.models.profile import CitizenProfile
from discovery_kernel.models.query import Entity, Intent, ParsedQuery
from discovery_kernel.models.service import (
    Criterion,
    CriterionType,
    Predicate,
    PredicateKind,
    ServiceCategory,
    ServiceRecord,
)
from discovery_kernel.ranking.ranker import RelevanceRanker


class _TableScorer:
    """Semantic score looked up by service description, 0 otherwise."""

    def __init__(self, table=None):
        self.table = table or {}

    def score(self, service_description: str, query_text: str) -> float:
        return self.table.get(service_description, 0.0)


class _BrokenScorer:
    def score(self, service_description: str, query_text: str) -> float:
        raise ScoreUnavailable("down")


def _age_between(minimum, maximum, ctype=CriterionType.REQUIRED, criterion_id=None):
    return Criterion(
        id=criterion_id or f"age_{minimum}_{maximum}",
        description=f"Aged {minimum}-{maximum}",
        type=ctype,
        predicate=Predicate(
            kind=PredicateKind.RANGE, attribute="age", minimum=minimum, maximum=maximum
        ),
    )


def _make_service(
    service_id: str,
    category: ServiceCategory = ServiceCategory.HEALTHCARE,
    regions=None,
    criteria=None,
    keywords=None,
    popularity: float = 0.5,
    inclusive: bool = False,
    pathway: bool = False,
    description: str = "",
) -> ServiceRecord:
    return ServiceRecord(
        id=service_id,
        name=service_id.replace("_", " ").title(),
        category=category,
        description=description or service_id,
        regions=regions or ["national"],
        criteria=criteria or [],
        keywords=keywords or [],
        popularity=popularity,
        inclusive_access=inclusive,
        alternative_pathway=pathway,
        last_updated=datetime(2026, 1, 1),
        official_source=f"https://services.gov.example/{service_id}",
    )


def _make_query(
    category: ServiceCategory = ServiceCategory.HEALTHCARE,
    text: str = "",
    entities=None,
) -> ParsedQuery:
    return ParsedQuery(
        text=text,
        intent=Intent(category=category, confidence=0.9),
        entities=entities or [],
    )


def _make_matcher(scorer=None, **config) -> ServiceMatcher:
    cfg = DiscoveryConfig(**config)
    ranker = RelevanceRanker(scorer or _TableScorer(), weights=cfg.ranking_weights)
    return ServiceMatcher(ranker=ranker, config=cfg)


PROFILE = CitizenProfile(age=45, region="TN")


class TestRegionalFilter:
    def setup_method(self):
        self.matcher = _make_matcher()

    def test_only_national_or_home_region(self):
        catalog = [
            _make_service("tn_clinic", regions=["TN"]),
            _make_service("kl_clinic", regions=["KL"]),
            _make_service("national_clinic"),
        ]
        result = self.matcher.find_services(_make_query(), PROFILE, catalog)
        ids = {m.service.id for m in result.all_services()}
        assert ids == {"tn_clinic", "national_clinic"}

    def test_region_named_in_query_does_not_widen_filter(self):
        catalog = [
            _make_service("kl_only", regions=["Kerala"]),
            _make_service("tn_only", regions=["TN"]),
        ]
        parsed = _make_query(entities=[Entity(type="region", value="Kerala")])
        result = self.matcher.find_services(parsed, PROFILE, catalog)
        ids = [m.service.id for m in result.all_services()]
        assert ids == ["tn_only"]

    def test_region_spelled_out_in_query_keeps_home_services(self):
        catalog = [
            _make_service("kl_only", regions=["Kerala"]),
            _make_service("tn_only", regions=["TN"]),
        ]
        parsed = _make_query(entities=[Entity(type="region", value="Tamil Nadu")])
        result = self.matcher.find_services(parsed, PROFILE, catalog)
        assert [m.service.id for m in result.matches] == ["tn_only"]
        assert result.no_match_reason is None

    def test_profile_without_region_sees_national_only(self):
        catalog = [
            _make_service("tn_clinic", regions=["TN"]),
            _make_service("national_clinic"),
        ]
        result = self.matcher.find_services(_make_query(), CitizenProfile(age=45), catalog)
        assert [m.service.id for m in result.matches] == ["national_clinic"]

    def test_no_services_in_region(self):
        catalog = [_make_service("kl_clinic", regions=["KL"])]
        result = self.matcher.find_services(_make_query(), PROFILE, catalog)
        assert result.is_empty
        assert result.no_match_reason == NoMatchReason.NO_SERVICES_IN_REGION


class TestEligibilityFiltering:
    def setup_method(self):
        self.matcher = _make_matcher()

    def test_ineligible_never_in_primary(self):
        catalog = [
            _make_service("seniors_only", criteria=[_age_between(60, 130)]),
            _make_service("open_clinic"),
        ]
        result = self.matcher.find_services(_make_query(), PROFILE, catalog)
        assert [m.service.id for m in result.matches] == ["open_clinic"]
        assert result.alternatives == []
        for match in result.matches:
            assert match.eligibility_status != EligibilityStatus.INELIGIBLE

    def test_all_ineligible_returns_alternatives_with_status(self):
        catalog = [
            _make_service("seniors_only", criteria=[_age_between(60, 130)]),
            _make_service("children_only", criteria=[_age_between(0, 18)]),
            _make_service("school_fees", category=ServiceCategory.EDUCATION),
        ]
        result = self.matcher.find_services(_make_query(), PROFILE, catalog)
        assert result.matches == []
        assert result.used_alternatives
        assert {m.service.id for m in result.alternatives} == {"seniors_only", "children_only"}
        for alt in result.alternatives:
            assert alt.is_alternative
            assert alt.eligibility_status == EligibilityStatus.INELIGIBLE
            assert alt.service.category == ServiceCategory.HEALTHCARE
        assert result.no_match_reason is None

    def test_alternatives_are_capped(self):
        catalog = [
            _make_service(f"seniors_{i}", criteria=[_age_between(60, 130)]) for i in range(5)
        ]
        matcher = _make_matcher(max_alternatives=2)
        result = matcher.find_services(_make_query(), PROFILE, catalog)
        assert len(result.alternatives) == 2

    def test_get_alternatives(self):
        catalog = [
            _make_service("open_clinic"),
            _make_service("seniors_only", criteria=[_age_between(60, 130)]),
            _make_service("school_fees", category=ServiceCategory.EDUCATION),
        ]
        alternatives = self.matcher.get_alternatives(
            _make_query(), PROFILE, catalog, exclude_ids=["open_clinic"]
        )
        assert [m.service.id for m in alternatives] == ["seniors_only"]
        assert alternatives[0].eligibility_status == EligibilityStatus.INELIGIBLE
        assert alternatives[0].is_alternative


class TestRelevanceFloor:
    def test_below_floor_dropped(self):
        matcher = _make_matcher()
        catalog = [
            _make_service("clinic"),
            _make_service("school_fees", category=ServiceCategory.EDUCATION),
        ]
        result = matcher.find_services(_make_query(), PROFILE, catalog)
        assert [m.service.id for m in result.matches] == ["clinic"]
        for match in result.matches:
            assert match.relevance_score >= 0.1

    def test_weak_qualifying_service_kept_when_nothing_clears_floor(self):
        matcher = _make_matcher(relevance_floor=0.5)
        catalog = [
            _make_service("clinic"),
            _make_service("school_fees", category=ServiceCategory.EDUCATION),
        ]
        result = matcher.find_services(_make_query(), PROFILE, catalog)
        assert [m.service.id for m in result.matches] == ["clinic"]
        assert result.matches[0].relevance_score < 0.5

    def test_weak_service_dropped_when_a_strong_one_exists(self):
        matcher = _make_matcher(relevance_floor=0.5)
        catalog = [
            _make_service("diabetes_clinic", keywords=["diabetes"]),
            _make_service("general_clinic"),
        ]
        result = matcher.find_services(_make_query(text="diabetes"), PROFILE, catalog)
        assert [m.service.id for m in result.matches] == ["diabetes_clinic"]

    def test_no_relevant_services(self):
        matcher = _make_matcher()
        catalog = [_make_service("school_fees", category=ServiceCategory.EDUCATION)]
        result = matcher.find_services(_make_query(text="diabetes"), PROFILE, catalog)
        assert result.is_empty
        assert result.no_match_reason == NoMatchReason.NO_RELEVANT_SERVICES

    def test_no_alternatives(self):
        matcher = _make_matcher()
        catalog = [
            _make_service(
                "diabetes_education",
                category=ServiceCategory.EDUCATION,
                keywords=["diabetes"],
                criteria=[_age_between(60, 130)],
            )
        ]
        result = matcher.find_services(_make_query(text="diabetes"), PROFILE, catalog)
        assert result.is_empty
        assert result.no_match_reason == NoMatchReason.NO_ALTERNATIVES


class TestOrdering:
    def test_eligibility_rank_beats_relevance(self):
        matcher = _make_matcher()
        partial = _make_service(
            "partial_clinic",
            keywords=["diabetes"],
            criteria=[
                _age_between(18, 60),
                Criterion(
                    id="veterans",
                    description="Veterans preferred",
                    type=CriterionType.PREFERRED,
                    predicate=Predicate(kind=PredicateKind.MEMBERSHIP, values=["veteran"]),
                ),
            ],
        )
        unknown = _make_service(
            "unknown_clinic",
            keywords=["diabetes", "insulin"],
            criteria=[
                Criterion(
                    id="low_income",
                    description="Income below 1 lakh",
                    type=CriterionType.REQUIRED,
                    predicate=Predicate(
                        kind=PredicateKind.CUSTOM,
                        rule="income_below",
                        parameters={"limit": 100000},
                    ),
                )
            ],
        )
        eligible = _make_service("eligible_clinic")
        profile = CitizenProfile(age=45, region="TN", memberships=["bpl"])

        result = matcher.find_services(
            _make_query(text="diabetes insulin"), profile, [unknown, partial, eligible]
        )
        assert [m.service.id for m in result.matches] == [
            "eligible_clinic", "partial_clinic", "unknown_clinic",
        ]
        assert [m.eligibility_status for m in result.matches] == [
            EligibilityStatus.ELIGIBLE, EligibilityStatus.PARTIAL, EligibilityStatus.UNKNOWN,
        ]
        assert result.matches[2].missing_criteria == ["low_income"]

    def test_relevance_within_status(self):
        matcher = _make_matcher()
        catalog = [
            _make_service("popular_clinic", popularity=0.9),
            _make_service("diabetes_clinic", keywords=["diabetes", "insulin"], popularity=0.1),
        ]
        result = matcher.find_services(_make_query(text="diabetes insulin"), PROFILE, catalog)
        assert [m.service.id for m in result.matches] == ["diabetes_clinic", "popular_clinic"]

    def test_inclusive_access_leads_within_epsilon(self):
        matcher = _make_matcher(_TableScorer({"alpha": 0.2}))
        catalog = [
            _make_service("mainstream", description="alpha"),
            _make_service("community", description="beta", inclusive=True),
        ]
        result = matcher.find_services(_make_query(), PROFILE, catalog)
        assert [m.service.id for m in result.matches] == ["community", "mainstream"]
        assert result.matches[0].relevance_score < result.matches[1].relevance_score

    def test_inclusive_access_does_not_jump_past_epsilon(self):
        matcher = _make_matcher(_TableScorer({"alpha": 0.5}))
        catalog = [
            _make_service("mainstream", description="alpha"),
            _make_service("community", description="beta", inclusive=True),
        ]
        result = matcher.find_services(_make_query(), PROFILE, catalog)
        assert [m.service.id for m in result.matches] == ["mainstream", "community"]

    def test_popularity_breaks_ties(self):
        matcher = _make_matcher()
        catalog = [
            _make_service("a_clinic", popularity=0.1),
            _make_service("b_clinic", popularity=0.9),
        ]
        result = matcher.find_services(_make_query(), PROFILE, catalog)
        assert [m.service.id for m in result.matches] == ["b_clinic", "a_clinic"]

    def test_service_id_breaks_remaining_ties(self):
        matcher = _make_matcher()
        catalog = [_make_service("b_clinic"), _make_service("a_clinic")]
        result = matcher.find_services(_make_query(), PROFILE, catalog)
        assert [m.service.id for m in result.matches] == ["a_clinic", "b_clinic"]

    def test_max_results(self):
        matcher = _make_matcher(max_results=2)
        catalog = [_make_service(f"clinic_{i}") for i in range(5)]
        result = matcher.find_services(_make_query(), PROFILE, catalog)
        assert len(result.matches) == 2

    def test_identical_inputs_identical_output(self):
        matcher = ServiceMatcher()
        catalog = [
            _make_service("tn_diabetes", regions=["TN"], keywords=["diabetes"],
                          description="Diabetes screening and treatment"),
            _make_service("national_clinic", description="General outpatient care"),
            _make_service("seniors_only", criteria=[_age_between(60, 130)]),
        ]
        parsed = _make_query(text="diabetes treatment help")
        first = matcher.find_services(parsed, PROFILE, catalog)
        second = matcher.find_services(parsed, PROFILE, list(reversed(catalog)))
        assert first.matches == second.matches
        assert first.alternatives == second.alternatives


class TestEducationPathway:
    def _catalog(self, pathway_criteria=None):
        return [
            _make_service(f"scholarship_{i}", category=ServiceCategory.EDUCATION,
                          keywords=["scholarship"])
            for i in range(3)
        ] + [
            _make_service("iti_training", category=ServiceCategory.EDUCATION,
                          pathway=True, criteria=pathway_criteria),
        ]

    def test_pathway_surfaced_in_matches(self):
        matcher = _make_matcher(max_results=2)
        parsed = _make_query(category=ServiceCategory.EDUCATION, text="scholarship")
        result = matcher.find_services(parsed, PROFILE, self._catalog())
        ids = [m.service.id for m in result.matches]
        assert len(ids) == 2
        assert ids == ["scholarship_0", "iti_training"]

    def test_ineligible_pathway_surfaced_as_alternative(self):
        matcher = _make_matcher(max_results=2)
        parsed = _make_query(category=ServiceCategory.EDUCATION, text="scholarship")
        result = matcher.find_services(
            parsed, PROFILE, self._catalog(pathway_criteria=[_age_between(14, 25)])
        )
        assert [m.service.id for m in result.matches] == ["scholarship_0", "scholarship_1"]
        assert [m.service.id for m in result.alternatives] == ["iti_training"]
        assert result.alternatives[0].is_alternative
        assert result.alternatives[0].eligibility_status == EligibilityStatus.INELIGIBLE

    def test_no_pathway_for_other_categories(self):
        matcher = _make_matcher()
        catalog = [
            _make_service("clinic"),
            _make_service("iti_training", category=ServiceCategory.EDUCATION, pathway=True),
        ]
        result = matcher.find_services(_make_query(), PROFILE, catalog)
        assert "iti_training" not in {m.service.id for m in result.all_services()}


class TestDegradation:
    def test_score_unavailable_is_reported(self):
        matcher = _make_matcher(_BrokenScorer())
        result = matcher.find_services(_make_query(), PROFILE, [_make_service("clinic")])
        assert result.degradations == [DEGRADED_SCORE]
        assert [m.service.id for m in result.matches] == ["clinic"]
        assert not result.matches[0].explanation.semantic_available
