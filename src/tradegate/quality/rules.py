"""Declarative detection rules for generated trade text.

Two families of rules live here:

* the name-shape heuristic used to spot references to players that are
  not part of the trade (phantom references), and
* league-constraint rules that flag text describing league features the
  league does not have.  Each rule is a row in a table mapping a pattern
  to a violation code and severity; adding a rule means adding a row.

Every table is an immutable module constant.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, List, Optional, Pattern, Set, Tuple

from ..context.models import LeagueConfig, TradeDecisionContext
from .models import QualityViolation, Severity

# --------------------------------------------------------------------------
# Phantom references
# --------------------------------------------------------------------------

# Capitalised domain words that form name-shaped phrases ("Super Flex",
# "Trade Value") but never name a player.
COMMON_TERMS: FrozenSet[str] = frozenset(
    {
        "team", "side", "trade", "value", "pick", "round", "draft", "player",
        "dynasty", "fantasy", "football", "league", "roster", "starter",
        "bench", "waiver", "injury", "season", "week", "game", "point",
        "super", "flex", "premium", "standard", "half", "full", "none",
        "low", "moderate", "high", "even", "slight", "edge", "data",
        "missing", "stale", "quality", "gate", "based", "market",
        "age", "prime", "declining", "cliff", "ascending", "unknown",
        "total", "delta", "percent", "ceiling", "floor",
    }
)

NAME_CANDIDATE = re.compile(
    r"(?:^|[,;.\s])([A-Z][a-z]+(?:\s+[A-Z]\.?)?\s+[A-Z][a-z]+(?:\s+(?:Jr|Sr|II|III|IV|V)\.?)?)"
)
_NAME_WORD = re.compile(r"^[A-Z][a-z]+$")
_INITIAL = re.compile(r"^[A-Z]\.?$")
_SUFFIX = re.compile(r"^(?:Jr|Sr|II|III|IV|V)\.?$")


def looks_like_player_name(token: str) -> bool:
    words = token.split()
    if not 2 <= len(words) <= 4:
        return False
    if any(w.lower() in COMMON_TERMS for w in words):
        return False
    return all(_NAME_WORD.match(w) or _INITIAL.match(w) or _SUFFIX.match(w) for w in words)


def extract_player_references(text: str) -> List[str]:
    """Return name-shaped phrases found in ``text``, in order."""
    refs: List[str] = []
    for match in NAME_CANDIDATE.finditer(text):
        candidate = match.group(1).strip()
        if looks_like_player_name(candidate):
            refs.append(candidate)
    return refs


def _name_keys(name: str) -> Iterable[str]:
    lowered = name.lower()
    yield lowered
    words = lowered.split()
    if len(words) >= 2:
        yield words[-1]


def known_asset_names(ctx: TradeDecisionContext) -> Set[str]:
    """Lower-cased full names and last names of every asset and risk marker."""
    names: Set[str] = set()
    for asset in ctx.all_assets:
        names.update(_name_keys(asset.name))
    for marker in ctx.all_risk_markers:
        names.update(_name_keys(marker.player_name))
    return names


def is_known_reference(ref: str, known: Set[str]) -> bool:
    lowered = ref.lower()
    return lowered in known or lowered.split()[-1] in known


# --------------------------------------------------------------------------
# League constraints
# --------------------------------------------------------------------------

_SUPERFLEX = re.compile(r"superflex|super flex|\bsf\b")
_ONE_QB = re.compile(r"\b1qb\b")
_SF_TOKEN = re.compile(r"\bsf\b")
_TE_PREMIUM = re.compile(r"te premium|\btep\b")
_PPR = re.compile(r"ppr")


@dataclass(frozen=True)
class LeagueRule:
    """Flags text matching ``pattern`` when ``applies`` holds for the league.

    ``unless`` suppresses the rule when it also matches the same text.
    ``detail`` is formatted with ``where`` (the offending location) and
    the league's attributes.
    """

    code: str
    severity: Severity
    applies: Callable[[LeagueConfig], bool]
    pattern: Pattern[str]
    detail: str
    adjustment: str
    unless: Optional[Pattern[str]] = None

    def check(self, text: str, league: LeagueConfig, where: str) -> Optional[QualityViolation]:
        if not self.applies(league) or not self.pattern.search(text):
            return None
        if self.unless is not None and self.unless.search(text):
            return None
        return QualityViolation(
            rule=self.code,
            severity=self.severity,
            detail=self.detail.format(where=where, league=league),
            adjustment=self.adjustment,
        )


@dataclass(frozen=True)
class NumericCounterRule:
    """Flags a number quoted next to ``pattern`` that is far from the league's."""

    code: str
    pattern: Pattern[str]
    expected: Callable[[LeagueConfig], int]
    tolerance: int
    detail: str
    adjustment: str
    severity: Severity = "soft"

    def check(self, text: str, league: LeagueConfig, where: str) -> Optional[QualityViolation]:
        match = self.pattern.search(text)
        if not match:
            return None
        mentioned = int(match.group(1))
        actual = self.expected(league)
        if abs(mentioned - actual) <= self.tolerance:
            return None
        return QualityViolation(
            rule=self.code,
            severity=self.severity,
            detail=self.detail.format(where=where, mentioned=mentioned, actual=actual),
            adjustment=self.adjustment,
        )


# Rules run once against the joined reasons text.
REASON_RULES: Tuple[LeagueRule, ...] = (
    LeagueRule(
        code="sf_reference_in_non_sf",
        severity="soft",
        applies=lambda lg: not lg.is_sf,
        pattern=_SUPERFLEX,
        detail="Model references Superflex value in a non-SF league",
        adjustment="Flagged SF-specific reasoning in standard league",
    ),
    LeagueRule(
        code="1qb_reference_in_sf",
        severity="soft",
        applies=lambda lg: lg.is_sf,
        pattern=_ONE_QB,
        unless=_SF_TOKEN,
        detail="Model references 1QB value in a Superflex league",
        adjustment="Flagged 1QB-specific reasoning in SF league",
    ),
    LeagueRule(
        code="tep_reference_in_non_tep",
        severity="soft",
        applies=lambda lg: not lg.is_tep,
        pattern=_TE_PREMIUM,
        detail="Model references TE Premium value in a non-TEP league",
        adjustment="Flagged TEP-specific reasoning in standard league",
    ),
    LeagueRule(
        code="scoring_mismatch",
        severity="soft",
        applies=lambda lg: "ppr" in lg.scoring_type.lower(),
        pattern=re.compile(r"standard scoring"),
        unless=_PPR,
        detail="Model references standard scoring but league is {league.scoring_type}",
        adjustment="Flagged scoring format mismatch",
    ),
    LeagueRule(
        code="taxi_reference_in_no_taxi",
        severity="soft",
        applies=lambda lg: lg.taxi_slots == 0,
        pattern=re.compile(r"taxi squad"),
        detail="Model references taxi squad but league has no taxi slots",
        adjustment="Flagged taxi squad reference in non-taxi league",
    ),
)

# Rules run against each counter on its own.
COUNTER_RULES: Tuple[LeagueRule, ...] = (
    LeagueRule(
        code="counter_sf_in_non_sf",
        severity="soft",
        applies=lambda lg: not lg.is_sf,
        pattern=_SUPERFLEX,
        detail="{where} references Superflex in a non-SF league",
        adjustment="Counter uses wrong league format context",
    ),
    LeagueRule(
        code="counter_1qb_in_sf",
        severity="soft",
        applies=lambda lg: lg.is_sf,
        pattern=_ONE_QB,
        detail="{where} references 1QB in a Superflex league",
        adjustment="Counter uses wrong league format context",
    ),
    LeagueRule(
        code="counter_tep_in_non_tep",
        severity="soft",
        applies=lambda lg: not lg.is_tep,
        pattern=_TE_PREMIUM,
        detail="{where} references TE Premium in a non-TEP league",
        adjustment="Counter uses wrong league format context",
    ),
    LeagueRule(
        code="counter_taxi_in_no_taxi",
        severity="soft",
        applies=lambda lg: lg.taxi_slots == 0,
        pattern=re.compile(r"taxi"),
        detail="{where} references taxi squad but league has 0 taxi slots",
        adjustment="Counter references non-existent roster feature",
    ),
)

COUNTER_NUMERIC_RULES: Tuple[NumericCounterRule, ...] = (
    NumericCounterRule(
        code="counter_roster_size_mismatch",
        pattern=re.compile(r"(\d+)\s*(?:roster|man roster|player roster)"),
        expected=lambda lg: lg.roster_size,
        tolerance=5,
        detail="{where} references {mentioned}-man roster but league has {actual} slots",
        adjustment="Counter assumes wrong roster size",
    ),
    NumericCounterRule(
        code="counter_team_count_mismatch",
        pattern=re.compile(r"(\d+)\s*(?:team|man)\s*league"),
        expected=lambda lg: lg.num_teams,
        tolerance=0,
        detail="{where} references {mentioned}-team league but league has {actual} teams",
        adjustment="Counter assumes wrong league size",
    ),
)


def check_reason_rules(reasons: List[str], league: LeagueConfig) -> List[QualityViolation]:
    text = " ".join(reasons).lower()
    violations: List[QualityViolation] = []
    for rule in REASON_RULES:
        violation = rule.check(text, league, "reasons")
        if violation is not None:
            violations.append(violation)
    return violations


def check_counter_rules(counters: List[str], league: LeagueConfig) -> Tuple[List[QualityViolation], Set[int]]:
    """Apply counter rules; returns violations and the indexes of flagged counters."""
    violations: List[QualityViolation] = []
    flagged: Set[int] = set()
    rules = (*COUNTER_RULES, *COUNTER_NUMERIC_RULES)
    for idx, counter in enumerate(counters):
        text = counter.lower()
        for rule in rules:
            violation = rule.check(text, league, f"counters[{idx}]")
            if violation is not None:
                violations.append(violation)
                flagged.add(idx)
    return violations, flagged
