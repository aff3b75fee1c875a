from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime

from odds_engine.analytics.consensus import ConsensusSnapshot
from odds_engine.analytics.market import MarketKey
from odds_engine.utils.odds_math import edge_percent

CONFIDENCE_FLOOR = 70.0
CONFIDENCE_CAP = 95.0
DEFAULT_TOP_N = 20
DEFAULT_EDGE_RATIONALE = "Strong value based on consensus."


@dataclass(frozen=True, slots=True)
class EdgePick:
    key: MarketKey
    best_book: str
    best_decimal_odds: float
    consensus_prob: float
    consensus_decimal_odds: float
    edge_percent: float
    edge_prob: float
    edge_bps: int
    confidence: float
    book_count: int
    low_confidence: bool
    computed_at: datetime
    rationale: str | None = None

    def with_rationale(self, rationale: str) -> EdgePick:
        return replace(self, rationale=rationale)


def confidence_score(edge_pct: float) -> float:
    """Displayed confidence: 70 plus the edge, capped at 95."""
    return round(min(CONFIDENCE_CAP, max(CONFIDENCE_FLOOR, CONFIDENCE_FLOOR + edge_pct)), 2)


def detect_edge(snapshot: ConsensusSnapshot) -> EdgePick | None:
    edge_pct = edge_percent(snapshot.best_decimal_odds, snapshot.consensus_decimal_odds)
    if edge_pct <= 0:
        return None
    return EdgePick(
        key=snapshot.key,
        best_book=snapshot.best_book,
        best_decimal_odds=snapshot.best_decimal_odds,
        consensus_prob=snapshot.consensus_prob,
        consensus_decimal_odds=snapshot.consensus_decimal_odds,
        edge_percent=edge_pct,
        edge_prob=snapshot.consensus_prob - (1 / snapshot.best_decimal_odds),
        edge_bps=int(round(edge_pct * 100)),
        confidence=confidence_score(edge_pct),
        book_count=snapshot.book_count,
        low_confidence=snapshot.low_confidence,
        computed_at=snapshot.computed_at,
    )


def rank_edges(snapshots: list[ConsensusSnapshot], top_n: int = DEFAULT_TOP_N) -> list[EdgePick]:
    picks = [pick for pick in (detect_edge(s) for s in snapshots) if pick is not None]
    picks.sort(key=lambda p: (-p.edge_percent, -p.book_count, p.key.as_string()))
    return picks[: max(0, top_n)]


def edge_summary(pick: EdgePick) -> dict:
    """Compact description handed to the rationale generator."""
    return {
        "segment": "value_hunter",
        "market": pick.key.market,
        "selection": pick.key.selection,
        "player": pick.key.player,
        "line": pick.key.line,
        "matchup": f"{pick.key.team1} vs {pick.key.team2}",
        "best_book": pick.best_book,
        "best_odds": round(pick.best_decimal_odds, 2),
        "consensus_odds": round(pick.consensus_decimal_odds, 2),
        "edge_percent": round(pick.edge_percent, 2),
        "book_count": pick.book_count,
    }


def edge_pick_to_dict(pick: EdgePick) -> dict:
    payload = asdict(pick)
    payload["computed_at"] = pick.computed_at.isoformat()
    return payload


def edge_pick_from_dict(payload: dict) -> EdgePick:
    return EdgePick(
        **{
            **payload,
            "key": MarketKey(**payload["key"]),
            "computed_at": datetime.fromisoformat(payload["computed_at"]),
        }
    )
