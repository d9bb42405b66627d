# electzone/ballot.py
# Turns a voter's position -> candidate selections into a vote payload
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from electzone.errors import ValidationError
from electzone.models.vote_model import Selection, VotePayload


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2025-03-01T08:15:30.120Z"""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ballot_positions(candidates: Iterable[Dict[str, Any]]) -> List[str]:
    """Distinct positions on an election's roster, in roster order."""
    positions = []
    for cand in candidates:
        position = cand.get("position")
        if position and position not in positions:
            positions.append(position)
    return positions


def required_position_count(candidates: Iterable[Dict[str, Any]]) -> int:
    return len(ballot_positions(candidates))


def candidates_by_position(candidates: Iterable[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for cand in candidates:
        grouped.setdefault(cand.get("position"), []).append(cand)
    return grouped


def build_vote_payload(
    selections: Dict[str, str],
    election_id: str,
    candidates: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> VotePayload:
    """
    Build the vote payload for one ballot.

    The ballot must cover every position on the roster exactly once, and each
    chosen candidate must be running for the position it was picked for.
    Raises ValidationError otherwise; nothing is written in that case.
    """
    roster = candidates_by_position(candidates)
    required = required_position_count(candidates)

    if required == 0:
        raise ValidationError("This election has no positions on its ballot.")
    if len(selections) != required:
        raise ValidationError(
            f"You must select exactly {required} positions. "
            f"You have selected {len(selections)}."
        )

    for position, candidate_id in selections.items():
        running = roster.get(position)
        if running is None:
            raise ValidationError(f"'{position}' is not a position in this election.")
        if candidate_id not in {str(c.get("id")) for c in running}:
            raise ValidationError(f"Selected candidate is not running for {position}.")

    ordered = tuple(
        Selection(position=position, candidate_id=selections[position])
        for position in sorted(selections)
    )
    return VotePayload(
        election_id=election_id,
        timestamp=utc_timestamp(now),
        selections=ordered,
    )
