"""Visualization projector for the three-ring journey circle diagram.

Outer ring: problems. Middle ring: the solution of each problem, in the same
slot. Center: number of distinct offers. The renderer draws; this module only
derives the drawing model, and it works on partially filled circles.
"""

from typing import List, Optional

from contracts import JourneySnapshot, RingProjection, RingSegment


def _placeholder_ring(size: int) -> List[RingSegment]:
    return [RingSegment(position=i) for i in range(size)]


def project(snapshot: JourneySnapshot, ring_size: int = 5) -> RingProjection:
    """Derive the ring drawing model from the aggregate.

    Args:
        snapshot: Aggregate contents
        ring_size: Number of slots per ring (the circle's problem count)

    Returns:
        RingProjection with exactly ``ring_size`` segments per ring
    """
    outer = _placeholder_ring(ring_size)
    middle = _placeholder_ring(ring_size)

    solution_ids = set()
    for problem in snapshot.ordered_problems():
        slot = _slot_for(problem.position, outer)
        if slot is None:
            continue

        outer[slot] = RingSegment(
            position=slot,
            entity_id=problem.id,
            title=problem.title,
            is_placeholder=False,
            is_primary=problem.is_primary,
        )

        solution = snapshot.solution_for(problem.id)
        if solution is not None:
            solution_ids.add(solution.id)
            middle[slot] = RingSegment(
                position=slot,
                entity_id=solution.id,
                title=solution.title,
                is_placeholder=False,
            )

    offer_ids = {o.id for o in snapshot.offers if o.solution_id in solution_ids}
    return RingProjection(outer_ring=outer, middle_ring=middle, center_count=len(offer_ids))


def _slot_for(position: Optional[int], ring: List[RingSegment]) -> Optional[int]:
    """Use the problem's own position; fall back to the first free slot."""
    if position is not None and 0 <= position < len(ring) and ring[position].is_placeholder:
        return position
    for slot, segment in enumerate(ring):
        if segment.is_placeholder:
            return slot
    return None
