"""
Lane layout for scheduled tasks.

Overlapping intervals are grouped into clusters; within a cluster each
interval is greedily assigned the first lane that is free by its start.
Every member of a cluster reports the cluster's own lane count, so
unrelated parts of the day keep full width.

Deterministic: input is sorted by (start, end, id) before the sweep.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from dataclasses import dataclass

from myday.runtime.roster_types import RosterState
from myday.runtime.time_range import MINUTES_PER_DAY


@dataclass(frozen=True)
class Interval:
    """A half-open [start_minute, end_minute) span to lay out."""
    id: Hashable
    start_minute: int
    end_minute: int


@dataclass(frozen=True)
class LaneLayout:
    lane_index: int
    lane_count: int


def _sort_key(interval: Interval) -> tuple:
    # Ids of mixed types still compare deterministically
    return (interval.start_minute, interval.end_minute, str(type(interval.id)), interval.id)


def _assign_cluster(cluster: list[Interval], layouts: dict[Hashable, LaneLayout]) -> None:
    lane_ends: list[int] = []
    lane_of: list[tuple[Interval, int]] = []
    for interval in cluster:
        for index, lane_end in enumerate(lane_ends):
            if lane_end <= interval.start_minute:
                lane_ends[index] = interval.end_minute
                lane_of.append((interval, index))
                break
        else:
            lane_ends.append(interval.end_minute)
            lane_of.append((interval, len(lane_ends) - 1))

    lane_count = max(1, len(lane_ends))
    for interval, index in lane_of:
        layouts[interval.id] = LaneLayout(lane_index=index, lane_count=lane_count)


def compute_lanes(intervals: Iterable[Interval]) -> dict[Hashable, LaneLayout]:
    """Map each positive-duration interval id to its lane index and lane count.

    Intervals with ``end_minute <= start_minute`` are ignored.
    """
    ordered = sorted(
        (i for i in intervals if i.end_minute > i.start_minute),
        key=_sort_key,
    )

    layouts: dict[Hashable, LaneLayout] = {}
    cluster: list[Interval] = []
    cluster_end = 0
    for interval in ordered:
        if cluster and interval.start_minute >= cluster_end:
            _assign_cluster(cluster, layouts)
            cluster = []
        if not cluster:
            cluster_end = interval.end_minute
        else:
            cluster_end = max(cluster_end, interval.end_minute)
        cluster.append(interval)

    if cluster:
        _assign_cluster(cluster, layouts)
    return layouts


def intervals_from_roster(state: RosterState) -> list[Interval]:
    """Intervals for every scheduled entry, keyed by task id.

    A schedule that wraps past midnight is drawn up to the end of the day.
    """
    intervals: list[Interval] = []
    for entry in state.tasks:
        if not entry.is_scheduled:
            continue
        start = entry.schedule_start
        end = entry.schedule_end
        if end <= start:
            end = MINUTES_PER_DAY
        intervals.append(Interval(id=entry.task_id, start_minute=start, end_minute=end))
    return intervals
