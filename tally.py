import re
from collections import defaultdict

LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_points(value) -> int:
    """Leading integer of a submitted point value, like JavaScript's parseInt.

    "3abc" is 3, "1e5" is 1, booleans and anything without leading digits
    count as 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if value is None or isinstance(value, (list, dict)):
        return 0
    m = LEADING_INT.match(str(value))
    return int(m.group(1)) if m else 0


def tally(books: list, votes: dict) -> dict:
    """Sum every voter's allocation into per-title totals.

    Catalogue titles come first, in book order, starting at 0. Titles that
    only appear in votes are appended as they are met.
    """
    points = defaultdict(int)
    for b in books:
        if not isinstance(b, dict):
            continue
        points[b.get("title")] += 0
    for allocation in votes.values():
        if not isinstance(allocation, dict):
            continue
        for title, pts in allocation.items():
            points[title] += parse_points(pts)
    return dict(points)


def ranked(points: dict) -> list:
    # sorted() is stable, so ties keep catalogue order
    return sorted(points.items(), key=lambda kv: kv[1], reverse=True)
