"""Knuth-Plass optimal line breaking.

A paragraph is a sequence of boxes, glue and penalties. `find_breaks` picks the
set of breakpoints that minimises total demerits over the whole paragraph,
`find_breaks_tiered` retries with growing tolerance, and `find_breaks_greedy`
is the first-fit fallback for paragraphs that cannot be justified at all.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Optional, Sequence, Union

# Penalty sentinels: breaking is forbidden at INFINITE_PENALTY and mandatory at
# FORCED_BREAK.
INFINITE_PENALTY = 10000.0
FORCED_BREAK = -10000.0

# Badness of a line with no stretch left to fill it (TeX's inf_bad).
INFINITE_BADNESS = 10000.0

# Added to every emergency break so that any feasible solution dominates it.
EMERGENCY_DEMERITS = 1e10

_SHORTFALL_EPSILON = 1e-9


@dataclass(frozen=True)
class Box:
    """Unbreakable glyph cluster."""
    width: float
    word_index: int = -1


@dataclass(frozen=True)
class Glue:
    """Elastic whitespace with natural width, stretchability and shrinkability."""
    width: float
    stretch: float = 0.0
    shrink: float = 0.0


@dataclass(frozen=True)
class Penalty:
    """Optional breakpoint; `width` is only typeset if the break is taken."""
    width: float
    penalty: float
    flagged: bool = False

    @property
    def is_forced(self) -> bool:
        return self.penalty <= FORCED_BREAK


Item = Union[Box, Glue, Penalty]


class FitnessClass(IntEnum):
    TIGHT = 0
    NORMAL = 1
    LOOSE = 2
    VERY_LOOSE = 3


@dataclass(frozen=True)
class Breakpoint:
    """End of one line.

    `item_index` is the exclusive upper bound of the line, i.e. the index of the
    break item plus one. The next line starts there (leading glue suppressed).
    """
    item_index: int
    adjustment_ratio: float
    fitness: FitnessClass
    total_demerits: float


@dataclass
class BreakResult:
    breaks: list[Breakpoint] = field(default_factory=list)
    optimal: bool = True


@dataclass(frozen=True)
class LineBreakConfig:
    tolerance: float = 1.0
    loose_tolerance: float = 4.0
    hyphen_penalty: float = 50.0  # Applied by whoever builds the penalties
    consecutive_hyphen_demerits: float = 3000.0
    fitness_demerits: float = 100.0
    enable_hyphenation: bool = True
    max_letter_spacing_fraction: float = 0.03
    min_letter_spacing_fraction: float = -0.02


@dataclass(eq=False)
class _Node:
    """Candidate breakpoint in the active list.

    The totals are the prefix sums at the first item of the line that starts
    after this break, so the seed node holds zeros.
    """
    item_index: int
    line: int
    fitness: FitnessClass
    total_width: float
    total_stretch: float
    total_shrink: float
    total_demerits: float
    ratio: float
    flagged: bool
    previous: Optional[_Node] = field(default=None, repr=False)


def classify_fitness(ratio: float) -> FitnessClass:
    """Map an adjustment ratio to its fitness class.

    Infinite ratios only reach this from forced breaks on lines without stretch,
    which land in VERY_LOOSE.
    """
    if ratio < -0.5:
        return FitnessClass.TIGHT
    if ratio <= 0.5:
        return FitnessClass.NORMAL
    if ratio <= 1.0:
        return FitnessClass.LOOSE
    return FitnessClass.VERY_LOOSE


def _ratio(width: float, stretch: float, shrink: float, line_width: float) -> float:
    shortfall = line_width - width
    if abs(shortfall) < _SHORTFALL_EPSILON:
        return 0.0
    if shortfall > 0:
        return shortfall / stretch if stretch > 0 else math.inf
    return shortfall / shrink if shrink > 0 else -math.inf


def _badness(ratio: float) -> float:
    if math.isinf(ratio):
        return INFINITE_BADNESS
    return 100.0 * abs(ratio) ** 3


def _line_demerits(ratio: float, penalty: float) -> float:
    badness = _badness(ratio)
    if penalty >= 0:
        return (1.0 + badness + penalty) ** 2
    if penalty > FORCED_BREAK:
        return (1.0 + badness) ** 2 - penalty ** 2
    return (1.0 + badness) ** 2


def _line_width(line_widths: Sequence[float], line: int) -> float:
    return line_widths[min(line, len(line_widths) - 1)]


def _prefix_sums(items: Sequence[Item]) -> tuple[list[float], list[float], list[float]]:
    """Cumulative width/stretch/shrink; index k covers items[0:k]."""
    widths = [0.0]
    stretches = [0.0]
    shrinks = [0.0]
    for item in items:
        width = stretch = shrink = 0.0
        if isinstance(item, Box):
            width = item.width
        elif isinstance(item, Glue):
            width, stretch, shrink = item.width, item.stretch, item.shrink
        widths.append(widths[-1] + width)
        stretches.append(stretches[-1] + stretch)
        shrinks.append(shrinks[-1] + shrink)
    return widths, stretches, shrinks


def _line_start_after(items: Sequence[Item], index: int) -> int:
    """First item of the line following a break at `index`, skipping glue."""
    start = index + 1
    while start < len(items) and isinstance(items[start], Glue):
        start += 1
    return start


def _is_legal_break(item: Item, previous_was_box: bool, config: LineBreakConfig) -> bool:
    if isinstance(item, Glue):
        return previous_was_box
    if isinstance(item, Penalty):
        if item.penalty >= INFINITE_PENALTY:
            return False
        if item.flagged and not item.is_forced and not config.enable_hyphenation:
            return False
        return True
    return False


def find_breaks(items: Sequence[Item], line_widths: Sequence[float],
                config: LineBreakConfig | None = None) -> BreakResult:
    """
    Find the breakpoints minimising total demerits for one paragraph.

    Args:
        items: Box/Glue/Penalty stream, ending with a forced-break penalty
        line_widths: Target width per line; the last entry repeats
        config: Tolerance and demerit weights

    Returns:
        BreakResult whose breaks partition the items into lines. `optimal` is
        False when an emergency break was needed or nothing could be found.
    """
    config = config or LineBreakConfig()
    if not items or not line_widths:
        return BreakResult(breaks=[], optimal=False)

    widths, stretches, shrinks = _prefix_sums(items)
    seed = _Node(item_index=0, line=0, fitness=FitnessClass.NORMAL,
                 total_width=0.0, total_stretch=0.0, total_shrink=0.0,
                 total_demerits=0.0, ratio=0.0, flagged=False)
    active: list[_Node] = [seed]
    optimal = True
    previous_was_box = False

    for i, item in enumerate(items):
        legal = _is_legal_break(item, previous_was_box, config)
        if isinstance(item, Box):
            previous_was_box = True
        elif isinstance(item, Glue):
            previous_was_box = False
        if not legal:
            continue

        is_penalty = isinstance(item, Penalty)
        forced = is_penalty and item.is_forced
        penalty_value = item.penalty if is_penalty else 0.0
        break_width = item.width if is_penalty else 0.0
        flagged = is_penalty and item.flagged

        # Best (demerits, predecessor, ratio) per fitness class
        best: dict[FitnessClass, tuple[float, _Node, float]] = {}
        retired: list[_Node] = []
        retired_ratios: dict[int, float] = {}

        for node in active:
            width = widths[i] - node.total_width + break_width
            stretch = stretches[i] - node.total_stretch
            shrink = shrinks[i] - node.total_shrink
            ratio = _ratio(width, stretch, shrink, _line_width(line_widths, node.line))

            if ratio < -1:
                retired.append(node)
                retired_ratios[id(node)] = ratio
                continue
            if math.isinf(ratio):
                if not forced:
                    continue
            elif abs(ratio) > config.tolerance:
                continue

            fitness = classify_fitness(ratio)
            demerits = _line_demerits(ratio, penalty_value)
            if flagged and node.flagged:
                demerits += config.consecutive_hyphen_demerits
            if abs(fitness - node.fitness) > 1:
                demerits += config.fitness_demerits
            demerits += node.total_demerits

            slot = best.get(fitness)
            if slot is None or demerits < slot[0]:
                best[fitness] = (demerits, node, ratio)

        if forced:
            # No line may run across a forced break
            for node in active:
                if id(node) not in retired_ratios:
                    retired.append(node)
                    retired_ratios[id(node)] = _ratio(
                        widths[i] - node.total_width + break_width,
                        stretches[i] - node.total_stretch,
                        shrinks[i] - node.total_shrink,
                        _line_width(line_widths, node.line),
                    )
            active = []
        elif retired:
            retired_ids = set(retired_ratios)
            active = [node for node in active if id(node) not in retired_ids]

        start = _line_start_after(items, i)
        for fitness in sorted(best):
            demerits, node, ratio = best[fitness]
            active.append(_Node(
                item_index=i + 1,
                line=node.line + 1,
                fitness=fitness,
                total_width=widths[start],
                total_stretch=stretches[start],
                total_shrink=shrinks[start],
                total_demerits=demerits,
                ratio=ratio,
                flagged=flagged,
                previous=node,
            ))

        if not active:
            if not retired:
                return BreakResult(breaks=[], optimal=False)
            # Most recently retired frontier, cheapest first, latest on ties
            predecessor = min(retired, key=lambda n: (n.total_demerits, -n.item_index))
            ratio = retired_ratios[id(predecessor)]
            active.append(_Node(
                item_index=i + 1,
                line=predecessor.line + 1,
                fitness=classify_fitness(ratio),
                total_width=widths[start],
                total_stretch=stretches[start],
                total_shrink=shrinks[start],
                total_demerits=predecessor.total_demerits + EMERGENCY_DEMERITS,
                ratio=ratio,
                flagged=flagged,
                previous=predecessor,
            ))
            optimal = False

    finals = [node for node in active if node is not seed]
    if not finals:
        return BreakResult(breaks=[], optimal=False)
    last = min(finals, key=lambda n: n.total_demerits)
    if last.item_index != len(items):
        # Stream did not end with a forced break; the tail is left unset
        optimal = False

    breaks = []
    node = last
    while node is not None and node is not seed:
        breaks.append(Breakpoint(item_index=node.item_index,
                                 adjustment_ratio=node.ratio,
                                 fitness=node.fitness,
                                 total_demerits=node.total_demerits))
        node = node.previous
    breaks.reverse()
    return BreakResult(breaks=breaks, optimal=optimal)


def find_breaks_tiered(items: Sequence[Item], line_widths: Sequence[float],
                       base_config: LineBreakConfig | None = None) -> BreakResult:
    """Run `find_breaks` with strict, relaxed and loose tolerance in turn.

    The strict and relaxed tiers only count when they are optimal; the loose
    tier accepts any non-empty result. An empty non-optimal result tells the
    caller to fall back to `find_breaks_greedy`.
    """
    base_config = base_config or LineBreakConfig()
    tolerances = (1.0, 2.0, base_config.loose_tolerance)
    for tier, tolerance in enumerate(tolerances, start=1):
        result = find_breaks(items, line_widths, replace(base_config, tolerance=tolerance))
        if not result.breaks:
            continue
        if result.optimal or tier == len(tolerances):
            return result
    return BreakResult(breaks=[], optimal=False)


def _line_metrics(items: Sequence[Item], start: int, end: int) -> tuple[float, float, float]:
    """Natural width, stretch and shrink of the line items[start:end]."""
    while start < end and isinstance(items[start], Glue):
        start += 1
    width = stretch = shrink = 0.0
    for index in range(start, end):
        item = items[index]
        is_last = index == end - 1
        if isinstance(item, Box):
            width += item.width
        elif isinstance(item, Glue):
            if is_last:
                break
            width += item.width
            stretch += item.stretch
            shrink += item.shrink
        elif is_last:
            width += item.width
    return width, stretch, shrink


def compute_adjustment_ratio(items: Sequence[Item], start: int, end: int,
                             line_width: float) -> float:
    """
    Adjustment ratio needed to set items[start:end] at `line_width`.

    Leading glue is suppressed, a trailing glue break is dropped and a trailing
    penalty contributes its width (the hyphen).
    """
    width, stretch, shrink = _line_metrics(items, start, end)
    return _ratio(width, stretch, shrink, line_width)


def find_breaks_greedy(items: Sequence[Item], line_widths: Sequence[float]) -> BreakResult:
    """
    First-fit line breaking.

    Each line takes as much material as fits at natural width. Material that
    cannot fit on an empty line is broken at the first legal breakpoint, giving
    an overfull line. The result is never marked optimal.
    """
    if not items or not line_widths:
        return BreakResult(breaks=[], optimal=False)

    config = LineBreakConfig()
    breaks: list[Breakpoint] = []
    total_demerits = 0.0
    start = 0
    line = 0
    candidate: Optional[int] = None
    previous_was_box = False
    i = 0
    while i < len(items):
        item = items[i]
        legal = _is_legal_break(item, previous_was_box, config)
        if isinstance(item, Box):
            previous_was_box = True
        elif isinstance(item, Glue):
            previous_was_box = False
        if not legal:
            i += 1
            continue

        target = _line_width(line_widths, line)
        natural_width, _, _ = _line_metrics(items, start, i + 1)
        fits = natural_width <= target + _SHORTFALL_EPSILON
        forced = isinstance(item, Penalty) and item.is_forced
        if fits and not forced:
            candidate = i
            i += 1
            continue

        chosen = i if fits or candidate is None else candidate
        ratio = compute_adjustment_ratio(items, start, chosen + 1, target)
        chosen_item = items[chosen]
        penalty = chosen_item.penalty if isinstance(chosen_item, Penalty) else 0.0
        total_demerits += _line_demerits(ratio, penalty)
        breaks.append(Breakpoint(item_index=chosen + 1,
                                 adjustment_ratio=ratio,
                                 fitness=classify_fitness(ratio),
                                 total_demerits=total_demerits))
        start = _line_start_after(items, chosen)
        line += 1
        candidate = None
        if chosen != i:
            # Rescan the material after the earlier break
            i = start
            previous_was_box = False
        else:
            i += 1

    if start < len(items):
        # Trailing material without a forced break
        ratio = compute_adjustment_ratio(items, start, len(items), _line_width(line_widths, line))
        total_demerits += _line_demerits(ratio, 0.0)
        breaks.append(Breakpoint(item_index=len(items),
                                 adjustment_ratio=ratio,
                                 fitness=classify_fitness(ratio),
                                 total_demerits=total_demerits))
    return BreakResult(breaks=breaks, optimal=False)
