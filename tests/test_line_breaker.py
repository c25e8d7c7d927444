import itertools
import math

import pytest

from prettyreader.layout.line_breaker import (
    EMERGENCY_DEMERITS,
    FORCED_BREAK,
    INFINITE_BADNESS,
    Box,
    FitnessClass,
    Glue,
    LineBreakConfig,
    Penalty,
    classify_fitness,
    compute_adjustment_ratio,
    find_breaks,
    find_breaks_greedy,
    find_breaks_tiered,
)


def paragraph(word_widths, glue=(10, 10, 5), finishing_stretch=1000):
    """Words separated by glue, closed by finishing glue and a forced break."""
    items = []
    for index, width in enumerate(word_widths):
        if index:
            items.append(Glue(*glue))
        items.append(Box(width, index))
    items.append(Glue(0, finishing_stretch, 0))
    items.append(Penalty(0, FORCED_BREAK))
    return items


def assert_covers(items, result):
    previous = 0
    for bp in result.breaks:
        assert bp.item_index > previous
        previous = bp.item_index
    assert previous == len(items)


def test_empty_items_returns_non_optimal_empty():
    result = find_breaks([], [100])

    assert result.breaks == []
    assert result.optimal is False


def test_empty_line_widths_returns_non_optimal_empty():
    result = find_breaks([Box(10), Penalty(0, FORCED_BREAK)], [])

    assert result.breaks == []
    assert result.optimal is False


def test_single_word_takes_forced_break():
    items = [Box(100), Penalty(0, FORCED_BREAK)]

    result = find_breaks(items, [200])

    assert len(result.breaks) == 1
    assert result.breaks[0].item_index == 2
    assert result.breaks[0].adjustment_ratio == math.inf
    assert result.breaks[0].fitness == FitnessClass.VERY_LOOSE
    assert result.optimal is True


def test_two_words_fit_exactly_on_one_line():
    items = [Box(80), Glue(20, 10, 5), Box(80), Penalty(0, FORCED_BREAK)]

    result = find_breaks(items, [180])

    assert result.optimal is True
    assert [bp.item_index for bp in result.breaks] == [4]
    assert result.breaks[0].adjustment_ratio == 0
    assert result.breaks[0].fitness == FitnessClass.NORMAL
    assert result.breaks[0].total_demerits == pytest.approx(1.0)


def test_lines_of_exact_width():
    items = paragraph([40, 40, 40, 40, 40, 40])

    result = find_breaks(items, [90])

    assert result.optimal is True
    assert [bp.item_index for bp in result.breaks] == [4, 8, 13]
    assert all(bp.fitness == FitnessClass.NORMAL for bp in result.breaks)
    assert result.breaks[-1].total_demerits == pytest.approx(3.0)
    assert_covers(items, result)


def _hyphenated(second_flagged):
    return [
        Box(90), Penalty(10, 50, True),
        Box(90), Penalty(10, 50, second_flagged),
        Box(100), Penalty(0, FORCED_BREAK),
    ]


def test_consecutive_flagged_breaks_add_demerits_once():
    config = LineBreakConfig()

    plain = find_breaks(_hyphenated(False), [100], config)
    doubled = find_breaks(_hyphenated(True), [100], config)

    assert [bp.item_index for bp in plain.breaks] == [2, 4, 6]
    assert [bp.item_index for bp in doubled.breaks] == [2, 4, 6]
    extra = doubled.breaks[-1].total_demerits - plain.breaks[-1].total_demerits
    assert extra == pytest.approx(config.consecutive_hyphen_demerits)
    second_line_extra = (doubled.breaks[1].total_demerits - doubled.breaks[0].total_demerits) - (
        plain.breaks[1].total_demerits - plain.breaks[0].total_demerits)
    assert second_line_extra == pytest.approx(config.consecutive_hyphen_demerits)


def test_tiered_escalates_to_relaxed_tolerance():
    items = [Box(50), Glue(10, 10, 0), Box(50), Penalty(0, FORCED_BREAK)]

    strict = find_breaks(items, [125], LineBreakConfig(tolerance=1.0))
    tiered = find_breaks_tiered(items, [125])
    relaxed = find_breaks(items, [125], LineBreakConfig(tolerance=2.0))

    assert strict.optimal is False
    assert tiered.optimal is True
    assert len(tiered.breaks) == 1
    assert tiered == relaxed
    assert tiered.breaks[0].adjustment_ratio == pytest.approx(1.5)


def test_emergency_break_for_word_wider_than_line():
    items = [Box(300), Glue(10, 5, 3), Box(50), Glue(0, 1000, 0), Penalty(0, FORCED_BREAK)]

    result = find_breaks(items, [200])

    assert result.optimal is False
    assert [bp.item_index for bp in result.breaks] == [2, 5]
    assert result.breaks[0].adjustment_ratio < -1
    assert result.breaks[0].fitness == FitnessClass.TIGHT
    assert result.breaks[0].total_demerits >= EMERGENCY_DEMERITS
    assert_covers(items, result)


def test_tiered_accepts_non_optimal_loose_tier():
    items = [Box(300), Glue(10, 5, 3), Box(50), Glue(0, 1000, 0), Penalty(0, FORCED_BREAK)]

    result = find_breaks_tiered(items, [200])

    assert result.optimal is False
    assert [bp.item_index for bp in result.breaks] == [2, 5]


def test_tiered_gives_up_on_empty_input():
    result = find_breaks_tiered([], [100])

    assert result.breaks == []
    assert result.optimal is False


def test_forced_break_is_never_spanned():
    items = [Box(40), Penalty(0, FORCED_BREAK), Box(40), Glue(0, 1000, 0), Penalty(0, FORCED_BREAK)]

    result = find_breaks(items, [100])

    assert result.optimal is True
    assert [bp.item_index for bp in result.breaks] == [2, 5]


def test_disabled_hyphenation_ignores_flagged_penalties():
    items = [Box(50), Penalty(5, 50, True), Box(50), Glue(0, 1000, 0), Penalty(0, FORCED_BREAK)]

    hyphenated = find_breaks(items, [55])
    unhyphenated = find_breaks(items, [55], LineBreakConfig(enable_hyphenation=False))

    assert hyphenated.optimal is True
    assert [bp.item_index for bp in hyphenated.breaks] == [2, 5]
    assert hyphenated.breaks[0].total_demerits == pytest.approx(51 ** 2)
    assert unhyphenated.optimal is False


def test_forbidden_penalty_is_not_a_breakpoint():
    items = [Box(50), Penalty(0, 10000), Box(50), Glue(0, 1000, 0), Penalty(0, FORCED_BREAK)]

    result = find_breaks(items, [50])

    assert result.optimal is False


def test_ratios_respect_tolerance():
    items = paragraph([20] * 8)
    config = LineBreakConfig(tolerance=1.0)

    result = find_breaks(items, [100], config)

    assert result.optimal is True
    for bp in result.breaks:
        assert bp.adjustment_ratio >= -1
        assert abs(bp.adjustment_ratio) <= config.tolerance
    assert_covers(items, result)


def _brute_force_demerits(items, width, config):
    """Cheapest legal partition found by trying every subset of glue breaks."""
    glue_breaks = [i for i, item in enumerate(items)
                   if isinstance(item, Glue) and i > 0 and isinstance(items[i - 1], Box)]
    final = len(items) - 1
    best = math.inf
    for size in range(len(glue_breaks) + 1):
        for chosen in itertools.combinations(glue_breaks, size):
            start, total, fitness = 0, 0.0, FitnessClass.NORMAL
            for index in list(chosen) + [final]:
                forced = index == final
                ratio = compute_adjustment_ratio(items, start, index + 1, width)
                if ratio < -1 or (math.isinf(ratio) and not forced):
                    break
                if not math.isinf(ratio) and abs(ratio) > config.tolerance:
                    break
                badness = INFINITE_BADNESS if math.isinf(ratio) else 100 * abs(ratio) ** 3
                line_fitness = classify_fitness(ratio)
                total += (1 + badness) ** 2
                if abs(line_fitness - fitness) > 1:
                    total += config.fitness_demerits
                fitness = line_fitness
                start = index + 1
            else:
                best = min(best, total)
    return best


def test_total_fit_matches_exhaustive_search():
    items = paragraph([20] * 8)
    config = LineBreakConfig(tolerance=1.0)

    result = find_breaks(items, [100], config)

    expected = _brute_force_demerits(items, 100, config)
    assert math.isfinite(expected)
    assert result.breaks[-1].total_demerits == pytest.approx(expected)


def test_find_breaks_is_deterministic():
    items = paragraph([35, 45, 40, 40, 30, 20, 30, 50])

    assert find_breaks(items, [100, 120]) == find_breaks(items, [100, 120])


def test_line_widths_last_entry_repeats():
    items = paragraph([40] * 6)

    result = find_breaks(items, [90])
    repeated = find_breaks(items, [90, 90, 90, 90])

    assert result == repeated


@pytest.mark.parametrize("ratio, expected", [
    (-0.8, FitnessClass.TIGHT),
    (-0.5, FitnessClass.NORMAL),
    (0.5, FitnessClass.NORMAL),
    (0.7, FitnessClass.LOOSE),
    (1.0, FitnessClass.LOOSE),
    (1.5, FitnessClass.VERY_LOOSE),
    (math.inf, FitnessClass.VERY_LOOSE),
])
def test_classify_fitness(ratio, expected):
    assert classify_fitness(ratio) == expected


def test_compute_adjustment_ratio_skips_leading_and_trailing_glue():
    items = [Glue(10, 5, 2), Box(40), Glue(10, 10, 5), Box(40), Glue(10, 10, 5)]

    assert compute_adjustment_ratio(items, 0, 5, 100) == pytest.approx(1.0)


def test_compute_adjustment_ratio_counts_hyphen_width():
    items = [Box(40), Glue(10, 10, 5), Box(40), Penalty(10, 50, True)]

    assert compute_adjustment_ratio(items, 0, 4, 100) == 0.0
    assert compute_adjustment_ratio(items, 0, 4, 90) == pytest.approx(-2.0)


def test_compute_adjustment_ratio_without_elasticity():
    items = [Box(40), Penalty(0, FORCED_BREAK)]

    assert compute_adjustment_ratio(items, 0, 2, 100) == math.inf
    assert compute_adjustment_ratio(items, 0, 2, 20) == -math.inf


def test_greedy_fills_lines_at_natural_width():
    items = paragraph([20] * 8)

    result = find_breaks_greedy(items, [100])

    assert result.optimal is False
    assert [bp.item_index for bp in result.breaks] == [6, 12, 17]
    assert result.breaks[0].adjustment_ratio == pytest.approx(1.0)
    assert_covers(items, result)


def test_greedy_breaks_overfull_word():
    items = [Box(150), Glue(10, 5, 3), Box(20), Glue(0, 1000, 0), Penalty(0, FORCED_BREAK)]

    result = find_breaks_greedy(items, [100])

    assert [bp.item_index for bp in result.breaks] == [2, 5]
    assert result.breaks[0].adjustment_ratio == -math.inf


def test_greedy_empty_input():
    assert find_breaks_greedy([], [100]).breaks == []
