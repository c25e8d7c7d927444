"""Split a justified line's slack between word spacing and letter spacing."""

import math
from dataclasses import dataclass

from prettyreader.layout.line_breaker import LineBreakConfig

# Fraction of the natural inter-word glue that a full stretch/shrink (|r| = 1) moves
STRETCH_SLACK_FACTOR = 0.5
SHRINK_SLACK_FACTOR = 0.33
WORD_SHARE = 2.0 / 3.0


@dataclass(frozen=True)
class BlendedSpacing:
    extra_word_spacing: float = 0.0
    extra_letter_spacing: float = 0.0


def compute_blended_spacing(adjustment_ratio: float, natural_word_glue_width: float,
                            word_gap_count: int, char_count: int, font_size: float,
                            config: LineBreakConfig | None = None) -> BlendedSpacing:
    """
    Distribute a line's slack over word gaps and letters.

    Two thirds of the slack goes to word spacing and one third to letter
    spacing. Letter spacing is clamped to the configured fraction of the font
    size; whatever the clamp cuts off goes back to the word gaps.

    Args:
        adjustment_ratio: The line's r from the line breaker
        natural_word_glue_width: Natural width of one inter-word glue
        word_gap_count: Number of inter-word gaps on the line
        char_count: Number of characters that receive letter spacing
        font_size: Font size in page units
        config: Supplies the letter spacing limits

    Returns:
        Extra spacing per word gap and per character, in page units
    """
    config = config or LineBreakConfig()
    if (abs(adjustment_ratio) < 1e-10 or word_gap_count <= 0
            or not math.isfinite(adjustment_ratio)):
        return BlendedSpacing()

    factor = STRETCH_SLACK_FACTOR if adjustment_ratio > 0 else SHRINK_SLACK_FACTOR
    slack = adjustment_ratio * factor * natural_word_glue_width * word_gap_count

    word_slack = slack * WORD_SHARE
    letter_slack = slack - word_slack

    letter_spacing = 0.0
    if char_count > 0:
        per_char = letter_slack / char_count
        min_spacing = config.min_letter_spacing_fraction * font_size
        max_spacing = config.max_letter_spacing_fraction * font_size
        letter_spacing = min(max(per_char, min_spacing), max_spacing)
        word_slack += (per_char - letter_spacing) * char_count
    else:
        word_slack += letter_slack

    return BlendedSpacing(extra_word_spacing=word_slack / word_gap_count,
                          extra_letter_spacing=letter_spacing)
