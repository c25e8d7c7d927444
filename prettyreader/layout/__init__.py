"""Paragraph line breaking."""

from .line_breaker import (Box, Breakpoint, BreakResult, FitnessClass, Glue, LineBreakConfig,
                           Penalty, classify_fitness, compute_adjustment_ratio, find_breaks,
                           find_breaks_greedy, find_breaks_tiered)
from .blended_spacing import BlendedSpacing, compute_blended_spacing

__all__ = ['Box', 'Glue', 'Penalty', 'FitnessClass', 'Breakpoint', 'BreakResult',
           'LineBreakConfig', 'find_breaks', 'find_breaks_tiered', 'find_breaks_greedy',
           'compute_adjustment_ratio', 'classify_fitness', 'BlendedSpacing',
           'compute_blended_spacing']
