from PySide6.QtCore import QSettings, Signal

from prettyreader.layout.line_breaker import LineBreakConfig

# Defaults for settings that are accessed from multiple places.
DEFAULT_SETTINGS = {
    # Render cache
    'render_cache_memory_limit_mb': 100,
    'render_preload_radius': 2,  # Pages to pre-render on each side of the current page
    'render_trace_logs': False,  # Timestamped worker/cache flow logs on stdout
    # Line breaking
    'line_break_tolerance': 1.0,
    'line_break_loose_tolerance': 4.0,
    'hyphen_penalty': 50.0,
    'consecutive_hyphen_demerits': 3000.0,
    'fitness_demerits': 100.0,
    'enable_hyphenation': True,
    'max_letter_spacing_fraction': 0.03,
    'min_letter_spacing_fraction': -0.02,
}


class Settings(QSettings):
    # Signal that shows that the setting with the given string was changes
    change = Signal(str, object, name='settingsChanged')

    def __init__(self):
        super().__init__('prettyreader', 'prettyreader')

    def setValue(self, key, value):
        super().setValue(key, value)
        self.change.emit(key, value)

# Common shared instance to ensure the Signal is also shared
settings = Settings()


def _float_setting(key: str) -> float:
    return settings.value(key, defaultValue=DEFAULT_SETTINGS[key], type=float)


def get_line_break_config() -> LineBreakConfig:
    return LineBreakConfig(
        tolerance=_float_setting('line_break_tolerance'),
        loose_tolerance=_float_setting('line_break_loose_tolerance'),
        hyphen_penalty=_float_setting('hyphen_penalty'),
        consecutive_hyphen_demerits=_float_setting('consecutive_hyphen_demerits'),
        fitness_demerits=_float_setting('fitness_demerits'),
        enable_hyphenation=settings.value(
            'enable_hyphenation', defaultValue=DEFAULT_SETTINGS['enable_hyphenation'],
            type=bool),
        max_letter_spacing_fraction=_float_setting('max_letter_spacing_fraction'),
        min_letter_spacing_fraction=_float_setting('min_letter_spacing_fraction'),
    )


def get_render_cache_memory_limit() -> int:
    """Render cache budget in bytes."""
    megabytes = settings.value(
        'render_cache_memory_limit_mb',
        defaultValue=DEFAULT_SETTINGS['render_cache_memory_limit_mb'], type=int)
    return max(0, megabytes) * 1024 * 1024
