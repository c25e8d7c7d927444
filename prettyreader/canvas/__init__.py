"""Page raster caching and background rendering."""

from .render_cache_table import CacheEntry, CacheKey, PixmapCacheTable
from .render_worker import DocumentSource, PendingRenderQueue, RenderRequest, RenderWorker
from .render_cache import RenderCache

__all__ = ['CacheKey', 'CacheEntry', 'PixmapCacheTable', 'DocumentSource', 'RenderRequest',
           'PendingRenderQueue', 'RenderWorker', 'RenderCache']
