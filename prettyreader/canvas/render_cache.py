"""
Asynchronous page render cache.

Pages are rasterised on a background thread and kept in an LRU table bounded by
a byte budget. Requests for the same page coalesce (the latest size wins), and a
generation counter bumped on every document swap drops results rendered from a
previous document.
"""

import time
from typing import Optional

from PySide6.QtCore import QObject, Qt, Signal, Slot
from PySide6.QtGui import QImage

from prettyreader.canvas.render_cache_table import CacheKey, PixmapCacheTable
from prettyreader.canvas.render_worker import DocumentSource, RenderRequest, RenderWorker
from prettyreader.utils.settings import (DEFAULT_SETTINGS, get_render_cache_memory_limit,
                                         settings)


class RenderCache(QObject):
    """
    Page raster cache fed by a single render thread.

    `pixmap_ready` is emitted on the thread that owns the cache, after the
    raster has been stored. Callers should look the raster up again with
    `cached_pixmap`, since a later request for the same page may have replaced
    the size they asked for.
    """

    pixmap_ready = Signal(int)  # page number
    # Worker -> owner thread hand-off: (page, image, width, height, generation)
    _render_finished = Signal(int, object, int, int, int)

    def __init__(self, memory_limit: Optional[int] = None, parent: Optional[QObject] = None):
        super().__init__(parent)
        if memory_limit is None:
            memory_limit = get_render_cache_memory_limit()
        self._table = PixmapCacheTable(memory_limit)
        self._document: Optional[DocumentSource] = None
        self._generation = 0
        self._page_count = 0
        self._flow_log_last: dict[str, float] = {}
        self._is_shut_down = False

        self._render_finished.connect(self._on_render_finished,
                                      Qt.ConnectionType.QueuedConnection)
        self._worker = RenderWorker(self._render_finished.emit)
        settings.change.connect(self.setting_change)

    # ========== Document ==========

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def page_count(self) -> int:
        return self._page_count

    @property
    def document(self) -> Optional[DocumentSource]:
        return self._document

    def set_document(self, document: Optional[DocumentSource]):
        """
        Install a new document source (or None).

        Blocks until no render can touch the previous document; the caller may
        free it as soon as this returns. Everything cached is dropped.
        """
        self._generation += 1
        self._page_count = self._worker.set_document(document, self._generation)
        self._document = document
        self._table.clear()
        self._log_flow("RENDER", f"Document set: generation={self._generation} "
                                 f"pages={self._page_count}")

    # ========== Requests ==========

    def request_pixmap(self, request: RenderRequest):
        """Queue a render unless the exact size is already cached. Never blocks on rendering."""
        if self._is_shut_down:
            return
        if self._table.contains(request.key):
            return
        self._worker.enqueue(request)
        self._worker.schedule()
        self._log_flow("RENDER", f"Queued page {request.page} at {request.width}x{request.height}",
                       throttle_key="render_queue", every_s=0.5)

    def preload_around(self, current_page: int, width: int, height: int,
                       dpr: float = 1.0, radius: Optional[int] = None):
        """
        Queue renders for the pages around `current_page`.

        Nearer pages get a lower priority value and render first. Pages that
        are already cached or out of range are skipped.
        """
        if radius is None:
            radius = settings.value('render_preload_radius',
                                    defaultValue=DEFAULT_SETTINGS['render_preload_radius'],
                                    type=int)
        for distance in range(1, radius + 1):
            for page in (current_page - distance, current_page + distance):
                if 0 <= page < self._page_count:
                    self.request_pixmap(RenderRequest(page, width, height, dpr,
                                                      priority=distance))

    def cached_pixmap(self, page: int, width: int, height: int) -> Optional[QImage]:
        """Synchronous lookup; marks the raster as recently used."""
        return self._table.get(CacheKey(page, width, height))

    def has_pixmap(self, page: int, width: int, height: int) -> bool:
        return self._table.contains(CacheKey(page, width, height))

    # ========== Invalidation & budget ==========

    def invalidate_page(self, page: int):
        self._table.remove_page(page)

    def invalidate_all(self):
        self._worker.queue.clear()
        self._table.clear()

    @property
    def memory_limit(self) -> int:
        return self._table.memory_limit

    @property
    def memory_usage(self) -> int:
        return self._table.memory_usage

    def set_memory_limit(self, memory_limit: int):
        evicted = self._table.set_memory_limit(max(0, int(memory_limit)))
        if evicted:
            print(f"[RENDER] Memory limit lowered, evicted {len(evicted)} page rasters")

    def setting_change(self, key, value):
        if key == 'render_cache_memory_limit_mb':
            self.set_memory_limit(get_render_cache_memory_limit())

    # ========== Completion ==========

    @Slot(int, object, int, int, int)
    def _on_render_finished(self, page: int, image: Optional[QImage], width: int, height: int,
                            generation: int):
        if self._is_shut_down:
            return
        if image is None or image.isNull():
            return
        if generation != self._generation:
            # Rendered from a document that has since been replaced
            self._log_flow("RENDER", f"Dropped stale page {page} (generation {generation})")
            return

        evicted = self._table.insert(CacheKey(page, width, height), image)
        if evicted:
            self._log_flow("RENDER", f"Evicted {len(evicted)} rasters, "
                                     f"usage={self._table.memory_usage} bytes",
                           throttle_key="render_evict", every_s=1.0)
        self.pixmap_ready.emit(page)

    # ========== Lifecycle ==========

    def shutdown(self):
        """Stop the render thread; waits for a render in progress."""
        if self._is_shut_down:
            return
        self._is_shut_down = True
        # Completions still queued for delivery belong to the old generation
        self._generation += 1
        try:
            settings.change.disconnect(self.setting_change)
        except (RuntimeError, TypeError):
            pass
        self._worker.shutdown()
        self._table.clear()
        self._document = None

    def _log_flow(self, component: str, message: str, *, level: str = "DEBUG",
                  throttle_key: str | None = None, every_s: float | None = None):
        """Timestamped, optionally throttled flow logging for render diagnostics."""
        try:
            enabled = bool(settings.value('render_trace_logs',
                                          DEFAULT_SETTINGS['render_trace_logs'], type=bool))
        except Exception:
            enabled = False
        if not enabled:
            return

        now = time.time()
        if throttle_key and every_s is not None:
            last = self._flow_log_last.get(throttle_key, 0.0)
            if (now - last) < every_s:
                return
            self._flow_log_last[throttle_key] = now
        ts = time.strftime("%H:%M:%S", time.localtime(now)) + f".{int((now % 1) * 1000):03d}"
        print(f"[{ts}][TRACE][{component}][{level}] {message}")
