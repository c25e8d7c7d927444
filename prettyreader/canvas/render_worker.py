"""Background page rasterisation for the render cache.

Renders run one at a time on a single-thread executor. The document lock is
held for the whole of each render, so swapping documents waits for the render
in progress and never races with it.
"""

import threading
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import count
from typing import Callable, Dict, Optional, Protocol, Tuple

from PySide6.QtGui import QImage

from prettyreader.canvas.render_cache_table import CacheKey


class DocumentSource(Protocol):
    """Page provider the render cache draws from.

    All three methods are called with the document lock held.
    """

    def num_pages(self) -> int: ...

    def native_page_size(self, page: int) -> Tuple[float, float]: ...

    def render_page(self, page: int, xres: float, yres: float,
                    width_px: int, height_px: int) -> Optional[QImage]: ...


@dataclass(frozen=True)
class RenderRequest:
    page: int
    width: int
    height: int
    device_pixel_ratio: float = 1.0
    priority: int = 0  # Lower renders first

    @property
    def key(self) -> CacheKey:
        return CacheKey(self.page, self.width, self.height)


# (page, image, width, height, generation)
FinishedCallback = Callable[[int, Optional[QImage], int, int, int], None]


class PendingRenderQueue:
    """Outstanding requests, at most one per page; a newer request replaces the older one."""

    def __init__(self):
        self._requests: Dict[int, Tuple[int, RenderRequest]] = {}
        self._sequence = count()
        self._lock = threading.Lock()

    def put(self, request: RenderRequest):
        with self._lock:
            self._requests[request.page] = (next(self._sequence), request)

    def take(self) -> Optional[RenderRequest]:
        """Pop the lowest-priority-value request, oldest first within a priority."""
        with self._lock:
            if not self._requests:
                return None
            page = min(self._requests,
                       key=lambda p: (self._requests[p][1].priority, self._requests[p][0]))
            return self._requests.pop(page)[1]

    def get(self, page: int) -> Optional[RenderRequest]:
        with self._lock:
            queued = self._requests.get(page)
            return queued[1] if queued else None

    def clear(self):
        with self._lock:
            self._requests.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)


class RenderWorker:
    """Owns the document slot and the render thread."""

    def __init__(self, on_finished: FinishedCallback):
        self._on_finished = on_finished
        self.queue = PendingRenderQueue()
        self._document: Optional[DocumentSource] = None
        self._generation = 0
        self._page_count = 0
        self._doc_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="page_render")
        self._shutdown_requested = False

    @property
    def page_count(self) -> int:
        return self._page_count

    def set_document(self, document: Optional[DocumentSource], generation: int) -> int:
        """
        Swap the document the worker renders from.

        Blocks until the render in progress (if any) has returned, so once this
        returns nothing on the worker touches the previous document.

        Returns:
            Page count of the new document (0 when cleared)
        """
        with self._doc_lock:
            self.queue.clear()
            self._document = document
            self._generation = generation
            self._page_count = 0
            if document is not None:
                try:
                    self._page_count = max(0, int(document.num_pages()))
                except Exception as e:
                    print(f"[RENDER] Failed to read page count: {e}")
                    traceback.print_exc()
            return self._page_count

    def enqueue(self, request: RenderRequest):
        self.queue.put(request)

    def schedule(self):
        """Submit one dispatch to the render thread."""
        if self._shutdown_requested:
            return
        try:
            self._executor.submit(self.process_queue)
        except RuntimeError:
            # Executor already shut down
            pass

    def process_queue(self):
        """Render one queued request, then reschedule if more are waiting."""
        rendered = False
        image = None
        generation = 0
        with self._doc_lock:
            request = self.queue.take()
            if request is not None:
                rendered, image = self._render_locked(request)
                generation = self._generation

        if rendered:
            try:
                self._on_finished(request.page, image, request.width, request.height, generation)
            except Exception as e:
                print(f"[RENDER] Completion handler failed for page {request.page}: {e}")
                traceback.print_exc()

        # Yield between renders so newer requests can replace queued ones
        if len(self.queue) > 0:
            self.schedule()

    def _render_locked(self, request: RenderRequest) -> Tuple[bool, Optional[QImage]]:
        """Rasterise one page. Returns (attempted, image); caller holds the document lock."""
        document = self._document
        if document is None:
            return False, None
        try:
            if request.page < 0 or request.page >= document.num_pages():
                return False, None
            page_width, page_height = document.native_page_size(request.page)
        except Exception as e:
            print(f"[RENDER] Failed to query page {request.page}: {e}")
            traceback.print_exc()
            return False, None
        if page_width <= 0 or page_height <= 0 or request.width <= 0 or request.height <= 0:
            return False, None

        dpr = request.device_pixel_ratio
        # Page sizes are in points (72 per inch)
        xres = 72.0 * request.width / page_width * dpr
        yres = 72.0 * request.height / page_height * dpr
        try:
            image = document.render_page(request.page, xres, yres,
                                         int(request.width * dpr), int(request.height * dpr))
        except Exception as e:
            print(f"[RENDER] Error rendering page {request.page}: {e}")
            traceback.print_exc()
            return True, None
        if image is not None and not image.isNull():
            image.setDevicePixelRatio(dpr)
        return True, image

    def shutdown(self):
        """Drop queued work and join the render thread."""
        self._shutdown_requested = True
        self.queue.clear()
        self._executor.shutdown(wait=True)
        with self._doc_lock:
            self._document = None
