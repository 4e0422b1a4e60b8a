import asyncio
import logging
import threading

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_S = 300


class BackgroundLoop:
    """One event loop on a daemon thread, shared by every AI call.

    Flask views are synchronous; they hand coroutines over here and block
    on the result, so the async Gemini client is only ever driven from
    this single loop.
    """

    def __init__(self):
        self.loop = None
        self._thread = None
        self._lock = threading.Lock()

    def start(self):
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return self.loop
            self.loop = asyncio.new_event_loop()
            self._thread = threading.Thread(target=self._run, name="ai-loop", daemon=True)
            self._thread.start()
            return self.loop

    def _run(self):
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_forever()
        finally:
            self.loop.close()

    def submit(self, coro):
        loop = self.start()
        return asyncio.run_coroutine_threadsafe(coro, loop)

    def run(self, coro, timeout=REQUEST_TIMEOUT_S):
        return self.submit(coro).result(timeout)

    def stop(self):
        with self._lock:
            if self.loop is None:
                return
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._thread.join(timeout=5)
            self._thread = None
            self.loop = None
