# chargeflow/services/effects.py
import asyncio
import inspect
import logging

logger = logging.getLogger("chargeflow.effects")


class BestEffortDispatcher:
    """
    Runs side effects that must never hold up or fail the caller.

    `dispatch` schedules the call on the running loop and returns at once;
    a failure is only logged. `drain` waits for everything still pending.
    """

    def __init__(self):
        self._pending = set()

    def dispatch(self, description, func, *args, **kwargs):
        async def runner():
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                await result

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (startup scripts): run inline, still never raising
            try:
                asyncio.run(runner())
            except Exception as e:
                logger.warning(f"⚠️ Best-effort {description} failed: {str(e)}")
            return None

        task = loop.create_task(runner())
        self._pending.add(task)
        task.add_done_callback(lambda finished: self._finished(description, finished))
        return task

    def _finished(self, description, task):
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"⚠️ Best-effort {description} failed: {str(error)}")

    @property
    def pending(self):
        return len(self._pending)

    async def drain(self):
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
