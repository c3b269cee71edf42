"""
Cancellable run context and a structured task group scoped to one test run.

A RunContext is a node in a cancellation tree: cancelling a context cancels all
contexts derived from it. Every wait inside the engine goes through
RunContext.sleep so that it returns within one polling interval of a cancel.

A TaskGroup runs each task on its own thread, hands it the group's context and
cancels that context as soon as any task fails. The "dead" flag is set-only and
can be read without blocking.

Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved.
"""

from concurrent.futures import FIRST_EXCEPTION, Future, wait
from typing import Callable, List, Optional
import itertools
import logging
import threading

from composebench.lib.errors import RunCancelled

log = logging.getLogger(__name__)


class RunContext:
    """Cancellation scope shared by all work belonging to a run."""

    def __init__(self, parent: Optional["RunContext"] = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: List["RunContext"] = []
        self._parent = parent
        self._timer: Optional[threading.Timer] = None
        if parent is not None:
            parent._add_child(self)

    def _add_child(self, child: "RunContext"):
        with self._lock:
            if not self._event.is_set():
                self._children.append(child)
                return
        child.cancel()

    def _remove_child(self, child: "RunContext"):
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def child(self) -> "RunContext":
        """Derive a context that is cancelled together with this one."""
        return RunContext(self)

    def with_timeout(self, seconds: float) -> "RunContext":
        """Derive a context that is cancelled automatically after `seconds`."""
        ctx = RunContext(self)
        ctx._timer = threading.Timer(seconds, ctx.cancel)
        ctx._timer.daemon = True
        ctx._timer.start()
        return ctx

    def cancel(self):
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            children, self._children = self._children, []
        for child in children:
            child.cancel()
        if self._timer is not None:
            self._timer.cancel()

    def cancelled(self) -> bool:
        return self._event.is_set()

    def sleep(self, seconds: float) -> bool:
        """Wait up to `seconds`. Returns True if the context was cancelled."""
        return self._event.wait(max(seconds, 0))

    def check(self):
        """Raise RunCancelled if the context has been cancelled."""
        if self._event.is_set():
            raise RunCancelled()

    def release(self):
        """Detach from the parent so a finished scope is not kept alive."""
        if self._parent is not None:
            self._parent._remove_child(self)
        if self._timer is not None:
            self._timer.cancel()


class TaskGroup:
    """
    Group of background tasks with cancel-on-first-error semantics.

    Tasks are callables taking the group's RunContext. The group context is a
    child of the context the group was created with, so cancelling the run
    cancels every task, and a failing task cancels its siblings.
    """

    _ids = itertools.count(1)

    def __init__(self, ctx: RunContext, name: str = "task"):
        self.ctx = ctx.child()
        self.name = name
        self._lock = threading.Lock()
        self._futures: List[Future] = []
        self._threads: List[threading.Thread] = []
        self._dead = threading.Event()
        self._first_error: Optional[BaseException] = None

    @property
    def dead(self) -> bool:
        return self._dead.is_set()

    def go(self, fn: Callable[[RunContext], object]) -> Future:
        """Run `fn(ctx)` on a new thread. A raised exception marks the group dead."""
        future: Future = Future()

        def _task():
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = fn(self.ctx)
            except BaseException as e:
                self._fail(e)
                future.set_exception(e)
            else:
                future.set_result(result)

        thread = threading.Thread(target=_task, name=f"{self.name}-{next(self._ids)}", daemon=True)
        with self._lock:
            self._futures.append(future)
            self._threads.append(thread)
        thread.start()
        return future

    def _fail(self, error: BaseException):
        with self._lock:
            if self._first_error is None:
                self._first_error = error
        self._dead.set()
        self.ctx.cancel()

    def wait(self):
        """
        Block until every task has finished or one of them has failed.

        Raises the first error raised by a task. Tasks still running when a
        failure is observed are not waited for; they see the cancelled group
        context and wind down on their own.
        """
        with self._lock:
            futures = list(self._futures)
        if futures:
            wait(futures, return_when=FIRST_EXCEPTION)
        with self._lock:
            error = self._first_error
        if error is not None:
            raise error

    def cancel(self):
        self.ctx.cancel()

    def close(self, timeout: Optional[float] = None) -> List[BaseException]:
        """
        Cancel the group and join its threads.

        Returns the errors raised by tasks, excluding cancellations caused by
        closing the group.
        """
        self.ctx.cancel()
        with self._lock:
            threads = list(self._threads)
            futures = list(self._futures)
        for thread in threads:
            thread.join(timeout)
        errors = []
        for future in futures:
            if not future.done():
                log.warning(f"{self.name}: background task did not stop in time")
                continue
            err = future.exception()
            if err is not None and not isinstance(err, RunCancelled):
                errors.append(err)
        self.ctx.release()
        return errors
