# Copyright Red Hat
#
# dirsnap/record/dispatch.py - Directory snapshot recorder job dispatch
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Concurrent dispatch of directory enumeration jobs and aggregation of their
results into a single snapshot.

Each target directory is enumerated by one job. Jobs never share state:
each one hands its batch of entries to the ``Aggregator`` through a
``Channel``, and the aggregator is the only code that touches the entry
set under construction.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Tuple, Union
from datetime import datetime
from queue import Empty, Queue
import threading
import logging

from dirsnap import (
    DIRSNAP_SUBSYSTEM_DISPATCH,
    DirsnapChannelError,
    DirsnapStateError,
    DirsnapTimeoutError,
    format_timestamp,
)
from dirsnap.progress import ProgressFactory

from .entry import Entry
from .enumerator import DirectoryEnumerator
from .options import RecordOptions
from .snapshot import Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_dispatch(msg, *args, **kwargs):
    """A wrapper for dispatch subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DIRSNAP_SUBSYSTEM_DISPATCH}, **kwargs)


@dataclass(frozen=True)
class Batch:
    """
    The result of one enumeration job.
    """

    #: The directory that was enumerated
    path: str
    #: The entries found (empty if the directory could not be read)
    entries: Tuple[Entry, ...] = field(default_factory=tuple)
    #: The directory-open failure, if any
    error: Optional[OSError] = None


@dataclass(frozen=True)
class Done:
    """
    Sent once by the dispatcher after every job has finished.
    """


Message = Union[Batch, Done]


class Channel:
    """
    A many-producer, single-consumer message channel.
    """

    def __init__(self):
        self._queue: "Queue[Message]" = Queue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        """``True`` once ``close()`` has been called."""
        return self._closed

    def send(self, message: Message):
        """
        Deliver ``message`` to the consumer.

        :param message: The message to send.
        :type message: ``Message``
        :raises: ``DirsnapChannelError`` if the channel is closed.
        """
        with self._lock:
            if self._closed:
                raise DirsnapChannelError("Channel receiver has been closed")
            self._queue.put(message)

    def receive(self, timeout: Optional[float] = None) -> Message:
        """
        Wait for and return the next message.

        :param timeout: Seconds to wait, or ``None`` to wait forever.
        :type timeout: ``Optional[float]``
        :returns: The next message.
        :rtype: ``Message``
        :raises: ``DirsnapTimeoutError`` if ``timeout`` expires.
        """
        try:
            return self._queue.get(timeout=timeout)
        except Empty as err:
            raise DirsnapTimeoutError(
                f"No enumeration result received within {timeout}s"
            ) from err

    def close(self):
        """
        Refuse any further messages.
        """
        with self._lock:
            self._closed = True


class Aggregator:
    """
    Collects enumeration batches into one deduplicated ``Snapshot``.
    """

    def __init__(
        self,
        expected_jobs: int,
        channel: Channel,
        options: Optional[RecordOptions] = None,
    ):
        """
        Initialise a new ``Aggregator``.

        :param expected_jobs: The number of jobs that will each send one
                              ``Batch``.
        :type expected_jobs: ``int``
        :param channel: The channel to receive batches from.
        :type channel: ``Channel``
        :param options: Recording options.
        :type options: ``RecordOptions``
        """
        if expected_jobs < 0:
            raise ValueError(f"expected_jobs cannot be negative: {expected_jobs}")
        self.expected_jobs: int = expected_jobs
        self.channel: Channel = channel
        self.options: RecordOptions = options or RecordOptions()
        #: Number of batches received so far
        self.completed: int = 0
        #: Directories that could not be opened
        self.failed_paths: List[str] = []
        self._entries: Set[Entry] = set()
        self._snapshot: Optional[Snapshot] = None
        self._finished = False

    @property
    def snapshot(self) -> Optional[Snapshot]:
        """The finalised snapshot, or ``None`` before ``run()`` returns."""
        return self._snapshot

    def _add_batch(self, batch: Batch):
        """
        Merge one batch into the entry set.

        :param batch: The batch to merge.
        :type batch: ``Batch``
        """
        before = len(self._entries)
        self._entries.update(batch.entries)
        self.completed += 1
        if batch.error is not None:
            self.failed_paths.append(batch.path)
        _log_debug_dispatch(
            "Merged %d entries from '%s' (%d new)",
            len(batch.entries),
            batch.path,
            len(self._entries) - before,
        )
        if self.options.trace:
            _log_info("%d out of %d jobs done", self.completed, self.expected_jobs)

    def _finalize(self) -> Snapshot:
        self.channel.close()
        self._snapshot = Snapshot(format_timestamp(), self._entries)
        self._entries = set()
        self._finished = True
        if self.options.trace:
            _log_info("All jobs done: closed the channel")
        return self._snapshot

    def run(self) -> Snapshot:
        """
        Receive batches until every expected job has reported, then build
        and return the snapshot. With no expected jobs the snapshot is
        built immediately.

        :returns: The finalised snapshot.
        :rtype: ``Snapshot``
        :raises: ``DirsnapStateError`` if called more than once.
                 ``DirsnapTimeoutError`` if ``options.timeout`` expires
                 while waiting for a batch.
        """
        if self._finished:
            raise DirsnapStateError("Aggregator has already finalised its snapshot")

        if not self.expected_jobs:
            _log_debug_dispatch("No jobs expected: finalising empty snapshot")
            return self._finalize()

        progress = ProgressFactory.get_progress("Recording", quiet=self.options.quiet)
        start_time = datetime.now()
        progress.start(self.expected_jobs)
        try:
            while self.completed < self.expected_jobs:
                message = self.channel.receive(timeout=self.options.timeout)
                if isinstance(message, Done):
                    _log_warn(
                        "%d of %d jobs finished without reporting results",
                        self.expected_jobs - self.completed,
                        self.expected_jobs,
                    )
                    break
                self._add_batch(message)
                progress.progress(self.completed, f"Recorded {message.path}")
        except (DirsnapTimeoutError, KeyboardInterrupt, SystemExit):
            self.channel.close()
            progress.cancel("Cancelled.")
            raise

        snapshot = self._finalize()
        end_time = datetime.now()
        progress.end(
            f"Recorded {snapshot.entry_count} entries from "
            f"{self.expected_jobs} directories in {end_time - start_time}"
        )
        return snapshot


class Dispatcher:
    """
    Runs one enumeration job per target directory, in parallel threads or
    one at a time, and aggregates the results.
    """

    def __init__(
        self,
        options: Optional[RecordOptions] = None,
        enumerator: Optional[DirectoryEnumerator] = None,
    ):
        """
        Initialise a new ``Dispatcher``.

        :param options: Recording options.
        :type options: ``RecordOptions``
        :param enumerator: The enumerator used by every job.
        :type enumerator: ``Optional[DirectoryEnumerator]``
        """
        self.options: RecordOptions = options or RecordOptions()
        self.enumerator: DirectoryEnumerator = enumerator or DirectoryEnumerator(
            self.options
        )
        #: The aggregator of the most recent ``dispatch()`` call
        self.aggregator: Optional[Aggregator] = None

    def _job(self, path: str, channel: Channel):
        """
        Enumerate ``path`` and send exactly one ``Batch`` for it, whatever
        happens during enumeration.

        :param path: The directory to enumerate.
        :type path: ``str``
        :param channel: The channel to send the batch on.
        :type channel: ``Channel``
        """
        errors: List[OSError] = []
        entries: List[Entry] = []
        try:
            entries = self.enumerator.enumerate(
                path, on_error=lambda _path, err: errors.append(err)
            )
        except Exception as err:  # pylint: disable=broad-exception-caught
            _log_error("Failed to enumerate %s: %s", path, err)
            entries = []
        finally:
            if self.options.trace:
                _log_info("Sending %s batch", path)
            batch = Batch(path, tuple(entries), errors[0] if errors else None)
            try:
                channel.send(batch)
            except DirsnapChannelError as err:
                _log_warn(
                    "Could not deliver %d entries from %s: %s",
                    len(entries),
                    path,
                    err,
                )

    def _run_parallel(self, paths: List[str], channel: Channel):
        threads = [
            threading.Thread(
                target=self._job,
                args=(path, channel),
                name=f"dirsnap-enumerate-{i}",
                daemon=True,
            )
            for i, path in enumerate(paths)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    def _run_sequential(self, paths: List[str], channel: Channel):
        for path in paths:
            self._job(path, channel)

    def _produce(self, paths: List[str], channel: Channel):
        """
        Run every job, then tell the aggregator that no more batches
        will follow.
        """
        if self.options.sequential:
            self._run_sequential(paths, channel)
        else:
            self._run_parallel(paths, channel)

        try:
            channel.send(Done())
        except DirsnapChannelError:
            _log_debug_dispatch("Aggregator finished before Done was sent")

    def dispatch(self, paths: Iterable[str]) -> Snapshot:
        """
        Record a snapshot of the immediate children of every directory in
        ``paths``.

        Jobs always run on daemon threads, so a job blocked on an
        unresponsive directory cannot hold up the caller once the
        aggregator has given up on it.

        :param paths: The target directories. Duplicates are ignored.
        :type paths: ``Iterable[str]``
        :returns: The finalised snapshot.
        :rtype: ``Snapshot``
        :raises: ``DirsnapTimeoutError`` if ``options.timeout`` expires.
        """
        targets = list(dict.fromkeys(paths))
        channel = Channel()
        aggregator = Aggregator(len(targets), channel, self.options)
        self.aggregator = aggregator

        mode = "sequential" if self.options.sequential else "parallel"
        _log_debug_dispatch("Dispatching %d %s jobs", len(targets), mode)

        failure: List[BaseException] = []

        def _consume():
            try:
                aggregator.run()
            except BaseException as err:  # pylint: disable=broad-exception-caught
                failure.append(err)

        consumer = threading.Thread(
            target=_consume, name="dirsnap-aggregator", daemon=True
        )
        producer = threading.Thread(
            target=self._produce,
            args=(targets, channel),
            name="dirsnap-dispatch",
            daemon=True,
        )
        consumer.start()
        producer.start()

        consumer.join()

        if failure:
            # Unfinished jobs are abandoned.
            _log_debug_dispatch("Abandoning unfinished jobs: %s", failure[0])
            raise failure[0]

        producer.join()
        return aggregator.snapshot


__all__ = [
    "Aggregator",
    "Batch",
    "Channel",
    "Dispatcher",
    "Done",
    "Message",
]
