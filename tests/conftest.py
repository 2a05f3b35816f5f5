"""Shared fixtures: an in-process communicator with one thread per rank.

``ThreadComm`` implements the subset of ``mpi4py.MPI.Comm`` the model uses
(point-to-point buffers, Allreduce, Alltoall, Split, gather, bcast), so
multi-rank decompositions run inside a single pytest process.
"""

import queue
import threading
from collections import defaultdict

import numpy as np
import pytest
from mpi4py import MPI

TIMEOUT = 30.0


class _World:
    """State shared by all ranks of one communicator."""

    def __init__(self, size: int):
        self.size = size
        self.barrier = threading.Barrier(size, timeout=TIMEOUT)
        self.slots = [None] * size
        self.lock = threading.Lock()
        self.queues = defaultdict(queue.Queue)
        self.children = {}

    def mailbox(self, src, dst, tag):
        with self.lock:
            return self.queues[(src, dst, tag)]


class _Request:
    def Wait(self):
        return None


class ThreadComm:
    """One rank's handle on a ``_World``."""

    def __init__(self, world: _World, rank: int):
        self.world = world
        self.rank = rank
        self._n_splits = 0

    def Get_rank(self):
        return self.rank

    def Get_size(self):
        return self.world.size

    def Get_attr(self, keyval):
        if keyval == MPI.TAG_UB:
            return 2**21
        return None

    # Point to point ------------------------------------------------------

    def Isend(self, buf, dest, tag=0):
        self.world.mailbox(self.rank, dest, tag).put(np.array(buf, copy=True))
        return _Request()

    def Send(self, buf, dest, tag=0):
        self.Isend(buf, dest, tag)

    def Recv(self, buf, source, tag=0, status=None):
        """Like MPI: only a message longer than ``buf`` is an error."""
        try:
            message = self.world.mailbox(source, self.rank, tag).get(timeout=TIMEOUT)
        except queue.Empty as e:
            raise TimeoutError(f"rank {self.rank}: no message from {source} tag {tag}") from e
        if message.nbytes > buf.nbytes:
            raise MPI.Exception(MPI.ERR_TRUNCATE)
        buf.reshape(-1)[: message.size] = message.reshape(-1)
        if status is not None:
            status.Set_source(source)
            status.Set_tag(tag)
            status.Set_elements(MPI.BYTE, message.nbytes)

    # Collectives ---------------------------------------------------------

    def _exchange(self, value):
        world = self.world
        world.slots[self.rank] = value
        world.barrier.wait()
        values = list(world.slots)
        world.barrier.wait()
        return values

    def Barrier(self):
        self._exchange(None)

    def Allreduce(self, sendbuf, recvbuf, op=MPI.SUM):
        values = self._exchange(np.array(sendbuf, copy=True))
        if op == MPI.MAX:
            recvbuf[...] = np.max(values, axis=0)
        else:
            recvbuf[...] = np.sum(values, axis=0)

    def Alltoall(self, sendbuf, recvbuf):
        values = self._exchange(np.array(sendbuf, copy=True))
        for source, blocks in enumerate(values):
            recvbuf[source] = blocks[self.rank]

    def gather(self, obj, root=0):
        values = self._exchange(obj)
        return values if self.rank == root else None

    def allgather(self, obj):
        return self._exchange(obj)

    def bcast(self, obj, root=0):
        return self._exchange(obj)[root]

    def Split(self, color=0, key=0):
        entries = self._exchange((color, key, self.rank))
        members = sorted((k, r) for c, k, r in entries if c == color)
        split_id = self._n_splits
        self._n_splits += 1
        with self.world.lock:
            child = self.world.children.setdefault((split_id, color), _World(len(members)))
        new_rank = [r for _, r in members].index(self.rank)
        return ThreadComm(child, new_rank)


def run_on_ranks(n_ranks: int, fn):
    """Run ``fn(comm)`` on ``n_ranks`` threads; return per-rank results.

    The first exception raised on any rank is re-raised after every thread
    has stopped.
    """
    world = _World(n_ranks)
    results = [None] * n_ranks
    errors = [None] * n_ranks

    def target(rank):
        try:
            results[rank] = fn(ThreadComm(world, rank))
        except BaseException as e:
            errors[rank] = e
            world.barrier.abort()

    threads = [threading.Thread(target=target, args=(r,), daemon=True) for r in range(n_ranks)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5 * TIMEOUT)
        if t.is_alive():
            raise TimeoutError("Rank thread did not finish")

    raised = [e for e in errors if e is not None]
    if raised:
        # Prefer the root cause over ranks released by the aborted barrier
        primary = [e for e in raised if not isinstance(e, threading.BrokenBarrierError)]
        raise (primary or raised)[0]
    return results


@pytest.fixture
def ranks_runner():
    return run_on_ranks
