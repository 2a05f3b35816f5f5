"""Halo exchange for distributed fields.

Faces without a rank neighbour are filled locally by their boundary
condition. Faces marked ``HaloCommunication`` post a non-blocking send of
the boundary slab, then a blocking receive into a per-face buffer which is
copied into the halo slab. Every rank walks the faces in the same fixed
order, independent of the data.

Slabs span the full padded extent of the other axes. Local faces are
filled before any slab is sent so that single-axis decompositions also
deliver consistent corner halos.
"""

from __future__ import annotations

import logging

import numpy as np
from mpi4py import MPI

from ..errors import CommunicationError
from .tags import MessageTags

log = logging.getLogger(__name__)


class HaloExchanger:
    """Exchange halos of fields over ``comm``.

    Parameters
    ----------
    comm : MPI.Comm
        Communicator whose ranks own the subdomains.
    tags : MessageTags
        Tag generator sized for ``comm``.
    """

    def __init__(self, comm: MPI.Comm, tags: MessageTags):
        self.comm = comm
        self.rank = comm.Get_rank()
        self.tags = tags

    def exchange(self, field) -> float:
        """Fill every halo of ``field``; returns the elapsed wall time."""
        t0 = MPI.Wtime()
        field.fill_local_halos()

        bcs = field.boundary_conditions
        sides = bcs.communicating_sides()
        if not sides:
            return MPI.Wtime() - t0

        pending = []
        side = None
        try:
            for side in sides:
                peer = getattr(bcs, side).to_rank
                sendbuf = np.ascontiguousarray(field.boundary_slab(side))
                tag = self.tags.send_tag(side, self.rank, peer)
                log.debug(
                    f"rank {self.rank}: send {field.name} {side} slab "
                    f"{sendbuf.shape} to {peer} tag={tag}"
                )
                pending.append((self.comm.Isend(sendbuf, dest=peer, tag=tag), sendbuf))

            for side in sides:
                peer = getattr(bcs, side).to_rank
                halo = field.halo_slab(side)
                recvbuf = np.empty(halo.shape, dtype=field.data.dtype)
                tag = self.tags.recv_tag(side, self.rank, peer)
                log.debug(
                    f"rank {self.rank}: recv {field.name} {side} halo "
                    f"{recvbuf.shape} from {peer} tag={tag}"
                )
                status = MPI.Status()
                self.comm.Recv(recvbuf, source=peer, tag=tag, status=status)
                # MPI only flags messages longer than the buffer
                received = status.Get_count(MPI.BYTE)
                if received != recvbuf.nbytes:
                    raise CommunicationError(
                        f"Halo exchange of {field.name or 'field'} failed on rank {self.rank} "
                        f"({side} face, peer {peer}): received {received} bytes, "
                        f"expected {recvbuf.nbytes}",
                        side=side,
                        peer=peer,
                    )
                halo[...] = recvbuf

            for request, _ in pending:
                request.Wait()
        except MPI.Exception as e:
            peer = getattr(bcs, side).to_rank if side else None
            raise CommunicationError(
                f"Halo exchange of {field.name or 'field'} failed on rank {self.rank} "
                f"({side} face, peer {peer}): {e}",
                side=side,
                peer=peer,
            ) from e

        return MPI.Wtime() - t0

    def exchange_many(self, fields) -> float:
        return sum(self.exchange(field) for field in fields)

    def halo_size_bytes(self, field) -> int:
        """Bytes sent plus received per exchange of ``field``."""
        total = 0
        for side in field.boundary_conditions.communicating_sides():
            total += 2 * field.halo_slab(side).nbytes
        return total
