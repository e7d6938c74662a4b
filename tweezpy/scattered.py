"""Scattered beams and the particle interface.

A particle is anything with a ``scatter(beam)`` method (a T-matrix applied to
the incident coefficients, typically). It returns either the coefficients of
the total outgoing field or a :class:`ScatteredBeam` that remembers the
incident beam, so the total, scattered and incident parts can be recovered.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from tweezpy.bsc import Bsc
from tweezpy.errors import BasisError

SCATTERED_TYPES = ("scattered", "total", "internal")


@runtime_checkable
class Particle(Protocol):
    """Object that can scatter a beam."""

    def scatter(self, beam: Bsc) -> Bsc | ScatteredBeam: ...


class ScatteredBeam:
    """Coefficients of a field produced by scattering an incident beam.

    Parameters
    ----------
    bsc:
        Coefficients of the field, outgoing basis for ``scattered`` and
        ``total`` beams.
    incident_beam:
        The regular beam that was scattered. Needed to convert between
        ``scattered`` and ``total``.
    type:
        ``scattered`` (the scattered field alone), ``total`` (incident plus
        scattered, as outgoing waves) or ``internal`` (field inside the
        particle).

    Notes
    -----
    With scattered coefficients ``p = T a`` defined against full outgoing
    Hankel functions, the outgoing waves of the total field are
    ``a + 2 p`` in the half-Hankel convention of :class:`~tweezpy.bsc.Bsc`.
    """

    def __init__(self, bsc: Bsc, incident_beam: Bsc | None = None, type: str = "scattered"):
        if type not in SCATTERED_TYPES:
            raise ValueError(f"Unknown scattered beam type: {type}")
        self.log = logging.getLogger(self.__class__.__module__)
        self.bsc = bsc
        self.incident_beam = incident_beam
        self.type = type

    @classmethod
    def zero(cls, incident_beam: Bsc) -> "ScatteredBeam":
        """Total beam of a particle that does not scatter.

        The total field equals the incident beam and the scattered part is
        empty, so no momentum is transferred.
        """
        return cls(incident_beam.with_basis("outgoing"), incident_beam, "total")

    def __repr__(self) -> str:
        return f"ScatteredBeam(type={self.type!r}, bsc={self.bsc!r})"

    def _incident_outgoing(self) -> Bsc:
        if self.incident_beam is None:
            raise ValueError(f"Converting a {self.type} beam needs the incident beam")
        return self.incident_beam.with_basis("outgoing")

    @property
    def total_beam(self) -> Bsc:
        """Total field as outgoing coefficients, ``2 scattered + incident``."""
        if self.type == "internal":
            raise BasisError("Internal beams have no total field")
        if self.type == "total":
            return self.bsc
        return 2 * self.bsc + self._incident_outgoing()

    @property
    def scattered_beam(self) -> Bsc:
        """Scattered field alone, ``(total - incident) / 2``."""
        if self.type == "internal":
            raise BasisError("Internal beams have no scattered field")
        if self.type == "scattered":
            return self.bsc
        return (self.bsc - self._incident_outgoing()) / 2

    def as_total(self) -> "ScatteredBeam":
        return ScatteredBeam(self.total_beam, self.incident_beam, "total")

    def as_scattered(self) -> "ScatteredBeam":
        return ScatteredBeam(self.scattered_beam, self.incident_beam, "scattered")

    def ehfield(self, xyz, **kwargs):
        return self.bsc.ehfield(xyz, **kwargs)

    def ehfarfield(self, rtp, **kwargs):
        return self.bsc.ehfarfield(rtp, **kwargs)

    def forcetorque(self, incident_beam: Bsc | None = None):
        """Mechanics between the incident beam and this beam's total field."""
        from tweezpy.forcetorque import forcetorque

        incident = self.incident_beam if incident_beam is None else incident_beam
        if incident is None:
            raise ValueError("An incident beam is required to compute force and torque")
        return forcetorque(incident, self)
