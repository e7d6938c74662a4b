"""Image data derived from beam fields.

The functions here produce plain arrays (no plotting) for near-field slices,
far-field projections and intensity moments. :func:`visualisation_data`
reduces a :class:`~tweezpy.field_vector.FieldVector` to one real value per
point; the recognised field names are the keys of :data:`FIELD_TYPES`.
"""

from __future__ import annotations

import logging

import numpy as np

from tweezpy.beams import as_bsc
from tweezpy.field_vector import FieldVector
from tweezpy.functions.coordinates import rtp2xyz
from tweezpy.functions.misc import nmax2ka

log = logging.getLogger(__name__)

_COMPONENTS = {"Er": ("vrtp", 0), "Et": ("vrtp", 1), "Ep": ("vrtp", 2),
               "Ex": ("vxyz", 0), "Ey": ("vxyz", 1), "Ez": ("vxyz", 2)}


def _component(name: str):
    attribute, index = _COMPONENTS[name]
    return lambda field: getattr(field, attribute)[index]


FIELD_TYPES = {
    "irradiance": lambda field: np.sqrt(np.sum(np.abs(field.vxyz) ** 2, axis=0)),
    "E2": lambda field: np.sum(np.abs(field.vxyz) ** 2, axis=0),
    "sum(Abs(E))": lambda field: np.sum(np.abs(field.vxyz), axis=0),
}
for _name in _COMPONENTS:
    _get = _component(_name)
    FIELD_TYPES[f"Re({_name})"] = lambda field, _get=_get: np.real(_get(field))
    FIELD_TYPES[f"Abs({_name})"] = lambda field, _get=_get: np.abs(_get(field))
    FIELD_TYPES[f"Arg({_name})"] = lambda field, _get=_get: np.angle(_get(field))
    FIELD_TYPES[_name] = _get


def visualisation_data(field_type: str, field: FieldVector) -> np.ndarray:
    """Reduce a field to one value per point.

    Parameters
    ----------
    field_type:
        One of :data:`FIELD_TYPES`, e.g. ``irradiance``, ``E2``,
        ``Re(Ex)``, ``Abs(Er)``, ``Arg(Ez)`` or a raw component ``Ey``.
    field:
        Field to reduce.

    Returns
    -------
    np.ndarray
        Array with the field's point axis (and beam axis, if any). Raw
        components are complex; all other types are real.
    """
    try:
        reducer = FIELD_TYPES[field_type]
    except KeyError:
        raise ValueError(f"Unknown field visualisation type: {field_type}") from None
    return reducer(field)


def combine_visualisation_data(beam, values: np.ndarray) -> np.ndarray:
    """Sum per-beam values of an incoherent beam array; other beams are unchanged."""
    if as_bsc(beam).array_type == "incoherent" and values.ndim > 1:
        return values.sum(axis=-1)
    return values


def _default_extent(beam) -> tuple[float, float]:
    half = nmax2ka(beam.nmax) / beam.wavenumber
    return (half, half)


def _grid(extent, size):
    extent = np.asarray(extent, dtype=float).ravel()
    rows, cols = int(size[0]), int(size[1])
    if extent.size == 2:
        xs = np.linspace(-1, 1, cols) * extent[0]
        ys = np.linspace(-1, 1, rows) * extent[1]
    elif extent.size == 4:
        xs = np.linspace(extent[0], extent[1], cols)
        ys = np.linspace(extent[2], extent[3], rows)
    else:
        raise ValueError("extent must have 2 or 4 elements")
    return np.meshgrid(xs, ys)


def _as_image(values: np.ndarray, size) -> np.ndarray:
    shape = (int(size[0]), int(size[1]))
    if values.ndim > 1:
        return values.reshape(shape + values.shape[1:])
    return values.reshape(shape)


def nearfield_image(
    beam,
    extent=None,
    size=(80, 80),
    field: str = "irradiance",
    axis: str = "z",
    offset: float = 0.0,
) -> np.ndarray:
    """Field values on a plane through the beam.

    Parameters
    ----------
    beam:
        Any beam accepted by :func:`tweezpy.beams.as_bsc`.
    extent:
        ``(x, y)`` half widths or ``(x0, x1, y0, y1)`` limits of the plane.
        Defaults to the region described by the beam's ``nmax``.
    size:
        Number of ``(rows, columns)`` in the image.
    field:
        Visualisation type, see :func:`visualisation_data`.
    axis:
        Normal of the plane: ``x``, ``y`` or ``z``.
    offset:
        Position of the plane along its normal.

    Returns
    -------
    np.ndarray
        Array of shape ``size``, with a trailing axis per beam for beam
        arrays that are neither coherent nor incoherent.
    """
    bsc = as_bsc(beam)
    extent = _default_extent(bsc) if extent is None else extent
    xx, yy = _grid(extent, size)
    zz = np.full(xx.shape, float(offset))
    match axis:
        case "x":
            xyz = np.stack([zz.ravel(), xx.ravel(), yy.ravel()])
        case "y":
            xyz = np.stack([xx.ravel(), zz.ravel(), yy.ravel()])
        case "z":
            xyz = np.stack([xx.ravel(), yy.ravel(), zz.ravel()])
        case _:
            raise ValueError(f"Unknown axis: {axis}")

    values = visualisation_data(field, bsc.efield(xyz))
    return _as_image(combine_visualisation_data(bsc, values), size)


def paraxial_to_farfield(xy, mapping: str = "sin", direction: str = "pos") -> np.ndarray:
    """Convert paraxial image coordinates to far-field directions.

    Parameters
    ----------
    xy:
        ``(2, N)`` or ``(3, N)`` paraxial coordinates (only the first two rows
        are used).
    mapping:
        ``sin``, ``tan`` or ``theta``: the paraxial radius is
        ``sin(theta)``, ``tan(theta)`` or ``theta``.
    direction:
        ``pos`` for the +z hemisphere, ``neg`` for the -z hemisphere.

    Returns
    -------
    np.ndarray
        ``(3, N)`` unit-radius ``(r, theta, phi)``; points outside the
        mapping's domain get ``theta = nan``.
    """
    xy = np.asarray(xy, dtype=float)
    phi = np.arctan2(xy[1], xy[0])
    rr = np.hypot(xy[0], xy[1])
    match mapping:
        case "sin":
            with np.errstate(invalid="ignore"):
                theta = np.where(rr <= 1, np.arcsin(np.minimum(rr, 1)), np.nan)
        case "tan":
            theta = np.arctan(rr)
        case "theta":
            theta = np.where(rr <= np.pi, rr, np.nan)
        case _:
            raise ValueError(f"Unknown mapping: {mapping}")
    match direction:
        case "pos":
            pass
        case "neg":
            theta = np.pi - theta
        case _:
            raise ValueError(f"Unknown direction: {direction}")
    return np.stack([np.ones_like(rr), theta, phi])


def _farfield_beam(beam):
    bsc = as_bsc(beam)
    # the outgoing half of a regular beam carries its forward far field
    if bsc.basis == "regular":
        return bsc.with_basis("outgoing")
    return bsc


def farfield_image(
    beam,
    extent=(1.0, 1.0),
    size=(80, 80),
    field: str = "irradiance",
    direction: str = "pos",
    mapping: str = "sin",
) -> np.ndarray:
    """Far field projected onto a plane.

    Directions outside the mapping's domain are ``nan``. Regular beams are
    shown through their outgoing part. See :func:`nearfield_image` for the
    other parameters.
    """
    bsc = _farfield_beam(beam)
    xx, yy = _grid(extent, size)
    rtp = paraxial_to_farfield(np.stack([xx.ravel(), yy.ravel()]), mapping, direction)
    valid = ~np.isnan(rtp[1])

    E = bsc.efarfield(rtp[:, valid])
    data = combine_visualisation_data(bsc, visualisation_data(field, E))
    values = np.full((rtp.shape[1],) + data.shape[1:], np.nan, dtype=data.dtype)
    values[valid] = data
    return _as_image(values, size)


def intensity_moment(beam, theta_max: float = np.pi, ntheta: int = 100, nphi: int = 100):
    """First moment of the far-field intensity.

    Parameters
    ----------
    beam:
        Beam with a far field (regular beams use their outgoing part).
    theta_max:
        Upper limit of the polar angles integrated over.
    ntheta, nphi:
        Midpoint grid resolution.

    Returns
    -------
    moment, intensity:
        ``(3,)`` moment of the direction vector (z flipped to match the sign
        of :func:`tweezpy.forcetorque.force`) and the integrated intensity.
    """
    bsc = _farfield_beam(beam)
    dtheta = np.pi / ntheta
    dphi = 2 * np.pi / nphi
    theta = (np.arange(ntheta) + 0.5) * dtheta
    phi = (np.arange(nphi) + 0.5) * dphi
    theta, phi = (grid.ravel() for grid in np.meshgrid(theta, phi, indexing="ij"))
    keep = theta < theta_max
    theta, phi = theta[keep], phi[keep]
    rtp = np.stack([np.ones_like(theta), theta, phi])

    E = bsc.efarfield(rtp)
    irradiance = combine_visualisation_data(bsc, visualisation_data("E2", E))
    if irradiance.ndim > 1:
        irradiance = irradiance.sum(axis=-1)
    weight = irradiance * np.sin(theta) * dtheta * dphi

    directions = rtp2xyz(rtp)
    directions[2] = -directions[2]
    log.debug("intensity moment over %d directions", theta.size)
    return directions @ weight, float(np.sum(weight))

