"""Beam shape coefficients.

:class:`Bsc` stores the coefficients of a beam expanded in vector spherical
wave functions,

.. math::

    \\mathbf E(\\mathbf r) = \\sum_{n=1}^{n_{max}} \\sum_{m=-n}^{n}
        a_{nm} \\mathbf M_{nm}(k\\mathbf r) + b_{nm} \\mathbf N_{nm}(k\\mathbf r),

one column per beam. Rows follow the linear mode index ``ci = n(n+1) + m``
(row ``ci - 1``). Instances are treated as values: every operation returns a
new :class:`Bsc` and never modifies its operands.

The heavy lifting lives in the engine modules, :mod:`tweezpy.translation`,
:mod:`tweezpy.rotation`, :mod:`tweezpy.fields` and
:mod:`tweezpy.forcetorque`; the methods here delegate to them.
"""

from __future__ import annotations

import logging
import warnings
from functools import lru_cache
from numbers import Number

import numpy as np
from scipy import sparse

from tweezpy.config import get_settings
from tweezpy.errors import (
    AccuracyWarning,
    BasisError,
    ShapeMismatchError,
    TruncationError,
)
from tweezpy.fields import ehfarfield, ehfield, ehfield_rtp, poynting, poynting_farfield
from tweezpy.functions.coordinates import rotation_to_direction, rotx, roty, rotz
from tweezpy.functions.misc import (
    combined_index,
    combined_index_inverse,
    max_linear_index,
    nmax_from_length,
)
from tweezpy.rotation import rotate_beam
from tweezpy.translation import translate_beam_rtp, translate_beam_xyz, translate_beam_z

BASES = ("regular", "incoming", "outgoing")
ARRAY_TYPES = ("array", "coherent", "incoherent")


def _as_columns(values) -> np.ndarray | sparse.csr_matrix:
    if sparse.issparse(values):
        return sparse.csr_matrix(values, dtype=complex)
    values = np.asarray(values, dtype=complex)
    if values.ndim == 1:
        values = values[:, None]
    if values.ndim != 2:
        raise ShapeMismatchError(f"coefficients must be 1-D or 2-D, got {values.ndim}-D")
    return values


def _dense(values) -> np.ndarray:
    if sparse.issparse(values):
        return values.toarray()
    return np.asarray(values)


def _store(values, dense: bool | None):
    """Pick sparse or dense storage for a coefficient matrix."""
    if dense is None:
        size = values.shape[0] * values.shape[1]
        if size == 0:
            dense = True
        else:
            nnz = values.nnz if sparse.issparse(values) else np.count_nonzero(values)
            dense = nnz / size >= get_settings().sparse_fill_threshold
    if dense:
        return np.array(_dense(values), dtype=complex)
    out = sparse.csr_matrix(values, dtype=complex, copy=True)
    out.eliminate_zeros()
    return out


def _combine(x, y, op):
    if sparse.issparse(x) and sparse.issparse(y):
        return op(x, y)
    return op(_dense(x), _dense(y))


def _matmul(M, x):
    if sparse.issparse(M):
        out = M @ x
        return out if sparse.issparse(out) else np.asarray(out)
    return np.asarray(M) @ _dense(x)


def _stack_rows(parts):
    if all(sparse.issparse(part) for part in parts):
        return sparse.vstack(parts, format="csr")
    return np.vstack([_dense(part) for part in parts])


def _stack_columns(parts):
    if all(sparse.issparse(part) for part in parts):
        return sparse.hstack(parts, format="csr")
    return np.hstack([_dense(part) for part in parts])


def _resize_rows(values, rows: int):
    current = values.shape[0]
    if rows == current:
        return values
    if rows < current:
        return values[:rows]
    if sparse.issparse(values):
        padding = sparse.csr_matrix((rows - current, values.shape[1]), dtype=complex)
        return sparse.vstack([values, padding], format="csr")
    return np.vstack([values, np.zeros((rows - current, values.shape[1]), dtype=complex)])


def _row_power(values) -> np.ndarray:
    return np.sum(np.abs(_dense(values)) ** 2, axis=1)


def _relative_loss(full: float, kept: float) -> float:
    if full == 0:
        return 0.0
    return abs(full - kept) / full


class Bsc:
    """Vector spherical wave function beam shape coefficients.

    Parameters
    ----------
    a, b:
        Coefficients of the ``M`` and ``N`` wave functions. 1-D inputs are a
        single beam; 2-D inputs hold one beam per column. Dense arrays and
        ``scipy.sparse`` matrices are accepted.
    basis:
        Radial family of the expansion: ``regular``, ``incoming`` or
        ``outgoing``.
    array_type:
        How the columns combine: ``coherent`` (fields add), ``incoherent``
        (intensities add) or ``array`` (independent beams, the default).
    absdz:
        Cumulative absolute distance the beam has been translated.
    wavelength:
        Wavelength in the medium, in the length units used for positions.
    dense:
        Force dense (``True``) or sparse (``False``) storage. By default the
        storage follows the fill fraction of the coefficients.

    Attributes
    ----------
    log:
        Logger of the module.
    """

    def __init__(
        self,
        a=None,
        b=None,
        basis: str = "regular",
        array_type: str = "array",
        absdz: float = 0.0,
        wavelength: float | None = None,
        dense: bool | None = None,
    ):
        self.log = logging.getLogger(self.__class__.__module__)

        if a is None and b is None:
            a = np.zeros((0, 1), dtype=complex)
            b = np.zeros((0, 1), dtype=complex)
        elif a is None or b is None:
            raise ShapeMismatchError("both a and b coefficients must be given")
        if basis not in BASES:
            raise ValueError(f"Unknown beam basis: {basis}")
        if array_type not in ARRAY_TYPES:
            raise ValueError(f"Unknown array type: {array_type}")

        a = _as_columns(a)
        b = _as_columns(b)
        if a.shape != b.shape:
            raise ShapeMismatchError(
                f"a and b coefficients differ in shape: {a.shape} vs {b.shape}"
            )
        nmax_from_length(a.shape[0])

        self._dense_policy = dense
        self._a = _store(a, dense)
        self._b = _store(b, dense)
        self._basis = basis
        self._array_type = array_type
        self._absdz = float(absdz)
        self._wavelength = (
            get_settings().default_wavelength if wavelength is None else float(wavelength)
        )

    # construction ---------------------------------------------------------

    def _replace(self, **changes) -> "Bsc":
        params = dict(
            a=self._a,
            b=self._b,
            basis=self._basis,
            array_type=self._array_type,
            absdz=self._absdz,
            wavelength=self._wavelength,
            dense=self._dense_policy,
        )
        params.update(changes)
        return Bsc(**params)

    @classmethod
    def empty(cls, nbeams: int = 0, **kwargs) -> "Bsc":
        """Beam with no modes and ``nbeams`` columns."""
        zeros = np.zeros((0, int(nbeams)), dtype=complex)
        return cls(zeros, zeros, **kwargs)

    @classmethod
    def from_dense_beam_vectors(cls, a, b, n, m, **kwargs) -> "Bsc":
        """Build a beam from coefficients listed against their ``(n, m)``.

        Parameters
        ----------
        a, b:
            Coefficient values, one row per ``(n, m)`` pair (1-D for a single
            beam). Repeated pairs are summed.
        n, m:
            Degree and order of each row.
        **kwargs:
            Passed to :class:`Bsc`.
        """
        a = _as_columns(np.asarray(a))
        b = _as_columns(np.asarray(b))
        n = np.asarray(n, dtype=int).ravel()
        m = np.asarray(m, dtype=int).ravel()
        if a.shape != b.shape or a.shape[0] != n.size or n.size != m.size:
            raise ShapeMismatchError("a, b, n and m must describe the same modes")

        nmax = int(n.max()) if n.size else 0
        rows = np.atleast_1d(combined_index(n, m)) - 1 if n.size else n
        full_a = np.zeros((max_linear_index(nmax), a.shape[1]), dtype=complex)
        full_b = np.zeros_like(full_a)
        np.add.at(full_a, rows, a)
        np.add.at(full_b, rows, b)
        return cls(full_a, full_b, **kwargs)

    def set_coefficients(self, a, b) -> "Bsc":
        """Copy of the beam with new coefficients (validated as in the constructor)."""
        return self._replace(a=a, b=b)

    def with_basis(self, basis: str) -> "Bsc":
        return self._replace(basis=basis)

    def with_array_type(self, array_type: str) -> "Bsc":
        return self._replace(array_type=array_type)

    def with_absdz(self, absdz: float) -> "Bsc":
        return self._replace(absdz=absdz)

    # properties -----------------------------------------------------------

    @property
    def a(self):
        return self._a

    @property
    def b(self):
        return self._b

    @property
    def basis(self) -> str:
        return self._basis

    @property
    def array_type(self) -> str:
        return self._array_type

    @property
    def absdz(self) -> float:
        return self._absdz

    @property
    def wavelength(self) -> float:
        return self._wavelength

    @property
    def wavenumber(self) -> float:
        return 2 * np.pi / self._wavelength

    @property
    def shape(self) -> tuple[int, int]:
        return self._a.shape

    @property
    def nmax(self) -> int:
        return nmax_from_length(self._a.shape[0])

    @property
    def nbeams(self) -> int:
        return self._a.shape[1]

    @property
    def is_sparse(self) -> bool:
        return sparse.issparse(self._a)

    @property
    def power(self) -> float:
        """Total power ``sum |a|^2 + |b|^2`` over all modes and beams."""
        return float(np.sum(_row_power(self._a)) + np.sum(_row_power(self._b)))

    def __len__(self) -> int:
        return self.nbeams

    def __repr__(self) -> str:
        return (
            f"Bsc(nmax={self.nmax}, nbeams={self.nbeams}, basis={self._basis!r}, "
            f"array_type={self._array_type!r})"
        )

    def get_coefficients(self, ci=None, packed: bool = False):
        """Dense copies of the coefficients.

        Parameters
        ----------
        ci:
            Optional 1-based linear indices of the rows to return.
        packed:
            Return a single stacked array ``[a; b]`` instead of ``(a, b)``.
        """
        a = _dense(self._a)
        b = _dense(self._b)
        if ci is not None:
            rows = np.atleast_1d(np.asarray(ci, dtype=int)) - 1
            a = a[rows]
            b = b[rows]
        if packed:
            return np.vstack([a, b])
        return a.copy(), b.copy()

    def get_mode_indices(self) -> tuple[np.ndarray, np.ndarray]:
        """Degree and order of every row."""
        rows = self.shape[0]
        if rows == 0:
            return np.zeros(0, dtype=int), np.zeros(0, dtype=int)
        return combined_index_inverse(np.arange(1, rows + 1))

    # truncation -----------------------------------------------------------

    def set_nmax(self, nmax: int, tolerance: float | None = None, powerloss: str | None = None) -> "Bsc":
        """Pad or truncate the beam to a new truncation order.

        Parameters
        ----------
        nmax:
            New truncation order.
        tolerance:
            Relative power loss of ``a`` or ``b`` accepted silently when
            truncating (default ``Settings.truncation_tolerance``).
        powerloss:
            What to do when the tolerance is exceeded: ``ignore``, ``warn``
            (one :class:`AccuracyWarning`) or ``error``
            (:class:`TruncationError`). Default ``Settings.powerloss``.
        """
        settings = get_settings()
        tolerance = settings.truncation_tolerance if tolerance is None else tolerance
        powerloss = settings.powerloss if powerloss is None else powerloss
        if powerloss not in ("ignore", "warn", "error"):
            raise ValueError(f"Unknown powerloss policy: {powerloss}")

        rows = max_linear_index(nmax)
        if rows == self.shape[0]:
            return self
        new_a = _resize_rows(self._a, rows)
        new_b = _resize_rows(self._b, rows)

        if rows < self.shape[0] and powerloss != "ignore":
            aloss = _relative_loss(np.sum(_row_power(self._a)), np.sum(_row_power(new_a)))
            bloss = _relative_loss(np.sum(_row_power(self._b)), np.sum(_row_power(new_b)))
            if aloss > tolerance or bloss > tolerance:
                message = (
                    f"Truncation to nmax {nmax} loses power: apparent errors "
                    f"a: {aloss:.3g}, b: {bloss:.3g}"
                )
                if powerloss == "error":
                    raise TruncationError(message)
                warnings.warn(message, AccuracyWarning, stacklevel=2)
                self.log.warning(message)

        return self._replace(a=new_a, b=new_b)

    def shrink_nmax(self, tolerance: float | None = None) -> "Bsc":
        """Smallest truncation keeping the power loss of ``a`` and ``b`` within ``tolerance``."""
        if tolerance is None:
            tolerance = get_settings().truncation_tolerance
        if self.nmax <= 1:
            return self

        apower = np.cumsum(_row_power(self._a))
        bpower = np.cumsum(_row_power(self._b))
        for nmax in range(1, self.nmax + 1):
            last = max_linear_index(nmax) - 1
            if (
                _relative_loss(apower[-1], apower[last]) <= tolerance
                and _relative_loss(bpower[-1], bpower[last]) <= tolerance
            ):
                break
        self.log.debug("shrinking nmax from %d to %d", self.nmax, nmax)
        return self.set_nmax(nmax, powerloss="ignore")

    # power ----------------------------------------------------------------

    def scale_power(self, power: float) -> "Bsc":
        """Rescale the coefficients so :attr:`power` equals ``power``."""
        current = self.power
        if current == 0:
            raise ValueError("Cannot scale the power of a beam with zero power")
        return self * np.sqrt(power / current)

    # algebra --------------------------------------------------------------

    def _check_compatible(self, other: "Bsc") -> tuple["Bsc", "Bsc"]:
        if self._basis != other._basis:
            raise BasisError(
                f"Cannot combine beams with bases {self._basis} and {other._basis}"
            )
        if self.nbeams != other.nbeams:
            raise ShapeMismatchError(
                f"Cannot combine beams with {self.nbeams} and {other.nbeams} columns"
            )
        nmax = max(self.nmax, other.nmax)
        return self.set_nmax(nmax), other.set_nmax(nmax)

    def __add__(self, other):
        if not isinstance(other, Bsc):
            return NotImplemented
        first, second = self._check_compatible(other)
        return first._replace(
            a=_combine(first._a, second._a, lambda x, y: x + y),
            b=_combine(first._b, second._b, lambda x, y: x + y),
            absdz=max(first._absdz, second._absdz),
        )

    def __sub__(self, other):
        if not isinstance(other, Bsc):
            return NotImplemented
        return self + (-other)

    def __neg__(self) -> "Bsc":
        return self._replace(a=-self._a, b=-self._b)

    def __mul__(self, other):
        if isinstance(other, Number) or (isinstance(other, np.ndarray) and other.ndim == 0):
            return self._replace(a=self._a * other, b=self._b * other)
        return NotImplemented

    __rmul__ = __mul__

    def __truediv__(self, other):
        if isinstance(other, Number) or (isinstance(other, np.ndarray) and other.ndim == 0):
            return self._replace(a=self._a / other, b=self._b / other)
        return NotImplemented

    def apply_stacked_operator(self, M) -> "Bsc":
        """Apply an operator to the stacked coefficients, ``[a'; b'] = M [a; b]``.

        ``M`` must have ``2 * nmax(nmax+2)`` columns and an even number of rows
        of the form ``2 * nmax'(nmax'+2)``.
        """
        rows = self.shape[0]
        if M.shape[1] != 2 * rows or M.shape[0] % 2 != 0:
            raise ShapeMismatchError(
                f"Operator of shape {M.shape} does not match stacked coefficients "
                f"with {2 * rows} rows"
            )
        result = _matmul(M, _stack_rows([self._a, self._b]))
        half = M.shape[0] // 2
        return self._replace(a=result[:half], b=result[half:])

    def apply_per_component_operator(self, M) -> "Bsc":
        """Apply the same operator to both coefficient sets, ``a' = M a, b' = M b``."""
        if M.shape[1] != self.shape[0]:
            raise ShapeMismatchError(
                f"Operator of shape {M.shape} does not match {self.shape[0]} coefficient rows"
            )
        return self._replace(a=_matmul(M, self._a), b=_matmul(M, self._b))

    def sum(self) -> "Bsc":
        """Coherent sum of all columns."""
        def column_sum(values):
            if sparse.issparse(values):
                return sparse.csr_matrix(values.sum(axis=1))
            return values.sum(axis=1, keepdims=True)

        return self._replace(a=column_sum(self._a), b=column_sum(self._b))

    @classmethod
    def concatenate(cls, beams, array_type: str | None = None) -> "Bsc":
        """Join beams column-wise, padding to the largest ``nmax``.

        Parameters
        ----------
        beams:
            Sequence of :class:`Bsc` with a common basis.
        array_type:
            Array type of the result (default: that of the first beam).
        """
        beams = list(beams)
        if not beams:
            return cls.empty()
        bases = {beam.basis for beam in beams}
        if len(bases) > 1:
            raise BasisError(f"Cannot concatenate beams with bases {sorted(bases)}")
        nmax = max(beam.nmax for beam in beams)
        padded = [beam.set_nmax(nmax) for beam in beams]
        first = beams[0]
        return first._replace(
            a=_stack_columns([beam._a for beam in padded]),
            b=_stack_columns([beam._b for beam in padded]),
            array_type=first.array_type if array_type is None else array_type,
            absdz=max(beam.absdz for beam in beams),
        )

    def append(self, other: "Bsc") -> "Bsc":
        return Bsc.concatenate([self, other])

    def tile(self, count: int) -> "Bsc":
        """Repeat the columns ``count`` times."""
        return Bsc.concatenate([self] * int(count))

    def __getitem__(self, index) -> "Bsc":
        if isinstance(index, (int, np.integer)):
            index = [int(index)]
        return self._replace(a=self._a[:, index], b=self._b[:, index])

    # translations ---------------------------------------------------------

    def translate(self, A, B) -> "Bsc":
        """Apply translation matrices, ``a' = A a + B b`` and ``b' = B a + A b``."""
        if A.shape != B.shape or A.shape[1] != self.shape[0]:
            raise ShapeMismatchError(
                f"Translation matrices {A.shape}, {B.shape} do not match "
                f"{self.shape[0]} coefficient rows"
            )

        def add(x, y):
            return _combine(x, y, lambda u, v: u + v)

        return self._replace(
            a=add(_matmul(A, self._a), _matmul(B, self._b)),
            b=add(_matmul(B, self._a), _matmul(A, self._b)),
        )

    def translate_z(self, z, nmax: int | None = None, return_matrices: bool = False):
        """Translate the beam along z, see :func:`tweezpy.translation.translate_beam_z`."""
        return translate_beam_z(self, z, nmax=nmax, return_matrices=return_matrices)

    def translate_rtp(self, rtp, nmax: int | None = None, **kwargs):
        """Translate by spherical offsets, see :func:`tweezpy.translation.translate_beam_rtp`."""
        return translate_beam_rtp(self, rtp, nmax=nmax, **kwargs)

    def translate_xyz(self, xyz, nmax: int | None = None, **kwargs):
        """Translate by Cartesian offsets, see :func:`tweezpy.translation.translate_beam_xyz`."""
        return translate_beam_xyz(self, xyz, nmax=nmax, **kwargs)

    def translate_with(self, A, B, D=None) -> "Bsc":
        """Re-apply matrices returned by a previous translation.

        With ``D`` the beam is rotated by ``D^H``, translated with the axial
        matrices ``A, B`` and rotated back by ``D``. The result is in the
        regular basis.
        """
        if D is None:
            return self.translate(A, B).with_basis("regular")
        beam = self.rotate(wigner=D.conj().T)
        beam = beam.translate(A, B).with_basis("regular")
        return beam.rotate(wigner=D)

    # rotations ------------------------------------------------------------

    def rotate(self, R=None, wigner=None, nmax: int | None = None, return_matrix: bool = False):
        """Rotate the beam, see :func:`tweezpy.rotation.rotate_beam`."""
        return rotate_beam(self, R=R, wigner=wigner, nmax=nmax, return_matrix=return_matrix)

    def rotate_x(self, angle: float, **kwargs):
        return self.rotate(R=rotx(angle), **kwargs)

    def rotate_y(self, angle: float, **kwargs):
        return self.rotate(R=roty(angle), **kwargs)

    def rotate_z(self, angle: float, **kwargs):
        return self.rotate(R=rotz(angle), **kwargs)

    def rotate_yz(self, angle_y: float, angle_z: float, **kwargs):
        """Rotate about y and then about z."""
        return self.rotate(R=rotation_to_direction(angle_y, angle_z), **kwargs)

    # fields ---------------------------------------------------------------

    def ehfield(self, xyz, **kwargs):
        return ehfield(self, xyz, **kwargs)

    def ehfield_rtp(self, rtp, **kwargs):
        return ehfield_rtp(self, rtp, **kwargs)

    def efield(self, xyz, **kwargs):
        return self.ehfield(xyz, calc_h=False, **kwargs)[0]

    def hfield(self, xyz, **kwargs):
        return self.ehfield(xyz, calc_e=False, **kwargs)[1]

    def ehfarfield(self, rtp, **kwargs):
        return ehfarfield(self, rtp, **kwargs)

    def efarfield(self, rtp, **kwargs):
        return self.ehfarfield(rtp, calc_h=False, **kwargs)[0]

    def hfarfield(self, rtp, **kwargs):
        return self.ehfarfield(rtp, calc_e=False, **kwargs)[1]

    def poynting(self, xyz):
        return poynting(self, xyz)

    def poynting_farfield(self, rtp):
        return poynting_farfield(self, rtp)

    # mechanics ------------------------------------------------------------

    def force(self, other, **kwargs):
        from tweezpy.forcetorque import force

        return force(self, other, **kwargs)

    def torque(self, other, **kwargs):
        from tweezpy.forcetorque import torque

        return torque(self, other, **kwargs)

    def spin(self, other, **kwargs):
        from tweezpy.forcetorque import spin

        return spin(self, other, **kwargs)

    def forcetorque(self, other, **kwargs):
        from tweezpy.forcetorque import forcetorque

        return forcetorque(self, other, **kwargs)


@lru_cache(maxsize=1)
def empty_beam() -> Bsc:
    """Shared empty beam, built once and never modified."""
    return Bsc.empty()
