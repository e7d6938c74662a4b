from .beams import Gaussian, Mathieu, PlaneWave, as_bsc, beam_array
from .bsc import Bsc, empty_beam
from .config import Settings, get_settings, set_settings
from .errors import (
    AccuracyWarning,
    BasisError,
    InvalidOrderError,
    ShapeMismatchError,
    TruncationError,
    TweezpyError,
    UnsupportedMultiOutputError,
)
from .field_vector import FieldVector
from .forcetorque import force, forcetorque, spin, torque
from .scattered import Particle, ScatteredBeam

__version__ = "0.1.0"
