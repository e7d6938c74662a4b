import _pickle
import bz2
import json
from pathlib import Path
from typing import Any

import numpy as np
import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.dataclasses import dataclass
from scipy.io import savemat
from typing_extensions import Self

from tweezpy.bsc import ARRAY_TYPES, BASES, Bsc


@dataclass
class Coefficients:
    real: list[list[float]] = Field(default=[])
    imag: list[list[float]] = Field(default=[])

    @model_validator(mode="after")
    def matching_shapes(self) -> Self:
        if np.shape(self.real) != np.shape(self.imag):
            raise ValueError(
                f"Real ({np.shape(self.real)}) and imaginary ({np.shape(self.imag)}) parts are not compatible"
            )
        return self

    @classmethod
    def from_array(cls, values: np.ndarray) -> "Coefficients":
        values = np.asarray(values, dtype=complex)
        return cls(real=values.real.tolist(), imag=values.imag.tolist())

    def to_array(self, columns: int) -> np.ndarray:
        values = np.asarray(self.real, dtype=float) + 1j * np.asarray(self.imag, dtype=float)
        if values.size == 0:
            return np.zeros((0, columns), dtype=complex)
        return values.reshape(-1, columns)


def _write(data: dict, filename: str | Path) -> None:
    if isinstance(filename, str):
        filename = Path(filename)

    match filename.suffix:
        case ".json":
            with open(filename, "w") as f:
                json.dump(data, f, indent=4)
        case ".yml" | ".yaml":
            with open(filename, "w") as f:
                yaml.dump(data, f)
        case ".pbz2":
            with bz2.BZ2File(filename, "w") as outfile:
                _pickle.dump(data, outfile)
        case ".mat":
            savemat(filename, data)
        case _:
            raise ValueError(f"Unknown file extension {filename.suffix}")


def _read(filename: str | Path) -> dict:
    filename = Path(filename)
    match filename.suffix:
        case ".json":
            with open(filename) as f:
                return json.load(f)
        case ".yml" | ".yaml":
            with open(filename) as f:
                return yaml.safe_load(f)
        case ".pbz2":
            with bz2.BZ2File(filename, "r") as infile:
                return _pickle.load(infile)
        case ".mat":
            raise ValueError("MATLAB files are written for use outside tweezpy and cannot be loaded")
        case _:
            raise ValueError(f"Cannot load files with extension {filename.suffix}")


class BscExport(BaseModel):
    """Serialisable snapshot of a :class:`~tweezpy.bsc.Bsc`."""

    a: Coefficients | dict = Field(default={})
    b: Coefficients | dict = Field(default={})
    nbeams: int = Field(default=1, ge=0)
    basis: str = Field(default="regular", pattern=r"^(" + "|".join(BASES) + r")$")
    array_type: str = Field(default="array", pattern=r"^(" + "|".join(ARRAY_TYPES) + r")$")
    wavelength: float = Field(default=1.0, gt=0.0)
    absdz: float = Field(default=0.0, ge=0.0)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def model_post_init(self, __context: Any) -> None:
        if isinstance(self.a, dict):
            self.a = Coefficients(**self.a)
        if isinstance(self.b, dict):
            self.b = Coefficients(**self.b)

    @classmethod
    def from_bsc(cls, beam: Bsc) -> "BscExport":
        a, b = beam.get_coefficients()
        return cls(
            a=Coefficients.from_array(a),
            b=Coefficients.from_array(b),
            nbeams=beam.nbeams,
            basis=beam.basis,
            array_type=beam.array_type,
            wavelength=beam.wavelength,
            absdz=beam.absdz,
        )

    def to_bsc(self) -> Bsc:
        return Bsc(
            self.a.to_array(self.nbeams),
            self.b.to_array(self.nbeams),
            basis=self.basis,
            array_type=self.array_type,
            absdz=self.absdz,
            wavelength=self.wavelength,
        )

    def save(self, filename: str | Path) -> None:
        """Write the snapshot to ``.json``, ``.yaml``, ``.pbz2`` or ``.mat``.

        The ``.mat`` output is meant for MATLAB and is write-only: :meth:`load`
        reads the other three formats.
        """
        _write(self.model_dump(), filename)

    @classmethod
    def load(cls, filename: str | Path) -> "BscExport":
        return cls(**_read(filename))


class ForceTorqueExport(BaseModel):
    """Force, torque and spin results, optionally with the positions they belong to."""

    force: list[list[float]] = Field(default=[])
    torque: list[list[float]] = Field(default=[])
    spin: list[list[float]] = Field(default=[])
    position: list[list[float]] = Field(default=[])
    metadata: dict = Field(default={})

    @model_validator(mode="after")
    def number_of_columns(self) -> Self:
        shapes = {
            name: np.shape(getattr(self, name))
            for name in ("force", "torque", "spin", "position")
            if getattr(self, name)
        }
        if len(set(shapes.values())) > 1:
            raise ValueError(f"Result arrays are not compatible: {shapes}")
        return self

    @classmethod
    def from_results(cls, force, torque, spin, position=None, **metadata) -> "ForceTorqueExport":
        def columns(values):
            return np.asarray(values, dtype=float).reshape(3, -1).tolist()

        return cls(
            force=columns(force),
            torque=columns(torque),
            spin=columns(spin),
            position=[] if position is None else columns(position),
            metadata=metadata,
        )

    def save(self, filename: str | Path) -> None:
        """Write the results; as for :meth:`BscExport.save`, ``.mat`` is write-only."""
        _write(self.model_dump(), filename)

    @classmethod
    def load(cls, filename: str | Path) -> "ForceTorqueExport":
        return cls(**_read(filename))
