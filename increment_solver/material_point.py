#!/usr/bin/env python3
"""
Material point state containers.

A material point carries two snapshots of the material state: the committed
one (``variables``, last accepted step) and the trial one (``variables_new``,
produced by the latest integration). The drivers hold the total time and
strain reached at the committed state, the driver increment ``ddrivers``
holds what the next integration applies on top of it.
"""

from dataclasses import dataclass, field, fields

import numpy as np


def _add_fields(a, b):
    """Fieldwise sum of two dataclass instances of the same type."""
    if type(a) is not type(b):
        return NotImplemented
    return type(a)(**{f.name: getattr(a, f.name) + getattr(b, f.name) for f in fields(a)})


@dataclass
class MaterialVariables:
    """
    One snapshot of the material state.

    Attributes:
        stress: Cauchy stress, 3x3 tensor
        plastic_strain: plastic strain, 3x3 tensor
        cumeq: accumulated equivalent plastic strain
        R: isotropic hardening variable
        jacobian: d(stress)/d(strain) in Voigt form, 6x6 (engineering shear columns)
    """

    stress: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))
    plastic_strain: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))
    cumeq: float = 0.0
    R: float = 0.0
    jacobian: np.ndarray = field(default_factory=lambda: np.zeros((6, 6)))

    def __add__(self, dstate):
        return _add_fields(self, dstate)

    def copy(self):
        return MaterialVariables(
            stress=self.stress.copy(),
            plastic_strain=self.plastic_strain.copy(),
            cumeq=float(self.cumeq),
            R=float(self.R),
            jacobian=self.jacobian.copy(),
        )


@dataclass
class Drivers:
    """External inputs of an integration: time and (total or incremental) strain tensor."""

    time: float = 0.0
    strain: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))

    def __add__(self, ddrivers):
        return _add_fields(self, ddrivers)


class MaterialPoint:
    """
    Committed/trial bookkeeping around a material model.

    ``integrate()`` evaluates the model for the current ``ddrivers`` and stores
    the result as the trial state. The committed state only changes through
    ``commit()``.
    """

    def __init__(self, model, variables=None, drivers=None):
        self.model = model
        self.variables = variables if variables is not None else model.initial_state()
        self.variables_new = None
        self.drivers = drivers if drivers is not None else Drivers()
        self.ddrivers = Drivers()

    def integrate(self):
        """Recompute the trial state from the committed state and the driver increment."""
        self.variables_new = self.model.integrate(self.variables, self.drivers, self.ddrivers)
        return self.variables_new

    def commit(self):
        """Accept the trial state and advance the drivers by ``ddrivers``."""
        if self.variables_new is None:
            raise ValueError("Nothing to commit: the material point has not been integrated")
        self.variables = self.variables_new
        self.drivers = self.drivers + self.ddrivers
        self.variables_new = None
        self.ddrivers = Drivers()

    def reset(self):
        """Reset all state variables to initial conditions."""
        self.variables = self.model.initial_state()
        self.variables_new = None
        self.drivers = Drivers()
        self.ddrivers = Drivers()
