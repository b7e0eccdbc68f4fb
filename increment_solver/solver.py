#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Strain increment solver for partially prescribed loading.

Given a material point and a partially prescribed increment (some
strain components prescribed, or a stress change prescribed), the routines
in this module find the remaining strain components with a Newton-Raphson
iteration on the free degrees of freedom, using the Jacobian returned by the
material model.

The material point is integrated but never committed here: after a
successful call ``material.variables_new`` holds the accepted trial state
and the caller decides whether to ``commit()`` it.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import matplotlib.pyplot as plt

from .material_models import tensor_to_voigt, voigt_to_tensor
from .material_point import Drivers

logger = logging.getLogger(__name__)

PRECISION_SETTINGS = {
    'standard': 1e-9,
    'high': 1e-11,
    'scientific': 1e-12,
}


@dataclass
class SolverSettings:
    """
    Iteration controls and initial guess constants.

    Attributes:
        max_iter: maximum number of Newton iterations
        norm_acc: convergence threshold on the norm of the strain correction
        guess_E: elastic modulus used to seed stress-driven initial guesses
        guess_nu: Poisson's ratio used to seed lateral strain guesses
    """

    max_iter: int = 50
    norm_acc: float = 1e-9
    guess_E: float = 200e3
    guess_nu: float = 0.3

    @classmethod
    def from_precision(cls, precision='standard', **kwargs):
        if precision not in PRECISION_SETTINGS:
            raise ValueError(
                f"Invalid precision: {precision}. Must be one of {sorted(PRECISION_SETTINGS)}")
        return cls(norm_acc=PRECISION_SETTINGS[precision], **kwargs)


class IncrementSolverError(RuntimeError):
    """Base class for strain increment solver failures."""


class IncrementConvergenceError(IncrementSolverError):
    """Raised when the strain correction does not converge within max_iter iterations."""

    def __init__(self, variant, iterations, residual_norm, correction_norm):
        self.variant = variant
        self.iterations = iterations
        self.residual_norm = residual_norm
        self.correction_norm = correction_norm
        super().__init__(
            f"No convergence in strain increment ({variant}) after {iterations} iterations: "
            f"||r||={residual_norm:.3e}, ||dstrain correction||={correction_norm:.3e}")


class SingularJacobianError(IncrementSolverError):
    """Raised when the reduced Jacobian cannot be solved for a correction."""

    def __init__(self, variant, iteration, free):
        self.variant = variant
        self.iteration = iteration
        self.free = tuple(int(i) for i in free)
        super().__init__(
            f"Singular Jacobian in strain increment ({variant}) at iteration {iteration}, "
            f"free components {self.free}")


@dataclass
class IncrementResult:
    """
    Accepted strain increment and convergence information.

    ``history`` holds one entry per iteration with the residual norm and the
    norm of the applied correction.
    """

    dstrain: np.ndarray
    iterations: int
    residual_norm: float
    correction_norm: float
    variant: str = 'generic'
    history: list = field(default_factory=list)


def _check_free(free):
    free = np.asarray(free, dtype=int).ravel()
    if free.size == 0:
        raise ValueError("At least one free component is required")
    if np.any(free < 0) or np.any(free > 5):
        raise ValueError(f"Free components must be Voigt indices in 0..5, got {free.tolist()}")
    if np.unique(free).size != free.size:
        raise ValueError(f"Free components must be unique, got {free.tolist()}")
    return free


def _check_vector(value, name):
    value = np.array(value, dtype=float)
    if value.shape != (6,):
        raise ValueError(f"{name} must have 6 components, got shape {value.shape}")
    return value


def solve_increment(material, dt, dstrain, free, target=None, max_iter=None,
                    norm_acc=None, settings=None, variant='generic'):
    """
    Find the free components of a strain increment by Newton-Raphson.

    Each iteration writes ``dt`` and the current increment into the driver
    increment, integrates the material point, and corrects the free
    components with the reduced Jacobian so that the stress change
    ``stress_new - stress_committed`` matches ``target`` on the free rows.

    Parameters:
    -----------
    material : MaterialPoint
        Material point to integrate. Its committed state is not modified.
    dt : float
        Time increment.
    dstrain : array-like, shape (6,)
        Initial guess of the strain increment in Voigt form with engineering
        shear. Components not listed in ``free`` are prescribed and kept as is.
    free : sequence of int
        Voigt indices solved for.
    target : array-like, shape (6,), optional
        Prescribed stress change. Only the free rows enter the residual.
        Defaults to zero.
    max_iter, norm_acc : optional
        Override ``settings.max_iter`` and ``settings.norm_acc``.
    settings : SolverSettings, optional
    variant : str
        Name reported in logs and errors.

    Returns:
    --------
    IncrementResult
        The accepted increment. ``material.variables_new`` holds the
        integration result of the last iteration.

    Raises:
    -------
    IncrementConvergenceError
        If the correction norm is still above ``norm_acc`` after ``max_iter``
        iterations.
    SingularJacobianError
        If the reduced Jacobian is singular.
    """
    if settings is None:
        settings = SolverSettings()
    if max_iter is None:
        max_iter = settings.max_iter
    if norm_acc is None:
        norm_acc = settings.norm_acc
    if int(max_iter) != max_iter or max_iter < 0:
        raise ValueError(f"max_iter must be a non-negative integer, got {max_iter}")
    if not norm_acc > 0:
        raise ValueError(f"norm_acc must be positive, got {norm_acc}")

    free = _check_free(free)
    dstrain = _check_vector(dstrain, 'dstrain')
    target = np.zeros(6) if target is None else _check_vector(target, 'target')

    stress0 = tensor_to_voigt(material.variables.stress)
    residual_norm = correction_norm = float('nan')
    history = []

    for iteration in range(1, int(max_iter) + 1):
        material.ddrivers = Drivers(time=dt, strain=voigt_to_tensor(dstrain, offdiagscale=2.0))
        trial = material.integrate()
        dstress = tensor_to_voigt(trial.stress) - stress0
        r = (dstress - target)[free]
        D = np.asarray(trial.jacobian, dtype=float)[np.ix_(free, free)]
        try:
            dstr = np.linalg.solve(D, -r)
        except np.linalg.LinAlgError as exc:
            logger.warning("Singular Jacobian in %s increment at iteration %d", variant, iteration)
            raise SingularJacobianError(variant, iteration, free) from exc
        if not np.all(np.isfinite(dstr)):
            logger.warning("Non-finite correction in %s increment at iteration %d", variant, iteration)
            raise SingularJacobianError(variant, iteration, free)

        dstrain[free] += dstr
        residual_norm = float(np.linalg.norm(r))
        correction_norm = float(np.linalg.norm(dstr))
        history.append({'iter': iteration, 'residual': residual_norm, 'correction': correction_norm})
        logger.debug("  Iter %d: ||r||=%.2e, ||d(dstrain)||=%.2e [%s]",
                     iteration, residual_norm, correction_norm, variant)

        if correction_norm < norm_acc:
            logger.debug("%s increment converged in %d iterations", variant, iteration)
            return IncrementResult(
                dstrain=dstrain,
                iterations=iteration,
                residual_norm=residual_norm,
                correction_norm=correction_norm,
                variant=variant,
                history=history,
            )

    logger.warning("No convergence in %s increment after %d iterations (||r||=%.3e)",
                   variant, max_iter, residual_norm)
    raise IncrementConvergenceError(variant, int(max_iter), residual_norm, correction_norm)


def uniaxial_increment(material, dstrain11, dt, dstrain=None, max_iter=None,
                       norm_acc=None, settings=None):
    """
    Strain-driven uniaxial increment.

    Component 11 of the strain increment is prescribed; the other five are
    solved so that the stress change vanishes in every other direction
    (uniaxial stress). The default initial guess is
    [dstrain11, -nu*dstrain11, -nu*dstrain11, 0, 0, 0] with
    nu = settings.guess_nu.
    """
    if settings is None:
        settings = SolverSettings()
    dstrain11 = float(dstrain11)
    if dstrain is None:
        nu = settings.guess_nu
        dstrain = [dstrain11, -nu * dstrain11, -nu * dstrain11, 0.0, 0.0, 0.0]
    dstrain = _check_vector(dstrain, 'dstrain')
    dstrain[0] = dstrain11
    return solve_increment(material, dt, dstrain, free=[1, 2, 3, 4, 5], max_iter=max_iter,
                           norm_acc=norm_acc, settings=settings, variant='uniaxial')


def biaxial_increment(material, dstrain11, dstrain12, dt, dstrain=None, max_iter=None,
                      norm_acc=None, settings=None):
    """
    Strain and shear driven increment.

    Components 11 and 12 (engineering shear) of the strain increment are
    prescribed; components 22, 33, 23 and 13 are solved so that the
    corresponding stress changes vanish.
    """
    if settings is None:
        settings = SolverSettings()
    dstrain11 = float(dstrain11)
    dstrain12 = float(dstrain12)
    if dstrain is None:
        nu = settings.guess_nu
        dstrain = [dstrain11, -nu * dstrain11, -nu * dstrain11, 0.0, 0.0, dstrain12]
    dstrain = _check_vector(dstrain, 'dstrain')
    dstrain[0] = dstrain11
    dstrain[5] = dstrain12
    return solve_increment(material, dt, dstrain, free=[1, 2, 3, 4], max_iter=max_iter,
                           norm_acc=norm_acc, settings=settings, variant='biaxial')


def stress_driven_uniaxial_increment(material, dstress11, dt, dstrain=None, max_iter=None,
                                     norm_acc=None, settings=None):
    """
    Stress-driven uniaxial increment.

    All six strain components are solved with the full 6x6 Jacobian so that
    the stress change equals dstress11 in direction 11 and zero elsewhere.
    The default initial guess is elastic:
    dstrain11 = dstress11 / guess_E, lateral components -guess_nu * dstrain11.
    """
    if settings is None:
        settings = SolverSettings()
    dstress11 = float(dstress11)
    if dstrain is None:
        d = dstress11 / settings.guess_E
        nu = settings.guess_nu
        dstrain = [d, -nu * d, -nu * d, 0.0, 0.0, 0.0]
    target = np.array([dstress11, 0.0, 0.0, 0.0, 0.0, 0.0])
    return solve_increment(material, dt, dstrain, free=[0, 1, 2, 3, 4, 5], target=target,
                           max_iter=max_iter, norm_acc=norm_acc, settings=settings,
                           variant='stress_driven_uniaxial')

# --- Load history drivers ---

def run_strain_controlled(material, strain11_history, dt=1.0, settings=None):
    """
    Runs a strain-controlled uniaxial simulation.

    For every total strain value e11 in ``strain11_history`` the lateral
    strains are solved for a uniaxial stress state and the step is committed.

    Returns:
        (stresses, strains): arrays of shape (n, 3, 3) with the committed
        stress and total strain after each step.
    """
    stresses = []
    strains = []
    for target_e11 in strain11_history:
        dstrain11 = target_e11 - material.drivers.strain[0, 0]
        uniaxial_increment(material, dstrain11, dt, settings=settings)
        material.commit()
        stresses.append(material.variables.stress.copy())
        strains.append(material.drivers.strain.copy())
    return np.array(stresses).reshape(-1, 3, 3), np.array(strains).reshape(-1, 3, 3)


def run_stress_controlled(material, stress11_history, dt=1.0, settings=None):
    """
    Runs a stress-controlled uniaxial simulation.

    The run stops at the first step the solver cannot converge; the steps
    accepted until then are returned.

    Returns:
        (strains, stresses): arrays of shape (n, 3, 3).
    """
    strains = []
    stresses = []
    for step, target_s11 in enumerate(stress11_history):
        dstress11 = target_s11 - material.variables.stress[0, 0]
        try:
            stress_driven_uniaxial_increment(material, dstress11, dt, settings=settings)
        except IncrementSolverError as e:
            logger.warning("Simulation stopped at step %d (s11=%.3f): %s", step, target_s11, e)
            break
        material.commit()
        strains.append(material.drivers.strain.copy())
        stresses.append(material.variables.stress.copy())
    return np.array(strains).reshape(-1, 3, 3), np.array(stresses).reshape(-1, 3, 3)


def generate_cyclic_path(amp_pos, amp_neg, n_cycles, n_points):
    """
    Generate a cyclic loading path 0 -> amp_pos -> amp_neg -> amp_pos -> ...

    Parameters:
    -----------
    amp_pos, amp_neg : float
        Maximum and minimum amplitude.
    n_cycles : int
        Number of cycles (>= 1).
    n_points : int
        Number of points per segment.

    Returns:
    --------
    path : ndarray
    cycle_ids : ndarray
        Cycle index for each point
    sequence_ids : ndarray
        Segment index for each point
    """
    if n_cycles < 1 or n_points < 2:
        raise ValueError(f"Need n_cycles >= 1 and n_points >= 2, got {n_cycles} and {n_points}")

    # First cycle: loading (0->+), unloading (+->-), loading (- -> +)
    segments = [(0.0, amp_pos, 0), (amp_pos, amp_neg, 0), (amp_neg, amp_pos, 0)]
    # Subsequent cycles: unloading (+->-), loading (- -> +)
    for c in range(1, n_cycles):
        segments.append((amp_pos, amp_neg, c))
        segments.append((amp_neg, amp_pos, c))

    path = np.concatenate([np.linspace(start, stop, n_points) for start, stop, _ in segments])
    cycle_ids = np.repeat([c for _, _, c in segments], n_points)
    sequence_ids = np.repeat(np.arange(len(segments)), n_points)
    return path, cycle_ids, sequence_ids


def plot_hysteresis(strains, stresses, ax=None, label=None, component=(0, 0)):
    """
    Plot stress against strain for one tensor component and return the axes.
    """
    i, j = component
    if ax is None:
        _, ax = plt.subplots(figsize=(7, 5))
    ax.plot(np.asarray(strains)[:, i, j], np.asarray(stresses)[:, i, j], label=label, linewidth=1.5)
    ax.set_xlabel(f"Strain e{i + 1}{j + 1} [-]")
    ax.set_ylabel(f"Stress sigma{i + 1}{j + 1} [MPa]")
    ax.grid(True, linestyle=":", linewidth=0.5)
    if label is not None:
        ax.legend()
    return ax
