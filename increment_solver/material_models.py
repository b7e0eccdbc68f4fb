#!/usr/bin/env python3
"""
Material models for incremental stress integration.
This module contains the tensor utilities, parameter file loading and the
material models that can be driven by the increment solver.

Every model exposes the same two methods:

- ``initial_state()`` returns the virgin ``MaterialVariables``
- ``integrate(variables, drivers, ddrivers)`` returns a new ``MaterialVariables``
  holding the stress reached after applying ``ddrivers`` to the committed
  ``variables``, together with the 6x6 Jacobian d(stress)/d(strain).

``integrate`` never modifies its arguments.
"""

import ast
import logging
from pathlib import Path

import numpy as np
from scipy.optimize import newton

from .material_point import MaterialVariables

logger = logging.getLogger(__name__)

# Voigt order: 11, 22, 33, 23, 13, 12
VOIGT_INDICES = ((0, 0), (1, 1), (2, 2), (1, 2), (0, 2), (0, 1))

# --- Utility Functions ---

def parse_material_params(file_path):
    """
    Parses a single material parameter file with 'key = value' format.
    Lines starting with '#' are ignored.
    """
    params = {}
    file_path = Path(file_path)

    with open(file_path, 'r', encoding='utf-8', newline=None) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue
            key, value = line.split('=', 1)
            key = key.strip()
            value = value.strip()
            try:
                # Use ast.literal_eval for safe evaluation of Python literals
                params[key] = ast.literal_eval(value)
            except (ValueError, SyntaxError):
                params[key] = value
    return params


def load_and_create_model(material_file, isotropic_file=None):
    """
    Loads parameters from files and creates the corresponding material model.

    The model type is taken from the ``model`` key ('elastic' or 'von_mises').
    Without that key it is guessed from the file name ('Elastic', 'VonMises'
    or 'J2').

    Args:
        material_file: Path to the elastic/yield parameter file
        isotropic_file: Path to isotropic hardening parameters file (optional)

    Returns:
        The material model instance.
    """
    all_params = parse_material_params(material_file)
    if isotropic_file:
        all_params = {**all_params, **parse_material_params(isotropic_file)}

    # Normalize parameter names from file keys to class __init__ arguments
    param_map = {
        'sigy': 'yield_stress',
        'Q': 'R_inf',
    }
    final_params = {param_map.get(key, key): value for key, value in all_params.items()}

    model_type = final_params.pop('model', None)
    if model_type is None:
        model_name = Path(material_file).name
        if 'VonMises' in model_name or 'J2' in model_name:
            model_type = 'von_mises'
        elif 'Elastic' in model_name:
            model_type = 'elastic'
        else:
            raise ValueError(f"Could not determine model type from filename: {model_name}")

    try:
        E = float(final_params.pop('E'))
    except KeyError:
        raise ValueError(f"Missing Young's modulus 'E' in {material_file}") from None
    nu = float(final_params.pop('nu', 0.3))

    if model_type == 'elastic':
        return IsotropicElasticModel(E=E, nu=nu)

    if model_type == 'von_mises':
        if 'yield_stress' not in final_params:
            raise ValueError(f"von_mises model requires 'sigy' parameter, but not found in {material_file}")
        yield_stress = float(final_params.pop('yield_stress'))
        if 'R_inf' in final_params or 'b' in final_params:
            isotropic_model = VoceIsotropicHardeningModel(
                R_inf=float(final_params.pop('R_inf', 0.0)), b=float(final_params.pop('b', 0.0)))
        elif 'H' in final_params:
            isotropic_model = LinearIsotropicHardeningModel(H=float(final_params.pop('H')))
        else:
            isotropic_model = NoIsotropicHardeningModel()
        return VonMisesModel(E=E, nu=nu, yield_stress=yield_stress, isotropic_model=isotropic_model)

    raise ValueError(f"Invalid model type: {model_type}. Must be 'elastic' or 'von_mises'")

# --- Multi-axial Tensor Utilities ---

def deviatoric(tensor):
    """Computes the deviatoric part of a 3x3 tensor."""
    return tensor - (1./3.) * np.trace(tensor) * np.identity(3)

def mag(tensor):
    """Computes the Frobenius norm of a tensor, equivalent to sqrt(T:T)."""
    return np.sqrt(np.sum(tensor * tensor))

def tensor_to_voigt(tensor, offdiagscale=1.0):
    """
    Converts a 3x3 symmetric tensor to a 6x1 Voigt vector [11, 22, 33, 23, 13, 12].

    Shear entries are multiplied by ``offdiagscale`` (2.0 for engineering strain).
    """
    tensor = np.asarray(tensor, dtype=float)
    voigt = np.array([tensor[i, j] for i, j in VOIGT_INDICES])
    voigt[3:] *= offdiagscale
    return voigt

def voigt_to_tensor(voigt, offdiagscale=1.0):
    """
    Converts a 6x1 Voigt vector [11, 22, 33, 23, 13, 12] to a 3x3 symmetric tensor.

    Shear entries are divided by ``offdiagscale`` (2.0 for engineering strain).
    """
    voigt = np.asarray(voigt, dtype=float)
    if voigt.shape != (6,):
        raise ValueError(f"Expected a Voigt vector of 6 components, got shape {voigt.shape}")
    tensor = np.zeros((3, 3))
    for k, (i, j) in enumerate(VOIGT_INDICES):
        value = voigt[k] if k < 3 else voigt[k] / offdiagscale
        tensor[i, j] = tensor[j, i] = value
    return tensor

def isotropic_stiffness(E, nu):
    """6x6 isotropic elastic stiffness mapping engineering strain to stress."""
    lmbda = E * nu / ((1 + nu) * (1 - 2 * nu))
    mu = E / (2 * (1 + nu))
    D = np.zeros((6, 6))
    D[:3, :3] = lmbda
    D[[0, 1, 2], [0, 1, 2]] += 2 * mu
    D[[3, 4, 5], [3, 4, 5]] = mu
    return D

# Voigt forms of 1x1 and the deviatoric projector (engineering shear columns)
_VOIGT_ONE = np.array([1.0, 1.0, 1.0, 0.0, 0.0, 0.0])
_VOIGT_IDEV = np.diag([1.0, 1.0, 1.0, 0.5, 0.5, 0.5]) - np.outer(_VOIGT_ONE, _VOIGT_ONE) / 3.0

# --- Isotropic Hardening Models ---

class BaseIsotropicHardeningModel:
    """
    Abstract base class for isotropic hardening models.
    """
    def __init__(self, **params):
        self.params = params

    def compute_hardening_modulus(self, R, p):
        """
        Compute the isotropic hardening modulus h_iso = dR/dp at the current state.
        """
        raise NotImplementedError

    def update_implicit(self, R, p, dp):
        """
        Backward Euler update of the hardening variable.

        Returns:
            tuple: (R_new, p_new)
        """
        raise NotImplementedError

    def implicit_modulus(self, R, dp):
        """Derivative of R_new with respect to dp for ``update_implicit``."""
        raise NotImplementedError


class VoceIsotropicHardeningModel(BaseIsotropicHardeningModel):
    """
    Voce isotropic hardening model implementation.
    Follows the evolution law: dR = b * (R_inf - R) * dp
    """
    def __init__(self, R_inf=0.0, b=0.0):
        super().__init__(R_inf=R_inf, b=b)
        self.R_inf = R_inf  # Saturation value for isotropic hardening
        self.b = b          # Rate parameter for isotropic hardening

    def compute_hardening_modulus(self, R, p):
        if self.b == 0:
            return 0.0
        return self.b * (self.R_inf - R)

    def update_implicit(self, R, p, dp):
        # R_new = (R + b*R_inf*dp) / (1 + b*dp)
        p_new = p + dp
        if self.b == 0:
            return R, p_new
        R_new = (R + self.b * self.R_inf * dp) / (1 + self.b * dp)
        return R_new, p_new

    def implicit_modulus(self, R, dp):
        if self.b == 0:
            return 0.0
        return self.b * (self.R_inf - R) / (1 + self.b * dp) ** 2


class LinearIsotropicHardeningModel(BaseIsotropicHardeningModel):
    """
    Linear isotropic hardening: dR = H * dp
    """
    def __init__(self, H=0.0):
        super().__init__(H=H)
        self.H = H

    def compute_hardening_modulus(self, R, p):
        return self.H

    def update_implicit(self, R, p, dp):
        return R + self.H * dp, p + dp

    def implicit_modulus(self, R, dp):
        return self.H


class NoIsotropicHardeningModel(BaseIsotropicHardeningModel):
    """
    No isotropic hardening (perfect plasticity).
    """
    def __init__(self):
        super().__init__()

    def compute_hardening_modulus(self, R, p):
        return 0.0

    def update_implicit(self, R, p, dp):
        # No isotropic hardening; still accumulate equivalent plastic strain p
        return R, p + dp

    def implicit_modulus(self, R, dp):
        return 0.0

# --- Base Material Model ---

class BaseMaterialModel:
    """
    Abstract base class for incremental material models.
    """
    def __init__(self, **params):
        self.params = params

    def elastic_stiffness(self):
        raise NotImplementedError

    def initial_state(self):
        """Virgin state: zero stress and internal variables, elastic Jacobian."""
        return MaterialVariables(jacobian=self.elastic_stiffness())

    def integrate(self, variables, drivers, ddrivers):
        raise NotImplementedError


# --- Material Models ---

class LinearElasticModel(BaseMaterialModel):
    """
    Linear (possibly anisotropic) elasticity with a constant 6x6 stiffness.
    stress_new = stress + D . dstrain, Jacobian = D.
    """
    def __init__(self, stiffness):
        stiffness = np.array(stiffness, dtype=float)
        if stiffness.shape != (6, 6):
            raise ValueError(f"Stiffness must be a 6x6 matrix, got shape {stiffness.shape}")
        super().__init__(stiffness=stiffness)
        self.stiffness = stiffness

    def elastic_stiffness(self):
        return self.stiffness.copy()

    def integrate(self, variables, drivers, ddrivers):
        dstrain = tensor_to_voigt(ddrivers.strain, offdiagscale=2.0)
        dstress = voigt_to_tensor(self.stiffness @ dstrain)
        return MaterialVariables(
            stress=variables.stress + dstress,
            plastic_strain=variables.plastic_strain.copy(),
            cumeq=variables.cumeq,
            R=variables.R,
            jacobian=self.stiffness.copy(),
        )


class IsotropicElasticModel(LinearElasticModel):
    """
    Isotropic linear elasticity defined by Young's modulus and Poisson's ratio.
    """
    def __init__(self, E, nu=0.3):
        super().__init__(isotropic_stiffness(E, nu))
        self.params.update(E=E, nu=nu)
        self.E = E
        self.nu = nu


class VonMisesModel(BaseMaterialModel):
    """
    Incremental J2 plasticity with isotropic hardening.

    Stress update by radial return from the elastic trial stress
    stress + C : dstrain. The plastic multiplier dp solves

        q_trial - 3*G*dp - (sigma_y + R(dp)) = 0

    and the Jacobian is the consistent algorithmic tangent

        D = K 1x1 + 2G*theta*I_dev - 2G*theta_bar*NxN
        theta = 1 - 3G*dp/q_trial
        theta_bar = 3G/(3G + H) - 3G*dp/q_trial

    with N the unit deviatoric flow direction and H = dR_new/ddp.
    """
    def __init__(self, E, nu, yield_stress, isotropic_model=None, yield_tolerance=1e-10):
        if isotropic_model is None:
            isotropic_model = NoIsotropicHardeningModel()
        super().__init__(E=E, nu=nu, yield_stress=yield_stress)
        self.E = E
        self.nu = nu
        self.sigma_y = yield_stress
        self.isotropic_model = isotropic_model
        self.yield_tolerance = yield_tolerance
        self.lmbda = E * nu / ((1 + nu) * (1 - 2 * nu))
        self.mu = E / (2 * (1 + nu))
        self.K = E / (3 * (1 - 2 * nu))
        self._stiffness = isotropic_stiffness(E, nu)

    def elastic_stiffness(self):
        return self._stiffness.copy()

    def yield_function(self, stress, R):
        s = deviatoric(stress)
        J2 = 0.5 * np.sum(s * s)
        f = np.sqrt(3 * J2) - (self.sigma_y + R)
        return f, s

    def _solve_plastic_multiplier(self, q_trial, R, p, f_trial):
        G = self.mu
        iso = self.isotropic_model

        def residual(dp):
            R_new, _ = iso.update_implicit(R, p, dp)
            return q_trial - 3 * G * dp - (self.sigma_y + R_new)

        def residual_prime(dp):
            return -3 * G - iso.implicit_modulus(R, dp)

        h_iso = iso.compute_hardening_modulus(R, p)
        denominator = 3 * G + h_iso
        x0 = f_trial / denominator if denominator > 1e-12 else f_trial / (3 * G)
        dp = newton(residual, x0=x0, fprime=residual_prime, tol=1e-14, maxiter=50)
        return max(dp, 0.0)

    def integrate(self, variables, drivers, ddrivers):
        dstrain = ddrivers.strain
        trial_stress = (variables.stress + self.lmbda * np.trace(dstrain) * np.identity(3)
                        + 2 * self.mu * dstrain)
        f_trial, s_trial = self.yield_function(trial_stress, variables.R)

        if f_trial <= self.yield_tolerance:
            return MaterialVariables(
                stress=trial_stress,
                plastic_strain=variables.plastic_strain.copy(),
                cumeq=variables.cumeq,
                R=variables.R,
                jacobian=self.elastic_stiffness(),
            )

        G = self.mu
        q_trial = np.sqrt(3. / 2.) * mag(s_trial)
        dp = self._solve_plastic_multiplier(q_trial, variables.R, variables.cumeq, f_trial)
        R_new, p_new = self.isotropic_model.update_implicit(variables.R, variables.cumeq, dp)
        logger.debug("Plastic step: f_trial=%.4e, dp=%.4e", f_trial, dp)

        flow_direction = s_trial / mag(s_trial)
        d_epsilon_p = np.sqrt(3. / 2.) * dp * flow_direction
        stress = trial_stress - 2 * G * d_epsilon_p

        H = self.isotropic_model.implicit_modulus(variables.R, dp)
        theta = 1.0 - 3 * G * dp / q_trial
        theta_bar = 3 * G / (3 * G + H) - 3 * G * dp / q_trial
        n = tensor_to_voigt(flow_direction)
        jacobian = (self.K * np.outer(_VOIGT_ONE, _VOIGT_ONE)
                    + 2 * G * theta * _VOIGT_IDEV
                    - 2 * G * theta_bar * np.outer(n, n))

        return MaterialVariables(
            stress=stress,
            plastic_strain=variables.plastic_strain + d_epsilon_p,
            cumeq=p_new,
            R=R_new,
            jacobian=jacobian,
        )
