"""
Strain increment solver for incremental material models.

Finds the strain increment compatible with a partially prescribed loading
(strain-driven uniaxial, strain/shear biaxial, stress-driven uniaxial) with a
Newton-Raphson iteration on the material Jacobian. Reference elastic and J2
plastic models and a committed/trial material point are included.
"""

from .material_models import (
    deviatoric,
    mag,
    tensor_to_voigt,
    voigt_to_tensor,
    isotropic_stiffness,
    parse_material_params,
    load_and_create_model,
    VoceIsotropicHardeningModel,
    LinearIsotropicHardeningModel,
    NoIsotropicHardeningModel,
    LinearElasticModel,
    IsotropicElasticModel,
    VonMisesModel,
)
from .material_point import (
    Drivers,
    MaterialPoint,
    MaterialVariables,
)
from .solver import (
    SolverSettings,
    IncrementResult,
    IncrementSolverError,
    IncrementConvergenceError,
    SingularJacobianError,
    solve_increment,
    uniaxial_increment,
    biaxial_increment,
    stress_driven_uniaxial_increment,
    run_strain_controlled,
    run_stress_controlled,
    generate_cyclic_path,
    plot_hysteresis,
)

__all__ = [
    "deviatoric",
    "mag",
    "tensor_to_voigt",
    "voigt_to_tensor",
    "isotropic_stiffness",
    "parse_material_params",
    "load_and_create_model",
    "VoceIsotropicHardeningModel",
    "LinearIsotropicHardeningModel",
    "NoIsotropicHardeningModel",
    "LinearElasticModel",
    "IsotropicElasticModel",
    "VonMisesModel",
    "Drivers",
    "MaterialPoint",
    "MaterialVariables",
    "SolverSettings",
    "IncrementResult",
    "IncrementSolverError",
    "IncrementConvergenceError",
    "SingularJacobianError",
    "solve_increment",
    "uniaxial_increment",
    "biaxial_increment",
    "stress_driven_uniaxial_increment",
    "run_strain_controlled",
    "run_stress_controlled",
    "generate_cyclic_path",
    "plot_hysteresis",
]
