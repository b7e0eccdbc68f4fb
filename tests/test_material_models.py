#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tests for the tensor utilities, parameter files and material models.
"""

import numpy as np
import pytest

from increment_solver.material_models import (
    IsotropicElasticModel,
    LinearElasticModel,
    LinearIsotropicHardeningModel,
    NoIsotropicHardeningModel,
    VoceIsotropicHardeningModel,
    VonMisesModel,
    deviatoric,
    isotropic_stiffness,
    load_and_create_model,
    parse_material_params,
    tensor_to_voigt,
    voigt_to_tensor,
)
from increment_solver.material_point import Drivers


E = 200e3
NU = 0.3


def von_mises(stress):
    s = deviatoric(stress)
    return np.sqrt(1.5 * np.sum(s * s))


def integrate_voigt(model, dstrain_voigt, variables=None):
    if variables is None:
        variables = model.initial_state()
    ddrivers = Drivers(time=1.0, strain=voigt_to_tensor(dstrain_voigt, offdiagscale=2.0))
    return model.integrate(variables, Drivers(), ddrivers)


class TestVoigt:
    """Tests for the Voigt conversions."""

    def test_component_order(self):
        tensor = np.array([
            [1.0, 6.0, 5.0],
            [6.0, 2.0, 4.0],
            [5.0, 4.0, 3.0],
        ])
        np.testing.assert_array_equal(tensor_to_voigt(tensor), [1.0, 2.0, 3.0, 4.0, 5.0, 6.0])

    def test_engineering_shear_scale(self):
        """Shear entries are halved going to a tensor and doubled back."""
        tensor = voigt_to_tensor([0.1, 0.2, 0.3, 0.02, 0.04, 0.06], offdiagscale=2.0)
        assert tensor[1, 2] == pytest.approx(0.01)
        assert tensor[0, 2] == pytest.approx(0.02)
        assert tensor[0, 1] == pytest.approx(0.03)
        assert tensor[1, 0] == tensor[0, 1]
        assert tensor[0, 0] == 0.1
        np.testing.assert_allclose(
            tensor_to_voigt(tensor, offdiagscale=2.0), [0.1, 0.2, 0.3, 0.02, 0.04, 0.06])

    def test_wrong_shape_raises(self):
        with pytest.raises(ValueError, match="6 components"):
            voigt_to_tensor([1.0, 2.0, 3.0])


class TestElasticModels:
    """Tests for the linear elastic models."""

    def test_isotropic_stiffness_uniaxial_stress(self):
        D = isotropic_stiffness(E, NU)
        np.testing.assert_allclose(D @ [1.0, -NU, -NU, 0.0, 0.0, 0.0], [E, 0, 0, 0, 0, 0], atol=1e-8)
        assert D[5, 5] == pytest.approx(E / (2 * (1 + NU)))

    def test_shear_response(self):
        model = IsotropicElasticModel(E, NU)
        result = integrate_voigt(model, [0.0, 0.0, 0.0, 0.0, 0.0, 0.002])
        G = E / (2 * (1 + NU))
        assert result.stress[0, 1] == pytest.approx(G * 0.002)
        assert result.stress[1, 0] == pytest.approx(G * 0.002)
        np.testing.assert_allclose(np.diag(result.stress), 0.0, atol=1e-12)

    def test_integrate_adds_to_committed_stress(self):
        model = IsotropicElasticModel(E, NU)
        variables = model.initial_state()
        variables.stress[0, 0] = 50.0
        result = integrate_voigt(model, [1e-4, -3e-5, -3e-5, 0.0, 0.0, 0.0], variables)
        assert result.stress[0, 0] == pytest.approx(70.0)
        assert variables.stress[0, 0] == 50.0
        assert result is not variables

    def test_anisotropic_stiffness(self):
        D = isotropic_stiffness(E, NU)
        D[0, 0] *= 2.0
        model = LinearElasticModel(D)
        np.testing.assert_array_equal(model.initial_state().jacobian, D)
        result = integrate_voigt(model, [1e-3, 0.0, 0.0, 0.0, 0.0, 0.0])
        assert result.stress[0, 0] == pytest.approx(D[0, 0] * 1e-3)

    def test_bad_stiffness_shape(self):
        with pytest.raises(ValueError, match="6x6"):
            LinearElasticModel(np.eye(3))


class TestHardeningModels:
    """Tests for the isotropic hardening laws."""

    def test_voce_implicit_update(self):
        voce = VoceIsotropicHardeningModel(R_inf=100.0, b=10.0)
        R_new, p_new = voce.update_implicit(20.0, 0.01, 0.05)
        assert R_new == pytest.approx((20.0 + 10.0 * 100.0 * 0.05) / 1.5)
        assert p_new == pytest.approx(0.06)

    @pytest.mark.parametrize("iso", [
        VoceIsotropicHardeningModel(R_inf=100.0, b=10.0),
        LinearIsotropicHardeningModel(H=1500.0),
        NoIsotropicHardeningModel(),
    ])
    def test_implicit_modulus_matches_finite_difference(self, iso):
        R, p, dp, h = 15.0, 0.02, 0.003, 1e-7
        R_plus, _ = iso.update_implicit(R, p, dp + h)
        R_minus, _ = iso.update_implicit(R, p, dp - h)
        assert iso.implicit_modulus(R, dp) == pytest.approx((R_plus - R_minus) / (2 * h), rel=1e-6, abs=1e-6)


class TestVonMisesModel:
    """Tests for the J2 return mapping and its consistent tangent."""

    def make_model(self, isotropic_model=None):
        return VonMisesModel(E=E, nu=NU, yield_stress=250.0, isotropic_model=isotropic_model)

    def test_elastic_step(self):
        model = self.make_model()
        result = integrate_voigt(model, [5e-4, -1.5e-4, -1.5e-4, 0.0, 0.0, 0.0])
        assert result.stress[0, 0] == pytest.approx(100.0)
        assert result.cumeq == 0.0
        np.testing.assert_array_equal(result.jacobian, isotropic_stiffness(E, NU))

    @pytest.mark.parametrize("iso", [
        VoceIsotropicHardeningModel(R_inf=100.0, b=10.0),
        LinearIsotropicHardeningModel(H=2000.0),
        NoIsotropicHardeningModel(),
    ])
    def test_plastic_step_on_yield_surface(self, iso):
        model = self.make_model(iso)
        result = integrate_voigt(model, [0.004, -0.001, -0.0012, 0.0005, 0.0002, 0.001])
        assert result.cumeq > 0.0
        assert von_mises(result.stress) == pytest.approx(250.0 + result.R, rel=1e-10)
        # Plastic flow is isochoric
        assert np.trace(result.plastic_strain) == pytest.approx(0.0, abs=1e-14)

    @pytest.mark.parametrize("iso", [
        VoceIsotropicHardeningModel(R_inf=100.0, b=10.0),
        LinearIsotropicHardeningModel(H=2000.0),
        NoIsotropicHardeningModel(),
    ])
    def test_consistent_tangent_matches_finite_difference(self, iso):
        model = self.make_model(iso)
        e0 = np.array([0.004, -0.001, -0.0012, 0.0005, 0.0002, 0.001])
        jacobian = integrate_voigt(model, e0).jacobian

        h = 1e-7
        D_fd = np.zeros((6, 6))
        for j in range(6):
            step = np.zeros(6)
            step[j] = h
            s_plus = tensor_to_voigt(integrate_voigt(model, e0 + step).stress)
            s_minus = tensor_to_voigt(integrate_voigt(model, e0 - step).stress)
            D_fd[:, j] = (s_plus - s_minus) / (2 * h)

        np.testing.assert_allclose(jacobian, D_fd, rtol=1e-5, atol=1.0)

    def test_committed_state_untouched(self):
        model = self.make_model(LinearIsotropicHardeningModel(H=2000.0))
        variables = model.initial_state()
        integrate_voigt(model, [0.01, -0.005, -0.005, 0.0, 0.0, 0.0], variables)
        np.testing.assert_array_equal(variables.stress, 0.0)
        np.testing.assert_array_equal(variables.plastic_strain, 0.0)
        assert variables.cumeq == 0.0


class TestParameterFiles:
    """Tests for key = value material parameter files."""

    def test_parse(self, tmp_path):
        path = tmp_path / "params.txt"
        path.write_text("# steel\nE = 200e3\nnu = 0.3\nmodel = von_mises\n\nC = [1.0, 2.0]\n", encoding="utf-8")
        params = parse_material_params(path)
        assert params == {"E": 200e3, "nu": 0.3, "model": "von_mises", "C": [1.0, 2.0]}

    def test_von_mises_with_voce(self, tmp_path):
        path = tmp_path / "steel.txt"
        path.write_text("model = von_mises\nE = 210e3\nnu = 0.29\nsigy = 300\n", encoding="utf-8")
        iso_path = tmp_path / "iso.txt"
        iso_path.write_text("Q = 120\nb = 8\n", encoding="utf-8")
        model = load_and_create_model(path, iso_path)
        assert isinstance(model, VonMisesModel)
        assert model.E == 210e3
        assert model.sigma_y == 300.0
        assert isinstance(model.isotropic_model, VoceIsotropicHardeningModel)
        assert model.isotropic_model.R_inf == 120.0
        assert model.isotropic_model.b == 8.0

    def test_linear_hardening(self, tmp_path):
        path = tmp_path / "J2_steel.txt"
        path.write_text("E = 200e3\nsigy = 250\nH = 1000\n", encoding="utf-8")
        model = load_and_create_model(path)
        assert isinstance(model, VonMisesModel)
        assert isinstance(model.isotropic_model, LinearIsotropicHardeningModel)
        assert model.nu == 0.3

    def test_elastic_from_filename(self, tmp_path):
        path = tmp_path / "Steel_Elastic.txt"
        path.write_text("E = 200e3\nnu = 0.25\n", encoding="utf-8")
        model = load_and_create_model(path)
        assert isinstance(model, IsotropicElasticModel)
        assert model.nu == 0.25

    def test_unknown_model_type(self, tmp_path):
        path = tmp_path / "params.txt"
        path.write_text("E = 200e3\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Could not determine model type"):
            load_and_create_model(path)

    def test_missing_yield_stress(self, tmp_path):
        path = tmp_path / "params.txt"
        path.write_text("model = von_mises\nE = 200e3\n", encoding="utf-8")
        with pytest.raises(ValueError, match="sigy"):
            load_and_create_model(path)
