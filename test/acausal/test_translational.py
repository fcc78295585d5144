# Copyright (C) 2024 Collimator, Inc.
# SPDX-License-Identifier: AGPL-3.0-only
#
# This program is free software: you can redistribute it and/or modify it under
# the terms of the GNU Affero General Public License as published by the Free
# Software Foundation, version 3. This program is distributed in the hope that it
# will be useful, but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the GNU Affero General
# Public License for more details.  You should have received a copy of the GNU
# Affero General Public License along with this program. If not, see
# <https://www.gnu.org/licenses/>.


import numpy as np
from matplotlib import pyplot as plt
import pytest

from acausal_stdlib import AcausalCompiler, AcausalDiagram, EqnEnv, simulate
from acausal_stdlib.component_library import translational as trans
from acausal_stdlib.component_library import translational_position as tp
from acausal_stdlib.error import AcausalCompilerError


def test_mech_oscillator(show_plot=False):
    # relative spring, its elongation delta_s is a state
    ev = EqnEnv()
    ad = AcausalDiagram()
    fixed = trans.Fixed(ev, name="fixed")
    spring = trans.Spring(ev, name="spring", k=1.0, delta_s0=1.0)
    mass = trans.Mass(ev, name="mass", m=1.0, initial_velocity_fixed=True)
    vs = trans.VelocitySensor(ev, name="vs")
    ad.connect(fixed, "flange", spring, "flange_a")
    ad.connect(spring, "flange_b", mass, "flange")
    ad.connect(mass, "flange", vs, "flange")
    system = AcausalCompiler(ev, ad)()
    assert "spring_delta_s" in system.state_names

    t = np.linspace(0.0, 2 * np.pi, 101)
    results = simulate(system, (0.0, 2 * np.pi), t_eval=t, rtol=1e-8, atol=1e-10)

    if show_plot:
        plt.plot(t, results.states["spring_delta_s"], label="spring_delta_s")
        plt.plot(t, results.outputs["vs_v"], label="vs_v")
        plt.legend()
        plt.show()

    assert np.allclose(results.states["spring_delta_s"], np.cos(t), atol=1e-5)
    assert np.allclose(results.outputs["vs_v"], np.sin(t), atol=1e-5)
    assert np.allclose(results.value(mass.v), np.sin(t), atol=1e-5)


def test_absolute_spring():
    ev = EqnEnv()
    ad = AcausalDiagram()
    fixed = trans.Fixed(ev, name="fixed")
    spring = trans.Spring(ev, name="spring", k=4.0, absolute=True)
    mass = trans.Mass(
        ev,
        name="mass",
        m=1.0,
        initial_position=1.0,
        initial_position_fixed=True,
        initial_velocity_fixed=True,
    )
    ps = trans.PositionSensor(ev, name="ps")
    ad.connect(fixed, "flange", spring, "flange_a")
    ad.connect(spring, "flange_b", mass, "flange")
    ad.connect(mass, "flange", ps, "flange")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 3.0, 61)
    results = simulate(system, (0.0, 3.0), t_eval=t, rtol=1e-8, atol=1e-10)
    assert np.allclose(results.outputs["ps_s"], np.cos(2.0 * t), atol=1e-5)


def test_damped_mass_with_force_input(show_plot=False):
    # m*dv/dt = f - d*v
    ev = EqnEnv()
    ad = AcausalDiagram()
    force = trans.Force(ev, name="force", enable_force_port=True)
    fs = trans.ForceSensor(ev, name="fs")
    mass = trans.Mass(ev, name="mass", m=2.0, initial_velocity_fixed=True)
    damper = trans.Damper(ev, name="damper", d=4.0)
    fixed = trans.Fixed(ev, name="fixed")
    ad.connect(force, "flange", fs, "flange_a")
    ad.connect(fs, "flange_b", mass, "flange")
    ad.connect(mass, "flange", damper, "flange_a")
    ad.connect(damper, "flange_b", fixed, "flange")
    system = AcausalCompiler(ev, ad)()
    assert system.input_names == ["force_f"]

    t = np.linspace(0.0, 3.0, 31)
    results = simulate(system, (0.0, 3.0), t_eval=t, inputs={"force_f": 8.0})
    v_sol = 2.0 * (1.0 - np.exp(-2.0 * t))

    if show_plot:
        plt.plot(t, results.value(mass.v), label="mass_v")
        plt.plot(t, v_sol, label="v_sol", linestyle="--")
        plt.legend()
        plt.show()

    assert np.allclose(results.value(mass.v), v_sol, atol=1e-5)
    assert np.allclose(results.outputs["fs_f"], 8.0)


def test_gravity():
    ev = EqnEnv()
    ad = AcausalDiagram()
    mass = trans.Mass(ev, name="mass", m=3.0, g=-ev.g_n.val, initial_velocity_fixed=True)
    ps = trans.PositionSensor(ev, name="ps")
    ad.connect(mass, "flange", ps, "flange")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 1.0, 11)
    results = simulate(system, (0.0, 1.0), t_eval=t)
    assert np.allclose(results.outputs["ps_s"], -0.5 * ev.g_n.val * t**2, atol=1e-6)


def test_acceleration_source():
    ev = EqnEnv()
    ad = AcausalDiagram()
    acc = trans.Acceleration(ev, name="acc", a=2.0, enable_acceleration_port=False)
    ps = trans.PositionSensor(ev, name="ps")
    vs = trans.VelocitySensor(ev, name="vs")
    ad.connect(acc, "flange", ps, "flange")
    ad.connect(acc, "flange", vs, "flange")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 2.0, 21)
    results = simulate(system, (0.0, 2.0), t_eval=t)
    assert np.allclose(results.outputs["vs_v"], 2.0 * t, atol=1e-6)
    assert np.allclose(results.outputs["ps_s"], t**2, atol=1e-6)


def test_velocity_source_into_damper():
    ev = EqnEnv()
    ad = AcausalDiagram()
    vel = trans.Velocity(ev, name="vel", v=1.5, enable_velocity_port=False)
    damper = trans.Damper(ev, name="damper", d=2.0)
    fixed = trans.Fixed(ev, name="fixed")
    ad.connect(vel, "flange", damper, "flange_a")
    ad.connect(damper, "flange_b", fixed, "flange")
    system = AcausalCompiler(ev, ad)()

    results = simulate(system, (0.0, 1.0), t_eval=[0.0, 0.5, 1.0])
    assert np.allclose(results.value(damper.f1), 3.0)


def test_position_oscillator(show_plot=False):
    # position based flanges, f = k*(s_a - s_b - l)
    ev = EqnEnv()
    ad = AcausalDiagram()
    fixed = tp.Fixed(ev, name="fixed", s_0=0.0)
    spring = tp.Spring(ev, name="spring", k=1.0, l=0.0)
    mass = tp.Mass(ev, name="mass", m=1.0, s=1.0, initial_position_fixed=True)
    ps = tp.PositionSensor(ev, name="ps")
    ad.connect(fixed, "flange", spring, "flange_a")
    ad.connect(spring, "flange_b", mass, "flange")
    ad.connect(mass, "flange", ps, "flange")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 2 * np.pi, 101)
    results = simulate(system, (0.0, 2 * np.pi), t_eval=t, rtol=1e-8, atol=1e-10)
    if show_plot:
        plt.plot(t, results.outputs["ps_s"], label="ps_s")
        plt.plot(t, np.cos(t), label="s_sol", linestyle="--")
        plt.legend()
        plt.show()
    assert np.allclose(results.outputs["ps_s"], np.cos(t), atol=1e-5)


def test_position_spring_damper_rest_length():
    # a damped mass settles where the spring is unstretched
    ev = EqnEnv()
    ad = AcausalDiagram()
    fixed = tp.Fixed(ev, name="fixed", s_0=1.0)
    sd = tp.SpringDamper(ev, name="sd", k=4.0, d=4.0, l=-2.0)
    mass = tp.Mass(ev, name="mass", m=1.0, s=5.0, initial_position_fixed=True)
    ad.connect(fixed, "flange", sd, "flange_a")
    ad.connect(sd, "flange_b", mass, "flange")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 20.0, 21)
    results = simulate(system, (0.0, 20.0), t_eval=t)
    # s_a - s_b - l = 0
    assert np.allclose(results.value(mass.s)[-1], 3.0, atol=1e-4)
    assert np.allclose(results.value(mass.s)[0], 5.0)


def test_sliding_mass():
    ev = EqnEnv()
    ad = AcausalDiagram()
    force = tp.Force(ev, name="force", f=2.0, enable_force_port=False)
    sm = tp.SlidingMass(ev, name="sm", m=1.0, L=1.0, s0=0.0)
    ad.connect(force, "flange", sm, "flange_a")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 2.0, 21)
    results = simulate(system, (0.0, 2.0), t_eval=t)
    assert np.allclose(results.outputs["sm_s"], t**2, atol=1e-6)
    assert np.allclose(results.value(sm.sb) - results.value(sm.sa), 1.0, atol=1e-6)


def test_position_source_filtered():
    ev = EqnEnv()
    ad = AcausalDiagram()
    pos = tp.Position(ev, name="pos", s_ref=1.0, f_crit=1.0, enable_position_port=False)
    ps = tp.PositionSensor(ev, name="ps")
    acc = tp.AccelerationSensor(ev, name="acc")
    ad.connect(pos, "flange", ps, "flange")
    ad.connect(pos, "flange", acc, "flange")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 5.0, 51)
    results = simulate(system, (0.0, 5.0), t_eval=t)
    assert results.outputs["ps_s"][0] == pytest.approx(0.0)
    assert results.outputs["ps_s"][-1] == pytest.approx(1.0, abs=1e-3)
    assert abs(results.outputs["acc_a"][-1]) < 1e-2


def test_exact_position_with_damper():
    # the damper needs the derivative of the prescribed position
    ev = EqnEnv()
    ad = AcausalDiagram()
    pos = tp.Position(ev, name="pos", exact=True)
    damper = tp.Damper(ev, name="damper")
    fixed = tp.Fixed(ev, name="fixed")
    ad.connect(pos, "flange", damper, "flange_a")
    ad.connect(damper, "flange_b", fixed, "flange")
    with pytest.raises(AcausalCompilerError):
        AcausalCompiler(ev, ad)()


def test_force_on_free_mass():
    # nothing needs the position of the mass, it is integrated by the results
    ev = EqnEnv()
    ad = AcausalDiagram()
    force = trans.Force(ev, name="force", f=1.0)
    mass = trans.Mass(
        ev,
        name="mass",
        m=1.0,
        initial_velocity_fixed=True,
        initial_position=0.5,
    )
    ad.connect(force, "flange", mass, "flange")
    system = AcausalCompiler(ev, ad)()
    assert system.state_names == ["mass_flange_v"]
    assert system.dpd.alias_map[mass.x.s] in system.dpd.pruned_integrals

    t = np.linspace(0.0, 1.0, 11)
    results = simulate(system, (0.0, 1.0), t_eval=t)
    assert np.allclose(results.value(mass.x), 0.5 + 0.5 * t**2, atol=1e-6)
    assert np.allclose(results.value(mass.x.s - 0.5), 0.5 * t**2, atol=1e-6)
    assert np.allclose(results.value("mass_flange_v"), t, atol=1e-6)
    assert np.allclose(results.value("der(mass_flange_v)"), 1.0, atol=1e-6)
    with pytest.raises(KeyError):
        results.value("mass_flange_s")
