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
from acausal_stdlib.component_library import rotational as rot
from acausal_stdlib.error import AcausalCompilerError


def test_torque_inertia_damper(show_plot=False):
    # J*dw/dt = tau - d*w
    ev = EqnEnv()
    ad = AcausalDiagram()
    trq = rot.Torque(ev, name="trq", tau=1.0)
    inertia = rot.Inertia(ev, name="inertia", J=2.0, initial_velocity_fixed=True)
    damper = rot.Damper(ev, name="damper", d=1.0)
    fixed = rot.Fixed(ev, name="fixed")
    ss = rot.SpeedSensor(ev, name="ss")
    ad.connect(trq, "flange", inertia, "flange_a")
    ad.connect(inertia, "flange_b", damper, "flange_a")
    ad.connect(damper, "flange_b", fixed, "flange")
    ad.connect(inertia, "flange_b", ss, "flange")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 10.0, 51)
    results = simulate(system, (0.0, 10.0), t_eval=t)
    w_sol = 1.0 - np.exp(-t / 2.0)

    if show_plot:
        plt.plot(t, results.outputs["ss_w"], label="ss_w")
        plt.plot(t, w_sol, label="w_sol", linestyle="--")
        plt.legend()
        plt.show()

    assert np.allclose(results.outputs["ss_w"], w_sol, atol=1e-5)
    assert np.allclose(results.value(inertia.w1), w_sol, atol=1e-5)
    # damper torque on its flange_b, t_b = d*(w_b - w_a)
    assert np.allclose(results.value(damper.t2), -w_sol, atol=1e-5)


@pytest.mark.parametrize("use_spring_damper", [False, True])
def test_rot_oscillator(use_spring_damper, show_plot=False):
    # J*phi'' = -c*phi, phi(0) = 1
    ev = EqnEnv()
    ad = AcausalDiagram()
    fixed = rot.Fixed(ev, name="fixed")
    if use_spring_damper:
        spring = rot.SpringDamper(ev, name="spring", c=4.0, d=1e-9)
    else:
        spring = rot.Spring(ev, name="spring", c=4.0)
    inertia = rot.Inertia(
        ev, name="inertia", J=1.0, initial_angle=1.0, initial_angle_fixed=True
    )
    angle = rot.AngleSensor(ev, name="angle")
    ad.connect(fixed, "flange", spring, "flange_a")
    ad.connect(spring, "flange_b", inertia, "flange_a")
    ad.connect(inertia, "flange_a", angle, "flange")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 5.0, 101)
    results = simulate(system, (0.0, 5.0), t_eval=t, rtol=1e-8, atol=1e-10)
    phi_sol = np.cos(2.0 * t)

    if show_plot:
        plt.plot(t, results.outputs["angle_phi"], label="angle_phi")
        plt.plot(t, phi_sol, label="phi_sol", linestyle="--")
        plt.legend()
        plt.show()

    assert np.allclose(results.outputs["angle_phi"], phi_sol, atol=1e-5)
    assert np.allclose(results.value(inertia.w1), -2.0 * np.sin(2.0 * t), atol=1e-4)


def test_speed_source_and_torque_sensor():
    ev = EqnEnv()
    ad = AcausalDiagram()
    spd = rot.Speed(ev, name="spd", w_ref=2.0, tau_filt=10.0)
    ts = rot.TorqueSensor(ev, name="ts")
    damper = rot.Damper(ev, name="damper", d=3.0)
    fixed = rot.Fixed(ev, name="fixed")
    ad.connect(spd, "flange", ts, "flange_a")
    ad.connect(ts, "flange_b", damper, "flange_a")
    ad.connect(damper, "flange_b", fixed, "flange")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 1.0, 21)
    results = simulate(system, (0.0, 1.0), t_eval=t)
    w_sol = 2.0 * (1.0 - np.exp(-10.0 * t))
    assert np.allclose(results.outputs["ts_tau"], 3.0 * w_sol, atol=1e-4)


def test_ideal_gear():
    # the gear multiplies the torque applied to the inertia by its ratio
    ev = EqnEnv()
    ad = AcausalDiagram()
    trq = rot.Torque(ev, name="trq", tau=1.0)
    gear = rot.IdealGear(ev, name="gear", ratio=2.0)
    inertia = rot.Inertia(ev, name="inertia", J=1.0, initial_velocity_fixed=True)
    rss = rot.RelSpeedSensor(ev, name="rss")
    ad.connect(trq, "flange", gear, "flange_a")
    ad.connect(gear, "flange_b", inertia, "flange_a")
    ad.connect(gear, "flange_a", rss, "flange_a")
    ad.connect(gear, "flange_b", rss, "flange_b")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 1.0, 11)
    results = simulate(system, (0.0, 1.0), t_eval=t)
    assert np.allclose(results.value(inertia.w1), 2.0 * t, atol=1e-6)
    # w_a = ratio*w_b
    assert np.allclose(results.outputs["rss_w_rel"], 2.0 * t - 4.0 * t, atol=1e-6)


def test_torque_input():
    ev = EqnEnv()
    ad = AcausalDiagram()
    trq = rot.Torque(ev, name="trq", enable_torque_port=True)
    inertia = rot.Inertia(ev, name="inertia", J=0.5, initial_velocity_fixed=True)
    ad.connect(trq, "flange", inertia, "flange_a")
    system = AcausalCompiler(ev, ad)()
    assert system.input_names == ["trq_tau"]

    t = np.linspace(0.0, 1.0, 11)
    results = simulate(system, (0.0, 1.0), t_eval=t, inputs={"trq_tau": 1.0})
    assert np.allclose(results.value(inertia.w1), 2.0 * t, atol=1e-6)


def test_friction_holds_below_breakaway():
    # a torque smaller than the coulomb friction barely moves the inertia
    ev = EqnEnv()
    ad = AcausalDiagram()
    trq = rot.Torque(ev, name="trq", tau=5.0)
    inertia = rot.Inertia(ev, name="inertia", J=1.0, initial_velocity_fixed=True)
    fric = rot.RotationalFriction(ev, name="fric", tau_c=20.0, tau_brk=25.0)
    fixed = rot.Fixed(ev, name="fixed")
    ad.connect(trq, "flange", inertia, "flange_a")
    ad.connect(inertia, "flange_b", fric, "flange_a")
    ad.connect(fric, "flange_b", fixed, "flange")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 2.0, 21)
    results = simulate(system, (0.0, 2.0), t_eval=t, method="LSODA")
    w = results.value(inertia.w1)
    assert np.all(np.abs(w) < 0.05)
    assert np.allclose(results.value(fric.t2)[-1], -5.0, atol=1e-2)


def test_rigidly_connected_inertias():
    # two inertias share one velocity, the index of the system is 2.
    ev = EqnEnv()
    ad = AcausalDiagram()
    trq = rot.Torque(ev, name="trq", tau=1.0)
    j1 = rot.Inertia(ev, name="j1", J=1.0)
    j2 = rot.Inertia(ev, name="j2", J=2.0)
    ad.connect(trq, "flange", j1, "flange_a")
    ad.connect(j1, "flange_b", j2, "flange_a")
    with pytest.raises(AcausalCompilerError):
        AcausalCompiler(ev, ad)()


def test_torque_on_free_inertia():
    ev = EqnEnv()
    ad = AcausalDiagram()
    trq = rot.Torque(ev, name="trq", tau=1.0)
    inertia = rot.Inertia(
        ev, name="inertia", J=0.5, initial_velocity_fixed=True, initial_angle=0.25
    )
    ad.connect(trq, "flange", inertia, "flange_a")
    system = AcausalCompiler(ev, ad)()
    assert system.state_names == ["inertia_flange_a_w"]

    t = np.linspace(0.0, 1.0, 11)
    results = simulate(system, (0.0, 1.0), t_eval=t)
    assert np.allclose(results.value(inertia.w1), 2.0 * t, atol=1e-6)
    assert np.allclose(results.value(inertia.ang1), 0.25 + t**2, atol=1e-6)
    assert np.allclose(results.value(inertia.ang2), 0.25 + t**2, atol=1e-6)
