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
from acausal_stdlib.component_library import hydraulic as hyd
from acausal_stdlib.component_library import translational as trans
from acausal_stdlib.component_library.functions import regRoot
from acausal_stdlib.error import AcausalModelError

WATER = hyd.WATER_20C


@pytest.mark.parametrize("use_divider", [False, True])
def test_laminar_tube(use_divider):
    # Hagen-Poiseuille, dp = 32*mu*L*u/d_h^2
    dp, area, length = 10.0, 1e-4, 1.0
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid = hyd.water_20C(ev, name="fluid")
    src = hyd.FixedPressure(ev, name="src", p=dp)
    tube = hyd.Tube(ev, name="tube", N=1, area=area, length=length)
    amb = hyd.Open(ev, name="amb")
    ad.connect(src, "port", fluid, "port")
    if use_divider:
        fd = hyd.FlowDivider(ev, name="fd", n=2.0)
        ad.connect(src, "port", fd, "port_a")
        ad.connect(fd, "port_b", tube, "port_a")
    else:
        ad.connect(src, "port", tube, "port_a")
    ad.connect(tube, "port_b", amb, "port")
    system = AcausalCompiler(ev, ad)()
    assert system.nx == 0
    assert system.default_params["amb_p_ambient"] == 0.0

    results = simulate(system, (0.0, 1.0), t_eval=[0.0, 1.0])
    d_h = 2 * np.sqrt(area / np.pi)
    rho = WATER["density"] * (1 + dp / 2 / WATER["bulk_modulus"])
    u = dp * d_h**2 / (32 * WATER["viscosity"] * length)
    dm_sol = rho * area * u
    assert np.allclose(results.value(tube.dma), dm_sol, rtol=1e-6)
    assert np.allclose(results.value(tube.dmb), -dm_sol, rtol=1e-6)
    if use_divider:
        assert np.allclose(results.value(fd.dma), 2 * dm_sol, rtol=1e-6)


def test_fixed_volume_filling():
    dm, vol = 1e-3, 1e-3
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid = hyd.HydraulicFluid(ev, name="fluid")
    src = hyd.MassFlow(ev, name="src", dm=dm, enable_port=False)
    volume = hyd.FixedVolume(ev, name="volume", vol=vol)
    ad.connect(src, "port", volume, "port")
    ad.connect(src, "port", fluid, "port")
    system = AcausalCompiler(ev, ad)()
    assert system.nx == 1

    t = np.linspace(0.0, 1.0, 11)
    results = simulate(system, (0.0, 1.0), t_eval=t)
    rate = dm * WATER["bulk_modulus"] / (WATER["density"] * vol)
    assert np.allclose(results.value(volume.p), rate * t, rtol=1e-6)


def test_mass_flow_input():
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid = hyd.HydraulicFluid(ev, name="fluid", bulk_modulus=1e9, density=1000.0)
    src = hyd.MassFlow(ev, name="src")
    volume = hyd.FixedVolume(ev, name="volume", vol=1.0)
    ad.connect(src, "port", volume, "port")
    ad.connect(volume, "port", fluid, "port")
    system = AcausalCompiler(ev, ad)()
    assert system.input_names == ["src_dm_in"]

    t = np.linspace(0.0, 1.0, 11)
    results = simulate(system, (0.0, 1.0), t_eval=t, inputs={"src_dm_in": -1.0})
    assert np.allclose(results.value(volume.p), -1e6 * t, rtol=1e-6)


@pytest.mark.slow
def test_segmented_tube_cap(show_plot=False):
    # all the mass entering the tube is stored in its volumes
    dm, area, length = 1e-4, 1e-4, 1.0
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid = hyd.water_20C(ev, name="fluid")
    src = hyd.MassFlow(ev, name="src", dm=dm, enable_port=False)
    tube = hyd.Tube(ev, name="tube", N=3, area=area, length=length)
    cap = hyd.Cap(ev, name="cap")
    ad.connect(src, "port", tube, "port_a")
    ad.connect(src, "port", fluid, "port")
    ad.connect(tube, "port_b", cap, "port")
    system = AcausalCompiler(ev, ad)()
    assert system.nx == 3

    t = np.linspace(0.0, 1e-2, 11)
    results = simulate(system, (0.0, 1e-2), t_eval=t, method="BDF")
    pressures = [results.value(p) for p in tube.pressures]

    if show_plot:
        for k, p in enumerate(pressures):
            plt.plot(t, p, label=f"p{k + 1}")
        plt.legend()
        plt.show()

    rate = dm * WATER["bulk_modulus"] / (WATER["density"] * area * length)
    assert np.allclose(np.mean(pressures, axis=0), rate * t, rtol=1e-3, atol=1.0)
    assert np.allclose(results.value(tube.dmb), 0.0, atol=1e-12)


def test_valve():
    dp, area, Cd = 1e5, 1e-5, 2.0
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid = hyd.HydraulicFluid(ev, name="fluid")
    src = hyd.FixedPressure(ev, name="src", p=dp)
    valve = hyd.Valve(ev, name="valve", area=area, Cd=Cd)
    amb = hyd.Open(ev, name="amb")
    ad.connect(src, "port", fluid, "port")
    ad.connect(src, "port", valve, "port_a")
    ad.connect(valve, "port_b", amb, "port")
    system = AcausalCompiler(ev, ad)()

    results = simulate(system, (0.0, 1.0), t_eval=[0.0, 1.0])
    rho = WATER["density"] * (1 + dp / WATER["bulk_modulus"])
    dm_sol = area * np.sqrt(2 * rho / Cd) * regRoot(dp)
    assert np.allclose(results.value(valve.dma), dm_sol, rtol=1e-6)

    # a closed valve blocks the flow
    results = simulate(system, (0.0, 1.0), t_eval=[0.0], params={"valve_area": -1e-5})
    assert np.allclose(results.value(valve.dma), 0.0, atol=1e-12)


def test_spool_valve():
    x, d, Cd, dp = 1e-3, 0.01, 1e4, 4e4
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid = hyd.HydraulicFluid(ev, name="fluid")
    src = hyd.FixedPressure(ev, name="src", p=dp)
    spool = hyd.SpoolValve(ev, name="spool", x_int=x, d=d, Cd=Cd)
    amb = hyd.Open(ev, name="amb")
    fixed = trans.Fixed(ev, name="fixed", s0=x)
    ad.connect(src, "port", fluid, "port")
    ad.connect(src, "port", spool, "port_a")
    ad.connect(spool, "port_b", amb, "port")
    ad.connect(spool, "flange", fixed, "flange")
    system = AcausalCompiler(ev, ad)()

    results = simulate(system, (0.0, 1.0), t_eval=[0.0, 1.0])
    rho = WATER["density"] * (1 + dp / WATER["bulk_modulus"])
    dm_sol = x * 2 * np.pi * d * np.sqrt(2 * rho / Cd) * regRoot(dp)
    assert np.allclose(results.value(spool.dma), dm_sol, rtol=1e-6)


def test_dynamic_volume_on_fixed_wall():
    dm, area, length = 1e-4, 1e-3, 0.1
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid = hyd.HydraulicFluid(ev, name="fluid")
    src = hyd.MassFlow(ev, name="src", dm=dm, enable_port=False)
    dv = hyd.DynamicVolume(ev, name="dv", area=area, length=length)
    wall = trans.Fixed(ev, name="wall")
    ad.connect(src, "port", fluid, "port")
    ad.connect(src, "port", dv, "port")
    ad.connect(dv, "flange", wall, "flange")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 1e-2, 11)
    results = simulate(system, (0.0, 1e-2), t_eval=t)
    rate = dm * WATER["bulk_modulus"] / (WATER["density"] * area * length)
    assert np.allclose(results.value(dv.volume.p), rate * t, rtol=1e-6)
    assert np.allclose(results.outputs["dv_vol"], area * length)
    # reaction of the wall to the pressure
    assert np.allclose(results.value(dv.f), -rate * t * area, rtol=1e-6)


@pytest.mark.slow
def test_actuator_extends():
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid = hyd.HydraulicFluid(ev, name="fluid")
    src = hyd.MassFlow(ev, name="src", dm=1e-4, enable_port=False)
    act = hyd.Actuator(ev, name="act")
    cap = hyd.Cap(ev, name="cap")
    ad.connect(src, "port", fluid, "port")
    ad.connect(src, "port", act, "port_a")
    ad.connect(act, "port_b", cap, "port")
    system = AcausalCompiler(ev, ad)()
    assert "act_a_p" in system.state_names
    assert "act_b_p" in system.state_names

    results = simulate(system, (0.0, 2e-3), t_eval=np.linspace(0.0, 2e-3, 5))
    x = results.value(act.x)
    assert x[-1] > 0.0
    assert np.all(np.diff(x) >= 0.0)


@pytest.mark.slow
def test_segmented_dynamic_volume_on_fixed_wall():
    dm, area, length = 1e-4, 1e-3, 0.1
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid = hyd.HydraulicFluid(ev, name="fluid")
    src = hyd.MassFlow(ev, name="src", dm=dm, enable_port=False)
    dv = hyd.DynamicVolume(ev, name="dv", area=area, length=length, N=3)
    wall = trans.Fixed(ev, name="wall")
    ad.connect(src, "port", fluid, "port")
    ad.connect(src, "port", dv, "port")
    ad.connect(dv, "flange", wall, "flange")
    system = AcausalCompiler(ev, ad)()
    for name in ["dv_p1", "dv_p2", "dv_p3", "dv_x1", "dv_x2", "dv_x3"]:
        assert name in system.state_names

    t = np.linspace(0.0, 1e-2, 11)
    results = simulate(system, (0.0, 1e-2), t_eval=t, method="BDF")
    pressures = [results.value(p) for p in dv.volume.pressures]
    rate = dm * WATER["bulk_modulus"] / (WATER["density"] * area * length)
    assert np.allclose(np.mean(pressures, axis=0), rate * t, rtol=1e-3, atol=1.0)
    # the wall sits in the first segment
    assert np.allclose(results.value(dv.f), -pressures[0] * area, rtol=1e-6)
    assert np.allclose(results.outputs["dv_vol"], area * length)
    for x in dv.volume.xs:
        assert np.allclose(results.value(x), 0.0, atol=1e-12)


def test_invalid_dynamic_volume_segments():
    ev = EqnEnv()
    with pytest.raises(ValueError):
        hyd.DynamicVolume(ev, name="dv", N=0)


@pytest.mark.slow
def test_segmented_actuator_extends():
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid = hyd.HydraulicFluid(ev, name="fluid")
    src = hyd.MassFlow(ev, name="src", dm=1e-4, enable_port=False)
    act = hyd.Actuator(ev, name="act", N=2)
    cap = hyd.Cap(ev, name="cap")
    ad.connect(src, "port", fluid, "port")
    ad.connect(src, "port", act, "port_a")
    ad.connect(act, "port_b", cap, "port")
    system = AcausalCompiler(ev, ad)()
    for name in ["act_a_p1", "act_a_p2", "act_b_p1", "act_b_p2"]:
        assert name in system.state_names

    results = simulate(
        system, (0.0, 2e-3), t_eval=np.linspace(0.0, 2e-3, 5), method="BDF"
    )
    x = results.value(act.x)
    assert x[-1] > 0.0
    assert np.all(np.diff(x) >= -1e-12)
    # chamber a grows in its first segment, chamber b shrinks in its first
    assert np.allclose(results.value(act.vol_a.xs[0]), x, atol=1e-9)
    assert np.allclose(results.value(act.vol_b.xs[0]), -x, atol=1e-9)
    assert np.allclose(results.value(act.vol_a.xs[1]), 0.0, atol=1e-12)


@pytest.mark.parametrize(
    "x, reversible",
    [(1e-3, False), (-1e-3, False), (-1e-3, True)],
)
def test_spool_valve_2way(x, reversible):
    d, Cd, p_s, p_b = 0.01, 1e4, 4e4, 1e4
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid_sa = hyd.HydraulicFluid(ev, name="fluid_sa")
    fluid_br = hyd.HydraulicFluid(ev, name="fluid_br")
    supply = hyd.FixedPressure(ev, name="supply", p=p_s)
    load = hyd.FixedPressure(ev, name="load", p=p_b)
    amb_a = hyd.Open(ev, name="amb_a")
    amb_r = hyd.Open(ev, name="amb_r")
    spool = hyd.SpoolValve2Way(
        ev, name="spool", x_int=x, d=d, Cd=Cd, reversible=reversible
    )
    ad.connect(supply, "port", fluid_sa, "port")
    ad.connect(supply, "port", spool, "port_s")
    ad.connect(spool, "port_a", amb_a, "port")
    ad.connect(load, "port", fluid_br, "port")
    ad.connect(load, "port", spool, "port_b")
    ad.connect(spool, "port_r", amb_r, "port")
    system = AcausalCompiler(ev, ad)()

    results = simulate(system, (0.0, 1.0), t_eval=[0.0, 1.0])
    area = x * 2 * np.pi * d
    if not reversible:
        area = max(area, 0.0)
    for dp, dm_in, dm_out in [
        (p_s, spool.dms, spool.dma),
        (p_b, spool.dmb, spool.dmr),
    ]:
        rho = WATER["density"] * (1 + dp / WATER["bulk_modulus"])
        dm_sol = area * np.sqrt(2 * rho / Cd) * regRoot(dp)
        assert np.allclose(results.value(dm_in), dm_sol, rtol=1e-6, atol=1e-12)
        assert np.allclose(results.value(dm_out), -dm_sol, rtol=1e-6, atol=1e-12)
    # no force acts on the free spool
    assert np.allclose(results.value(spool.x), x)


def test_tube_fluid_inertia():
    # dp = R*dm + (L/A)*ddm, the flow rises to the laminar value with
    # time constant tau = (L/A)/R
    dp, area, length = 10.0, 1e-4, 1.0
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid = hyd.water_20C(ev, name="fluid")
    src = hyd.FixedPressure(ev, name="src", p=dp)
    tube = hyd.TubeBase(
        ev, name="tube", area=area, length=length, fluid_inertia_factor=1.0
    )
    amb = hyd.Open(ev, name="amb")
    ad.connect(src, "port", fluid, "port")
    ad.connect(src, "port", tube, "port_a")
    ad.connect(tube, "port_b", amb, "port")
    system = AcausalCompiler(ev, ad)()
    assert system.nx == 1

    d_h = 2 * np.sqrt(area / np.pi)
    rho = WATER["density"] * (1 + dp / 2 / WATER["bulk_modulus"])
    R = 32 * WATER["viscosity"] * length / (d_h**2 * rho * area)
    dm_ss = dp / R
    tau = length / area / R
    t = np.linspace(0.0, 2 * tau, 21)
    results = simulate(system, (0.0, t[-1]), t_eval=t)
    dm_sol = dm_ss * (1 - np.exp(-t / tau))
    assert np.allclose(results.value(tube.dma), dm_sol, rtol=1e-4, atol=1e-9)


def test_pressure_source_input():
    area, length = 1e-4, 1.0
    ev = EqnEnv()
    ad = AcausalDiagram()
    fluid = hyd.water_20C(ev, name="fluid")
    src = hyd.Pressure(ev, name="src")
    tube = hyd.Tube(ev, name="tube", N=1, area=area, length=length)
    amb = hyd.Open(ev, name="amb")
    ad.connect(src, "port", fluid, "port")
    ad.connect(src, "port", tube, "port_a")
    ad.connect(tube, "port_b", amb, "port")
    system = AcausalCompiler(ev, ad)()
    assert system.input_names == ["src_p_src"]

    t = np.linspace(0.0, 1.0, 11)
    results = simulate(system, (0.0, 1.0), t_eval=t, inputs={"src_p_src": lambda t: 10.0 * t})
    dp = 10.0 * t
    d_h = 2 * np.sqrt(area / np.pi)
    rho = WATER["density"] * (1 + dp / 2 / WATER["bulk_modulus"])
    u = dp * d_h**2 / (32 * WATER["viscosity"] * length)
    assert np.allclose(results.value(src.p), dp)
    assert np.allclose(results.value(tube.dma), rho * area * u, rtol=1e-6, atol=1e-12)


def test_missing_fluid():
    ev = EqnEnv()
    ad = AcausalDiagram()
    src = hyd.FixedPressure(ev, name="src", p=1.0)
    amb = hyd.Open(ev, name="amb")
    ad.connect(src, "port", amb, "port")
    with pytest.raises(AcausalModelError):
        AcausalCompiler(ev, ad)()


def test_multiple_fluids():
    ev = EqnEnv()
    ad = AcausalDiagram()
    water = hyd.water_20C(ev)
    oil = hyd.sae_30_oil_20C(ev)
    src = hyd.FixedPressure(ev, name="src", p=1.0)
    tube = hyd.Tube(ev, name="tube")
    amb = hyd.Open(ev, name="amb")
    ad.connect(src, "port", tube, "port_a")
    ad.connect(tube, "port_b", amb, "port")
    ad.connect(src, "port", water, "port")
    # the tube joins both ends into one network
    ad.connect(amb, "port", oil, "port")
    with pytest.raises(AcausalModelError):
        AcausalCompiler(ev, ad)()


def test_invalid_tube():
    ev = EqnEnv()
    with pytest.raises(ValueError):
        hyd.Tube(ev, name="tube", N=0)
    with pytest.raises(ValueError):
        hyd.DynamicVolume(ev, name="dv", direction=2)
