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

"""
Tests which do not belong to a specific domain: model construction errors,
diagram processing, structural checks of the compiler, the simulation API
and logging.
"""

import io
import logging

import numpy as np
import pytest
import sympy as sp

from acausal_stdlib import (
    AcausalCompiler,
    AcausalDiagram,
    DiagramProcessing,
    EqnEnv,
    SimulationResults,
    simulate,
)
from acausal_stdlib import logging as acausal_logging
from acausal_stdlib.component_library import electrical as elec
from acausal_stdlib.component_library import sources
from acausal_stdlib.component_library import translational as trans
from acausal_stdlib.component_library.base import Domain, SymKind
from acausal_stdlib.error import AcausalCompilerError, AcausalModelError


def _rc(ev, R=1.0, C=1.0):
    ad = AcausalDiagram(name="rc")
    vs = elec.VoltageSource(ev, name="vs", v=1.0)
    r = elec.Resistor(ev, name="r", R=R)
    c = elec.Capacitor(ev, name="c", C=C, initial_voltage_fixed=True)
    gnd = elec.Ground(ev, name="gnd")
    ad.connect(vs, "p", r, "p")
    ad.connect(r, "n", c, "p")
    ad.connect(c, "n", vs, "n")
    ad.connect(vs, "n", gnd, "p")
    return ad, r, c


def _damped_mass(ev):
    # m*dv/dt = f - d*v
    ad = AcausalDiagram(name="damped_mass")
    force = trans.Force(ev, name="force", enable_force_port=True)
    mass = trans.Mass(ev, name="mass", m=2.0, initial_velocity_fixed=True)
    damper = trans.Damper(ev, name="damper", d=4.0)
    fixed = trans.Fixed(ev, name="fixed")
    ad.connect(force, "flange", mass, "flange")
    ad.connect(mass, "flange", damper, "flange_a")
    ad.connect(damper, "flange_b", fixed, "flange")
    return ad, mass


# model construction errors
def test_unknown_port():
    ev = EqnEnv()
    ad = AcausalDiagram()
    r = elec.Resistor(ev, name="r")
    gnd = elec.Ground(ev, name="gnd")
    with pytest.raises(AcausalModelError, match="no port named 'x'"):
        ad.connect(r, "x", gnd, "p")


def test_port_domain_mismatch():
    ev = EqnEnv()
    ad = AcausalDiagram()
    r = elec.Resistor(ev, name="r")
    mass = trans.Mass(ev, name="mass")
    ad.connect(r, "p", mass, "flange")
    with pytest.raises(AcausalModelError) as exc_info:
        AcausalCompiler(ev, ad)()
    msg = str(exc_info.value)
    assert "mismatched domains" in msg
    assert "mass:flange" in msg
    assert "r:p" in msg


def test_duplicate_component_names():
    ev = EqnEnv()
    ad = AcausalDiagram()
    r1 = elec.Resistor(ev, name="r")
    r2 = elec.Resistor(ev, name="r")
    gnd = elec.Ground(ev, name="gnd")
    ad.connect(r1, "n", gnd, "p")
    ad.connect(r2, "n", gnd, "p")
    with pytest.raises(AcausalModelError, match="different name"):
        AcausalCompiler(ev, ad)()


def test_invalid_param():
    ev = EqnEnv()
    with pytest.raises(AcausalModelError):
        ad, _, _ = _rc(ev, R=-1.0)
        AcausalCompiler(ev, ad)()


def test_conflicting_fixed_ics():
    ev = EqnEnv()
    ad = AcausalDiagram()
    m1 = trans.Mass(ev, name="m1", initial_velocity_fixed=True)
    m2 = trans.Mass(
        ev, name="m2", initial_velocity=1.0, initial_velocity_fixed=True
    )
    ad.connect(m1, "flange", m2, "flange")
    with pytest.raises(AcausalModelError, match="conflicting initial conditions"):
        AcausalCompiler(ev, ad)()


def test_port_declarations():
    ev = EqnEnv()
    r = elec.Resistor(ev, name="r")
    port = r.ports["p"]
    assert port.domain == Domain.electrical
    assert port.pairs() == [(r.Vp, r.Ip)]
    with pytest.raises(ValueError, match="already has a port p"):
        r.declare_electrical_port(ev, "p")

    vs = elec.VoltageSource(ev, name="vs", enable_voltage_port=True)
    assert vs.get_sym_by_port_name("v").kind == SymKind.inp
    assert vs.get_sym_by_port_name("i") is None

    m = trans.Mass(ev, name="m")
    f, x, v, a = m.declare_translational_port(ev, "extra")
    assert x.der_sym is v and v.der_sym is a
    assert v.int_sym is x and a.int_sym is v
    assert m.ports["extra"].pot is v and m.ports["extra"].flow is f


def test_weak_ics_first_wins(caplog):
    caplog.set_level(logging.DEBUG, logger="acausal_stdlib")
    ev = EqnEnv()
    ad = AcausalDiagram()
    m1 = trans.Mass(ev, name="m1", initial_velocity=1.0)
    m2 = trans.Mass(ev, name="m2", initial_velocity=2.0)
    ad.connect(m1, "flange", m2, "flange")
    system = AcausalCompiler(ev, ad)()
    assert system.nx == 1

    results = simulate(system, (0.0, 1.0), t_eval=[0.0, 1.0])
    assert np.allclose(results.value(m1.v), 1.0)
    assert np.allclose(results.value(m2.v), 1.0)
    assert "Conflicting weak initial conditions" in caplog.text


# compiler structural checks
def test_unbalanced_system():
    # the potentials of a floating capacitor are not determined
    ev = EqnEnv()
    ad = AcausalDiagram()
    c = elec.Capacitor(ev, name="c")
    ad.add_component(c)
    with pytest.raises(AcausalCompilerError):
        AcausalCompiler(ev, ad)()


def test_compiler_error_message():
    ev = EqnEnv()
    ad = AcausalDiagram(name="floating")
    ad.add_component(elec.Capacitor(ev, name="c"))
    with pytest.raises(AcausalCompilerError) as exc_info:
        AcausalCompiler(ev, ad)()
    assert "Related AcausalDiagram: floating" in str(exc_info.value)


# diagram processing
def test_diagram_processing():
    ev = EqnEnv()
    ad, _, _ = _rc(ev)
    dpd, flat = DiagramProcessing(ev, ad)()

    assert len(dpd.nodes) == 3
    assert len(flat.states) == 1
    assert dpd.syms_map[flat.states[0]].name == "c_V"
    assert flat.ics[flat.states[0]] == 0.0
    assert set(str(p) for p in flat.params) >= {"r_R", "c_C", "vs_v"}
    # the trivial equations are gone, their symbols can still be evaluated
    assert dpd.alias_map
    assert flat.states[0] not in dpd.alias_map
    assert len(flat.eqs) < len(ad.eqs)


def test_unconnected_port_has_no_flow():
    ev = EqnEnv()
    ad = AcausalDiagram()
    vs = elec.VoltageSource(ev, name="vs", v=2.0)
    r = elec.Resistor(ev, name="r")
    gnd = elec.Ground(ev, name="gnd")
    ad.connect(vs, "p", r, "p")
    ad.connect(vs, "n", gnd, "p")
    # r.n is left open
    system = AcausalCompiler(ev, ad)()
    results = simulate(system, (0.0, 1.0), t_eval=[0.0])
    assert np.allclose(results.value(r.Ip), 0.0)
    assert np.allclose(results.value(r.V), 0.0)


def test_output_of_input_derivative():
    # the acceleration of a prescribed velocity only appears in an output
    ev = EqnEnv()
    ad = AcausalDiagram()
    vel = trans.Velocity(ev, name="vel")
    acc = trans.AccelerationSensor(ev, name="acc")
    fs = trans.ForceSensor(ev, name="fs")
    damper = trans.Damper(ev, name="damper", d=2.0)
    fixed = trans.Fixed(ev, name="fixed")
    ad.connect(vel, "flange", acc, "flange")
    ad.connect(vel, "flange", fs, "flange_a")
    ad.connect(fs, "flange_b", damper, "flange_a")
    ad.connect(damper, "flange_b", fixed, "flange")
    system = AcausalCompiler(ev, ad)()
    assert system.input_names == ["vel_v"]

    t = np.linspace(0.0, 2.0, 21)
    src = sources.Sine(frequency=1 / (2 * np.pi))
    results = simulate(system, (0.0, 2.0), t_eval=t, inputs={"vel_v": src})
    assert np.allclose(results.outputs["acc_a"], np.cos(t), atol=1e-6)
    assert np.allclose(results.outputs["fs_f"], 2.0 * np.sin(t), atol=1e-6)


# simulation API
@pytest.mark.parametrize(
    "force",
    [8.0, lambda time: 8.0, sources.Constant(8.0), "expr"],
    ids=["number", "callable", "source", "expr"],
)
def test_input_kinds(force):
    ev = EqnEnv()
    ad, mass = _damped_mass(ev)
    system = AcausalCompiler(ev, ad)()
    if force == "expr":
        force = 8.0 + 0 * ev.t
    t = np.linspace(0.0, 2.0, 11)
    results = simulate(system, (0.0, 2.0), t_eval=t, inputs={"force_f": force})
    assert isinstance(results, SimulationResults)
    assert np.allclose(results.inputs[:, 0], 8.0)
    assert np.allclose(results.value(mass.v), 2.0 * (1.0 - np.exp(-2.0 * t)), atol=1e-5)


def test_time_varying_expr_input():
    ev = EqnEnv()
    ad, mass = _damped_mass(ev)
    system = AcausalCompiler(ev, ad)()
    # f = 4*t + 2 keeps v = t for m=2, d=4
    t = np.linspace(0.0, 1.0, 11)
    results = simulate(
        system, (0.0, 1.0), t_eval=t, inputs={"force_f": 4 * ev.t + 2}
    )
    assert np.allclose(results.value(mass.v), t, atol=1e-5)


def test_default_input_value():
    ev = EqnEnv()
    ad, mass = _damped_mass(ev)
    system = AcausalCompiler(ev, ad)()
    results = simulate(system, (0.0, 1.0), t_eval=[0.0, 1.0])
    # the Force input defaults to 0
    assert np.allclose(results.value(mass.v), 0.0)


def test_params_override():
    ev = EqnEnv()
    ad, mass = _damped_mass(ev)
    system = AcausalCompiler(ev, ad)()
    assert system.default_params["damper_d"] == 4.0

    t = np.linspace(0.0, 2.0, 11)
    results = simulate(
        system, (0.0, 2.0), t_eval=t, inputs={"force_f": 8.0}, params={"damper_d": 8.0}
    )
    assert np.allclose(results.value(mass.v), 1.0 - np.exp(-4.0 * t), atol=1e-5)
    assert len(results.parameters) == len(system.param_names)

    with pytest.raises(ValueError):
        simulate(system, (0.0, 1.0), params={"damper_x": 1.0})
    with pytest.raises(AcausalModelError):
        simulate(system, (0.0, 1.0), params={"damper_d": -1.0})
    with pytest.raises(ValueError):
        simulate(system, (0.0, 1.0), inputs={"force_x": 1.0})


def test_results_value():
    ev = EqnEnv()
    ad, mass = _damped_mass(ev)
    system = AcausalCompiler(ev, ad)()
    t = np.linspace(0.0, 1.0, 6)
    results = simulate(system, (0.0, 1.0), t_eval=t, inputs={"force_f": 8.0})
    v = results.value(mass.v)
    assert np.allclose(results.value(mass.v.s * mass.v.s), v**2)
    assert np.allclose(results.value(sp.Integer(3)), 3.0)
    with pytest.raises(KeyError):
        results.value("mass_q")


def test_no_states_default_time_grid():
    ev = EqnEnv()
    ad = AcausalDiagram()
    vs = elec.VoltageSource(ev, name="vs", v=3.0)
    r = elec.Resistor(ev, name="r", R=1.5)
    gnd = elec.Ground(ev, name="gnd")
    ad.connect(vs, "p", r, "p")
    ad.connect(r, "n", vs, "n")
    ad.connect(vs, "n", gnd, "p")
    system = AcausalCompiler(ev, ad)()
    assert system.nx == 0

    results = simulate(system, (0.0, 2.0))
    assert len(results.time) == 101
    assert results.states == {}
    assert np.allclose(results.value(r.Ip), 2.0)


# logging
def test_compile_logs(caplog):
    caplog.set_level(logging.DEBUG, logger="acausal_stdlib")
    ev = EqnEnv()
    ad, _, _ = _rc(ev)
    AcausalCompiler(ev, ad)()
    assert "identified nodes" in caplog.text
    assert "alias elimination" in caplog.text
    assert "*** Entering DiagramProcessing.diagram_processing ***" in caplog.text


def test_logdata():
    ev = EqnEnv()
    r = elec.Resistor(ev, name="r")
    assert acausal_logging.logdata() == {}
    data = acausal_logging.logdata(component=r, n_eqs=3)
    extras = data["extra"]["extras"]
    assert extras["component"] == "r"
    assert extras["n_eqs"] == 3
    assert set(extras["ports"].split(",")) == {"p", "n"}


def test_color_formatter():
    record = logging.LogRecord(
        "acausal_stdlib", logging.WARNING, __file__, 1, "hello %s", ("world",), None
    )
    record.extras = {"n_eqs": 3}
    s = acausal_logging.ColorFormatter().format(record)
    assert "hello world" in s
    assert "n_eqs" in s
    assert "WARNING" in s


def test_file_handler(tmp_path):
    path = tmp_path / "acausal.log"
    fh = acausal_logging.set_file_handler(path)
    try:
        acausal_logging.logger.warning("written to %s", "file")
    finally:
        logging.getLogger("acausal_stdlib").removeHandler(fh)
        fh.close()
    assert "acausal_stdlib:WARNING written to file" in path.read_text()


def test_stream_handler():
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    assert acausal_logging.set_stream_handler(handler) is handler
    try:
        acausal_logging.logger.warning("to the stream")
    finally:
        logging.getLogger("acausal_stdlib").removeHandler(handler)
    assert "to the stream" in stream.getvalue()

    default = acausal_logging.set_stream_handler()
    assert default in logging.getLogger("acausal_stdlib").handlers
    acausal_logging.unset_stream_handler()
    assert default not in logging.getLogger("acausal_stdlib").handlers


def test_log_shortcuts(caplog):
    with caplog.at_level(logging.DEBUG, logger="acausal_stdlib"):
        acausal_logging.debug("debug %s", 1)
        acausal_logging.info("info %s", 2)
        acausal_logging.warning("warning %s", 3)
        acausal_logging.error("error %s", 4)
        acausal_logging.critical("critical %s", 5)
        acausal_logging.log(logging.INFO, "log %s", 6)
    messages = [(r.levelno, r.getMessage()) for r in caplog.records]
    assert messages == [
        (logging.DEBUG, "debug 1"),
        (logging.INFO, "info 2"),
        (logging.WARNING, "warning 3"),
        (logging.ERROR, "error 4"),
        (logging.CRITICAL, "critical 5"),
        (logging.INFO, "log 6"),
    ]
