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
from acausal_stdlib.component_library import planar as pl
from acausal_stdlib.component_library import rotational as rot
from acausal_stdlib.component_library import translational as trans
from acausal_stdlib.error import AcausalCompilerError


def test_body_free_fall(show_plot=False):
    ev = EqnEnv()
    ad = AcausalDiagram()
    body = pl.Body(ev, name="body", m=2.0, j=1.0, v=(1.0, 0.0), gy=-9.81)
    pos = pl.AbsolutePosition(ev, name="pos", resolve_in_frame="world")
    ad.connect(body, "frame", pos, "frame_a")
    system = AcausalCompiler(ev, ad)()
    assert set(system.output_names) == {"pos_x", "pos_y", "pos_phi"}

    t = np.linspace(0.0, 1.0, 21)
    results = simulate(system, (0.0, 1.0), t_eval=t)

    if show_plot:
        plt.plot(results.outputs["pos_x"], results.outputs["pos_y"])
        plt.show()

    assert np.allclose(results.outputs["pos_x"], t, atol=1e-6)
    assert np.allclose(results.outputs["pos_y"], -0.5 * 9.81 * t**2, atol=1e-6)
    assert np.allclose(results.outputs["pos_phi"], 0.0, atol=1e-9)


@pytest.mark.parametrize("with_joint", [False, True])
def test_link_free_fall(with_joint):
    ev = EqnEnv()
    ad = AcausalDiagram()
    link = pl.Link(ev, name="link", m=1.0, l=1.0, I=0.1, g=-9.81)
    if with_joint:
        # a damped joint at the free end transmits no force
        joint = pl.RevoluteJoint(ev, name="joint", d=1.0)
        ad.connect(link, "M2", joint, "M1")
    else:
        ad.add_component(link)
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 1.0, 11)
    results = simulate(system, (0.0, 1.0), t_eval=t)
    assert np.allclose(results.outputs["link_x_cm"], 0.5, atol=1e-6)
    assert np.allclose(results.outputs["link_y_cm"], -0.5 * 9.81 * t**2, atol=1e-6)


def test_revolute_driven_by_speed():
    ev = EqnEnv()
    ad = AcausalDiagram()
    fixed = pl.Fixed(ev, name="fixed", r=(1.0, 2.0))
    rev = pl.Revolute(ev, name="rev", use_flange=True)
    spd = rot.Speed(ev, name="spd", w_ref=2.0, exact=True)
    pos = pl.AbsolutePosition(ev, name="pos", resolve_in_frame="world")
    ad.connect(fixed, "frame", rev, "frame_a")
    ad.connect(rev, "frame_b", pos, "frame_a")
    ad.connect(spd, "flange", rev, "flange_a")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 1.0, 11)
    results = simulate(system, (0.0, 1.0), t_eval=t)
    assert np.allclose(results.outputs["pos_phi"], 2.0 * t, atol=1e-6)
    assert np.allclose(results.outputs["pos_x"], 1.0)
    assert np.allclose(results.outputs["pos_y"], 2.0)


def test_position_resolved_in_frame_a():
    ev = EqnEnv()
    ad = AcausalDiagram()
    fixed = pl.Fixed(ev, name="fixed", r=(1.0, 0.0), phi=np.pi / 2)
    pos = pl.AbsolutePosition(ev, name="pos")
    ad.connect(fixed, "frame", pos, "frame_a")
    system = AcausalCompiler(ev, ad)()
    assert system.nx == 0

    results = simulate(system, (0.0, 1.0), t_eval=[0.0])
    # the world x axis is the -y axis of a frame rotated by 90 degrees
    assert np.allclose(results.outputs["pos_x"], 0.0, atol=1e-12)
    assert np.allclose(results.outputs["pos_y"], -1.0)
    assert np.allclose(results.outputs["pos_phi"], 0.0)


def test_multibody_to_translational():
    ev = EqnEnv()
    ad = AcausalDiagram()
    force = trans.Force(ev, name="force", f=2.0)
    mass = trans.Mass(ev, name="mass", m=1.0, initial_velocity_fixed=True)
    mb2t = pl.MultiBody2Translational(ev, name="mb2t")
    ad.connect(force, "flange", mass, "flange")
    ad.connect(mass, "flange", mb2t, "T")
    system = AcausalCompiler(ev, ad)()

    t = np.linspace(0.0, 1.0, 11)
    results = simulate(system, (0.0, 1.0), t_eval=t)
    dx, dy, dA = (pot for pot, _ in mb2t.ports["M"].pairs())
    assert np.allclose(results.value(dx), 2.0 * t, atol=1e-6)
    assert np.allclose(results.value(dy), 0.0)
    assert np.allclose(results.value(dA), 0.0)


def test_body_on_fixed_frame():
    # the position of the body is both a state and prescribed, index 3.
    ev = EqnEnv()
    ad = AcausalDiagram()
    fixed = pl.Fixed(ev, name="fixed")
    body = pl.Body(ev, name="body")
    ad.connect(fixed, "frame", body, "frame")
    with pytest.raises(AcausalCompilerError):
        AcausalCompiler(ev, ad)()


def test_resolve_in_frame_invalid():
    ev = EqnEnv()
    with pytest.raises(ValueError):
        pl.AbsolutePosition(ev, name="pos", resolve_in_frame="frame_b")


@pytest.mark.parametrize(
    "resolve_in_frame", ["world", "frame_a", "frame_b", "frame_resolve"]
)
def test_relative_position(resolve_in_frame):
    phi_a, phi_b, phi_r = np.pi / 6, np.pi / 2, np.pi / 4
    ev = EqnEnv()
    ad = AcausalDiagram()
    fixed_a = pl.Fixed(ev, name="fixed_a", r=(1.0, 2.0), phi=phi_a)
    fixed_b = pl.Fixed(ev, name="fixed_b", r=(3.0, 5.0), phi=phi_b)
    rel = pl.RelativePosition(ev, name="rel", resolve_in_frame=resolve_in_frame)
    ad.connect(fixed_a, "frame", rel, "frame_a")
    ad.connect(fixed_b, "frame", rel, "frame_b")
    if resolve_in_frame == "frame_resolve":
        fixed_r = pl.Fixed(ev, name="fixed_r", phi=phi_r)
        ad.connect(fixed_r, "frame", rel, "frame_resolve")
    system = AcausalCompiler(ev, ad)()
    assert set(system.output_names) == {"rel_rel_x", "rel_rel_y", "rel_rel_phi"}

    results = simulate(system, (0.0, 1.0), t_eval=[0.0])
    angle = {
        "world": 0.0,
        "frame_a": phi_a,
        "frame_b": phi_b,
        "frame_resolve": phi_r,
    }[resolve_in_frame]
    c, s = np.cos(angle), np.sin(angle)
    assert np.allclose(results.outputs["rel_rel_x"], c * 2.0 + s * 3.0)
    assert np.allclose(results.outputs["rel_rel_y"], -s * 2.0 + c * 3.0)
    assert np.allclose(results.outputs["rel_rel_phi"], phi_b - phi_a)
