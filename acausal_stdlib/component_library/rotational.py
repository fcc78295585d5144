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
import sympy as sp

from .component_base import ComponentBase

"""
1D rotational components similar to Modelica Standard Library.

flow variable:Units = torque:Newton*meter
potential variable:Units = angular_velocity:radians/second
The angle of a flange is the integral of its velocity, alpha its derivative.
"""


class RotationalOnePort(ComponentBase):
    """Partial component class for a rotational component with one flange."""

    def __init__(
        self,
        ev,
        name,
        w_ic=0.0,
        w_ic_fixed=False,
        ang_ic=0.0,
        ang_ic_fixed=False,
        p="flange",
    ):
        super().__init__()
        self.t, self.ang, self.w, self.alpha = self.declare_rotational_port(
            ev,
            p,
            w_ic=w_ic,
            w_ic_fixed=w_ic_fixed,
            ang_ic=ang_ic,
            ang_ic_fixed=ang_ic_fixed,
        )


class RotationalTwoPort(ComponentBase):
    """Partial component class for an rotational component with two
    flanges that can rotate relative to each other.

    phi_rel = ang2 - ang1 and w_rel = w2 - w1 are declared on demand by
    subclasses through declare_phi_rel() and declare_w_rel().
    """

    def __init__(
        self,
        ev,
        name,
        ang1_ic=0.0,
        ang1_ic_fixed=False,
        w1_ic=0.0,
        w1_ic_fixed=False,
        ang2_ic=0.0,
        ang2_ic_fixed=False,
        w2_ic=0.0,
        w2_ic_fixed=False,
        p1="flange_a",
        p2="flange_b",
        include_torque_equality=True,
    ):
        super().__init__()
        self.t1, self.ang1, self.w1, self.alpha1 = self.declare_rotational_port(
            ev,
            p1,
            w_ic=w1_ic,
            w_ic_fixed=w1_ic_fixed,
            ang_ic=ang1_ic,
            ang_ic_fixed=ang1_ic_fixed,
        )
        self.t2, self.ang2, self.w2, self.alpha2 = self.declare_rotational_port(
            ev,
            p2,
            w_ic=w2_ic,
            w_ic_fixed=w2_ic_fixed,
            ang_ic=ang2_ic,
            ang_ic_fixed=ang2_ic_fixed,
        )
        if include_torque_equality:
            self.add_eqs([sp.Eq(0, self.t1.s + self.t2.s)])

    def declare_phi_rel(self, ev):
        phi_rel = self.declare_var(ev, "phi_rel")
        self.add_eqs([sp.Eq(phi_rel.s, self.ang2.s - self.ang1.s)])
        return phi_rel

    def declare_w_rel(self, ev):
        w_rel = self.declare_var(ev, "w_rel")
        self.add_eqs([sp.Eq(w_rel.s, self.w2.s - self.w1.s)])
        return w_rel


class Fixed(RotationalOnePort):
    """
    Flange fixed in the housing at angle phi0. The velocity of the flange is
    zero, the angle keeps its fixed initial value.
    """

    def __init__(self, ev, name=None, phi0=0.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(
            ev, self.name, w_ic=0.0, ang_ic=phi0, ang_ic_fixed=True
        )
        self.add_eqs([sp.Eq(self.w.s, 0)])


class Inertia(RotationalTwoPort):
    """
    Ideal inertia in rotational domain, rigidly connecting flange_a and
    flange_b. The characteristic equation is:
        J*alpha(t) = t_a(t) + t_b(t)
    where alpha=derivative(w(t)) and J is the moment of inertia in kg*m^2.

    Args:
        J (number):
            The moment of inertia.
        initial_velocity (number);
            initial velocity of the flanges.
        initial_angle (number);
            initial angle of the flanges.
    """

    def __init__(
        self,
        ev,
        name=None,
        J=1.0,
        initial_velocity=0.0,
        initial_velocity_fixed=False,
        initial_angle=0.0,
        initial_angle_fixed=False,
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(
            ev,
            self.name,
            w1_ic=initial_velocity,
            w1_ic_fixed=initial_velocity_fixed,
            ang1_ic=initial_angle,
            ang1_ic_fixed=initial_angle_fixed,
            w2_ic=initial_velocity,
            ang2_ic=initial_angle,
            include_torque_equality=False,
        )
        J = self.declare_param(ev, "J", J, positive=True)
        # velocity level coupling of the flanges, each flange integrates its
        # own angle from the same initial value.
        self.add_eqs(
            [
                sp.Eq(self.w1.s, self.w2.s),
                sp.Eq(J.s * self.alpha1.s, self.t1.s + self.t2.s),
            ]
        )


class Spring(RotationalTwoPort):
    """
    Linear torsional spring, t_b = c*(phi_rel - phi_rel0), phi_rel = ang_b - ang_a.

    Args:
        c (number):
            Stiffness in N*m/rad.
        phi_rel0 (number):
            Unstretched relative angle.
    """

    def __init__(self, ev, name=None, c=1e5, phi_rel0=0.0, **ic_kwargs):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, **ic_kwargs)
        c = self.declare_param(ev, "c", c, positive=True)
        phi_rel0 = self.declare_param(ev, "phi_rel0", phi_rel0)
        phi_rel = self.declare_phi_rel(ev)
        self.add_eqs([sp.Eq(self.t2.s, c.s * (phi_rel.s - phi_rel0.s))])


class Damper(RotationalTwoPort):
    """
    Linear damper, t_b = d*w_rel, w_rel = w_b - w_a, d in N*m*s/rad.
    """

    def __init__(self, ev, name=None, d=1.0, **ic_kwargs):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, **ic_kwargs)
        d = self.declare_param(ev, "d", d, positive=True)
        w_rel = self.declare_w_rel(ev)
        self.add_eqs([sp.Eq(self.t2.s, d.s * w_rel.s)])


class SpringDamper(RotationalTwoPort):
    """Spring and damper in parallel, t_b = c*(phi_rel - phi_rel0) + d*w_rel."""

    def __init__(self, ev, name=None, c=1e5, d=1.0, phi_rel0=0.0, **ic_kwargs):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, **ic_kwargs)
        c = self.declare_param(ev, "c", c, positive=True)
        d = self.declare_param(ev, "d", d, positive=True)
        phi_rel0 = self.declare_param(ev, "phi_rel0", phi_rel0)
        phi_rel = self.declare_phi_rel(ev)
        w_rel = self.declare_w_rel(ev)
        self.add_eqs(
            [sp.Eq(self.t2.s, c.s * (phi_rel.s - phi_rel0.s) + d.s * w_rel.s)]
        )


class IdealGear(RotationalTwoPort):
    """
    Ideal gear without inertia, w_a = ratio*w_b and t_b = -ratio*t_a.
    The coupling is on velocity, so the angles keep their own initial values.
    """

    def __init__(self, ev, name=None, ratio=1.0, **ic_kwargs):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, include_torque_equality=False, **ic_kwargs)
        ratio = self.declare_param(ev, "ratio", ratio)
        self.add_eqs(
            [
                sp.Eq(self.w1.s, ratio.s * self.w2.s),
                sp.Eq(0, ratio.s * self.t1.s + self.t2.s),
            ]
        )


class RotationalFriction(RotationalTwoPort):
    """
    Coulomb, viscous and Stribeck friction between flange_a and flange_b,
    as a function of w_rel = w_b - w_a:

        t_b = sqrt(2e)*(tau_brk - tau_c)*exp(-(w_rel/w_st)^2)*w_rel/w_st
              + tau_c*tanh(w_rel/w_coul)
              + f*w_rel

    with w_st = w_brk*sqrt(2) and w_coul = w_brk/10.

    Args:
        f (number):
            Viscous friction coefficient, N*m*s/rad.
        tau_c (number):
            Coulomb friction torque, N*m.
        w_brk (number):
            Breakaway friction velocity, rad/s.
        tau_brk (number):
            Breakaway friction torque, N*m.
    """

    def __init__(
        self, ev, name=None, f=0.001, tau_c=20.0, w_brk=0.1, tau_brk=25.0, **ic_kwargs
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, **ic_kwargs)
        f = self.declare_param(ev, "f", f, non_negative=True)
        tau_c = self.declare_param(ev, "tau_c", tau_c, non_negative=True)
        w_brk = self.declare_param(ev, "w_brk", w_brk, positive=True)
        tau_brk = self.declare_param(ev, "tau_brk", tau_brk, non_negative=True)
        w_rel = self.declare_w_rel(ev)

        str_scale = np.sqrt(2 * np.e) * (tau_brk.s - tau_c.s)
        w_st = w_brk.s * np.sqrt(2)
        w_coul = w_brk.s / 10
        w = w_rel.s
        tau = (
            str_scale * sp.exp(-((w / w_st) ** 2)) * w / w_st
            + tau_c.s * sp.tanh(w / w_coul)
            + f.s * w
        )
        self.add_eqs([sp.Eq(self.t2.s, tau)])


class Torque(ComponentBase):
    """
    Ideal torque source in rotational domain.

    Args:
        tau (number):
            Torque value when enable_torque_port=False, default value of the
            input otherwise.
        enable_torque_port (bool):
            When true, the torque value is from a input signal.
        use_support (bool):
            When true, the reaction torque acts on a support flange, otherwise
            on the housing.
    """

    def __init__(
        self, ev, name=None, tau=0.0, enable_torque_port=False, use_support=False
    ):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        t, _, _, _ = self.declare_rotational_port(ev, "flange")
        tau = self.declare_param_or_input(ev, "tau", tau, enable_torque_port)
        # torque applied to the connected flange
        self.add_eqs([sp.Eq(t.s, -tau.s)])
        if use_support:
            t_s, _, _, _ = self.declare_rotational_port(ev, "support")
            self.add_eqs([sp.Eq(t_s.s, tau.s)])


class Speed(ComponentBase):
    """
    Speed source. When exact, the flange follows w_ref exactly. Otherwise the
    flange speed is w_ref filtered by a first order lag:
        alpha = tau_filt*(w_ref - w)

    Args:
        w_ref (number):
            Reference speed, or the default of the input when enable_speed_port.
        exact (bool):
            Whether the speed follows w_ref exactly.
        tau_filt (number):
            Inverse of the filter time constant, 1/s.
    """

    def __init__(
        self,
        ev,
        name=None,
        w_ref=0.0,
        exact=False,
        tau_filt=50.0,
        enable_speed_port=False,
        initial_velocity=0.0,
    ):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        _, _, w, alpha = self.declare_rotational_port(ev, "flange", w_ic=initial_velocity)
        w_ref = self.declare_param_or_input(ev, "w_ref", w_ref, enable_speed_port)
        if exact:
            self.add_eqs([sp.Eq(w.s, w_ref.s)])
        else:
            tau_filt = self.declare_param(ev, "tau_filt", tau_filt, positive=True)
            self.add_eqs([sp.Eq(alpha.s, tau_filt.s * (w_ref.s - w.s))])


class AngleSensor(RotationalOnePort):
    """Absolute angle of the flange."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.declare_output(ev, "phi", self.ang.s)
        self.add_eqs([sp.Eq(self.t.s, 0)])


class SpeedSensor(RotationalOnePort):
    """Absolute angular velocity of the flange."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.declare_output(ev, "w", self.w.s)
        self.add_eqs([sp.Eq(self.t.s, 0)])


class TorqueSensor(RotationalTwoPort):
    """
    Ideal torque sensor in rotational domain.
    Measures torque between flange_a and flange_b.
    """

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.declare_output(ev, "tau", self.t1.s)
        self.add_eqs([sp.Eq(self.w1.s, self.w2.s)])


class RelSpeedSensor(RotationalTwoPort):
    """Relative angular velocity w_b - w_a."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, include_torque_equality=False)
        self.declare_output(ev, "w_rel", self.w2.s - self.w1.s)
        self.add_eqs([sp.Eq(self.t1.s, 0), sp.Eq(self.t2.s, 0)])
