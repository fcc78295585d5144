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

import sympy as sp

from .component_base import ComponentBase

"""
1D translational components, velocity based.

flow variable:Units = force:Newtons, positive when acting on the component
potential variable:Units = velocity:meters/second
The position x of a flange is the integral of its velocity, a its derivative.
"""


class TranslationalOnePort(ComponentBase):
    """Partial component class for a translational component with one flange."""

    def __init__(
        self,
        ev,
        name,
        v_ic=0.0,
        v_ic_fixed=False,
        x_ic=0.0,
        x_ic_fixed=False,
        p="flange",
    ):
        super().__init__()
        self.f, self.x, self.v, self.a = self.declare_translational_port(
            ev,
            p,
            v_ic=v_ic,
            v_ic_fixed=v_ic_fixed,
            x_ic=x_ic,
            x_ic_fixed=x_ic_fixed,
        )


class TranslationalTwoPort(ComponentBase):
    """Partial component class for an translational component with two
    flanges that can translate relative to each other.
    """

    def __init__(
        self,
        ev,
        name,
        x1_ic=0.0,
        x1_ic_fixed=False,
        v1_ic=0.0,
        v1_ic_fixed=False,
        x2_ic=0.0,
        x2_ic_fixed=False,
        v2_ic=0.0,
        v2_ic_fixed=False,
        p1="flange_a",
        p2="flange_b",
        include_force_equality=True,
    ):
        super().__init__()
        self.f1, self.x1, self.v1, self.a1 = self.declare_translational_port(
            ev,
            p1,
            v_ic=v1_ic,
            v_ic_fixed=v1_ic_fixed,
            x_ic=x1_ic,
            x_ic_fixed=x1_ic_fixed,
        )
        self.f2, self.x2, self.v2, self.a2 = self.declare_translational_port(
            ev,
            p2,
            v_ic=v2_ic,
            v_ic_fixed=v2_ic_fixed,
            x_ic=x2_ic,
            x_ic_fixed=x2_ic_fixed,
        )
        if include_force_equality:
            self.add_eqs([sp.Eq(0, self.f1.s + self.f2.s)])


class Free(TranslationalOnePort):
    """Free flange, no force acts on it."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.add_eqs([sp.Eq(self.f.s, 0)])


class Fixed(TranslationalOnePort):
    """
    Flange fixed at position s0. The velocity is zero, the position keeps
    its fixed initial value.
    """

    def __init__(self, ev, name=None, s0=0.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, x_ic=s0, x_ic_fixed=True)
        self.add_eqs([sp.Eq(self.v.s, 0)])


class Mass(TranslationalOnePort):
    """
    Ideal mass in translational domain. The characteristic equation is:
    force(t) = m*a(t) (+ m*g), where a=derivative(v(t)) and m is mass in kg.

    Args:
        m (number):
            The mass.
        g (number):
            Optional gravity acceleration acting on the mass along the flange
            axis, e.g. -ev.g_n.val.
        initial_velocity (number);
            initial velocity of flange.
        initial_position (number);
            initial position of flange.
    """

    def __init__(
        self,
        ev,
        name=None,
        m=1.0,
        g=None,
        initial_velocity=0.0,
        initial_velocity_fixed=False,
        initial_position=0.0,
        initial_position_fixed=False,
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(
            ev,
            self.name,
            v_ic=initial_velocity,
            v_ic_fixed=initial_velocity_fixed,
            x_ic=initial_position,
            x_ic_fixed=initial_position_fixed,
        )
        m = self.declare_param(ev, "m", m, positive=True)
        if g is None:
            self.add_eqs([sp.Eq(m.s * self.a.s, self.f.s)])
        else:
            g = self.declare_param(ev, "g", g)
            self.add_eqs([sp.Eq(m.s * self.a.s, self.f.s + m.s * g.s)])


class Spring(TranslationalTwoPort):
    """
    Linear spring in translational domain, f_a = k*delta_s, f_b = -f_a.

    In the relative form, the elongation delta_s is a state, integrated
    from v_a - v_b starting at delta_s0. In the absolute form it is
    computed from the flange positions, delta_s = x_a - x_b - l.

    Args:
        k (number):
            Stiffness, N/m.
        delta_s0 (number):
            Initial elongation of the relative form.
        l (number):
            Unstretched length of the absolute form.
        absolute (bool):
            Selects the absolute form.
    """

    def __init__(
        self, ev, name=None, k=1.0, delta_s0=0.0, l=0.0, absolute=False, **ic_kwargs  # noqa: E741
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, **ic_kwargs)
        k = self.declare_param(ev, "k", k, positive=True)
        if absolute:
            l = self.declare_param(ev, "l", l)  # noqa: E741
            delta_s = self.x1.s - self.x2.s - l.s
        else:
            ds = self.declare_var(ev, "delta_s", ic=delta_s0, ic_fixed=True)
            d_ds = self.declare_derivative(ev, "d_delta_s", of=ds)
            self.add_eqs([sp.Eq(d_ds.s, self.v1.s - self.v2.s)])
            delta_s = ds.s
        self.add_eqs([sp.Eq(self.f1.s, k.s * delta_s)])


class Damper(TranslationalTwoPort):
    """
    Ideal damper in translational domain. The characteristic equation is:
    f_a(t) = d*(v_a(t) - v_b(t)), where d is the damping coefficient in N/(m/s).
    """

    def __init__(self, ev, name=None, d=1.0, **ic_kwargs):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, **ic_kwargs)
        d = self.declare_param(ev, "d", d, positive=True)
        self.add_eqs([sp.Eq(self.f1.s, d.s * (self.v1.s - self.v2.s))])


class Force(ComponentBase):
    """
    Ideal force source in translational domain, applies f to the connected
    flange.

    Args:
        f (number):
            Force value, or default value of the input when enable_force_port.
        use_support (bool):
            When true, the reaction force acts on a support flange.
    """

    def __init__(
        self, ev, name=None, f=0.0, enable_force_port=False, use_support=False
    ):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        f_flange, _, _, _ = self.declare_translational_port(ev, "flange")
        f = self.declare_param_or_input(ev, "f", f, enable_force_port)
        self.add_eqs([sp.Eq(f_flange.s, -f.s)])
        if use_support:
            f_support, _, _, _ = self.declare_translational_port(ev, "support")
            self.add_eqs([sp.Eq(f_support.s, f.s)])


class Position(TranslationalOnePort):
    """
    Prescribed flange position x = s. The velocity of the flange is the
    time derivative of s, so models using it must not need it.
    """

    def __init__(self, ev, name=None, s=0.0, enable_position_port=True):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        s = self.declare_param_or_input(ev, "s", s, enable_position_port)
        self.add_eqs([sp.Eq(self.x.s, s.s)])


class Velocity(TranslationalOnePort):
    """Prescribed flange velocity."""

    def __init__(self, ev, name=None, v=0.0, enable_velocity_port=True, initial_position=0.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, x_ic=initial_position)
        v = self.declare_param_or_input(ev, "v", v, enable_velocity_port)
        self.add_eqs([sp.Eq(self.v.s, v.s)])


class Acceleration(TranslationalOnePort):
    """Prescribed flange acceleration, the velocity starts at initial_velocity."""

    def __init__(
        self,
        ev,
        name=None,
        a=0.0,
        enable_acceleration_port=True,
        initial_velocity=0.0,
        initial_position=0.0,
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(
            ev,
            self.name,
            v_ic=initial_velocity,
            v_ic_fixed=True,
            x_ic=initial_position,
        )
        a = self.declare_param_or_input(ev, "a", a, enable_acceleration_port)
        self.add_eqs([sp.Eq(self.a.s, a.s)])


class ForceSensor(TranslationalTwoPort):
    """
    Ideal force sensor in translational domain.
    Measures the force transmitted from flange_a to flange_b.
    """

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.declare_output(ev, "f", self.f1.s)
        self.add_eqs([sp.Eq(self.v1.s, self.v2.s)])


class PositionSensor(TranslationalOnePort):
    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.declare_output(ev, "s", self.x.s)
        self.add_eqs([sp.Eq(self.f.s, 0)])


class VelocitySensor(TranslationalOnePort):
    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.declare_output(ev, "v", self.v.s)
        self.add_eqs([sp.Eq(self.f.s, 0)])


class AccelerationSensor(TranslationalOnePort):
    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.declare_output(ev, "a", self.a.s)
        self.add_eqs([sp.Eq(self.f.s, 0)])
