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
1D translational components, position based.

flow variable:Units = force:Newtons, positive when acting on the component
potential variable:Units = position:meters
Each flange carries its velocity v = d(s)/dt and acceleration a = d(v)/dt.
"""


class PositionOnePort(ComponentBase):
    """Partial component class for a component with one flange."""

    def __init__(
        self,
        ev,
        name,
        s_ic=None,
        s_ic_fixed=False,
        v_ic=None,
        v_ic_fixed=False,
        p="flange",
    ):
        super().__init__()
        self.f, self.s, self.v, self.a = self.declare_translational_position_port(
            ev, p, s_ic=s_ic, s_ic_fixed=s_ic_fixed, v_ic=v_ic, v_ic_fixed=v_ic_fixed
        )


class PositionTwoPort(ComponentBase):
    """Partial component class for a compliant element between flange_a and
    flange_b. The force f acts on flange_a, -f on flange_b."""

    def __init__(
        self,
        ev,
        name,
        sa_ic=None,
        sb_ic=None,
        va_ic=None,
        vb_ic=None,
        include_force_equality=True,
    ):
        super().__init__()
        self.fa, self.sa, self.va, self.aa = self.declare_translational_position_port(
            ev, "flange_a", s_ic=sa_ic, v_ic=va_ic
        )
        self.fb, self.sb, self.vb, self.ab = self.declare_translational_position_port(
            ev, "flange_b", s_ic=sb_ic, v_ic=vb_ic
        )
        if include_force_equality:
            self.add_eqs([sp.Eq(0, self.fa.s + self.fb.s)])


class Fixed(PositionOnePort):
    """
    Flange fixed in housing at position s_0. The flange velocity is held at
    zero, the position keeps its fixed initial value s_0.
    """

    def __init__(self, ev, name=None, s_0=0.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, s_ic=s_0, s_ic_fixed=True, v_ic=0.0)
        self.add_eqs([sp.Eq(self.v.s, 0)])


class Mass(PositionOnePort):
    """
    Sliding mass with inertia, m*d(v)/dt = f.

    Args:
        m (number):
            Mass, kg.
        s (number):
            Initial position.
        v (number):
            Initial velocity.
    """

    def __init__(
        self,
        ev,
        name=None,
        m=1.0,
        s=0.0,
        v=0.0,
        initial_position_fixed=False,
        initial_velocity_fixed=False,
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(
            ev,
            self.name,
            s_ic=s,
            s_ic_fixed=initial_position_fixed,
            v_ic=v,
            v_ic_fixed=initial_velocity_fixed,
        )
        m = self.declare_param(ev, "m", m, positive=True)
        self.add_eqs([sp.Eq(m.s * self.a.s, self.f.s)])


class Spring(PositionTwoPort):
    """
    Linear spring, f = k*(s_a - s_b - l), with l the unstretched length.
    """

    def __init__(self, ev, name=None, k=1.0, l=0.0, flange_a__s=None, flange_b__s=None):  # noqa: E741
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, sa_ic=flange_a__s, sb_ic=flange_b__s)
        k = self.declare_param(ev, "k", k, positive=True)
        l = self.declare_param(ev, "l", l)  # noqa: E741
        self.add_eqs([sp.Eq(self.fa.s, k.s * (self.sa.s - self.sb.s - l.s))])


class Damper(PositionTwoPort):
    """Linear damper, f = d*(v_a - v_b)."""

    def __init__(self, ev, name=None, d=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        d = self.declare_param(ev, "d", d, positive=True)
        self.add_eqs([sp.Eq(self.fa.s, d.s * (self.va.s - self.vb.s))])


class SpringDamper(PositionTwoPort):
    """Spring and damper in parallel."""

    def __init__(self, ev, name=None, k=1.0, d=1.0, l=0.0):  # noqa: E741
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        k = self.declare_param(ev, "k", k, positive=True)
        d = self.declare_param(ev, "d", d, positive=True)
        l = self.declare_param(ev, "l", l)  # noqa: E741
        self.add_eqs(
            [
                sp.Eq(
                    self.fa.s,
                    k.s * (self.sa.s - self.sb.s - l.s)
                    + d.s * (self.va.s - self.vb.s),
                )
            ]
        )


class SlidingMass(PositionTwoPort):
    """
    Rigid sliding mass of length L. The center of the mass is at s0, so
    flange_a starts at s0 - L/2 and flange_b at s0 + L/2. Both flanges move
    with the same velocity, m*d(v)/dt = f_a + f_b.

    Args:
        m (number):
            Mass, kg.
        L (number):
            Length of the mass, m.
        s0 (number):
            Initial position of the center.
        v0 (number):
            Initial velocity.
    """

    def __init__(self, ev, name=None, m=1.0, L=0.0, s0=0.0, v0=0.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(
            ev,
            self.name,
            sa_ic=s0 - L / 2,
            sb_ic=s0 + L / 2,
            va_ic=v0,
            vb_ic=v0,
            include_force_equality=False,
        )
        m = self.declare_param(ev, "m", m, positive=True)
        self.L = self.declare_param(ev, "L", L, non_negative=True)
        self.sa.ic_fixed = True
        self.sb.ic_fixed = True
        self.add_eqs(
            [
                sp.Eq(self.vb.s, self.va.s),
                sp.Eq(m.s * self.aa.s, self.fa.s + self.fb.s),
            ]
        )
        self.declare_output(ev, "s", (self.sa.s + self.sb.s) / 2)


class Force(ComponentBase):
    """
    Force source, applies f to the flange. With use_support, the reaction
    acts on the support flange.
    """

    def __init__(
        self, ev, name=None, f=0.0, enable_force_port=True, use_support=False
    ):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        f_flange, _, _, _ = self.declare_translational_position_port(ev, "flange")
        f = self.declare_param_or_input(ev, "f", f, enable_force_port)
        self.add_eqs([sp.Eq(f_flange.s, -f.s)])
        if use_support:
            f_support, _, _, _ = self.declare_translational_position_port(
                ev, "support"
            )
            self.add_eqs([sp.Eq(f_support.s, f.s)])


class Position(PositionOnePort):
    """
    Forced movement of the flange according to a reference position s_ref.

    When exact is False, the flange follows s_ref through a critically damped
    second order filter with cut-off frequency f_crit:
        a = ((s_ref - s)*w_crit - af*v)*(w_crit/bf),  w_crit = 2*pi*f_crit
    so the flange position and velocity are states. When exact is True the
    flange position is s_ref itself.

    Args:
        s_ref (number):
            Reference position, or default value of the input.
        exact (bool):
            Follow s_ref exactly.
        f_crit (number):
            Filter cut-off frequency, Hz.
    """

    af = 1.3617
    bf = 0.6180

    def __init__(
        self,
        ev,
        name=None,
        s_ref=0.0,
        exact=False,
        f_crit=50.0,
        enable_position_port=True,
        initial_position=0.0,
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, s_ic=initial_position, v_ic=0.0)
        s_ref = self.declare_param_or_input(ev, "s_ref", s_ref, enable_position_port)
        if exact:
            self.add_eqs([sp.Eq(self.s.s, s_ref.s)])
            return
        f_crit = self.declare_param(ev, "f_crit", f_crit, positive=True)
        w_crit = 2 * np.pi * f_crit.s
        self.add_eqs(
            [
                sp.Eq(
                    self.a.s,
                    ((s_ref.s - self.s.s) * w_crit - self.af * self.v.s)
                    * (w_crit / self.bf),
                )
            ]
        )


class ForceSensor(PositionTwoPort):
    """Force transmitted from flange_a to flange_b."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.add_eqs([sp.Eq(self.sa.s, self.sb.s)])
        self.declare_output(ev, "f", self.fa.s)


class PositionSensor(PositionOnePort):
    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.declare_output(ev, "s", self.s.s)
        self.add_eqs([sp.Eq(self.f.s, 0)])


class AccelerationSensor(PositionOnePort):
    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.declare_output(ev, "a", self.a.s)
        self.add_eqs([sp.Eq(self.f.s, 0)])
