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
Magnetic flux tube components, lumped magnetic networks similar to
Modelica.Magnetic.FluxTubes.

flow variable:Units = magnetic flux:Weber
potential variable:Units = magnetic potential:Ampere
"""


class MagneticTwoPort(ComponentBase):
    """
    Partial component with ports port_p and port_n, the magnetic potential
    difference V_m across it and the flux Phi through it.
    """

    def __init__(self, ev, name, Phi_ic=None, Phi_ic_fixed=False):
        super().__init__()
        Vp, self.Phi = self.declare_magnetic_port(
            ev, "port_p", Phi_ic=Phi_ic, Phi_ic_fixed=Phi_ic_fixed
        )
        Vn, Phi_n = self.declare_magnetic_port(ev, "port_n")
        self.V_m = self.declare_var(ev, "V_m")
        self.add_eqs(
            [
                sp.Eq(self.V_m.s, Vp.s - Vn.s),
                sp.Eq(0, self.Phi.s + Phi_n.s),
            ]
        )


class Ground(ComponentBase):
    """Zero magnetic potential reference."""

    def __init__(self, ev, name=None):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        V_m, _ = self.declare_magnetic_port(ev, "port")
        self.add_eqs([sp.Eq(V_m.s, 0)])


class Idle(MagneticTwoPort):
    """Idle running branch, no flux."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.add_eqs([sp.Eq(self.Phi.s, 0)])


class Short(MagneticTwoPort):
    """Short cut branch, no magnetic potential difference."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.add_eqs([sp.Eq(self.V_m.s, 0)])


class Crossing(ComponentBase):
    """Crossing of two branches: port_p1 is joined to port_p2, port_n1 to port_n2."""

    def __init__(self, ev, name=None):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        for a, b in (("port_p1", "port_p2"), ("port_n1", "port_n2")):
            Va, Phia = self.declare_magnetic_port(ev, a)
            Vb, Phib = self.declare_magnetic_port(ev, b)
            self.add_eqs([sp.Eq(Va.s, Vb.s), sp.Eq(0, Phia.s + Phib.s)])


class ConstantPermeance(MagneticTwoPort):
    """Phi = G_m*V_m, G_m in H."""

    def __init__(self, ev, name=None, G_m=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        G_m = self.declare_param(ev, "G_m", G_m, positive=True)
        self.add_eqs([sp.Eq(self.Phi.s, G_m.s * self.V_m.s)])


class ConstantReluctance(MagneticTwoPort):
    """V_m = Phi*R_m, R_m in 1/H."""

    def __init__(self, ev, name=None, R_m=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        R_m = self.declare_param(ev, "R_m", R_m, positive=True)
        self.add_eqs([sp.Eq(self.V_m.s, self.Phi.s * R_m.s)])


class ElectroMagneticConverter(MagneticTwoPort):
    """
    Ideal coil of N turns coupling the electrical pins p, n to the magnetic
    ports port_p, port_n:
        V_m = N*i           (Ampere's law)
        N*dPhi/dt = -v      (Faraday's law)

    Args:
        N (number):
            Number of turns.
        initial_flux (number):
            Initial value of Phi.
    """

    def __init__(
        self, ev, name=None, N=1.0, initial_flux=0.0, initial_flux_fixed=False
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(
            ev, self.name, Phi_ic=initial_flux, Phi_ic_fixed=initial_flux_fixed
        )
        N = self.declare_param(ev, "N", N, positive=True)
        Vp, Ip = self.declare_electrical_port(ev, "p")
        Vn, In = self.declare_electrical_port(ev, "n")
        v = self.declare_var(ev, "v")
        dPhi = self.declare_derivative(ev, "dPhi", of=self.Phi, ic=0.0)
        self.add_eqs(
            [
                sp.Eq(v.s, Vp.s - Vn.s),
                sp.Eq(0, Ip.s + In.s),
                sp.Eq(self.V_m.s, Ip.s * N.s),
                sp.Eq(dPhi.s, -v.s / N.s),
            ]
        )


class EddyCurrent(MagneticTwoPort):
    """
    Eddy current loss in a flux tube, dPhi/dt = R*V_m, where R = rho*l/A is
    the resistance of the eddy current path.

    Args:
        rho (number):
            Resistivity of the flux tube material, Ohm*m.
        l (number):
            Average length of the eddy current path, m.
        A (number):
            Cross sectional area of the eddy current path, m^2.
    """

    def __init__(self, ev, name=None, rho=0.098e-6, l=1.0, A=1.0, initial_flux=0.0):  # noqa: E741
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, Phi_ic=initial_flux)
        rho = self.declare_param(ev, "rho", rho, positive=True)
        l = self.declare_param(ev, "l", l, positive=True)  # noqa: E741
        A = self.declare_param(ev, "A", A, positive=True)
        dPhi = self.declare_derivative(ev, "dPhi", of=self.Phi, ic=0.0)
        R = rho.s * l.s / A.s
        self.add_eqs([sp.Eq(dPhi.s, self.V_m.s * R)])


class ConstantMagneticPotentialDifference(MagneticTwoPort):
    """Source of a constant magnetic potential difference V_m across port_p, port_n."""

    def __init__(self, ev, name=None, V_m=1.0, enable_port=False):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        V_m = self.declare_param_or_input(ev, "V_m_src", V_m, enable_port)
        self.add_eqs([sp.Eq(self.V_m.s, V_m.s)])


class ConstantMagneticFlux(MagneticTwoPort):
    """Source of a constant flux Phi entering at port_p."""

    def __init__(self, ev, name=None, Phi=1.0, enable_port=False):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        Phi = self.declare_param_or_input(ev, "Phi_src", Phi, enable_port)
        self.add_eqs([sp.Eq(self.Phi.s, Phi.s)])
