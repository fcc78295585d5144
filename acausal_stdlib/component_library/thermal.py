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

from .base import SymKind
from .component_base import ComponentBase

"""
1D thermal (heat transfer) components similar to Modelica Standard Library.

flow variable:Units = heat_flux:Joules/second
potential variable:Units = temperature:Kelvin
"""


class ThermalOnePort(ComponentBase):
    """Partial component class for a thermal component with one port."""

    def __init__(self, ev, name, T_ic=None, T_ic_fixed=False, p="port"):
        super().__init__()
        self.T, self.Q = self.declare_thermal_port(
            ev, p, T_ic=T_ic, T_ic_fixed=T_ic_fixed
        )


class ThermalTwoPort(ComponentBase):
    """Partial component class for a thermal component with two
    port that can have different temperature relative to each other.
    """

    def __init__(self, ev, name, p1="port_a", p2="port_b"):
        super().__init__()
        self.T1, self.Q1 = self.declare_thermal_port(ev, p1)
        self.T2, self.Q2 = self.declare_thermal_port(ev, p2)
        self.dT = self.declare_symbol(ev, "dT", name, kind=SymKind.var)
        self.add_eqs([sp.Eq(self.dT.s, self.T1.s - self.T2.s)])


class ThermalElement1D(ThermalTwoPort):
    """
    Heat flow Q_flow from port_a to port_b through the element. Subclasses
    add the relation between dT and Q_flow.
    """

    def __init__(self, ev, name, p1="port_a", p2="port_b"):
        super().__init__(ev, name, p1=p1, p2=p2)
        self.Q_flow = self.declare_var(ev, "Q_flow")
        self.add_eqs(
            [
                sp.Eq(self.Q1.s, self.Q_flow.s),
                sp.Eq(0, self.Q1.s + self.Q2.s),
            ]
        )


class ThermalGround(ThermalOnePort):
    """Zero temperature reference."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.add_eqs([sp.Eq(self.T.s, 0)])


class HeatCapacitor(ThermalOnePort):
    """
    Ideal capacitor(thermal mass) in thermal domain. The characteristic equation is:
    heatflow(t) = derivative(T(t))*C, where C is the product of the mass and the
    specific heat. The units of C are in Joule/degK.

    Args:
        C (number):
            Mass * specific heat.
        initial_temperature (number);
            initial temperature.
    """

    def __init__(
        self,
        ev,
        name=None,
        C=1.0,
        initial_temperature=300.0,
        initial_temperature_fixed=False,
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(
            ev,
            self.name,
            T_ic=initial_temperature,
            T_ic_fixed=initial_temperature_fixed,
        )
        C = self.declare_param(ev, "C", C, positive=True)
        derT = self.declare_derivative(ev, "derT", of=self.T, ic=0.0)
        # energy relationship
        self.add_eqs([sp.Eq(self.Q.s, C.s * derT.s)])


class ThermalConductor(ThermalElement1D):
    """Lossless conduction, Q_flow = G*dT, G in W/K."""

    def __init__(self, ev, name=None, G=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        G = self.declare_param(ev, "G", G, positive=True)
        self.add_eqs([sp.Eq(self.Q_flow.s, G.s * self.dT.s)])


class ThermalResistor(ThermalElement1D):
    """Lossless conduction, dT = R*Q_flow, R in K/W."""

    def __init__(self, ev, name=None, R=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        R = self.declare_param(ev, "R", R, positive=True)
        self.add_eqs([sp.Eq(self.dT.s, R.s * self.Q_flow.s)])


class ConvectiveConductor(ThermalElement1D):
    """
    Convection between a solid and a fluid, Q_flow = G*dT with dT the solid
    temperature minus the fluid temperature.
    """

    def __init__(self, ev, name=None, G=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, p1="solid", p2="fluid")
        G = self.declare_param(ev, "G", G, positive=True)
        self.add_eqs([sp.Eq(self.Q_flow.s, G.s * self.dT.s)])


class ConvectiveResistor(ThermalElement1D):
    """Convection between a solid and a fluid, dT = R*Q_flow."""

    def __init__(self, ev, name=None, R=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, p1="solid", p2="fluid")
        R = self.declare_param(ev, "R", R, positive=True)
        self.add_eqs([sp.Eq(self.dT.s, R.s * self.Q_flow.s)])


class BodyRadiation(ThermalElement1D):
    """
    Radiation between two surfaces, Q_flow = G*sigma*(Ta^4 - Tb^4), with G the
    net radiation conductance in m^2 and sigma the Stefan-Boltzmann constant.
    """

    def __init__(self, ev, name=None, G=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        G = self.declare_param(ev, "G", G, positive=True)
        self.add_eqs(
            [
                sp.Eq(
                    self.Q_flow.s,
                    G.s * ev.sigma.s * (self.T1.s**4 - self.T2.s**4),
                )
            ]
        )


class ThermalCollector(ComponentBase):
    """
    Joins N heat ports port_1..port_N into collector_port, all at the same
    temperature.
    """

    def __init__(self, ev, name=None, N=2):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        if N < 1:
            raise ValueError(f"ThermalCollector {self.name}: N must be >= 1.")
        ports = [self.declare_thermal_port(ev, f"port_{k}") for k in range(1, N + 1)]
        Tc, Qc = self.declare_thermal_port(ev, "collector_port")
        self.add_eqs(
            [
                sp.Eq(0, Qc.s + sum(Q.s for _, Q in ports)),
                sp.Eq(Tc.s, ports[0][0].s),
            ]
        )
        self.add_eqs(
            [sp.Eq(ports[k][0].s, ports[k + 1][0].s) for k in range(N - 1)]
        )


class TemperatureSensor(ThermalOnePort):
    """
    Ideal temperature sensor in thermal domain.
    """

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.declare_output(ev, "T_out", self.T.s)
        self.add_eqs([sp.Eq(self.Q.s, 0)])


class RelativeTemperatureSensor(ComponentBase):
    """Temperature of port_a relative to port_b."""

    def __init__(self, ev, name=None):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        T1, Q1 = self.declare_thermal_port(ev, "port_a")
        T2, Q2 = self.declare_thermal_port(ev, "port_b")
        self.declare_output(ev, "T_rel", T1.s - T2.s)
        self.add_eqs([sp.Eq(Q1.s, 0), sp.Eq(Q2.s, 0)])


class HeatFlowSensor(ComponentBase):
    """
    Ideal heatflow sensor in thermal domain.
    Measures heatflow between port_a and port_b.
    """

    def __init__(self, ev, name=None):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        T1, Q1 = self.declare_thermal_port(ev, "port_a")
        T2, Q2 = self.declare_thermal_port(ev, "port_b")
        self.declare_output(ev, "Q_flow", Q1.s)
        self.add_eqs([sp.Eq(T1.s, T2.s), sp.Eq(0, Q1.s + Q2.s)])


class FixedHeatFlow(ThermalOnePort):
    """
    Heat flow Q_flow*(1 + alpha*(T - T_ref)) injected into the network at
    the port. With alpha=0 it is a constant heat flow source.

    Args:
        Q_flow (number):
            Heat flow at T_ref, or the default of the input when
            enable_heat_port is True.
        T_ref (number):
            Reference temperature.
        alpha (number):
            Temperature coefficient of the heat flow, 1/K.
        enable_heat_port (bool):
            When true, Q_flow is an input.
    """

    def __init__(
        self,
        ev,
        name=None,
        Q_flow=1.0,
        T_ref=293.15,
        alpha=0.0,
        enable_heat_port=False,
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        Q_flow = self.declare_param_or_input(ev, "Q_flow", Q_flow, enable_heat_port)
        T_ref = self.declare_param(ev, "T_ref", T_ref)
        alpha = self.declare_param(ev, "alpha", alpha)
        self.add_eqs(
            [sp.Eq(self.Q.s, -Q_flow.s * (1 + alpha.s * (self.T.s - T_ref.s)))]
        )


class PrescribedHeatFlow(FixedHeatFlow):
    """FixedHeatFlow whose Q_flow is an input."""

    def __init__(self, ev, name=None, Q_flow=0.0, T_ref=293.15, alpha=0.0):
        super().__init__(
            ev, name, Q_flow=Q_flow, T_ref=T_ref, alpha=alpha, enable_heat_port=True
        )


class FixedTemperature(ThermalOnePort):
    """Holds the port at temperature T, or at an input when enable_temperature_port."""

    def __init__(self, ev, name=None, T=300.0, enable_temperature_port=False):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        T = self.declare_param_or_input(ev, "T", T, enable_temperature_port)
        self.add_eqs([sp.Eq(self.T.s, T.s)])


class PrescribedTemperature(FixedTemperature):
    def __init__(self, ev, name=None, T=300.0):
        super().__init__(ev, name, T=T, enable_temperature_port=True)
