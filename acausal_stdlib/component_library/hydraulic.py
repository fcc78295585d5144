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

from dataclasses import dataclass

import sympy as sp

from .base import Sym
from .component_base import ComponentBase
from .functions import friction_factor, liquid_density, regPow, regRoot

"""
Hydraulic domain for isothermal compressible liquids, e.g. water or oil, when
temperature changes can be neglected but compressibility cannot.

The density of the liquid follows the linearized Tait equation of state
    rho(p) = rho_0*(1 + p/beta)
where p is the gauge pressure and beta the bulk modulus.

The properties of the liquid are defined by the HydraulicFluid component.
HydraulicFluid has one port, connected anywhere in the network of components
that share the same liquid. DiagramProcessing assigns the fluid to every port
of the network, then calls finalize() on every component, which is where the
hydraulic components write the equations that need the fluid properties.

Domain variables:
flow:Units = massflow:kg/s, positive when entering the component
potential:Units = pressure:Pa (gauge)
"""


@dataclass
class FluidProperties:
    """Parameter Syms of an isothermal compressible liquid."""

    density: Sym
    bulk_modulus: Sym
    viscosity: Sym
    gas_density: Sym
    gas_pressure: Sym
    n: Sym

    def liquid_density(self, p):
        return liquid_density(self.density.s, self.bulk_modulus.s, p)

    @property
    def compressibility(self):
        """d(rho)/d(p) of the liquid."""
        return self.density.s / self.bulk_modulus.s


# fluid presets
WATER_20C = dict(density=997.0, bulk_modulus=2.09e9, viscosity=0.0010016)
SAE_30_OIL_20C = dict(density=881.5, bulk_modulus=1.5e9, viscosity=0.23939)


def _volume_balance(fluid, dm, vol, p, dp, dvol=0):
    # mass flow into a volume is the derivative of its mass rho(p)*vol
    return sp.Eq(dm, vol * fluid.compressibility * dp + fluid.liquid_density(p) * dvol)


def _orifice_flow(fluid, p_a, p_b, area, Cd):
    # flow through an orifice of the given area from a to b
    rho = fluid.liquid_density(p_a)
    return area * sp.sqrt(2 * rho / Cd) * regRoot(p_a - p_b)


def _valve_eq(fluid, dm, p_a, p_b, area, Cd, directional):
    """
    Valve equation for the mass flow dm from a to b. A directional valve
    restricts the flow from a to b only, flow from b to a is unrestricted.
    """
    q = _orifice_flow(fluid, p_a, p_b, area, Cd)
    if directional:
        return sp.Eq(0, sp.Piecewise((dm - q, p_a - p_b > 0), (p_a - p_b, True)))
    return sp.Eq(dm, q)


def _tube_dp(fluid, dm, p_a, p_b, area, perimeter, shape_factor, length):
    """Pressure drop of fully developed flow dm through a tube."""
    d_h = 4 * area / perimeter
    rho = (fluid.liquid_density(p_a) + fluid.liquid_density(p_b)) / 2
    f = friction_factor(dm, area, d_h, rho, fluid.viscosity.s, shape_factor)
    u = dm / (rho * area)
    return rho / 2 * regPow(u, 2) * f * length / d_h


class HydraulicOnePort(ComponentBase):
    """Partial component class for an hydraulic component with only
    one port.
    """

    def __init__(self, ev, name, p_int=None, p_int_fixed=False, p="port"):
        super().__init__()
        self.p, self.dm = self.declare_hydraulic_port(
            ev, p, P_ic=p_int, P_ic_fixed=p_int_fixed
        )
        self.port_name = p
        self.declare_fluid_port_set({p})

    @property
    def fluid(self):
        return self.ports[self.port_name].fluid


class HydraulicTwoPort(ComponentBase):
    """Partial component class for an hydraulic component with
    two ports.
    """

    def __init__(
        self,
        ev,
        name,
        p_a_int=None,
        p_b_int=None,
        p1="port_a",
        p2="port_b",
        include_mass_conservation=True,
    ):
        super().__init__()
        self.pa, self.dma = self.declare_hydraulic_port(ev, p1, P_ic=p_a_int)
        self.pb, self.dmb = self.declare_hydraulic_port(ev, p2, P_ic=p_b_int)
        self.port_1_name = p1
        self.declare_fluid_port_set({p1, p2})
        if include_mass_conservation:
            # does not store mass
            self.add_eqs([sp.Eq(0, self.dma.s + self.dmb.s)])

    @property
    def fluid(self):
        return self.ports[self.port_1_name].fluid


class HydraulicFluid(ComponentBase):
    """
    Assigns the properties of an isothermal compressible liquid to the
    hydraulic network its port is connected to. Defaults are water at 20degC.

    Args:
        density (number):
            Density at 0 gauge pressure, kg/m^3.
        bulk_modulus (number):
            Bulk modulus, Pa.
        viscosity (number):
            Dynamic viscosity, Pa*s.
        gas_density (number):
            Density of the gas state at gas_pressure, kg/m^3.
        gas_pressure (number):
            Reference pressure of the gas state, Pa.
        n (number):
            Density exponent.
    """

    def __init__(
        self,
        ev,
        name=None,
        density=997.0,
        bulk_modulus=2.09e9,
        viscosity=0.0010016,
        gas_density=0.0073955,
        gas_pressure=-1000.0,
        n=1.0,
    ):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        _, dm = self.declare_hydraulic_port(ev, "port")
        self.declare_fluid_port_set({"port"})
        self.fluid = FluidProperties(
            density=self.declare_param(ev, "density", density, positive=True),
            bulk_modulus=self.declare_param(
                ev, "bulk_modulus", bulk_modulus, positive=True
            ),
            viscosity=self.declare_param(ev, "viscosity", viscosity, positive=True),
            gas_density=self.declare_param(
                ev, "gas_density", gas_density, positive=True
            ),
            gas_pressure=self.declare_param(ev, "gas_pressure", gas_pressure),
            n=self.declare_param(ev, "n", n, positive=True),
        )
        self.add_eqs([sp.Eq(dm.s, 0)])


def water_20C(ev, name="water_20C"):
    return HydraulicFluid(ev, name, **WATER_20C)


def sae_30_oil_20C(ev, name="sae_30_oil_20C"):
    return HydraulicFluid(ev, name, **SAE_30_OIL_20C)


class Cap(HydraulicOnePort):
    """Caps a hydraulic port, no mass flows in or out."""

    def __init__(self, ev, name=None, p_int=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, p_int=p_int)
        self.add_eqs([sp.Eq(self.dm.s, 0)])


class Open(HydraulicOnePort):
    """
    Port open to the ambient at gauge pressure p, which takes whatever mass
    flow the network sends to it.
    """

    def __init__(self, ev, name=None, p=0.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, p_int=p)
        p = self.declare_param(ev, "p_ambient", p)
        self.add_eqs([sp.Eq(self.p.s, p.s)])


class TubeBase(HydraulicTwoPort):
    """
    Flow friction of fully developed flow in a tube, ignoring compressibility:
        p_a - p_b = rho/2*u*|u|*f*(length*E/d_h) + (length/area)*ddm*fluid_inertia_factor
    with f from friction_factor(), d_h = 4*area/perimeter and u the average
    speed. The fluid inertia term models wave propagation, with the mass flow
    becoming a state.

    Args:
        area (number):
            Cross sectional area, m^2.
        length (number):
            Length, m.
        effective_length_multiplier (number):
            E, accounts for additional friction, e.g. bends or entrance losses.
        perimeter (number):
            Perimeter of the cross section, defaults to the circular one.
        shape_factor (number):
            f*Re of laminar flow, 64 for circular tubes.
        fluid_inertia_factor (number):
            Factor of the inertia term, 0 disables it.
    """

    def __init__(
        self,
        ev,
        name=None,
        p_int=None,
        area=1e-4,
        length=1.0,
        effective_length_multiplier=1.0,
        perimeter=None,
        shape_factor=64.0,
        fluid_inertia_factor=0.0,
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, p_a_int=p_int, p_b_int=p_int)
        if perimeter is None:
            perimeter = 2 * (area * sp.pi) ** 0.5
        self.area = self.declare_param(ev, "area", area, positive=True)
        self.length = self.declare_param(ev, "length", length, positive=True)
        self.E = self.declare_param(
            ev, "E", effective_length_multiplier, positive=True
        )
        self.perimeter = self.declare_param(ev, "perimeter", float(perimeter), positive=True)
        self.shape_factor = self.declare_param(
            ev, "shape_factor", shape_factor, positive=True
        )
        self.with_inertia = fluid_inertia_factor != 0
        if self.with_inertia:
            self.fluid_inertia_factor = self.declare_param(
                ev, "fluid_inertia_factor", fluid_inertia_factor
            )
            self.ddm = self.declare_derivative(ev, "ddm", of=self.dma, ic=0.0)

    def finalize(self, ev):
        dp = _tube_dp(
            self.fluid,
            self.dma.s,
            self.pa.s,
            self.pb.s,
            self.area.s,
            self.perimeter.s,
            self.shape_factor.s,
            self.length.s * self.E.s,
        )
        if self.with_inertia:
            dp += (
                self.length.s / self.area.s * self.ddm.s * self.fluid_inertia_factor.s
            )
        self.add_eqs([sp.Eq(self.pa.s - self.pb.s, dp)])


class Tube(HydraulicTwoPort):
    """
    Tube modeled with N segments, with flow friction and compressibility.
    With N=1 it is a single TubeBase of the effective length. With N>1 it
    has N volumes of area*length/N joined by N-1 friction elements of
    effective_length/(N-1). The first and last volumes sit at port_a and
    port_b, so their pressures are the port pressures.

    Args:
        N (int):
            Number of segments, N >= 1.
        p_int (number):
            Initial pressure.
        area (number):
            Cross sectional area, m^2.
        length (number):
            Length, m.
        effective_length (number):
            Length used for the friction, defaults to length.
    """

    def __init__(
        self,
        ev,
        name=None,
        N=1,
        p_int=0.0,
        area=1e-4,
        length=1.0,
        effective_length=None,
        perimeter=None,
        shape_factor=64.0,
        fluid_inertia_factor=0.0,
    ):
        self.name = self.__class__.__name__ if name is None else name
        if N < 1:
            raise ValueError(
                f"Tube {self.name} must have at least 1 segment, found N={N}."
            )
        super().__init__(
            ev,
            self.name,
            p_a_int=p_int,
            p_b_int=p_int,
            include_mass_conservation=N == 1,
        )
        if effective_length is None:
            effective_length = length
        if perimeter is None:
            perimeter = 2 * (area * sp.pi) ** 0.5
        self.N = N
        self.area = self.declare_param(ev, "area", area, positive=True)
        self.length = self.declare_param(ev, "length", length, positive=True)
        self.effective_length = self.declare_param(
            ev, "effective_length", effective_length, positive=True
        )
        self.perimeter = self.declare_param(ev, "perimeter", float(perimeter), positive=True)
        self.shape_factor = self.declare_param(
            ev, "shape_factor", shape_factor, positive=True
        )
        self.with_inertia = fluid_inertia_factor != 0
        if self.with_inertia:
            self.fluid_inertia_factor = self.declare_param(
                ev, "fluid_inertia_factor", fluid_inertia_factor
            )

        if N == 1:
            self.flows = [self.dma]
            self.pressures = [self.pa, self.pb]
        else:
            self.flows = [
                self.declare_var(ev, f"dm{k}", ic=0.0) for k in range(1, N)
            ]
            interior = [
                self.declare_var(ev, f"p{k}", ic=p_int) for k in range(2, N)
            ]
            self.pressures = [self.pa, *interior, self.pb]
            self.dpressures = [
                self.declare_derivative(ev, f"dp{k}", of=p, ic=0.0)
                for k, p in enumerate(self.pressures, start=1)
            ]
        if self.with_inertia:
            self.dflows = [
                self.declare_derivative(ev, f"ddm{k}", of=q, ic=0.0)
                for k, q in enumerate(self.flows, start=1)
            ]

    def finalize(self, ev):
        fluid = self.fluid
        N = self.N
        n_seg = max(N - 1, 1)
        seg_friction_length = self.effective_length.s / n_seg
        seg_length = self.length.s / n_seg
        for k, q in enumerate(self.flows):
            p_up, p_down = self.pressures[k], self.pressures[k + 1]
            dp = _tube_dp(
                fluid,
                q.s,
                p_up.s,
                p_down.s,
                self.area.s,
                self.perimeter.s,
                self.shape_factor.s,
                seg_friction_length,
            )
            if self.with_inertia:
                dp += (
                    seg_length
                    / self.area.s
                    * self.dflows[k].s
                    * self.fluid_inertia_factor.s
                )
            self.add_eqs([sp.Eq(p_up.s - p_down.s, dp)])

        if N == 1:
            return

        vol = self.area.s * self.length.s / N
        inflows = [self.dma.s] + [q.s for q in self.flows]
        outflows = [q.s for q in self.flows] + [-self.dmb.s]
        for p, dp, q_in, q_out in zip(
            self.pressures, self.dpressures, inflows, outflows
        ):
            self.add_eqs([_volume_balance(fluid, q_in - q_out, vol, p.s, dp.s)])


class FlowDivider(HydraulicTwoPort):
    """
    Divides the mass flow from port_a to port_b by n, the remainder leaves
    the network. Placing one at each end of a tube models n parallel tubes.
    """

    def __init__(self, ev, name=None, n=1.0, p_int=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(
            ev,
            self.name,
            p_a_int=p_int,
            p_b_int=p_int,
            include_mass_conservation=False,
        )
        n = self.declare_param(ev, "n", n, positive=True)
        self.add_eqs(
            [
                sp.Eq(self.pa.s, self.pb.s),
                sp.Eq(self.dmb.s, -self.dma.s / n.s),
            ]
        )


class Valve(HydraulicTwoPort):
    """
    Valve with opening area and discharge coefficient Cd:
        dm = area*sqrt(2*rho/Cd)*sign(dp)*sqrt(|dp|)
    with the square root regularized around dp=0.

    Args:
        area (number):
            Opening area, or default of the input when enable_area_port.
        Cd (number):
            Discharge coefficient.
        reversible (bool):
            When false, negative areas are clipped to 0, otherwise a negative
            area reverses the flow.
        directional (bool):
            When true only flow from port_a to port_b is restricted, like a
            check valve.
    """

    def __init__(
        self,
        ev,
        name=None,
        area=1e-4,
        Cd=1e4,
        reversible=False,
        directional=False,
        enable_area_port=False,
        p_a_int=None,
        p_b_int=None,
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, p_a_int=p_a_int, p_b_int=p_b_int)
        self.Cd = self.declare_param(ev, "Cd", Cd, positive=True)
        self.area_in = self.declare_param_or_input(ev, "area", area, enable_area_port)
        self.reversible = reversible
        self.directional = directional

    def finalize(self, ev):
        x = self.area_in.s
        if not self.reversible:
            x = sp.Piecewise((x, x > 0), (0, True))
        self.add_eqs(
            [
                _valve_eq(
                    self.fluid,
                    self.dma.s,
                    self.pa.s,
                    self.pb.s,
                    x,
                    self.Cd.s,
                    self.directional,
                )
            ]
        )


class FixedVolume(HydraulicOnePort):
    """Fixed volume of liquid, vol in m^3, whose pressure is a state."""

    def __init__(self, ev, name=None, vol=1e-3, p_int=0.0, p_int_fixed=True):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, p_int=p_int, p_int_fixed=p_int_fixed)
        self.vol = self.declare_param(ev, "vol", vol, positive=True)
        self.dp = self.declare_derivative(ev, "dp", of=self.p, ic=0.0)

    def finalize(self, ev):
        self.add_eqs(
            [_volume_balance(self.fluid, self.dm.s, self.vol.s, self.p.s, self.dp.s)]
        )


def _damper_area(vol, minimum_volume, damping_volume, damping_volume_val):
    # opening of the minimum volume damper, 1 when far from the minimum volume
    if damping_volume_val == 0:
        return sp.Piecewise((1, vol > minimum_volume), (0, True))
    vol_ratio = (vol - minimum_volume) / damping_volume
    return sp.Piecewise(
        (1, vol >= damping_volume + minimum_volume),
        (vol_ratio, vol > minimum_volume),
        (0, True),
    )


def _in_segment(x, i, seg_length, value):
    # value while |x| is within segment i, [i*seg_length, (i+1)*seg_length)
    return sp.Piecewise(
        (0, sp.Abs(x) < i * seg_length),
        (value, sp.Abs(x) < (i + 1) * seg_length),
        (0, True),
    )


class _MovingWallVolume:
    """
    Equations of a volume with a moving wall of area A, the wall displaced
    by x from its initial position at length l0, vol = (x + l0)*A. The liquid
    leaves the volume through a directional damper valve which closes when
    the volume approaches minimum_volume, entering liquid is not restricted.

    With N>1 the volume is split in N segments of initial length l0/N, joined
    by N-1 tube elements whose length follows the segment length. Segment 1
    is at the wall and segment N at the damper. Only the segment in which the
    wall currently sits, according to |x|, changes size and pushes the wall.
    """

    def __init__(
        self,
        comp,
        ev,
        prefix,
        p_int,
        area,
        length,
        minimum_volume,
        damping_volume,
        Cd,
        N=1,
        perimeter=None,
        shape_factor=64.0,
        fluid_inertia_factor=0.0,
    ):
        if N < 1:
            raise ValueError(
                f"{comp.name} must have at least 1 volume segment, found N={N}."
            )
        self.comp = comp
        self.N = N
        self.area = comp.declare_param(ev, prefix + "area", area, positive=True)
        self.length = comp.declare_param(ev, prefix + "length", length, positive=True)
        self.minimum_volume = comp.declare_param(
            ev, prefix + "minimum_volume", minimum_volume, non_negative=True
        )
        self.damping_volume = comp.declare_param(
            ev, prefix + "damping_volume", damping_volume, non_negative=True
        )
        self.damping_volume_val = damping_volume
        self.Cd = comp.declare_param(ev, prefix + "Cd", Cd, positive=True)
        if N == 1:
            self.p = comp.declare_var(ev, prefix + "p", ic=p_int, ic_fixed=True)
            self.dp = comp.declare_derivative(ev, prefix + "dp", of=self.p, ic=0.0)
            self.pressures = [self.p]
            return

        if perimeter is None:
            perimeter = 2 * (area * sp.pi) ** 0.5
        self.perimeter = comp.declare_param(
            ev, prefix + "perimeter", float(perimeter), positive=True
        )
        self.shape_factor = comp.declare_param(
            ev, prefix + "shape_factor", shape_factor, positive=True
        )
        self.with_inertia = fluid_inertia_factor != 0
        if self.with_inertia:
            self.fluid_inertia_factor = comp.declare_param(
                ev, prefix + "fluid_inertia_factor", fluid_inertia_factor
            )
        self.pressures, self.dpressures = [], []
        self.xs, self.dxs = [], []
        for k in range(1, N + 1):
            p = comp.declare_var(ev, f"{prefix}p{k}", ic=p_int, ic_fixed=True)
            self.pressures.append(p)
            self.dpressures.append(
                comp.declare_derivative(ev, f"{prefix}dp{k}", of=p, ic=0.0)
            )
            x = comp.declare_var(ev, f"{prefix}x{k}", ic=0.0, ic_fixed=True)
            self.xs.append(x)
            self.dxs.append(comp.declare_derivative(ev, f"{prefix}dx{k}", of=x, ic=0.0))
        # flows[k] from segment k+2 to segment k+1
        self.flows = [comp.declare_var(ev, f"{prefix}dm{k}", ic=0.0) for k in range(1, N)]
        if self.with_inertia:
            self.dflows = [
                comp.declare_derivative(ev, f"{prefix}ddm{k}", of=q, ic=0.0)
                for k, q in enumerate(self.flows, start=1)
            ]
        # pressure at the damper
        self.p = self.pressures[-1]

    def vol(self, x):
        return (x + self.length.s) * self.area.s

    def eqs(self, fluid, dm, p_port, x, dx):
        vol = self.vol(x)
        area = _damper_area(
            vol,
            self.minimum_volume.s,
            self.damping_volume.s,
            self.damping_volume_val,
        )
        # liquid leaving the volume flows from the volume to the port
        eqs = [_valve_eq(fluid, -dm, self.p.s, p_port, area, self.Cd.s, True)]
        if self.N == 1:
            eqs.append(
                _volume_balance(fluid, dm, vol, self.p.s, self.dp.s, self.area.s * dx)
            )
            return eqs

        A = self.area.s
        seg_length = self.length.s / self.N
        inflows = [q.s for q in self.flows] + [dm]
        outflows = [0] + [q.s for q in self.flows]
        for i in range(self.N):
            p, dp = self.pressures[i], self.dpressures[i]
            x_i, dx_i = self.xs[i], self.dxs[i]
            eqs += [
                sp.Eq(dx_i.s, _in_segment(x, i, seg_length, dx)),
                _volume_balance(
                    fluid,
                    inflows[i] - outflows[i],
                    (seg_length + x_i.s) * A,
                    p.s,
                    dp.s,
                    A * dx_i.s,
                ),
            ]
        for k, q in enumerate(self.flows):
            p_up, p_down = self.pressures[k + 1], self.pressures[k]
            pipe_length = seg_length + self.xs[k].s
            dp = _tube_dp(
                fluid,
                q.s,
                p_up.s,
                p_down.s,
                A,
                self.perimeter.s,
                self.shape_factor.s,
                pipe_length,
            )
            if self.with_inertia:
                dp += pipe_length / A * self.dflows[k].s * self.fluid_inertia_factor.s
            eqs.append(sp.Eq(p_up.s - p_down.s, dp))
        return eqs

    def force(self, x):
        if self.N == 1:
            return self.p.s * self.area.s
        seg_length = self.length.s / self.N
        return sum(
            _in_segment(x, i, seg_length, p.s * self.area.s)
            for i, p in enumerate(self.pressures)
        )


class DynamicVolume(HydraulicOnePort):
    """
    Volume with a moving wall, converting hydraulic energy to 1D translational
    motion on the flange. The wall moves by x, with dx/dt = flange.v*direction,
    and vol = (x + length)*area. The pressure pushes the wall:
        -flange.f*direction = p*area

    The direction aligns the flange with the hydraulic port, e.g. two
    volumes with opposite directions make an actuator.

    When the volume gets smaller than minimum_volume, the liquid leaving
    it is shut off. Between minimum_volume and minimum_volume + damping_volume
    the exit valve closes linearly.

    With N>1 the liquid column is split in N segments joined by tube
    elements, so that pressure waves travel along the volume. The wall
    is pushed by the pressure of the segment it sits in.

    Args:
        N (int):
            Number of segments, N >= 1.
        direction (int):
            +1 or -1.
        p_int (number):
            Initial pressure.
        area (number):
            Area of the moving wall, m^2.
        length (number):
            Initial length, m.
        minimum_volume (number):
            m^3.
        damping_volume (number):
            m^3, defaults to 5*minimum_volume.
        Cd (number):
            Discharge coefficient of the exit valve.
        perimeter, shape_factor, fluid_inertia_factor (number):
            Properties of the tube elements between segments when N>1,
            see TubeBase.
    """

    def __init__(
        self,
        ev,
        name=None,
        direction=1,
        p_int=0.0,
        area=1e-3,
        length=0.1,
        minimum_volume=0.0,
        damping_volume=None,
        Cd=1e4,
        N=1,
        perimeter=None,
        shape_factor=64.0,
        fluid_inertia_factor=0.0,
    ):
        self.name = self.__class__.__name__ if name is None else name
        if direction not in (1, -1):
            raise ValueError(
                f"DynamicVolume {self.name} direction must be +1 or -1, found {direction}."
            )
        super().__init__(ev, self.name, p_int=p_int)
        if damping_volume is None:
            damping_volume = 5 * minimum_volume
        self.direction = direction
        self.f, _, self.v, _ = self.declare_translational_port(ev, "flange")
        self.x = self.declare_var(ev, "x", ic=0.0, ic_fixed=True)
        self.dx = self.declare_derivative(ev, "dx", of=self.x, ic=0.0)
        self.volume = _MovingWallVolume(
            self,
            ev,
            "",
            p_int,
            area,
            length,
            minimum_volume,
            damping_volume,
            Cd,
            N=N,
            perimeter=perimeter,
            shape_factor=shape_factor,
            fluid_inertia_factor=fluid_inertia_factor,
        )
        self.add_eqs(
            [
                sp.Eq(self.dx.s, self.v.s * direction),
                sp.Eq(-self.f.s * direction, self.volume.force(self.x.s)),
            ]
        )
        self.declare_output(ev, "vol", self.volume.vol(self.x.s))

    def finalize(self, ev):
        self.add_eqs(
            self.volume.eqs(self.fluid, self.dm.s, self.p.s, self.x.s, self.dx.s)
        )


class SpoolValve(HydraulicTwoPort):
    """
    Valve whose opening is set by the position x of the spool of diameter d,
    area = x*2*pi*d. The spool moves with the flange, no flow force acts on it.
    """

    def __init__(
        self,
        ev,
        name=None,
        x_int=0.0,
        d=0.01,
        Cd=1e4,
        reversible=False,
        p_a_int=None,
        p_b_int=None,
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, p_a_int=p_a_int, p_b_int=p_b_int)
        self.Cd = self.declare_param(ev, "Cd", Cd, positive=True)
        self.d = self.declare_param(ev, "d", d, positive=True)
        f, self.x, _, _ = self.declare_translational_port(
            ev, "flange", x_ic=x_int, x_ic_fixed=True
        )
        self.reversible = reversible
        self.add_eqs([sp.Eq(f.s, 0)])

    def finalize(self, ev):
        area = self.x.s * 2 * sp.pi * self.d.s
        if not self.reversible:
            area = sp.Piecewise((area, area > 0), (0, True))
        self.add_eqs(
            [
                _valve_eq(
                    self.fluid,
                    self.dma.s,
                    self.pa.s,
                    self.pb.s,
                    area,
                    self.Cd.s,
                    False,
                )
            ]
        )


class SpoolValve2Way(ComponentBase):
    """
    Two spool valves on a common spool of mass m: supply port_s to port_a,
    and port_b to return port_r. Both open by area = x*2*pi*d with the spool
    position x of the flange, so a positive x feeds port_a from the supply
    while port_b drains to the return. The spool moves as
        m*a = f (+ m*g)

    port_s and port_a belong to one hydraulic network, port_b and port_r
    to another.
    """

    def __init__(
        self,
        ev,
        name=None,
        p_s_int=None,
        p_a_int=None,
        p_b_int=None,
        p_r_int=None,
        m=1.0,
        g=None,
        x_int=0.0,
        Cd=1e4,
        d=0.01,
        reversible=False,
    ):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        self.ps, self.dms = self.declare_hydraulic_port(ev, "port_s", P_ic=p_s_int)
        self.pa, self.dma = self.declare_hydraulic_port(ev, "port_a", P_ic=p_a_int)
        self.pb, self.dmb = self.declare_hydraulic_port(ev, "port_b", P_ic=p_b_int)
        self.pr, self.dmr = self.declare_hydraulic_port(ev, "port_r", P_ic=p_r_int)
        self.declare_fluid_port_set({"port_s", "port_a"})
        self.declare_fluid_port_set({"port_b", "port_r"})
        self.f, self.x, self.v, self.a = self.declare_translational_port(
            ev, "flange", x_ic=x_int, x_ic_fixed=True, v_ic=0.0
        )
        self.Cd = self.declare_param(ev, "Cd", Cd, positive=True)
        self.d = self.declare_param(ev, "d", d, positive=True)
        self.reversible = reversible
        m = self.declare_param(ev, "m", m, positive=True)
        forces = self.f.s
        if g is not None:
            g = self.declare_param(ev, "g", g)
            forces += m.s * g.s
        self.add_eqs(
            [
                sp.Eq(m.s * self.a.s, forces),
                sp.Eq(0, self.dms.s + self.dma.s),
                sp.Eq(0, self.dmb.s + self.dmr.s),
            ]
        )

    def finalize(self, ev):
        area = self.x.s * 2 * sp.pi * self.d.s
        if not self.reversible:
            area = sp.Piecewise((area, area > 0), (0, True))
        self.add_eqs(
            [
                _valve_eq(
                    self.ports["port_s"].fluid,
                    self.dms.s,
                    self.ps.s,
                    self.pa.s,
                    area,
                    self.Cd.s,
                    False,
                ),
                _valve_eq(
                    self.ports["port_b"].fluid,
                    self.dmb.s,
                    self.pb.s,
                    self.pr.s,
                    area,
                    self.Cd.s,
                    False,
                ),
            ]
        )


class Actuator(ComponentBase):
    """
    Double acting linear actuator: two moving wall volumes in opposite
    directions and the piston mass m on the common flange. Volume a grows
    when the piston moves in the positive direction, volume b shrinks:
        m*a = f + p_a*area_a - p_b*area_b (+ m*g)

    Args:
        p_a_int, p_b_int (number):
            Initial pressures.
        area_a, area_b (number):
            Piston areas, m^2.
        length_a_int, length_b_int (number):
            Initial lengths of the volumes, m.
        m (number):
            Piston mass, kg.
        g (number):
            Optional gravity acceleration along the flange axis.
        x_int (number):
            Initial flange position.
        N (int):
            Number of segments of each volume, see DynamicVolume.
    """

    def __init__(
        self,
        ev,
        name=None,
        p_a_int=0.0,
        p_b_int=0.0,
        area_a=1e-3,
        area_b=1e-3,
        length_a_int=0.1,
        length_b_int=0.1,
        m=1.0,
        g=None,
        x_int=0.0,
        minimum_volume_a=0.0,
        minimum_volume_b=0.0,
        damping_volume_a=0.0,
        damping_volume_b=0.0,
        Cd=1e4,
        N=1,
        perimeter_a=None,
        perimeter_b=None,
        shape_factor=64.0,
        fluid_inertia_factor=0.0,
    ):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        self.pa, self.dma = self.declare_hydraulic_port(ev, "port_a", P_ic=p_a_int)
        self.pb, self.dmb = self.declare_hydraulic_port(ev, "port_b", P_ic=p_b_int)
        # the two chambers can hold different liquids
        self.declare_fluid_port_set({"port_a"})
        self.declare_fluid_port_set({"port_b"})
        self.f, self.x, self.v, self.a = self.declare_translational_port(
            ev, "flange", x_ic=x_int, x_ic_fixed=True, v_ic=0.0
        )
        self.x_int = x_int
        self.vol_a = _MovingWallVolume(
            self,
            ev,
            "a_",
            p_a_int,
            area_a,
            length_a_int,
            minimum_volume_a,
            damping_volume_a,
            Cd,
            N=N,
            perimeter=perimeter_a,
            shape_factor=shape_factor,
            fluid_inertia_factor=fluid_inertia_factor,
        )
        self.vol_b = _MovingWallVolume(
            self,
            ev,
            "b_",
            p_b_int,
            area_b,
            length_b_int,
            minimum_volume_b,
            damping_volume_b,
            Cd,
            N=N,
            perimeter=perimeter_b,
            shape_factor=shape_factor,
            fluid_inertia_factor=fluid_inertia_factor,
        )
        m = self.declare_param(ev, "m", m, positive=True)
        s = self.x.s - x_int
        forces = self.f.s + self.vol_a.force(s) - self.vol_b.force(-s)
        if g is not None:
            g = self.declare_param(ev, "g", g)
            forces += m.s * g.s
        self.add_eqs([sp.Eq(m.s * self.a.s, forces)])

    def finalize(self, ev):
        s = self.x.s - self.x_int
        self.add_eqs(
            self.vol_a.eqs(self.ports["port_a"].fluid, self.dma.s, self.pa.s, s, self.v.s)
        )
        self.add_eqs(
            self.vol_b.eqs(
                self.ports["port_b"].fluid, self.dmb.s, self.pb.s, -s, -self.v.s
            )
        )


class MassFlow(HydraulicOnePort):
    """Mass flow source, dm is injected into the network."""

    def __init__(self, ev, name=None, dm=0.0, enable_port=True):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        dm = self.declare_param_or_input(ev, "dm_in", dm, enable_port)
        self.add_eqs([sp.Eq(self.dm.s, -dm.s)])


class FixedPressure(HydraulicOnePort):
    """Fixed pressure source."""

    def __init__(self, ev, name=None, p=0.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, p_int=p)
        p = self.declare_param(ev, "p_src", p)
        self.add_eqs([sp.Eq(self.p.s, p.s)])


class Pressure(HydraulicOnePort):
    """Pressure source whose pressure is an input."""

    def __init__(self, ev, name=None, p=0.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, p_int=p)
        p = self.declare_param_or_input(ev, "p_src", p, True)
        self.add_eqs([sp.Eq(self.p.s, p.s)])
