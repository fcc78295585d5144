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
from .digital import F0, F1, X, _is_symbolic

"""
Discussion on the design of the electrical components relative to Modelica Standard Library (MSL).

MSL Pin.mo defines the I(flow), and V(potential). We do the similar with an electrical Port, whose symbols are declared by
the component and handed to the port, so we get I1, I2, V1, V2.

MSL TwoPin.mo and OnePort.mo define the component I and V symbols. We do similar, but define V in ElecTwoPin,
and use the I1 from component for I.

Electrical Domain variables:
flow:Units = current:Amps
potential:Units = voltage:Volts
"""


class ElecTwoPin(ComponentBase):
    """Partial component class for an electrical component with two
    pins, or two electrical terminals.
    """

    def __init__(
        self,
        ev,
        name,
        p1="p",
        p2="n",
        V_ic=None,
        V_ic_fixed=False,
        I_ic=None,
        I_ic_fixed=False,
    ):
        super().__init__()
        self.Vp, self.Ip = self.declare_electrical_port(
            ev, p1, I_ic=I_ic, I_ic_fixed=I_ic_fixed
        )
        self.Vn, self.In = self.declare_electrical_port(ev, p2)
        self.V = self.declare_symbol(
            ev, "V", name, kind=SymKind.var, ic=V_ic, ic_fixed=V_ic_fixed
        )

        self.add_eqs(
            [
                sp.Eq(self.Vp.s - self.Vn.s, self.V.s),
                sp.Eq(0, self.Ip.s + self.In.s),
            ]
        )


class ElecTwoPort(ComponentBase):
    """
    Partial component with two ports, each made of two pins: p1/n1 and p2/n2.
    v1, v2 are the port voltages, i1, i2 the currents entering p1 and p2.
    Subclasses add the two equations relating v1, v2, i1, i2.
    """

    def __init__(self, ev, name):
        super().__init__()
        self.Vp1, self.I1 = self.declare_electrical_port(ev, "p1")
        self.Vn1, In1 = self.declare_electrical_port(ev, "n1")
        self.Vp2, self.I2 = self.declare_electrical_port(ev, "p2")
        self.Vn2, In2 = self.declare_electrical_port(ev, "n2")
        self.V1 = self.declare_var(ev, "v1")
        self.V2 = self.declare_var(ev, "v2")
        self.add_eqs(
            [
                sp.Eq(self.V1.s, self.Vp1.s - self.Vn1.s),
                sp.Eq(self.V2.s, self.Vp2.s - self.Vn2.s),
                sp.Eq(0, self.I1.s + In1.s),
                sp.Eq(0, self.I2.s + In2.s),
            ]
        )


class Ground(ComponentBase):
    """
    Ground reference in electrical domain.
    Note: the only equation is V=0. Since there is a single port, its flow
    is balanced by the node it is connected to.
    """

    def __init__(self, ev, name=None):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        V, _ = self.declare_electrical_port(ev, "p")
        self.add_eqs([sp.Eq(0, V.s)])


class Resistor(ElecTwoPin):
    """
    Ideal resistor in electrical domain. The characteristic equation is:
    v(t) = i(t)*R, where R is the resistance in Ohms.

    When heat port is enabled, the thermal equation is:
    heatflow(t) = i(t)*i(t)*R.

    Args:
        R (number):
            Electrical resistance in Ohms.
        enable_heat_port (bool):
            When true, exposes a thermal port which acts as a heatflow source.
    """

    def __init__(self, ev, name=None, R=1.0, enable_heat_port=False):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        R = self.declare_param(ev, "R", R, positive=True)
        self.add_eqs([sp.Eq(self.V.s, self.Ip.s * R.s)])

        if enable_heat_port:
            _, Q = self.declare_thermal_port(ev, "heat")
            # heat leaves the resistor, flows into a component are positive.
            self.add_eqs([sp.Eq(-Q.s, self.Ip.s * self.V.s)])


class Conductor(ElecTwoPin):
    """Ideal linear conductor, i(t) = G*v(t), G in Siemens."""

    def __init__(self, ev, name=None, G=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        G = self.declare_param(ev, "G", G, positive=True)
        self.add_eqs([sp.Eq(self.Ip.s, G.s * self.V.s)])


class Capacitor(ElecTwoPin):
    """
    Ideal capacitor in electrical domain. The characteristic equation is:
    Derivative(v(t)) = i(t)/C, where C is the capacitance in Farads.

    Args:
        C (number):
            Capacitance in Farads.
        initial_voltage (number):
            Initial voltage of the capacitor.
    """

    def __init__(
        self, ev, name=None, C=1.0, initial_voltage=0.0, initial_voltage_fixed=False
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(
            ev, self.name, V_ic=initial_voltage, V_ic_fixed=initial_voltage_fixed
        )
        C = self.declare_param(ev, "C", C, positive=True)
        dV = self.declare_derivative(ev, "dV", of=self.V, ic=0.0)
        self.add_eqs([sp.Eq(self.Ip.s, C.s * dV.s)])


class Inductor(ElecTwoPin):
    """
    Ideal inductor in electrical domain. The characteristic equation is:
    Derivative(i(t)) = v(t)/L, where L is the inductance in Henry.

    Args:
        L (number):
            Inductance in Henry.
        initial_current (number):
            Initial current through the inductor.
    """

    def __init__(
        self, ev, name=None, L=1.0, initial_current=0.0, initial_current_fixed=False
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(
            ev, self.name, I_ic=initial_current, I_ic_fixed=initial_current_fixed
        )
        L = self.declare_param(ev, "L", L, positive=True)
        dI = self.declare_derivative(ev, "dI", of=self.Ip, ic=0.0)
        self.add_eqs([sp.Eq(self.V.s, L.s * dI.s)])


class IdealOpAmp(ComponentBase):
    """
    Ideal operational amplifier, a nullor: the input port p1/n1 has no voltage
    across it and no current through it, the output port p2/n2 provides
    whatever voltage and current the surrounding circuit requires.
    """

    def __init__(self, ev, name=None):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        Vp1, Ip1 = self.declare_electrical_port(ev, "p1")
        Vn1, In1 = self.declare_electrical_port(ev, "n1")
        _, Ip2 = self.declare_electrical_port(ev, "p2")
        _, In2 = self.declare_electrical_port(ev, "n2")
        self.add_eqs(
            [
                sp.Eq(Vp1.s, Vn1.s),
                sp.Eq(Ip1.s, 0),
                sp.Eq(In1.s, 0),
                sp.Eq(0, Ip2.s + In2.s),
            ]
        )


class VoltageSource(ElecTwoPin):
    """
    Ideal voltage source in electrical domain.

    Args:
        v (number):
            Voltage value when enable_voltage_port=False, default value of
            the input otherwise.
        enable_voltage_port (bool):
            When true, the voltage value is from a input signal. When false, voltage
            value is from 'v'.
    """

    def __init__(self, ev, name=None, v=1.0, enable_voltage_port=False):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        v = self.declare_param_or_input(ev, "v", v, enable_voltage_port)
        self.add_eqs([sp.Eq(self.V.s, v.s)])


class CurrentSource(ElecTwoPin):
    """
    Ideal current source in electrical domain. The current i enters the
    source at pin p and leaves at pin n.
    """

    def __init__(self, ev, name=None, i=1.0, enable_current_port=False):  # noqa
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        i = self.declare_param_or_input(ev, "i", i, enable_current_port)
        self.add_eqs([sp.Eq(self.Ip.s, i.s)])


class CurrentSensor(ElecTwoPin):
    """
    Ideal current sensor in electrical domain.
    """

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        # sign convention of the current at pin 'p'.
        self.declare_output(ev, "i", self.Ip.s)
        # inline, but without voltage across it, this is the 'ideal' part.
        self.add_eqs([sp.Eq(self.V.s, 0)])


class PotentialSensor(ComponentBase):
    """Measures the potential of pin p relative to ground."""

    def __init__(self, ev, name=None):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        V, I = self.declare_electrical_port(ev, "p")
        self.add_eqs([sp.Eq(I.s, 0)])
        self.declare_output(ev, "phi", V.s)


class VoltageSensor(ElecTwoPin):
    """
    Ideal voltage sensor in electrical domain.
    """

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.declare_output(ev, "v", self.V.s)
        # no current through the sensor, In follows from 0 = Ip + In.
        self.add_eqs([sp.Eq(self.Ip.s, 0)])


class _PowerSensorBase(ComponentBase):
    """Current path pc/nc in series, voltage path pv/nv in parallel."""

    def __init__(self, ev, name):
        super().__init__()
        Vpc, self.Ipc = self.declare_electrical_port(ev, "pc")
        Vnc, Inc = self.declare_electrical_port(ev, "nc")
        self.Vpv, Ipv = self.declare_electrical_port(ev, "pv")
        self.Vnv, Inv = self.declare_electrical_port(ev, "nv")
        self.add_eqs(
            [
                sp.Eq(Vpc.s, Vnc.s),
                sp.Eq(0, self.Ipc.s + Inc.s),
                sp.Eq(Ipv.s, 0),
                sp.Eq(Inv.s, 0),
            ]
        )


class PowerSensor(_PowerSensorBase):
    """Power = current through pc/nc times the voltage across pv/nv."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.declare_output(ev, "power", self.Ipc.s * (self.Vpv.s - self.Vnv.s))


class MultiSensor(_PowerSensorBase):
    """Current through pc/nc, voltage across pv/nv, and their product."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        i = self.declare_output(ev, "i", self.Ipc.s)
        v = self.declare_output(ev, "v", self.Vpv.s - self.Vnv.s)
        self.declare_output(ev, "power", i.s * v.s)


class LinearizedDiode(ElecTwoPin):
    """
    Piecewise linear diode: i = (v - Vd)/Rd when v > Vd, 0 otherwise.

    Args:
        Vd (number):
            Forward voltage in Volts.
        Rd (number):
            Forward resistance in Ohms.
    """

    def __init__(self, ev, name=None, Vd=0.7, Rd=10.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        Vd = self.declare_param(ev, "Vd", Vd, positive=True)
        Rd = self.declare_param(ev, "Rd", Rd, positive=True)
        i_fwd = self.declare_conditional(
            ev, self.V.s > Vd.s, (self.V.s - Vd.s) / Rd.s, 0.0, cond_name="i_fwd"
        )
        self.add_eqs([sp.Eq(self.Ip.s, i_fwd.s)])


# Two-port networks


class VCVS(ElecTwoPort):
    """Voltage controlled voltage source, v2 = G*v1, i1 = 0."""

    def __init__(self, ev, name=None, G=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        G = self.declare_param(ev, "G", G)
        self.add_eqs([sp.Eq(self.V2.s, G.s * self.V1.s), sp.Eq(self.I1.s, 0)])


class VCCS(ElecTwoPort):
    """Voltage controlled current source, i2 = Gm*v1, i1 = 0."""

    def __init__(self, ev, name=None, Gm=0.001):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        Gm = self.declare_param(ev, "Gm", Gm)
        self.add_eqs([sp.Eq(self.I2.s, Gm.s * self.V1.s), sp.Eq(self.I1.s, 0)])


class CCVS(ElecTwoPort):
    """Current controlled voltage source, v2 = Rm*i1, v1 = 0."""

    def __init__(self, ev, name=None, Rm=1000.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        Rm = self.declare_param(ev, "Rm", Rm)
        self.add_eqs([sp.Eq(self.V2.s, Rm.s * self.I1.s), sp.Eq(self.V1.s, 0)])


class CCCS(ElecTwoPort):
    """Current controlled current source, i2 = alpha*i1, v1 = 0."""

    def __init__(self, ev, name=None, alpha=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        alpha = self.declare_param(ev, "alpha", alpha)
        self.add_eqs([sp.Eq(self.I2.s, alpha.s * self.I1.s), sp.Eq(self.V1.s, 0)])


class IdealTransformer(ElecTwoPort):
    """v1 = n*v2 and n*i1 = -i2, with n the turns ratio."""

    def __init__(self, ev, name=None, n=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        n = self.declare_param(ev, "n", n, positive=True)
        self.add_eqs(
            [
                sp.Eq(self.V1.s, n.s * self.V2.s),
                sp.Eq(n.s * self.I1.s, -self.I2.s),
            ]
        )


class Gyrator(ElecTwoPort):
    """v1 = R*i2 and v2 = -R*i1."""

    def __init__(self, ev, name=None, R=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        R = self.declare_param(ev, "R", R, positive=True)
        self.add_eqs(
            [
                sp.Eq(self.V1.s, R.s * self.I2.s),
                sp.Eq(self.V2.s, -R.s * self.I1.s),
            ]
        )


# Operational amplifiers, input port p1/n1, output port p2/n2.


class OpAmpFiniteGain(ElecTwoPort):
    """
    Linear op-amp with finite open loop gain A, input resistance Rin and
    output resistance Rout:
        i1 = v1/Rin
        v2 = A*v1 - i2*Rout
    """

    def __init__(self, ev, name=None, A=1e5, Rin=1e6, Rout=100.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        A = self.declare_param(ev, "A", A, positive=True)
        Rin = self.declare_param(ev, "Rin", Rin, positive=True)
        Rout = self.declare_param(ev, "Rout", Rout, non_negative=True)
        self.add_eqs(
            [
                sp.Eq(self.I1.s, self.V1.s / Rin.s),
                sp.Eq(self.V2.s, A.s * self.V1.s - self.I2.s * Rout.s),
            ]
        )


class OpAmpGBW(ElecTwoPort):
    """
    Op-amp with a single pole at GBW/A0, the gain bandwidth product:
        d(v_pole)/dt = 2*pi*GBW/A0 * (A0*v1 - v_pole)
        v2 = v_pole
    """

    def __init__(
        self, ev, name=None, A0=1e5, GBW=1e6, Rin=1e6, initial_output=0.0
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        A0 = self.declare_param(ev, "A0", A0, positive=True)
        GBW = self.declare_param(ev, "GBW", GBW, positive=True)
        Rin = self.declare_param(ev, "Rin", Rin, positive=True)
        self.v_pole = self.declare_var(ev, "v_pole", ic=initial_output)
        dv_pole = self.declare_derivative(ev, "dv_pole", of=self.v_pole)
        w_pole = 2 * sp.pi * GBW.s / A0.s
        self.add_eqs(
            [
                sp.Eq(self.I1.s, self.V1.s / Rin.s),
                sp.Eq(dv_pole.s, w_pole * (A0.s * self.V1.s - self.v_pole.s)),
            ]
        )
        self.output_equation(ev)

    def output_equation(self, ev):
        self.add_eqs([sp.Eq(self.V2.s, self.v_pole.s)])


class OpAmpFull(OpAmpGBW):
    """
    OpAmpGBW whose internal voltage is clamped to [Vsat_n, Vsat_p] and
    which has an output resistance:
        v_out = min(max(v_pole, Vsat_n), Vsat_p)
        v2 = v_out - i2*Rout
    """

    def __init__(
        self,
        ev,
        name=None,
        A0=1e5,
        GBW=1e6,
        Rin=1e6,
        Rout=100.0,
        Vsat_p=12.0,
        Vsat_n=-12.0,
        initial_output=0.0,
    ):
        self._Rout = Rout
        self._Vsat = (Vsat_n, Vsat_p)
        super().__init__(ev, name, A0=A0, GBW=GBW, Rin=Rin, initial_output=initial_output)

    def output_equation(self, ev):
        Rout = self.declare_param(ev, "Rout", self._Rout, non_negative=True)
        Vsat_n = self.declare_param(ev, "Vsat_n", self._Vsat[0])
        Vsat_p = self.declare_param(ev, "Vsat_p", self._Vsat[1])
        v_out = self.declare_var(ev, "v_out")
        vp = self.v_pole.s
        clamped = sp.Piecewise(
            (Vsat_p.s, vp > Vsat_p.s), (Vsat_n.s, vp < Vsat_n.s), (vp, True)
        )
        self.add_eqs(
            [
                sp.Eq(v_out.s, clamped),
                sp.Eq(self.V2.s, v_out.s - self.I2.s * Rout.s),
            ]
        )


# Transistors


class _ThreePin(ComponentBase):
    def __init__(self, ev, name, pins):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        self.pins = {p: self.declare_electrical_port(ev, p) for p in pins}

    def V(self, pin):
        return self.pins[pin][0].s

    def I(self, pin):  # noqa: E743
        return self.pins[pin][1].s

    def junction(self, ev, sym_name, expr, C):
        """
        Declare the junction voltage sym_name = expr. When the python value
        C is non zero, also return the capacitive current C*d(expr)/dt, else 0.
        """
        v = self.declare_var(ev, sym_name, ic=0.0)
        self.add_eqs([sp.Eq(v.s, expr)])
        if C.val == 0.0:
            return v, 0
        dv = self.declare_derivative(ev, "d" + sym_name, of=v)
        return v, C.s * dv.s


class BJT_SmallSignal(_ThreePin):
    """
    Hybrid-pi small signal model of a bipolar transistor, pins b, c, e.
        b.i = v_be/r_pi + C_pi*d(v_be)/dt + C_mu*d(v_bc)/dt
        c.i = gm*v_be + v_ce/r_o - C_mu*d(v_bc)/dt
    The capacitances are only modeled when non zero.
    """

    def __init__(
        self, ev, name=None, gm=0.04, r_pi=2500.0, r_o=1e5, C_pi=0.0, C_mu=0.0
    ):
        super().__init__(ev, name, ["b", "c", "e"])
        gm = self.declare_param(ev, "gm", gm)
        r_pi = self.declare_param(ev, "r_pi", r_pi, positive=True)
        r_o = self.declare_param(ev, "r_o", r_o, positive=True)
        C_pi = self.declare_param(ev, "C_pi", C_pi, non_negative=True)
        C_mu = self.declare_param(ev, "C_mu", C_mu, non_negative=True)

        b, c, e = self.V("b"), self.V("c"), self.V("e")
        v_be, i_pi = self.junction(ev, "v_be", b - e, C_pi)
        _, i_mu = self.junction(ev, "v_bc", b - c, C_mu)
        v_ce = self.declare_var(ev, "v_ce", ic=0.0)
        self.add_eqs(
            [
                sp.Eq(v_ce.s, c - e),
                sp.Eq(self.I("b"), v_be.s / r_pi.s + i_pi + i_mu),
                sp.Eq(self.I("c"), gm.s * v_be.s + v_ce.s / r_o.s - i_mu),
                sp.Eq(self.I("e"), -self.I("b") - self.I("c")),
            ]
        )


class MOSFET_SmallSignal(_ThreePin):
    """
    Small signal model of a MOSFET, pins g, d, s.
        g.i = C_gs*d(v_gs)/dt + C_gd*d(v_gd)/dt
        d.i = gm*v_gs + v_ds/r_ds - C_gd*d(v_gd)/dt
    """

    def __init__(self, ev, name=None, gm=0.01, r_ds=5e4, C_gs=0.0, C_gd=0.0):
        super().__init__(ev, name, ["g", "d", "s"])
        gm = self.declare_param(ev, "gm", gm)
        r_ds = self.declare_param(ev, "r_ds", r_ds, positive=True)
        C_gs = self.declare_param(ev, "C_gs", C_gs, non_negative=True)
        C_gd = self.declare_param(ev, "C_gd", C_gd, non_negative=True)

        g, d, s = self.V("g"), self.V("d"), self.V("s")
        v_gs, i_gs = self.junction(ev, "v_gs", g - s, C_gs)
        _, i_gd = self.junction(ev, "v_gd", g - d, C_gd)
        v_ds = self.declare_var(ev, "v_ds", ic=0.0)
        self.add_eqs(
            [
                sp.Eq(v_ds.s, d - s),
                sp.Eq(self.I("g"), i_gs + i_gd),
                sp.Eq(self.I("d"), gm.s * v_gs.s + v_ds.s / r_ds.s - i_gd),
                sp.Eq(self.I("s"), -self.I("g") - self.I("d")),
            ]
        )


def _mos_transconductance(
    comp, ev, use_transconductance, k_name, k, mu_name, mu, C_ox, W, L
):
    """The transconductance parameter, either given or mu*C_ox*W/L."""
    if use_transconductance:
        return comp.declare_param(ev, k_name, k, positive=True).s
    values = {mu_name: mu, "C_ox": C_ox, "W": W, "L": L}
    missing = [n for n, v in values.items() if v is None]
    if missing:
        raise ValueError(
            f"{comp.name} needs {missing} when use_transconductance is false."
        )
    mu, C_ox, W, L = (
        comp.declare_param(ev, n, v, positive=True) for n, v in values.items()
    )
    return mu.s * C_ox.s * W.s / L.s


class NMOS(_ThreePin):
    """
    N-channel MOSFET, square law with channel length modulation, pins d, g, s.
    Drain and source swap when d.v < s.v. With V_DS, V_GS measured from the
    lower of the two:
        cutoff      V_GS < V_tn:    i = V_DS/R_DS
        triode      V_DS < V_OV:    i = k_n(1 + lambda V_DS)(V_OV - V_DS/2)V_DS + V_DS/R_DS
        saturation  otherwise:      i = k_n/2 V_OV^2 (1 + lambda V_DS) + V_DS/R_DS
    with V_OV = V_GS - V_tn. The drain current is i, negated when swapped.

    With use_transconductance=False, k_n = mu_n*C_ox*W/L from the electron
    mobility mu_n, the oxide capacitance C_ox (F/m^2) and the channel width W
    and length L (m).
    """

    def __init__(
        self,
        ev,
        name=None,
        V_tn=0.8,
        R_DS=1e7,
        lambda_=0.04,
        k_n=20e-3,
        use_transconductance=True,
        mu_n=None,
        C_ox=None,
        W=None,
        L=None,
    ):
        super().__init__(ev, name, ["d", "g", "s"])
        V_tn = self.declare_param(ev, "V_tn", V_tn)
        R_DS = self.declare_param(ev, "R_DS", R_DS, positive=True)
        lam = self.declare_param(ev, "lambda", lambda_, non_negative=True)
        k_n = _mos_transconductance(
            self, ev, use_transconductance, "k_n", k_n, "mu_n", mu_n, C_ox, W, L
        )

        d, g, s = self.V("d"), self.V("g"), self.V("s")
        V_GS = self.declare_var(ev, "V_GS", ic=0.0)
        V_DS = self.declare_var(ev, "V_DS", ic=0.0)
        V_OV = self.declare_var(ev, "V_OV", ic=0.0)
        swapped = d < s
        i_leak = V_DS.s / R_DS.s
        clm = 1 + lam.s * V_DS.s
        i_ch = sp.Piecewise(
            (i_leak, V_GS.s < V_tn.s),
            (k_n * clm * (V_OV.s - V_DS.s / 2) * V_DS.s + i_leak, V_DS.s < V_OV.s),
            (k_n * V_OV.s**2 / 2 * clm + i_leak, True),
        )
        self.add_eqs(
            [
                sp.Eq(V_DS.s, sp.Piecewise((s - d, swapped), (d - s, True))),
                sp.Eq(V_GS.s, g - sp.Piecewise((d, swapped), (s, True))),
                sp.Eq(V_OV.s, V_GS.s - V_tn.s),
                sp.Eq(self.I("d"), sp.Piecewise((-1, swapped), (1, True)) * i_ch),
                sp.Eq(self.I("g"), 0),
                sp.Eq(self.I("s"), -self.I("d")),
            ]
        )


class PMOS(_ThreePin):
    """
    P-channel MOSFET, the mirror of NMOS with a negative threshold V_tp.
    Drain and source swap when d.v > s.v. V_DS is negative in normal operation.
    With use_transconductance=False, k_p = mu_p*C_ox*W/L.
    """

    def __init__(
        self,
        ev,
        name=None,
        V_tp=-1.5,
        R_DS=1e7,
        lambda_=1 / 25,
        k_p=20e-3,
        use_transconductance=True,
        mu_p=None,
        C_ox=None,
        W=None,
        L=None,
    ):
        super().__init__(ev, name, ["d", "g", "s"])
        V_tp = self.declare_param(ev, "V_tp", V_tp)
        R_DS = self.declare_param(ev, "R_DS", R_DS, positive=True)
        lam = self.declare_param(ev, "lambda", lambda_, non_negative=True)
        k_p = _mos_transconductance(
            self, ev, use_transconductance, "k_p", k_p, "mu_p", mu_p, C_ox, W, L
        )

        d, g, s = self.V("d"), self.V("g"), self.V("s")
        V_GS = self.declare_var(ev, "V_GS", ic=0.0)
        V_DS = self.declare_var(ev, "V_DS", ic=0.0)
        swapped = d > s
        i_leak = V_DS.s / R_DS.s
        clm = 1 + lam.s * V_DS.s
        V_OV = V_GS.s - V_tp.s
        i_ch = sp.Piecewise(
            (i_leak, V_GS.s > V_tp.s),
            (k_p * clm * (V_OV - V_DS.s / 2) * V_DS.s + i_leak, V_DS.s > V_OV),
            (k_p * V_OV**2 / 2 * clm + i_leak, True),
        )
        self.add_eqs(
            [
                sp.Eq(V_DS.s, sp.Piecewise((s - d, swapped), (d - s, True))),
                sp.Eq(V_GS.s, g - sp.Piecewise((d, swapped), (s, True))),
                sp.Eq(self.I("d"), -sp.Piecewise((-1, swapped), (1, True)) * i_ch),
                sp.Eq(self.I("g"), 0),
                sp.Eq(self.I("s"), -self.I("d")),
            ]
        )


def _junction_capacitance(v, C0, phi, gamma):
    """
    Depletion capacitance C0/(1 - v/phi)^gamma of a reverse biased junction,
    continued linearly as C0*(1 + gamma*v/phi) under forward bias.
    """
    v_rev = sp.Piecewise((v, v < 0), (0, True))
    return sp.Piecewise(
        (C0 * (1 + gamma * v / phi), v > 0),
        (C0 / (1 - v_rev / phi) ** gamma, True),
    )


class NPN(_ThreePin):
    """
    Ebers-Moll transport model of an NPN transistor, pins b, c, e:
        I_CC = I_s (exp(V_BE/V_T) - 1)
        I_EC = I_s (exp(V_BC/V_T) - 1)
        c.i = (I_CC - I_EC) * early - I_EC/beta_R - C_BC*d(V_BC)/dt - I_sub
        b.i = I_EC/beta_R + I_CC/beta_F + C_BC*d(V_BC)/dt + C_BE*d(V_BE)/dt
    with early = 1 - V_BC/V_A when V_A is given, 1 otherwise.

    With use_capacitances, each junction has a depletion capacitance and a
    diffusion capacitance:
        C_BE = C_jE(V_BE) + Tau_f*I_s/(NF*V_T)*exp(V_BE/(NF*V_T))
        C_BC = C_jC(V_BC) + Tau_r*I_s/(NR*V_T)*exp(V_BC/(NR*V_T))
    see _junction_capacitance(). Otherwise the capacitive terms are 0.

    With use_substrate, a substrate pin s is added, coupled to the collector
    by the capacitance C_CS:
        s.i = I_sub = -C_CS*d(c.v - s.v)/dt
    """

    def __init__(
        self,
        ev,
        name=None,
        I_s=1e-16,
        beta_F=50.0,
        beta_R=0.1,
        V_T=0.026,
        V_A=None,
        use_capacitances=False,
        Phi_C=0.8,
        Phi_E=0.6,
        gamma_C=0.5,
        gamma_E=1.0 / 3.0,
        C_jC0=0.5e-12,
        C_jE0=0.4e-12,
        Tau_f=0.12e-9,
        Tau_r=5e-9,
        NF=1.0,
        NR=1.0,
        use_substrate=False,
        C_CS=1e-12,
    ):
        pins = ["b", "c", "e", "s"] if use_substrate else ["b", "c", "e"]
        super().__init__(ev, name, pins)
        I_s = self.declare_param(ev, "I_s", I_s, positive=True)
        beta_F = self.declare_param(ev, "beta_F", beta_F, positive=True)
        beta_R = self.declare_param(ev, "beta_R", beta_R, positive=True)
        V_T = self.declare_param(ev, "V_T", V_T, positive=True)

        b, c, e = self.V("b"), self.V("c"), self.V("e")
        V_BE = self.declare_var(ev, "V_BE", ic=0.0)
        V_BC = self.declare_var(ev, "V_BC", ic=0.0)
        I_CC = self.declare_var(ev, "I_CC", ic=0.0)
        I_EC = self.declare_var(ev, "I_EC", ic=0.0)
        early = 1
        if V_A is not None:
            V_A = self.declare_param(ev, "V_A", V_A, positive=True)
            early = 1 - V_BC.s / V_A.s

        i_bc, i_be = 0, 0
        if use_capacitances:
            params = dict(
                Phi_C=Phi_C,
                Phi_E=Phi_E,
                gamma_C=gamma_C,
                gamma_E=gamma_E,
                C_jC0=C_jC0,
                C_jE0=C_jE0,
                Tau_f=Tau_f,
                Tau_r=Tau_r,
                NF=NF,
                NR=NR,
            )
            p = {
                k: self.declare_param(ev, k, v, non_negative=True).s
                for k, v in params.items()
            }
            C_BE = self.declare_var(ev, "C_BE", ic=0.0)
            C_BC = self.declare_var(ev, "C_BC", ic=0.0)
            dV_BE = self.declare_derivative(ev, "dV_BE", of=V_BE, ic=0.0)
            dV_BC = self.declare_derivative(ev, "dV_BC", of=V_BC, ic=0.0)
            V_TF, V_TR = p["NF"] * V_T.s, p["NR"] * V_T.s
            C_DE = p["Tau_f"] * I_s.s / V_TF * sp.exp(V_BE.s / V_TF)
            C_DC = p["Tau_r"] * I_s.s / V_TR * sp.exp(V_BC.s / V_TR)
            C_jE = _junction_capacitance(V_BE.s, p["C_jE0"], p["Phi_E"], p["gamma_E"])
            C_jC = _junction_capacitance(V_BC.s, p["C_jC0"], p["Phi_C"], p["gamma_C"])
            self.add_eqs([sp.Eq(C_BE.s, C_jE + C_DE), sp.Eq(C_BC.s, C_jC + C_DC)])
            i_be, i_bc = C_BE.s * dV_BE.s, C_BC.s * dV_BC.s

        I_sub = 0
        if use_substrate:
            C_CS = self.declare_param(ev, "C_CS", C_CS, positive=True)
            _, i_cs = self.junction(ev, "V_CS", c - self.V("s"), C_CS)
            I_sub = -i_cs
            self.add_eqs([sp.Eq(self.I("s"), I_sub)])

        self.add_eqs(
            [
                sp.Eq(V_BE.s, b - e),
                sp.Eq(V_BC.s, b - c),
                sp.Eq(I_CC.s, I_s.s * (sp.exp(V_BE.s / V_T.s) - 1)),
                sp.Eq(I_EC.s, I_s.s * (sp.exp(V_BC.s / V_T.s) - 1)),
                sp.Eq(
                    self.I("c"),
                    (I_CC.s - I_EC.s) * early - I_EC.s / beta_R.s - i_bc - I_sub,
                ),
                sp.Eq(
                    self.I("b"), I_EC.s / beta_R.s + I_CC.s / beta_F.s + i_bc + i_be
                ),
                sp.Eq(self.I("e"), -self.I("c") - self.I("b") - I_sub),
            ]
        )


def logic_from_voltage(v):
    """
    Digital reading of a voltage: F0 for 0 <= v <= 0.8, F1 for 2 <= v <= 5,
    X otherwise. Returns a Logic for numbers, a sympy expression of the logic
    level for sympy arguments.
    """
    if _is_symbolic(v):
        return sp.Piecewise(
            (X.level, v < 0.0),
            (F0.level, v <= 0.8),
            (X.level, v < 2.0),
            (F1.level, v <= 5.0),
            (X.level, True),
        )
    if 0.0 <= v <= 0.8:
        return F0
    if 2.0 <= v <= 5.0:
        return F1
    return X


class VoltageToLogic(ComponentBase):
    """
    Reads the voltage of the electrical pin p, relative to ground, as a
    logic level on the digital pin d. Neither pin draws current.
    """

    def __init__(self, ev, name=None):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        V, I = self.declare_electrical_port(ev, "p")
        val, _ = self.declare_digital_port(ev, "d")
        self.add_eqs([sp.Eq(I.s, 0), sp.Eq(val.s, logic_from_voltage(V.s))])
