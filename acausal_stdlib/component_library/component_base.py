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

from typing import Callable, Dict, List, Set, Tuple

import sympy as sp

from .base import EqnEnv, Domain, SymKind, Sym, EqnKind, Eqn
from ..error import AcausalModelError


class Port:
    """Connector of an acausal component.

    DiagramProcessing equates the potentials, and sums the flows, of the
    (pot, flow) pairs of all the ports of a node. Most domains carry one pair,
    the planar ports carry three.

    Attributes:
        domain (Domain):
            The physical domain of the port. Only ports of the same domain
            may be connected.
        pots, flows (list[Sym]):
            The potential and flow symbols, pairwise.
        fluid:
            The FluidProperties of hydraulic ports, assigned during diagram
            processing.
    """

    fluid = None

    def __init__(self, name: str, domain: Domain, pots, flows):
        assert isinstance(domain, Domain)
        self.name = name
        self.domain = domain
        self.pots = list(pots)
        self.flows = list(flows)
        for pot, flow in self.pairs():
            assert pot.kind == SymKind.pot
            assert flow.kind == SymKind.flow

    @property
    def pot(self) -> Sym:
        return self.pots[0]

    @property
    def flow(self) -> Sym:
        return self.flows[0]

    def pairs(self) -> List[Tuple[Sym, Sym]]:
        return list(zip(self.pots, self.flows))

    def assign_fluid(self, fluid):
        self.fluid = fluid

    def __repr__(self):
        return f"Port {self.name}[{self.domain}] pots:{self.pots} flows:{self.flows}"


class ComponentBase:
    """Base class for acausal components.

    Attributes:
        ports (dict{port_name:port}):
            A dictionary from port_name to port object.
        syms:
            The set of all Sym objects related to this component.
        eqs:
            The set of all Eqn objects related to this component.
        fluid_port_sets ([set(port_ids), ...]):
            Each set holds the ports of the component that share the same
            hydraulic fluid. Most hydraulic components have one set.
    """

    def __init__(self):
        self.ports: Dict = {}
        self.syms: Set = set()
        self.eqs: Set = set()
        self.n_conds: int = 0
        self.fluid_port_sets: List = []

    def __repr__(self):
        return f"{self.__class__.__name__}_{self.name}"

    def declare_symbol(
        self,
        ev: EqnEnv,
        sym_name: str,
        base_name: str,
        val: float = None,
        der_sym: Sym = None,
        int_sym: Sym = None,
        kind: SymKind = None,
        ic: float = None,
        ic_fixed: bool = False,
        sym: "sp.Expr" = None,
        validator: Callable = None,
        invalid_msg: str = None,
    ):
        sym = Sym(
            ev,
            sym_name=sym_name,
            base_name=base_name,
            val=val,
            der_sym=der_sym,
            int_sym=int_sym,
            kind=kind,
            ic=ic,
            ic_fixed=ic_fixed,
            sym=sym,
            validator=validator,
            invalid_msg=invalid_msg,
        )
        if any(s.name == sym.name for s in self.syms):
            raise ValueError(f"Component {self.name} already has a symbol {sym.name}.")
        self.syms.add(sym)
        return sym

    def declare_param(
        self,
        ev: EqnEnv,
        sym_name: str,
        val: float,
        positive: bool = False,
        non_negative: bool = False,
    ) -> Sym:
        """Declare a parameter, optionally validated as >0 or >=0."""
        validator = invalid_msg = None
        prefix = f"Component {self.__class__.__name__} {self.name} must have "
        if positive:
            validator = lambda x: x > 0.0  # noqa: E731
            invalid_msg = prefix + f"{sym_name}>0"
        elif non_negative:
            validator = lambda x: x >= 0.0  # noqa: E731
            invalid_msg = prefix + f"{sym_name}>=0"
        return self.declare_symbol(
            ev,
            sym_name,
            self.name,
            kind=SymKind.param,
            val=val,
            validator=validator,
            invalid_msg=invalid_msg,
        )

    def declare_param_or_input(
        self, ev: EqnEnv, sym_name: str, val: float, enable_port: bool
    ) -> Sym:
        """An input when enable_port is True, otherwise a constant parameter.
        The value of an input is a default, overridden when simulating."""
        kind = SymKind.inp if enable_port else SymKind.param
        return self.declare_symbol(ev, sym_name, self.name, kind=kind, val=val)

    def declare_var(self, ev: EqnEnv, sym_name: str, ic=None, ic_fixed=False):
        return self.declare_symbol(
            ev, sym_name, self.name, kind=SymKind.var, ic=ic, ic_fixed=ic_fixed
        )

    def declare_derivative(
        self, ev: EqnEnv, sym_name: str, of: Sym, ic=None, ic_fixed=False
    ) -> Sym:
        """Declare the time derivative of 'of' and link the two."""
        der = self.declare_symbol(
            ev,
            sym_name,
            self.name,
            kind=SymKind.var,
            int_sym=of,
            ic=ic,
            ic_fixed=ic_fixed,
        )
        of.der_sym = der
        return der

    def declare_output(self, ev: EqnEnv, sym_name: str, expr) -> Sym:
        y = self.declare_symbol(ev, sym_name, self.name, kind=SymKind.outp)
        self.declare_equation(sp.Eq(y.s, expr), kind=EqnKind.outp)
        return y

    """
    Note on the declare_<domain>_port() methods below.
    They return the Sym objects of the port, e.g.
        electrical port: (V, I) = declare_electrical_port(ev, 'p')
        rotational port: (torque, angle, velocity, alpha) = declare_rotational_port(ev, 'flange')
    so that component constructors get terse local names for the port symbols,
    while the sympy names stay globally unique, e.g. r_p_V for pin p of r:
        Eq(Vp.s - Vn.s, Ip.s*R.s)
    rather than
        Eq(self.ports['p'].pot.s - self.ports['n'].pot.s, self.ports['p'].flow.s*R.s)
    """

    def _port_base_name(self, port_name: str) -> str:
        if port_name in self.ports:
            raise ValueError(f"Component {self.name} already has a port {port_name}.")
        return f"{self.name}_{port_name}"

    def _declare_chain(self, ev, base_name, names, pot_idx, ics):
        """
        Declare names[0], names[1], ... where each symbol is the time
        derivative of the previous one. names[pot_idx] is the potential of
        the port, the others are plain variables.

        ics: dict{name: (ic, ic_fixed)}
        """
        chain = []
        for idx, sym_name in enumerate(names):
            ic, ic_fixed = ics.get(sym_name, (None, False))
            sym = self.declare_symbol(
                ev,
                sym_name,
                base_name,
                kind=SymKind.pot if idx == pot_idx else SymKind.var,
                int_sym=chain[-1] if chain else None,
                ic=ic,
                ic_fixed=ic_fixed,
            )
            if chain:
                chain[-1].der_sym = sym
            chain.append(sym)
        return chain

    def _declare_pair_port(
        self,
        ev,
        port_name,
        domain,
        pot_name,
        flow_name,
        pot_ic=(None, False),
        flow_ic=(0.0, False),
    ) -> Tuple[Sym, Sym]:
        base_name = self._port_base_name(port_name)
        pot = self.declare_symbol(
            ev,
            pot_name,
            base_name,
            kind=SymKind.pot,
            ic=pot_ic[0],
            ic_fixed=pot_ic[1],
        )
        flow = self.declare_symbol(
            ev,
            flow_name,
            base_name,
            kind=SymKind.flow,
            ic=flow_ic[0],
            ic_fixed=flow_ic[1],
        )
        self.ports[port_name] = Port(port_name, domain, [pot], [flow])
        return pot, flow

    def declare_electrical_port(
        self, ev: EqnEnv, port_name: str, I_ic: float = None, I_ic_fixed: bool = False
    ) -> Tuple[Sym, Sym]:
        return self._declare_pair_port(
            ev, port_name, Domain.electrical, "V", "I", flow_ic=(I_ic, I_ic_fixed)
        )

    def declare_digital_port(self, ev: EqnEnv, port_name: str) -> Tuple[Sym, Sym]:
        return self._declare_pair_port(ev, port_name, Domain.digital, "val", "I")

    def declare_magnetic_port(
        self,
        ev: EqnEnv,
        port_name: str,
        Phi_ic: float = None,
        Phi_ic_fixed: bool = False,
    ) -> Tuple[Sym, Sym]:
        return self._declare_pair_port(
            ev, port_name, Domain.magnetic, "V_m", "Phi", flow_ic=(Phi_ic, Phi_ic_fixed)
        )

    def declare_hydraulic_port(
        self, ev: EqnEnv, port_name: str, P_ic: float = None, P_ic_fixed: bool = False
    ) -> Tuple[Sym, Sym]:
        return self._declare_pair_port(
            ev, port_name, Domain.hydraulic, "p", "dm", pot_ic=(P_ic, P_ic_fixed)
        )

    def declare_thermal_port(
        self, ev: EqnEnv, port_name: str, T_ic: float = None, T_ic_fixed: bool = False
    ) -> Tuple[Sym, Sym]:
        return self._declare_pair_port(
            ev, port_name, Domain.thermal, "T", "Q", pot_ic=(T_ic, T_ic_fixed)
        )

    def declare_rotational_port(
        self,
        ev: EqnEnv,
        port_name: str,
        w_ic: float = None,
        w_ic_fixed: bool = False,
        ang_ic: float = None,
        ang_ic_fixed: bool = False,
    ) -> Tuple[Sym, Sym, Sym, Sym]:
        """Flange with torque t, and the chain angle -> speed w -> alpha."""
        base_name = self._port_base_name(port_name)
        t = self.declare_symbol(ev, "t", base_name, kind=SymKind.flow, ic=0.0)
        ang, w, alpha = self._declare_chain(
            ev,
            base_name,
            ("ang", "w", "alpha"),
            pot_idx=1,
            ics={"ang": (ang_ic, ang_ic_fixed), "w": (w_ic, w_ic_fixed)},
        )
        self.ports[port_name] = Port(port_name, Domain.rotational, [w], [t])
        return t, ang, w, alpha

    def declare_translational_port(
        self,
        ev: EqnEnv,
        port_name: str,
        v_ic: float = None,
        v_ic_fixed: bool = False,
        x_ic: float = None,
        x_ic_fixed: bool = False,
    ) -> Tuple[Sym, Sym, Sym, Sym]:
        """Flange with force f, and the chain position x -> speed v -> a."""
        base_name = self._port_base_name(port_name)
        f = self.declare_symbol(ev, "f", base_name, kind=SymKind.flow, ic=0.0)
        x, v, a = self._declare_chain(
            ev,
            base_name,
            ("x", "v", "a"),
            pot_idx=1,
            ics={"x": (x_ic, x_ic_fixed), "v": (v_ic, v_ic_fixed)},
        )
        self.ports[port_name] = Port(port_name, Domain.translational, [v], [f])
        return f, x, v, a

    def declare_translational_position_port(
        self,
        ev: EqnEnv,
        port_name: str,
        s_ic: float = None,
        s_ic_fixed: bool = False,
        v_ic: float = None,
        v_ic_fixed: bool = False,
    ) -> Tuple[Sym, Sym, Sym, Sym]:
        """Flange whose potential is the position s, with speed v and a."""
        base_name = self._port_base_name(port_name)
        f = self.declare_symbol(ev, "f", base_name, kind=SymKind.flow, ic=0.0)
        s, v, a = self._declare_chain(
            ev,
            base_name,
            ("s", "v", "a"),
            pot_idx=0,
            ics={"s": (s_ic, s_ic_fixed), "v": (v_ic, v_ic_fixed)},
        )
        self.ports[port_name] = Port(
            port_name, Domain.translational_position, [s], [f]
        )
        return f, s, v, a

    def declare_rigid_body_port(
        self, ev: EqnEnv, port_name: str
    ) -> Tuple[Sym, Sym, Sym, Sym, Sym, Sym]:
        """Planar rigid body port, returns (dx, dy, dA, f_x, f_y, T_z)."""
        base_name = self._port_base_name(port_name)
        pots = [
            self.declare_symbol(ev, n, base_name, kind=SymKind.pot)
            for n in ("dx", "dy", "dA")
        ]
        flows = [
            self.declare_symbol(ev, n, base_name, kind=SymKind.flow, ic=0.0)
            for n in ("f_x", "f_y", "T_z")
        ]
        self.ports[port_name] = Port(port_name, Domain.multibody2d, pots, flows)
        return (*pots, *flows)

    def declare_frame_port(
        self,
        ev: EqnEnv,
        port_name: str,
        x_ic: float = None,
        y_ic: float = None,
        phi_ic: float = None,
        ic_fixed: bool = False,
    ):
        """
        Planar frame port. Returns the flows (fx, fy, j) and the derivative
        chains (x, vx, ax), (y, vy, ay), (phi, w, alpha).
        """
        base_name = self._port_base_name(port_name)
        chains = [
            tuple(
                self._declare_chain(
                    ev, base_name, names, pot_idx=0, ics={names[0]: (ic, ic_fixed)}
                )
            )
            for names, ic in (
                (("x", "vx", "ax"), x_ic),
                (("y", "vy", "ay"), y_ic),
                (("phi", "w", "alpha"), phi_ic),
            )
        ]
        flows = tuple(
            self.declare_symbol(ev, n, base_name, kind=SymKind.flow, ic=0.0)
            for n in ("fx", "fy", "j")
        )
        pots = [chain[0] for chain in chains]
        self.ports[port_name] = Port(port_name, Domain.planar, pots, flows)
        return (flows, *chains)

    def declare_conditional(
        self, ev: EqnEnv, if_expr, then_expr, else_expr, cond_name: str = None
    ):
        """A named Piecewise expression, then_expr where if_expr holds."""
        if cond_name is None:
            cond_name = f"cond{self.n_conds}"
            self.n_conds += 1
        cond_sym = self.declare_symbol(
            ev,
            cond_name,
            self.name,
            sym=sp.Piecewise((then_expr, if_expr), (else_expr, True)),
            kind=SymKind.cond,
        )
        return cond_sym

    def declare_equation(self, e: "sp.Eq", kind=EqnKind.comp):
        if e is sp.true:
            # e.g. Eq(x, x) after a port symbol was reused
            return
        if e is sp.false:
            raise AcausalModelError(
                message=f"Component {self.name} declares an equation that is always false.",
                components=[self],
            )
        self.eqs.add(Eqn(e=e, kind=kind))

    def add_eqs(self, eqs: List["sp.Eq"], kind=EqnKind.comp):
        for e in eqs:
            self.declare_equation(e, kind=kind)

    def get_syms_by_kind(self, kind: SymKind) -> List[Sym]:
        return [sym for sym in self.syms if sym.kind == kind]

    def get_sym_by_port_name(self, port_name: str):
        """The input or output Sym named port_name, None if there is none."""
        return next(
            (
                sym
                for sym in self.syms
                if sym.kind in (SymKind.inp, SymKind.outp) and sym.sym_name == port_name
            ),
            None,
        )

    def declare_fluid_port_set(self, ports: set):
        ports = set(ports)
        for existing_set in self.fluid_port_sets:
            if existing_set & ports:
                raise AcausalModelError(
                    message=f"Component {self.name} has ports {existing_set & ports} assigned to multiple fluids.",
                    components=[self],
                )
        self.fluid_port_sets.append(ports)

    def finalize(self, ev):
        """
        Called on every component once DiagramProcessing has analysed how the
        diagram is connected. Some components cannot write their equations
        before that, e.g. hydraulic components need the properties of the
        HydraulicFluid connected to their network. Most components do nothing.
        """
        pass
