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
Symbols, equations and the equation environment shared by every component.
"""

from enum import Enum

import numpy as np
import sympy as sp


# (name, value, description) of the constants available in every EqnEnv.
_K_BOLTZMANN = 1.380649e-23
_H_PLANCK = 6.62607015e-34
_C_LIGHT = 299792458.0
_Q_ELEMENTARY = 1.602176634e-19
_N_AVOGADRO = 6.02214076e23
_MU_0 = 4 * np.pi * 1.00000000055e-7

PHYSICAL_CONSTANTS = (
    ("e", np.e, "Euler's number"),
    ("euler_gamma", np.euler_gamma, "Euler-Mascheroni constant"),
    ("pi", np.pi, "pi"),
    ("c", _C_LIGHT, "speed of light in vacuum"),
    ("g_n", 9.80665, "standard acceleration of gravity on earth"),
    ("G", 6.67430e-11, "Newtonian constant of gravitation"),
    ("q", _Q_ELEMENTARY, "elementary charge"),
    ("N_A", _N_AVOGADRO, "Avogadro constant"),
    ("F", _Q_ELEMENTARY * _N_AVOGADRO, "Faraday constant"),
    ("h", _H_PLANCK, "Planck constant"),
    ("k", _K_BOLTZMANN, "Boltzmann constant"),
    (
        "sigma",
        2 * np.pi**5 * _K_BOLTZMANN**4 / (15 * _H_PLANCK**3 * _C_LIGHT**2),
        "Stefan-Boltzmann constant",
    ),
    ("mu_0", _MU_0, "magnetic constant"),
    ("epsilon_0", 1 / (_MU_0 * _C_LIGHT**2), "electric constant"),
    ("T_zero", -273.15, "absolute zero in degC"),
    ("R", _K_BOLTZMANN * _N_AVOGADRO, "molar gas constant"),
)


class EqnEnv:
    """Equation Environment holding everything that is common to all the
    equations of one acausal model.

    Attributes:
        t (Sympy Symbol):
            The symbol for time. Every time varying Sym is a function of it.
        syms (list[Sym]):
            The physical constants, also reachable as attributes, e.g. ev.g_n.
    """

    def __init__(self):
        self.t = sp.symbols("t", real=True)
        self.syms = []
        for sym_name, val, _ in PHYSICAL_CONSTANTS:
            const = Sym(
                self,
                sym_name=sym_name,
                base_name="constants",
                val=val,
                kind=SymKind.param,
            )
            setattr(self, sym_name, const)
            self.syms.append(const)


class Domain(Enum):
    """Enumeration for the Acausal domains"""

    electrical = 0
    magnetic = 1
    thermal = 2
    rotational = 3
    translational = 4
    translational_position = 5
    hydraulic = 7
    digital = 8
    planar = 9
    multibody2d = 10

    def __str__(self):
        return f"{self.name}"


def nodpot_qty(domain):
    match domain:
        case Domain.electrical:
            return "volt"
        case Domain.digital:
            return "logic"
        case Domain.magnetic:
            return "mmf"
        case Domain.thermal:
            return "temp"
        case Domain.rotational | Domain.translational | Domain.multibody2d:
            return "spd"
        case Domain.translational_position | Domain.planar:
            return "pos"
        case Domain.hydraulic:
            return "pressure"
        case _:
            raise ValueError(f"[nodpot_qty] invalid domain provided {domain}.")


class SymKind(Enum):
    """Enumeration for the 'kind' of a 'Sym' object.

     - 'flow': through variable of a port. It appears in exactly one node
        conservation equation, e.g. all currents into a node sum to 0.
     - 'pot': across variable of a port. All ports of a node share it.
     - 'param': a constant of the model, e.g. mass, resistance, or a
        physical constant.
     - 'inp': an input, similar to param, but time varying and provided
        when the model is simulated.
     - 'outp': an output. It only appears on the LHS of an output equation.
     - 'var': any other time varying variable of a component, e.g. the
        voltage across a capacitor, or its time derivative.
     - 'node_pot': potential variable shared by all the ports of a node,
        created during diagram processing.
     - 'cond': a conditional expression, i.e. Sympy.Piecewise().
    """

    flow = 0
    pot = 1
    param = 2
    inp = 3
    outp = 4
    var = 6
    node_pot = 7
    cond = 9


class Sym:
    """
    Container for a sympy symbol which also knows which other Sym objects are its
    integral and its derivative w.r.t. time. Sympy alone can express
    Derivative(v(t), t), but it cannot be searched for 'what is the derivative of
    this symbol', which diagram processing needs when it merges the potential
    variables of a node.

    Attributes:
        name (string):
            unique name used for the sympy object, base_name + "_" + sym_name.
        s (Sympy.Symbol or Sympy.Function(t)):
            The symbol. Params are plain symbols, everything else is a function
            of time.
        val (number):
            numerical value, required for params.
        kind (SymKind):
            see SymKind.
        ic (number):
            initial value, only meaningful for time varying symbols.
        ic_fixed (bool):
            When true the ic is a requirement, when false it is a guess used to
            start the initialization.
        int_sym (Sym):
            When set, self.s == Derivative(int_sym.s).
        der_sym (Sym):
            Derivative(self.s) == der_sym.s.
        der_relation (Eqn):
            The equation self.s = Derivative(int_sym.s), when int_sym is set.
        validator (callable):
            for params, returns False when val is not physically valid.
        invalid_msg (str):
            message of the error raised when validator fails.
    """

    def __init__(
        self,
        eqn_env,
        sym_name=None,
        base_name=None,
        name=None,
        val=None,
        der_sym=None,
        int_sym=None,
        kind=None,
        ic=None,
        ic_fixed=False,
        sym=None,
        validator=None,
        invalid_msg=None,
    ):
        if name is not None:
            self.name = self.sym_name = name
        else:
            self.sym_name = sym_name
            self.name = sym_name if base_name is None else base_name + "_" + sym_name

        if kind not in SymKind:
            raise ValueError(f"kind:{kind} of symbol:{self.name} not one of {SymKind}")

        if kind == SymKind.param and val is None:
            raise ValueError(f"symbol:{self.name} has kind param, val cannot be None")

        self.der_relation = None
        if sym is not None:
            self.s = sym
        elif kind == SymKind.param:
            self.s = sp.Symbol(self.name, real=True)
        else:
            self.s = sp.Function(self.name, real=True)(eqn_env.t)

        if int_sym is not None:
            # the relation lives with the derivative symbol so that components
            # only have to declare int_sym.
            self.der_relation = Eqn(
                e=sp.Eq(self.s, int_sym.s.diff(eqn_env.t)),
                kind=EqnKind.der_relation,
            )

        self.val = val
        self.kind = kind
        self.ic = ic
        self.ic_fixed = ic_fixed
        self.int_sym = int_sym
        self.der_sym = der_sym
        self.validator = validator
        self.invalid_msg = invalid_msg

    def __repr__(self):
        return str(self.name)

    @property
    def is_time_varying(self):
        return self.kind not in (SymKind.param, SymKind.cond)

    def validate(self):
        """Return True when the parameter value passes the validator."""
        if self.validator is None:
            return True
        return bool(self.validator(self.val))


class EqnKind(Enum):
    """Enumeration for the 'kind' of an 'Eqn' object.

     - 'pot': potential variable constraint of a node.
     - 'flow': flow variable conservation of a node.
     - 'der_relation': derivative relation, e.g. accel = Derivative(vel).
     - 'comp': component behavior.
     - 'outp': output symbol = expression.
    """

    pot = 0
    flow = 1
    der_relation = 2
    comp = 3
    outp = 4


class Eqn:
    """Sympy.Eq with the extra data diagram processing needs.

    Attributes;
        e (Sympy.Eq):
            The equation.
        kind (EqnKind):
            See EqnKind.
        node_id:
            The node this equation was generated for, if any.
    """

    def __init__(self, e, kind=None, node_id=None):
        self.e = e
        self.kind = kind
        self.node_id = node_id

    def subs(self, e1, e2):
        self.e = self.e.subs(e1, e2)
        return self

    def xreplace(self, rule):
        if not isinstance(self.e, sp.Eq):
            return self
        self.e = self.e.xreplace(rule)
        return self

    def __repr__(self):
        if self.kind is None:
            return str(self.e)
        return str(self.kind) + "\t" + str(self.e) + "\tnid:" + str(self.node_id)

    @property
    def expr(self):
        """
        Return the equation, re-arranged as an expression equal to zero.
        """
        return self.e.lhs - self.e.rhs
