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

import jax
import jax.numpy as jnp
import networkx as nx
import numpy as np
import sympy as sp
from scipy.optimize import root
from sympy.core.function import AppliedUndef

from .acausal_diagram import AcausalDiagram
from .component_library.base import EqnEnv
from .component_library.digital import LOGIC_TABLES
from .diagram_processing import DiagramProcessing
from .error import AcausalCompilerError, AcausalModelError
from .logging import DEBUG, logdata, logger, scope_logging, set_log_level
from .types import DiagramProcessingData, FlatSystem

jax.config.update("jax_enable_x64", True)

NEWTON_MAX_ITER = 50
NEWTON_TOL = 1e-10
# residual tolerance of the fallback root solve
ROOT_TOL = 1e-6
# weight of the weak initial conditions in the least squares initialization
WEAK_IC_WEIGHT = 1e-4


def logic_namespace():
    """Numeric versions of the logic table lookups used by digital components.
    Logic levels are 1..9, anything in between is rounded."""
    tables = {name: jnp.asarray(table) for name, table in LOGIC_TABLES.items()}

    def _idx(a):
        return jnp.clip(jnp.round(a), 1, 9).astype(int) - 1

    def _binary(name):
        def _lookup(a, b):
            return tables[name][_idx(a), _idx(b)]

        return _lookup

    return {
        "logic_and2": _binary("logic_and2"),
        "logic_or2": _binary("logic_or2"),
        "logic_xor2": _binary("logic_xor2"),
        "logic_not": lambda a: tables["logic_not"][_idx(a)],
    }


def _as_vector(values):
    if len(values) == 0:
        return jnp.zeros(0)
    return jnp.stack([jnp.asarray(v, dtype=jnp.float64) for v in values])


def scipy_roots(f, x_0, method="lm", tol=None):
    """
    Find the roots of a system of equations `f(x)=0` starting from `x=x_0`
    with `scipy.optimize.root`. Returns the scipy result.
    """
    f = jax.jit(f)
    df_dx = jax.jit(jax.jacfwd(f))
    return root(f, x_0, jac=df_dx, method=method, tol=tol)


class AcausalSystem:
    """
    Index-1 DAE compiled from an AcausalDiagram:

        F(t, x, z, u, p) = 0

    x are the differential states. z are the unknowns, first the time
    derivatives of x, in the same order, then the algebraic variables.
    u are the inputs and p the parameters. Since the model is index-1, the
    Jacobian dF/dz is regular, so z is solved by Newton iterations given
    (t, x, u, p), and the first len(x) entries of z are the ODE right hand side.

    Attributes:
        state_names, unknown_names, input_names, param_names, output_names:
            names of the entries of the x, z, u, p vectors and of the outputs.
        default_params (dict{name: value}):
            parameter values declared by the components.
        x0, z0:
            consistent initial values, set by initialize().
    """

    def __init__(self, name: str, flat: FlatSystem, dpd: DiagramProcessingData):
        self.name = name
        self.flat = flat
        self.dpd = dpd
        self.t = flat.t

        self.x_syms = list(flat.states)
        self.u_syms = list(flat.inputs)
        self.p_syms = list(flat.params)
        self.outp_syms = list(flat.outp_exprs)
        self.w_syms = list(flat.outp_der_exprs)

        unknowns = set()
        for eq in flat.eqs:
            unknowns.update(self._tv_syms(eq.e))
        algebraic = sorted(
            unknowns - set(self.x_syms) - set(self.u_syms), key=lambda f: str(f)
        )
        self.z_syms = [sp.Derivative(x, self.t) for x in self.x_syms] + algebraic
        self.nx = len(self.x_syms)
        self.nz = len(self.z_syms)

        # plain symbols for lambdify, dummies so they never clash with names
        # of constants or python keywords
        self._xd = [sp.Dummy(f"x{i}") for i in range(self.nx)]
        self._zd = [sp.Dummy(f"z{i}") for i in range(self.nz)]
        self._ud = [sp.Dummy(f"u{i}") for i in range(len(self.u_syms))]
        self._pd = [sp.Dummy(f"p{i}") for i in range(len(self.p_syms))]
        self._wd = [sp.Dummy(f"w{i}") for i in range(len(self.w_syms))]
        # Derivative() keys must be matched before the states inside them,
        # which xreplace does since it visits the outer expression first.
        self._rule = dict(zip(self.z_syms, self._zd))
        self._rule.update(zip(self.x_syms, self._xd))
        self._rule.update(zip(self.u_syms, self._ud))
        self._rule.update(zip(self.p_syms, self._pd))
        self._rule.update(zip(self.w_syms, self._wd))
        self._namespace = logic_namespace()

        self.residual_exprs = [eq.expr for eq in flat.eqs]
        self._residual = self._lambdify_vector(self.residual_exprs)
        self._jac_z = jax.jit(jax.jacfwd(self._residual, argnums=2))
        self._jac_t = jax.jit(jax.jacfwd(self._residual, argnums=0))
        self._jac_x = jax.jit(jax.jacfwd(self._residual, argnums=1))
        self._jac_u = jax.jit(jax.jacfwd(self._residual, argnums=3))
        self._newton = self._make_newton()

        self._outputs = self._lambdify_vector(
            [flat.outp_exprs[sym] for sym in self.outp_syms], with_w=True
        )
        self._output_derivatives = self._make_output_derivatives()

        self.x0 = None
        self.z0 = None

    def _tv_syms(self, expr):
        syms_map = self.dpd.syms_map
        return {
            f
            for f in sp.sympify(expr).atoms(AppliedUndef)
            if f in syms_map and syms_map[f].is_time_varying
        }

    def _to_dummies(self, expr):
        expr = sp.sympify(expr).xreplace(self._rule)
        missing = self._tv_syms(expr)
        if missing:
            raise AcausalCompilerError(
                message=f"Expression {expr} depends on {missing}, which are not computed by the system.",
                dpd=self.dpd,
            )
        return expr

    def _lambdify_vector(self, exprs, with_w=False):
        args = [self.t, self._xd, self._zd, self._ud, self._pd]
        if with_w:
            args.append(self._wd)
        fn = sp.lambdify(
            args,
            [self._to_dummies(e) for e in exprs],
            modules=["jax", self._namespace],
        )

        def _vector(*a):
            return _as_vector(fn(*a))

        return jax.jit(_vector)

    def _name(self, f):
        return self.dpd.node_pot_names.get(f, self.dpd.syms_map[f].name)

    @property
    def state_names(self):
        return [self._name(x) for x in self.x_syms]

    @property
    def unknown_names(self):
        return [f"der({n})" for n in self.state_names] + [
            self._name(z) for z in self.z_syms[self.nx :]
        ]

    @property
    def input_names(self):
        return [self.flat.inputs[u].name for u in self.u_syms]

    @property
    def param_names(self):
        return [str(p) for p in self.p_syms]

    @property
    def output_names(self):
        return [sym.name for sym in self.outp_syms]

    @property
    def default_params(self):
        return dict(zip(self.param_names, self.flat.params.values()))

    def param_vector(self, params=None):
        """Parameter vector with the defaults overridden by params, a dict
        keyed by parameter name or Sym."""
        values = dict(self.default_params)
        for key, val in (params or {}).items():
            name = getattr(key, "name", str(key))
            if name not in values:
                raise ValueError(
                    f"AcausalSystem {self.name} has no parameter named {name}."
                )
            sym = self.dpd.syms_map[self.p_syms[self.param_names.index(name)]]
            if sym.validator is not None and not sym.validator(val):
                raise AcausalModelError(message=sym.invalid_msg, dpd=self.dpd)
            values[name] = val
        return jnp.array([values[n] for n in self.param_names], dtype=jnp.float64)

    def input_vector(self, u=None):
        if u is None:
            u = [self.flat.inputs[s].val for s in self.u_syms]
        return jnp.asarray(u, dtype=jnp.float64).reshape(len(self.u_syms))

    def _args(self, u, p):
        u = self.input_vector(u)
        p = self.param_vector() if p is None else jnp.asarray(p, dtype=jnp.float64)
        return u, p

    def _make_newton(self):
        residual, jac_z = self._residual, self._jac_z

        def newton(t, x, z0, u, p):
            def cond(carry):
                i, _, err = carry
                return (i < NEWTON_MAX_ITER) & (err > NEWTON_TOL)

            def body(carry):
                i, z, _ = carry
                dz = jnp.linalg.solve(jac_z(t, x, z, u, p), residual(t, x, z, u, p))
                z = z - dz
                err = jnp.max(jnp.abs(dz) / (1.0 + jnp.abs(z)))
                return i + 1, z, err

            init = (jnp.array(0), z0, jnp.array(jnp.inf, dtype=jnp.float64))
            _, z, err = jax.lax.while_loop(cond, body, init)
            return z, err

        return jax.jit(newton)

    def residual(self, t, x, z, u=None, p=None):
        u, p = self._args(u, p)
        return np.asarray(self._residual(t, jnp.asarray(x), jnp.asarray(z), u, p))

    def _root_z(self, t, x, z_guess, u, p):
        res = root(
            lambda z: self._residual(t, x, z, u, p),
            z_guess,
            jac=lambda z: self._jac_z(t, x, z, u, p),
            method="lm",
        )
        return res, np.max(np.abs(res.fun), initial=0.0)

    def solve_algebraic(self, t, x, u=None, p=None, z_guess=None):
        """Solve F(t, x, z, u, p) = 0 for z, starting from z_guess."""
        if self.nz == 0:
            return np.zeros(0)
        u, p = self._args(u, p)
        x = jnp.asarray(x, dtype=jnp.float64)
        if z_guess is None:
            z_guess = self.z0 if self.z0 is not None else np.zeros(self.nz)
        z_guess = jnp.asarray(z_guess, dtype=jnp.float64)
        z, err = self._newton(t, x, z_guess, u, p)
        if np.isfinite(err) and err <= NEWTON_TOL:
            return np.asarray(z)

        res, fun_max = self._root_z(t, x, z_guess, u, p)
        if not np.isfinite(fun_max) or fun_max > ROOT_TOL:
            raise AcausalCompilerError(
                message=f"Failed to solve the algebraic equations at t={t}, final residual={fun_max}.",
                dpd=self.dpd,
            )
        return np.asarray(res.x)

    def ode_rhs(self, t, x, u=None, p=None, z_guess=None):
        """Time derivatives of the states, and the unknowns z they come from."""
        z = self.solve_algebraic(t, x, u, p, z_guess)
        return z[: self.nx], z

    def _singular_unknowns(self, jac, n_names=5):
        # unknowns with the largest weight in the null space of dF/dz
        _, _, vh = np.linalg.svd(jac)
        idx = np.argsort(-np.abs(vh[-1]))[:n_names]
        return [self.unknown_names[i] for i in idx]

    def _check_jacobian(self, t, x, z, u, p):
        jac = np.asarray(self._jac_z(t, x, z, u, p))
        if not np.all(np.isfinite(jac)):
            raise AcausalCompilerError(
                message="The Jacobian of the equations is not finite at the initial point.",
                dpd=self.dpd,
            )
        if np.linalg.matrix_rank(jac) < self.nz:
            message = (
                "The Jacobian of the equations w.r.t. the unknowns is singular at the "
                "initial point. The model is either singular, or of index higher than 1, "
                "which is not supported. e.g. rigidly connected inertias, or a prescribed "
                "position driving a damper. Unknowns involved: "
                f"{self._singular_unknowns(jac)}."
            )
            raise AcausalCompilerError(message=message, dpd=self.dpd)

    @scope_logging
    def initialize(self, t0=0.0, u=None, p=None):
        """
        Compute consistent initial values (x0, z0).

        States with a fixed initial condition keep it. When some algebraic
        unknowns also have fixed initial conditions, the free states are first
        solved for by least squares, with their weak initial conditions as a
        regularization. Then z is solved with the states held.
        """
        u, p = self._args(u, p)
        ics, ics_weak = self.flat.ics, self.flat.ics_weak

        x0 = np.array([ics.get(x, ics_weak.get(x, 0.0)) for x in self.x_syms])
        z0 = np.array(
            [0.0] * self.nx
            + [ics.get(z, ics_weak.get(z, 0.0)) for z in self.z_syms[self.nx :]]
        )
        z_fixed = [j for j, z in enumerate(self.z_syms) if z in ics]
        x_free = [i for i, x in enumerate(self.x_syms) if x not in ics]

        if z_fixed and x_free:
            x_free_arr = jnp.array(x_free, dtype=int)
            z_fixed_arr = jnp.array(z_fixed, dtype=int)
            z_fixed_ics = jnp.array([ics[self.z_syms[j]] for j in z_fixed])
            x0_arr = jnp.asarray(x0)
            n_free = len(x_free)

            def f(w):
                x = x0_arr.at[x_free_arr].set(w[:n_free])
                z = w[n_free:]
                return jnp.concatenate(
                    [
                        self._residual(t0, x, z, u, p),
                        z[z_fixed_arr] - z_fixed_ics,
                        WEAK_IC_WEIGHT * (w[:n_free] - x0_arr[x_free_arr]),
                    ]
                )

            res = scipy_roots(f, np.concatenate([x0[x_free], z0]), method="lm")
            logger.debug(
                "initialization with fixed algebraic initial conditions",
                **logdata(success=res.success, n_free_states=n_free),
            )
            x0[x_free] = res.x[:n_free]
            z0 = res.x[n_free:]

        x0 = jnp.asarray(x0, dtype=jnp.float64)
        if self.nz > 0:
            z0 = jnp.asarray(z0, dtype=jnp.float64)
            res, fun_max = self._root_z(t0, x0, z0, u, p)
            self._check_jacobian(t0, x0, jnp.asarray(res.x), u, p)
            if not np.isfinite(fun_max) or fun_max > ROOT_TOL:
                raise AcausalCompilerError(
                    message=f"Initialization failed, final residual={fun_max}.",
                    dpd=self.dpd,
                )
            z0 = np.asarray(res.x)
            for j in z_fixed:
                ic = ics[self.z_syms[j]]
                if abs(z0[j] - ic) > 1e-5 * (1.0 + abs(ic)):
                    logger.warning(
                        "Fixed initial condition of %s could not be satisfied: %s instead of %s.",
                        self.unknown_names[j],
                        z0[j],
                        ic,
                    )
        else:
            z0 = np.zeros(0)

        self.x0 = np.asarray(x0)
        self.z0 = z0
        return self.x0, self.z0

    def _make_output_derivatives(self):
        """Values of the derivatives read only by outputs.

        The derivative of an algebraic unknown follows from differentiating
        F = 0 along the solution:
            dz/dt = -inv(F_z)*(F_t + F_x*dx/dt + F_u*du/dt)
        """
        sources = []
        for w in self.w_syms:
            s = self.flat.outp_der_exprs[w]
            if s in self.x_syms:
                sources.append(("x", self.x_syms.index(s)))
            elif s in self.z_syms:
                sources.append(("z", self.z_syms.index(s)))
            else:
                sources.append(("u", self.u_syms.index(s)))

        nx = self.nx
        need_zdot = any(kind == "z" for kind, _ in sources)
        residual_jacs = (self._jac_z, self._jac_t, self._jac_x, self._jac_u)

        def output_derivatives(t, x, z, u, p, udot):
            if not sources:
                return jnp.zeros(0)
            jac_z, jac_t, jac_x, jac_u = residual_jacs
            xdot = z[:nx]
            values = {"x": xdot, "u": udot}
            if need_zdot:
                rhs = jac_t(t, x, z, u, p) + jac_x(t, x, z, u, p) @ xdot
                if udot.shape[0] > 0:
                    rhs = rhs + jac_u(t, x, z, u, p) @ udot
                values["z"] = -jnp.linalg.solve(jac_z(t, x, z, u, p), rhs)
            return _as_vector([values[kind][idx] for kind, idx in sources])

        return jax.jit(output_derivatives)

    def eval_outputs(self, t, x, z, u=None, p=None, udot=None):
        """Output values, in the order of output_names."""
        u, p = self._args(u, p)
        x = jnp.asarray(x, dtype=jnp.float64)
        z = jnp.asarray(z, dtype=jnp.float64)
        udot = jnp.zeros(len(self.u_syms)) if udot is None else jnp.asarray(udot)
        w = self._output_derivatives(t, x, z, u, p, udot)
        return np.asarray(self._outputs(t, x, z, u, p, w))

    def make_evaluator(self, expr, extra=()):
        """Compile expr, any expression of the model symbols, into a function
        of (t, x, z, u, p, e), where e are the values of the symbols in extra,
        symbols which the system does not compute."""
        extra_d = [sp.Dummy(f"e{i}") for i in range(len(extra))]
        expr = sp.sympify(expr).xreplace(dict(zip(extra, extra_d)))
        fn = sp.lambdify(
            [self.t, self._xd, self._zd, self._ud, self._pd, extra_d],
            self._to_dummies(expr),
            modules=["jax", self._namespace],
        )
        return jax.jit(fn)

    def pruned_integrals_of(self, expr):
        """The symbols of expr which diagram processing dropped because
        nothing computes them, dict{s: d} where d = Derivative(s)."""
        pruned = self.dpd.pruned_integrals
        return {f: pruned[f] for f in self._tv_syms(expr) if f in pruned}


class AcausalCompiler:
    """
    This class orchestrates the compilation of acausal models into an
    AcausalSystem.

    There are 3 stages:
        1] diagram_processing. AcausalDiagram -> flat DAEs
        2] structural checks. equations balance, and a perfect matching of
            equations and unknowns exists
        3] generate_acausal_system. lambdify the DAEs, and compute consistent
            initial conditions
    """

    def __init__(
        self,
        eqn_env: EqnEnv,
        diagram: AcausalDiagram,
        verbose: bool = False,
    ):
        if verbose:
            set_log_level(DEBUG)
        self.dp = DiagramProcessing(eqn_env, diagram, verbose=verbose)
        self.verbose = verbose
        self.dpd = None
        self.flat = None

    def diagram_processing(self):
        self.dpd, self.flat = self.dp()

    def check_structure(self, system: AcausalSystem):
        n_eqs = len(system.residual_exprs)
        if n_eqs != system.nz:
            message = (
                f"The system has {n_eqs} equations and {system.nz} unknowns. "
                f"Unknowns: {system.unknown_names}."
            )
            raise AcausalCompilerError(message=message, dpd=self.dpd)

        graph = nx.Graph()
        eq_nodes = [("eq", i) for i in range(n_eqs)]
        graph.add_nodes_from(eq_nodes)
        graph.add_nodes_from(("z", j) for j in range(system.nz))
        z_index = {zd: j for j, zd in enumerate(system._zd)}
        for i, expr in enumerate(system.residual_exprs):
            for s in sp.sympify(expr).xreplace(system._rule).free_symbols:
                if s in z_index:
                    graph.add_edge(("eq", i), ("z", z_index[s]))

        matching = nx.bipartite.hopcroft_karp_matching(graph, top_nodes=eq_nodes)
        unmatched_eqs = [i for _, i in eq_nodes if ("eq", i) not in matching]
        if unmatched_eqs:
            unmatched_z = [
                system.unknown_names[j] for j in range(system.nz) if ("z", j) not in matching
            ]
            eqs = [str(self.flat.eqs[i].e) for i in unmatched_eqs]
            message = (
                "The system is structurally singular, no equation can be assigned "
                f"to the unknowns {unmatched_z}. Unassigned equations: {eqs}."
            )
            raise AcausalCompilerError(message=message, dpd=self.dpd)

    def generate_acausal_system(self, name="acausal_system"):
        if not self.dp.diagram_processing_done:
            self.diagram_processing()
        system = AcausalSystem(name, self.flat, self.dpd)
        logger.debug(
            "generated acausal system",
            **logdata(name=name, n_states=system.nx, n_unknowns=system.nz),
        )
        self.check_structure(system)
        system.initialize()
        return system

    # execute compilation
    def __call__(self, name="acausal_system"):
        self.diagram_processing()
        return self.generate_acausal_system(name=name)
