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
Planar (2D) multi-body components.

Two families live here:
 - MultiBody2D: rigid body ports whose potentials are the velocities
   dx, dy, dA and whose flows are the forces f_x, f_y and torque T_z.
   Link, RevoluteJoint, MultiBody2Translational.
 - PlanarMechanics: frame ports whose potentials are the positions x, y, phi
   and whose flows are the forces fx, fy and torque j.
   Fixed, Body, Revolute, AbsolutePosition, RelativePosition.

Rigid connections between two bodies, e.g. a pendulum hinged to a fixed
frame, produce index-2/3 systems which the compiler rejects.
"""

from enum import Enum

import sympy as sp

from .component_base import ComponentBase


class ResolveInFrame(Enum):
    """Frame in which an absolute vector is resolved."""

    world = 1
    frame_a = 2
    frame_b = 3
    frame_resolve = 4


def _resolve_in_frame(value):
    if isinstance(value, ResolveInFrame):
        return value
    try:
        return ResolveInFrame[value]
    except KeyError as exc:
        raise ValueError(
            f"resolve_in_frame must be one of {[f.name for f in ResolveInFrame]}, "
            f"got {value}."
        ) from exc


# MultiBody2D


class Link(ComponentBase):
    """
    Rigid link of length l between the rigid body ports M1 and M2. A is the
    angle of the link w.r.t. the x axis, (x1, y1) the position of M1 and the
    center of mass is half way between M1 and M2:
        x2 = l*cos(A) + x1,  y2 = l*sin(A) + y1

    The link moves under the forces applied at its ends and gravity g along
    the y axis (signed, e.g. g=-9.807):
        m*ddx_cm = fx1 + fx2
        m*ddy_cm = m*g + fy1 + fy2
        I*ddA = dx*fy2 - dy*fx2 - dx*fy1 + dy*fx1 + T1 + T2
    with (dx, dy) the half link vector. The states are A, x1, y1 and their
    velocities, the geometry being applied at velocity and acceleration
    level so the equations stay index-1.

    Args:
        m (number):
            Mass, kg.
        l (number):
            Length, m.
        I (number):
            Moment of inertia about the center of mass, kg*m^2.
        g (number):
            Gravity acceleration along the y axis.
        x1_0, y1_0 (number):
            Initial position of M1.
        A_0 (number):
            Initial angle.
    """

    def __init__(
        self,
        ev,
        name=None,
        m=1.0,
        l=1.0,  # noqa: E741
        I=1.0,  # noqa: E741
        g=0.0,
        x1_0=0.0,
        y1_0=0.0,
        A_0=0.0,
    ):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        m = self.declare_param(ev, "m", m, positive=True)
        l = self.declare_param(ev, "l", l, positive=True)  # noqa: E741
        I = self.declare_param(ev, "I", I, positive=True)  # noqa: E741
        g = self.declare_param(ev, "g", g)

        dx1_p, dy1_p, dA1_p, fx1, fy1, T1 = self.declare_rigid_body_port(ev, "M1")
        dx2_p, dy2_p, dA2_p, fx2, fy2, T2 = self.declare_rigid_body_port(ev, "M2")

        def chain(sym_name, ic):
            pos = self.declare_var(ev, sym_name, ic=ic, ic_fixed=True)
            vel = self.declare_derivative(ev, "d" + sym_name, of=pos, ic=0.0)
            acc = self.declare_derivative(ev, "dd" + sym_name, of=vel, ic=0.0)
            return pos.s, vel.s, acc.s

        A, dA, ddA = chain("A", A_0)
        x1, dx1, ddx1 = chain("x1", x1_0)
        y1, dy1, ddy1 = chain("y1", y1_0)

        cos_A, sin_A = sp.cos(A), sp.sin(A)
        half = l.s / 2
        ddx_cm = ddx1 - half * (sin_A * ddA + cos_A * dA**2)
        ddy_cm = ddy1 + half * (cos_A * ddA - sin_A * dA**2)
        Dx = half * cos_A
        Dy = half * sin_A

        self.add_eqs(
            [
                # ports
                sp.Eq(dx1_p.s, dx1),
                sp.Eq(dy1_p.s, dy1),
                sp.Eq(dA1_p.s, dA),
                sp.Eq(dx2_p.s, dx1 - l.s * sin_A * dA),
                sp.Eq(dy2_p.s, dy1 + l.s * cos_A * dA),
                sp.Eq(dA2_p.s, dA),
                # dynamics
                sp.Eq(m.s * ddx_cm, fx1.s + fx2.s),
                sp.Eq(m.s * ddy_cm, m.s * g.s + fy1.s + fy2.s),
                sp.Eq(
                    I.s * ddA,
                    Dx * fy2.s
                    - Dy * fx2.s
                    - Dx * fy1.s
                    + Dy * fx1.s
                    + T1.s
                    + T2.s,
                ),
            ]
        )
        self.declare_output(ev, "x_cm", x1 + Dx)
        self.declare_output(ev, "y_cm", y1 + Dy)


class RevoluteJoint(ComponentBase):
    """
    Joint between the rigid body ports M1 and M2 which share their velocity
    but can rotate relative to each other, with rotational damping d:
        T_z = d*(dA1 - dA2)
    """

    def __init__(self, ev, name=None, d=0.0):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        d = self.declare_param(ev, "d", d, non_negative=True)
        dx1, dy1, dA1, fx1, fy1, T1 = self.declare_rigid_body_port(ev, "M1")
        dx2, dy2, dA2, fx2, fy2, T2 = self.declare_rigid_body_port(ev, "M2")
        dA = self.declare_var(ev, "dA")
        T_z = self.declare_var(ev, "T_z")
        self.add_eqs(
            [
                sp.Eq(dA.s, dA1.s - dA2.s),
                sp.Eq(T_z.s, dA.s * d.s),
                sp.Eq(T1.s, T_z.s),
                sp.Eq(T2.s, -T_z.s),
                sp.Eq(fx1.s, -fx2.s),
                sp.Eq(fy1.s, -fy2.s),
                sp.Eq(dx1.s, dx2.s),
                sp.Eq(dy1.s, dy2.s),
            ]
        )


class MultiBody2Translational(ComponentBase):
    """
    Adapter between a rigid body port M and a translational flange T. The
    body moves along x only, with the velocity of the flange.
    """

    def __init__(self, ev, name=None):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        dx, dy, dA, f_x, _, _ = self.declare_rigid_body_port(ev, "M")
        f, _, v, _ = self.declare_translational_port(ev, "T")
        self.add_eqs(
            [
                sp.Eq(f_x.s, -f.s),
                sp.Eq(dx.s, v.s),
                sp.Eq(dy.s, 0),
                sp.Eq(dA.s, 0),
            ]
        )


# PlanarMechanics


class Fixed(ComponentBase):
    """Frame fixed in the world frame at position r and angle phi."""

    def __init__(self, ev, name=None, r=(0.0, 0.0), phi=0.0):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        (_, _, _), (x, _, _), (y, _, _), (phi_f, _, _) = self.declare_frame_port(
            ev, "frame", x_ic=r[0], y_ic=r[1], phi_ic=phi
        )
        r_x = self.declare_param(ev, "r_x", r[0])
        r_y = self.declare_param(ev, "r_y", r[1])
        phi = self.declare_param(ev, "phi", phi)
        self.add_eqs(
            [
                sp.Eq(x.s, r_x.s),
                sp.Eq(y.s, r_y.s),
                sp.Eq(phi_f.s, phi.s),
            ]
        )


class Body(ComponentBase):
    """
    Body with mass and inertia, attached to the origin of its frame:
        m*ax = fx
        m*ay = fy (+ m*gy)
        j*alpha = frame torque

    Args:
        m (number):
            Mass, kg.
        j (number):
            Inertia about the z axis of the frame, kg*m^2.
        r (tuple):
            Initial x, y position.
        v (tuple):
            Initial x, y velocity.
        phi (number):
            Initial angle.
        w (number):
            Initial angular velocity.
        gy (number):
            Optional gravity acceleration in the y direction, positive values
            act in the positive direction.
    """

    def __init__(
        self,
        ev,
        name=None,
        m=1.0,
        j=1.0,
        r=(0.0, 0.0),
        v=(0.0, 0.0),
        phi=0.0,
        w=0.0,
        gy=None,
    ):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        (fx, fy, tz), xc, yc, phic = self.declare_frame_port(
            ev, "frame", x_ic=r[0], y_ic=r[1], phi_ic=phi, ic_fixed=True
        )
        for c, ic in ((xc, v[0]), (yc, v[1]), (phic, w)):
            c[1].ic = ic
            c[1].ic_fixed = True
        m = self.declare_param(ev, "m", m, positive=True)
        j = self.declare_param(ev, "j", j, positive=True)
        ax, ay, alpha = xc[2], yc[2], phic[2]
        if gy is None:
            eq_y = sp.Eq(m.s * ay.s, fy.s)
        else:
            gy = self.declare_param(ev, "gy", gy)
            eq_y = sp.Eq(m.s * ay.s, fy.s + m.s * gy.s)
        self.add_eqs(
            [
                sp.Eq(m.s * ax.s, fx.s),
                eq_y,
                sp.Eq(j.s * alpha.s, tz.s),
            ]
        )


class Revolute(ComponentBase):
    """
    Revolute joint between frame_a and frame_b. The frames share their
    position, frame_b is rotated by the relative angle phi:
        frame_a.phi + phi = frame_b.phi

    Without a flange the joint is free (no torque). With use_flange=True the
    relative rotation is exposed on the rotational flange flange_a, whose
    torque is transmitted to frame_b with frame_a as support.

    Args:
        phi (number):
            Initial relative angle.
        w (number):
            Initial relative angular velocity.
        use_flange (bool):
            Add the rotational flange flange_a.
    """

    def __init__(self, ev, name=None, phi=0.0, w=0.0, use_flange=False):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        (fxa, fya, ja), (xa, _, _), (ya, _, _), (phia, _, _) = self.declare_frame_port(
            ev, "frame_a"
        )
        (fxb, fyb, jb), (xb, _, _), (yb, _, _), (phib, _, _) = self.declare_frame_port(
            ev, "frame_b"
        )
        phi = self.declare_var(ev, "phi_rel", ic=phi, ic_fixed=True)
        w = self.declare_derivative(ev, "w_rel", of=phi, ic=w)
        j = self.declare_var(ev, "j")
        self.add_eqs(
            [
                sp.Eq(xa.s, xb.s),
                sp.Eq(ya.s, yb.s),
                sp.Eq(phia.s + phi.s, phib.s),
                sp.Eq(0, fxa.s + fxb.s),
                sp.Eq(0, fya.s + fyb.s),
                sp.Eq(0, ja.s + jb.s),
                sp.Eq(ja.s, j.s),
            ]
        )
        if use_flange:
            t_flange, _, w_flange, _ = self.declare_rotational_port(ev, "flange_a")
            self.add_eqs([sp.Eq(w_flange.s, w.s), sp.Eq(j.s, t_flange.s)])
        else:
            self.add_eqs([sp.Eq(j.s, 0)])


class AbsolutePosition(ComponentBase):
    """
    Absolute position and orientation of frame_a, resolved in the world
    frame, in frame_a, or in frame_resolve. The outputs are x, y and phi.
    The sensor applies no force to the frames it is connected to.
    """

    def __init__(self, ev, name=None, resolve_in_frame="frame_a"):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        self.resolve_in_frame = _resolve_in_frame(resolve_in_frame)
        if self.resolve_in_frame == ResolveInFrame.frame_b:
            raise ValueError(
                f"AbsolutePosition {self.name} has no frame_b to resolve in."
            )
        flows, (x, _, _), (y, _, _), (phi, _, _) = self.declare_frame_port(
            ev, "frame_a"
        )
        self.add_eqs([sp.Eq(f.s, 0) for f in flows])

        r = [x.s, y.s, phi.s]
        match self.resolve_in_frame:
            case ResolveInFrame.world:
                out = r
            case ResolveInFrame.frame_a:
                out = self._rotate(r, phi.s)
            case ResolveInFrame.frame_resolve:
                flows_r, _, _, (phi_r, _, _) = self.declare_frame_port(
                    ev, "frame_resolve"
                )
                self.add_eqs([sp.Eq(f.s, 0) for f in flows_r])
                out = self._rotate(r, phi_r.s)

        for sym_name, expr in zip(("x", "y", "phi"), out):
            self.declare_output(ev, sym_name, expr)

    @staticmethod
    def _rotate(r, angle):
        # transpose(R(angle)) * r, minus the frame angle for the orientation
        c, s = sp.cos(angle), sp.sin(angle)
        return [c * r[0] + s * r[1], -s * r[0] + c * r[1], r[2] - angle]


class RelativePosition(ComponentBase):
    """
    Position and orientation of frame_b relative to frame_a, resolved in the
    world frame, in frame_a, in frame_b, or in frame_resolve. The outputs are
    rel_x, rel_y and rel_phi. The sensor applies no force to the frames.
    """

    def __init__(self, ev, name=None, resolve_in_frame="frame_a"):
        super().__init__()
        self.name = self.__class__.__name__ if name is None else name
        self.resolve_in_frame = _resolve_in_frame(resolve_in_frame)
        frames = []
        for port_name in ("frame_a", "frame_b"):
            flows, (x, _, _), (y, _, _), (phi, _, _) = self.declare_frame_port(
                ev, port_name
            )
            self.add_eqs([sp.Eq(f.s, 0) for f in flows])
            frames.append((x.s, y.s, phi.s))
        (xa, ya, phia), (xb, yb, phib) = frames

        r = [xb - xa, yb - ya, phib - phia]
        match self.resolve_in_frame:
            case ResolveInFrame.world:
                out = r
            case ResolveInFrame.frame_a:
                out = _rotate_vector(r, phia)
            case ResolveInFrame.frame_b:
                out = _rotate_vector(r, phib)
            case ResolveInFrame.frame_resolve:
                flows_r, _, _, (phi_r, _, _) = self.declare_frame_port(
                    ev, "frame_resolve"
                )
                self.add_eqs([sp.Eq(f.s, 0) for f in flows_r])
                out = _rotate_vector(r, phi_r.s)

        for sym_name, expr in zip(("rel_x", "rel_y", "rel_phi"), out):
            self.declare_output(ev, sym_name, expr)


def _rotate_vector(r, angle):
    # transpose(R(angle)) * r, the relative angle is the same in every frame
    c, s = sp.cos(angle), sp.sin(angle)
    return [c * r[0] + s * r[1], -s * r[0] + c * r[1], r[2]]
