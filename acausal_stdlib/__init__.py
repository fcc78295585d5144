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

"""Acausal, equation based physical modeling library.

Components from the component_library are connected through their ports in an
AcausalDiagram. The AcausalCompiler turns the diagram into an AcausalSystem,
a semi-explicit DAE which can be simulated with simulate().
"""

from . import component_library
from .acausal_compiler import AcausalCompiler, AcausalSystem
from .acausal_diagram import AcausalDiagram
from .component_library.base import EqnEnv
from .diagram_processing import DiagramProcessing
from .error import AcausalCompilerError, AcausalModelError
from .simulation import SimulationResults, simulate

__all__ = [
    "component_library",
    "AcausalCompiler",
    "AcausalDiagram",
    "AcausalSystem",
    "DiagramProcessing",
    "EqnEnv",
    "AcausalCompilerError",
    "AcausalModelError",
    "SimulationResults",
    "simulate",
]
