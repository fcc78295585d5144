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

from . import (
    digital,
    electrical,
    functions,
    hydraulic,
    magnetic,
    planar,
    rotational,
    sources,
    thermal,
    translational,
    translational_position,
)
from .base import EqnEnv

__all__ = [
    "digital",
    "electrical",
    "functions",
    "hydraulic",
    "magnetic",
    "planar",
    "rotational",
    "sources",
    "thermal",
    "translational",
    "translational_position",
    "EqnEnv",
]
