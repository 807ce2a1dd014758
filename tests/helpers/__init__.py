#
# SPDX-FileCopyrightText: Copyright (c) 2025 provide.io llc. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#

"""Test helpers: generated certificate material and an in-memory event source."""

from __future__ import annotations

# 🔼⚙️🔚
