# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Arden CLI.

Imports Claude Code usage logs, installs Claude Code hooks, and submits
telemetry events to the Arden Stats API.
"""

__version__ = "0.1.0"
