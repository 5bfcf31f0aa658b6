# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

import sys
from pathlib import Path

import pytest

# Add src to path so `arden` imports without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

ENV_VARS = ("HOST", "ARDEN_HOST", "ARDEN_API_TOKEN", "ARDEN_USER_ID", "LOG_LEVEL")


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the developer's ~/.arden config and environment out of tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    config_dir = tmp_path / "arden-config"
    monkeypatch.setenv("ARDEN_CONFIG_DIR", str(config_dir))
    return config_dir
