"""Unit tests for example scripts.

These tests ensure that the example scripts continue to work correctly
when code changes are made to the stackplan package. Tests execute the
scripts as external Python processes using subprocess for accurate testing.
"""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

# Get the project root directory (parent of tests/)
PROJECT_ROOT = Path(__file__).parent.parent
EXAMPLES_DIR = PROJECT_ROOT / "examples"

CIDR_ARGS = ["--ssh-cidr", "203.0.113.0/24", "--cluster-cidr", "172.16.0.0/16"]


def _env():
    """Environment without plan variable overrides."""
    return {k: v for k, v in os.environ.items() if not k.startswith("STACKPLAN_VAR_")}


class TestK3sClusterExample:
    """Tests for examples/k3s_cluster.py."""

    @pytest.fixture
    def script_path(self):
        """Return the path to the k3s cluster example script."""
        return EXAMPLES_DIR / "k3s_cluster.py"

    def _run(self, script_path, *args, check=True):
        return subprocess.run(
            [sys.executable, str(script_path), *args],
            capture_output=True,
            text=True,
            check=check,
            env=_env(),
        )

    def test_missing_ingress_cidrs(self, script_path):
        """Test that the security group sources must be given explicitly."""
        result = self._run(script_path, check=False)
        assert result.returncode == 1
        assert "Plan failed [variable]" in result.stdout
        assert "admin_ssh_cidr" in result.stdout
        assert "cluster_ingress_cidr" in result.stdout

    def test_plan_output(self, script_path):
        """Test the serialized plan with default arguments."""
        result = self._run(script_path, *CIDR_ARGS)
        doc = json.loads(result.stdout)
        assert doc["format"] == "stackplan"
        assert doc["provider"] == {"region": "eu-north-1"}

        resources = {r["id"]: r for r in doc["resources"]}
        assert resources["k3s_private_subnet"]["attributes"]["cidr_block"] == "172.16.3.0/24"
        assert resources["k3s_public_subnet"]["attributes"]["cidr_block"] == "172.16.2.0/24"
        assert resources["k3s_private_subnet"]["attributes"]["availability_zone"] == "eu-north-1a"
        assert "k3s_workers[1]" in resources
        assert "k3s_workers[2]" not in resources

        ids = [r["id"] for r in doc["resources"]]
        for record in doc["resources"]:
            for dep in record["depends_on"]:
                assert ids.index(dep) < ids.index(record["id"])

    def test_worker_count_and_region(self, script_path):
        """Test custom worker count and region."""
        result = self._run(script_path, *CIDR_ARGS, "--workers", "3", "--region", "eu-west-1")
        doc = json.loads(result.stdout)
        ids = [r["id"] for r in doc["resources"]]
        assert "k3s_workers[2]" in ids
        assert doc["provider"] == {"region": "eu-west-1"}

    def test_apply(self, script_path):
        """Test applying the plan against fake provisioners."""
        result = self._run(script_path, *CIDR_ARGS, "--apply")
        output = result.stdout
        assert "public_ip_nginx = 198.51.100." in output
        assert "k3s_master_private_ip = 172.16.3." in output
        assert "k3s_worker_private_ip = [" in output
        assert result.returncode == 0
