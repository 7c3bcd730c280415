import ast
from pathlib import Path

import pytest

import utils.access
from utils.access import required_role


@pytest.mark.parametrize(
    "path, role",
    [
        ("/admin", "ADMIN"),
        ("/admin/users", "ADMIN"),
        ("/staff/portfolios/3", "STAFF"),
        ("/employer/jobs/9/edit", "EMPLOYER"),
        ("/caregiver/dashboard", "EMPLOYEE"),
        ("/administrator", None),
        ("/api/auth/login", None),
        ("/api/staff/jobs", None),
        ("/signin", None),
        ("/", None),
        ("/jobs", None),
    ],
)
def test_required_role(path, role):
    assert required_role(path) == role


def test_gate_does_not_import_routers():
    tree = ast.parse(Path(utils.access.__file__).read_text())
    imported = {
        node.module for node in ast.walk(tree) if isinstance(node, ast.ImportFrom) and node.module
    } | {
        alias.name for node in ast.walk(tree) if isinstance(node, ast.Import) for alias in node.names
    }

    assert "utils.security" in imported
    assert not any(name.startswith("routers") for name in imported)
