"""Shared test fixtures for gridedit."""

import pytest

from gridedit import (
    InterProjectModel,
    Project,
    Row,
    Workspace,
    WorkspaceConfig,
    columns_from_names,
)


@pytest.fixture
def inter_project_model():
    """A join registry shared by the projects of one test."""
    return InterProjectModel()


@pytest.fixture
def project(inter_project_model):
    """Project with columns column0, column1 and two rows."""
    return Project(
        "p1",
        columns_from_names(["column0", "column1"]),
        [
            Row.of("row0cell0", "row0cell1"),
            Row.of("row1cell0", "row1cell1"),
        ],
        inter_project_model=inter_project_model,
    )


@pytest.fixture
def other_project(inter_project_model):
    """Second project sharing the same join registry."""
    return Project(
        "p2",
        columns_from_names(["key", "label"]),
        [
            Row.of("row0cell0", "first"),
            Row.of("row1cell0", "second"),
            Row.of("row0cell0", "third"),
        ],
        inter_project_model=inter_project_model,
    )


@pytest.fixture
def workspace(tmp_path):
    """Workspace storing history logs under a temporary directory."""
    return Workspace(WorkspaceConfig(workspace_dir=tmp_path / "ws", fsync=False))
