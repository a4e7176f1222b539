"""Tests for ProjectRegistry."""

import pytest
from pathlib import Path

from testbench.core.errors import ProjectNotFoundError, ValidationError
from testbench.models.project import ProjectUpdate
from testbench.projects.defaults import DEFAULT_PROJECT_NAME, NEW_PROJECT_SOURCE_CODE
from testbench.projects.registry import ProjectRegistry


@pytest.mark.asyncio
async def test_create_project(temp_db: Path, sample_source_code: str):
    """Test creating a new project."""
    registry = ProjectRegistry(temp_db)

    project = await registry.create("Calculator", source_code=sample_source_code, test_code="# tests")

    assert len(project.id) == 32
    assert project.name == "Calculator"
    assert project.source_code == sample_source_code
    assert project.test_code == "# tests"
    assert project.language == "python"


@pytest.mark.asyncio
async def test_create_without_code_uses_placeholder(temp_db: Path):
    registry = ProjectRegistry(temp_db)

    project = await registry.create("Empty")

    assert project.source_code == NEW_PROJECT_SOURCE_CODE
    assert project.test_code == ""


@pytest.mark.asyncio
async def test_create_requires_name(temp_db: Path):
    registry = ProjectRegistry(temp_db)

    with pytest.raises(ValidationError):
        await registry.create("   ")


@pytest.mark.asyncio
async def test_get_nonexistent_project(temp_db: Path):
    """Test retrieving a project that doesn't exist."""
    registry = ProjectRegistry(temp_db)

    assert await registry.get("nonexistent") is None


@pytest.mark.asyncio
async def test_list_all_most_recent_first(temp_db: Path):
    registry = ProjectRegistry(temp_db)

    first = await registry.create("first")
    await registry.create("second")
    await registry.update(first.id, ProjectUpdate(test_code="it('x', lambda: None)"))

    projects = await registry.list_all()

    assert [p.name for p in projects] == ["first", "second"]


@pytest.mark.asyncio
async def test_update_project(temp_db: Path):
    registry = ProjectRegistry(temp_db)
    project = await registry.create("Old name", source_code="x = 1")

    updated = await registry.update(project.id, ProjectUpdate(name="New name"))

    assert updated.name == "New name"
    assert updated.source_code == "x = 1"
    assert updated.updated_at >= project.updated_at
    assert updated.created_at == project.created_at


@pytest.mark.asyncio
async def test_update_missing_project(temp_db: Path):
    registry = ProjectRegistry(temp_db)

    with pytest.raises(ProjectNotFoundError) as exc:
        await registry.update("missing", ProjectUpdate(name="x"))
    assert exc.value.message == "Project 'missing' not found"


@pytest.mark.asyncio
async def test_delete_project(temp_db: Path):
    registry = ProjectRegistry(temp_db)
    project = await registry.create("Doomed")

    assert await registry.delete(project.id) is True
    assert await registry.get(project.id) is None
    assert await registry.delete(project.id) is False


@pytest.mark.asyncio
async def test_resolve_by_prefix_and_name(temp_db: Path):
    registry = ProjectRegistry(temp_db)
    project = await registry.create("Sorting")

    assert (await registry.resolve(project.id)).id == project.id
    assert (await registry.resolve(project.id[:8])).id == project.id
    assert (await registry.resolve("Sorting")).id == project.id

    with pytest.raises(ProjectNotFoundError):
        await registry.resolve("Searching")


@pytest.mark.asyncio
async def test_resolve_treats_wildcards_literally(temp_db: Path):
    """% and _ in a reference are not LIKE wildcards."""
    registry = ProjectRegistry(temp_db)
    await registry.create("Sorting")

    for ref in ("%", "_", "____"):
        with pytest.raises(ProjectNotFoundError):
            await registry.resolve(ref)


@pytest.mark.asyncio
async def test_ensure_default_seeds_once(temp_db: Path):
    """The starter project is created only in an empty registry."""
    registry = ProjectRegistry(temp_db)

    created = await registry.ensure_default()
    again = await registry.ensure_default()

    assert created.name == DEFAULT_PROJECT_NAME
    assert "calculate_factorial" in created.source_code
    assert again is None
    assert len(await registry.list_all()) == 1


@pytest.mark.asyncio
async def test_default_project_runs(temp_db: Path):
    """The starter project's tests pass against its source."""
    from testbench.vm.sandbox import Sandbox

    registry = ProjectRegistry(temp_db)
    project = await registry.ensure_default()

    report = Sandbox().run(project.source_code, project.test_code)

    assert report.success
    assert report.passed_count == 1
