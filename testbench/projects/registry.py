"""Project registry - SQLite-backed storage for projects."""

import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional
import aiosqlite

from testbench.core.errors import ProjectNotFoundError, ValidationError
from testbench.models.project import Project, ProjectUpdate
from .defaults import (
    DEFAULT_PROJECT_NAME,
    DEFAULT_SOURCE_CODE,
    DEFAULT_TEST_CODE,
    NEW_PROJECT_SOURCE_CODE,
)


class ProjectRegistry:
    """Manages storage and retrieval of projects.

    Each project is a named pair of source code and test code. The
    execution engine never reads from here; callers load a project and hand
    its code to the executor.
    """

    def __init__(self, db_path: str | Path):
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False

    async def _ensure_initialized(self) -> aiosqlite.Connection:
        """Get connection and ensure tables exist."""
        conn = await aiosqlite.connect(self._db_path)

        if not self._initialized:
            await conn.executescript("""
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    source_code TEXT NOT NULL DEFAULT '',
                    test_code TEXT NOT NULL DEFAULT '',
                    language TEXT NOT NULL DEFAULT 'python',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_projects_name ON projects(name);
            """)
            await conn.commit()
            self._initialized = True

        return conn

    def _row_to_project(self, row: tuple) -> Project:
        """Convert a database row to a Project."""
        return Project(
            id=row[0],
            name=row[1],
            source_code=row[2],
            test_code=row[3],
            language=row[4],
            created_at=datetime.fromisoformat(row[5]),
            updated_at=datetime.fromisoformat(row[6]),
        )

    async def create(
        self,
        name: str,
        source_code: Optional[str] = None,
        test_code: str = ""
    ) -> Project:
        """Create a new project.

        Args:
            name: Display name
            source_code: Initial source, a placeholder comment if omitted
            test_code: Initial tests

        Returns:
            The stored Project with its assigned id
        """
        if not name or not name.strip():
            raise ValidationError("Project name must not be empty", field="name", value=name)

        project_id = uuid.uuid4().hex
        now = datetime.utcnow().isoformat()
        conn = await self._ensure_initialized()

        try:
            await conn.execute("""
                INSERT INTO projects (id, name, source_code, test_code, language, created_at, updated_at)
                VALUES (?, ?, ?, ?, 'python', ?, ?)
            """, (
                project_id,
                name.strip(),
                NEW_PROJECT_SOURCE_CODE if source_code is None else source_code,
                test_code,
                now,
                now
            ))
            await conn.commit()
        finally:
            await conn.close()

        return await self.get(project_id)

    async def get(self, project_id: str) -> Optional[Project]:
        """Get a project by id."""
        conn = await self._ensure_initialized()

        try:
            cursor = await conn.execute(
                "SELECT * FROM projects WHERE id = ?",
                (project_id,)
            )
            row = await cursor.fetchone()

            if row is None:
                return None

            return self._row_to_project(row)
        finally:
            await conn.close()

    async def resolve(self, ref: str) -> Project:
        """Find a project by full id, unique id prefix, or exact name.

        Raises:
            ProjectNotFoundError: nothing matches, or a prefix is ambiguous
        """
        project = await self.get(ref)
        if project is not None:
            return project

        prefix = ref.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        conn = await self._ensure_initialized()

        try:
            cursor = await conn.execute(
                "SELECT * FROM projects WHERE id LIKE ? ESCAPE '\\' OR name = ? ORDER BY created_at",
                (f"{prefix}%", ref)
            )
            rows = await cursor.fetchall()
        finally:
            await conn.close()

        if len(rows) != 1:
            raise ProjectNotFoundError(ref)
        return self._row_to_project(rows[0])

    async def list_all(self, limit: int = 100) -> list[Project]:
        """List projects, most recently updated first."""
        conn = await self._ensure_initialized()

        try:
            cursor = await conn.execute(
                "SELECT * FROM projects ORDER BY updated_at DESC LIMIT ?",
                (limit,)
            )
            rows = await cursor.fetchall()
            return [self._row_to_project(row) for row in rows]
        finally:
            await conn.close()

    async def update(self, project_id: str, changes: ProjectUpdate) -> Project:
        """Apply a partial update.

        Raises:
            ProjectNotFoundError: no project with this id
        """
        fields = changes.model_dump(exclude_none=True)
        if "name" in fields and not fields["name"].strip():
            raise ValidationError("Project name must not be empty", field="name", value=fields["name"])

        conn = await self._ensure_initialized()

        try:
            assignments = ", ".join(f"{column} = ?" for column in fields)
            values = list(fields.values())
            sql = "UPDATE projects SET updated_at = ?"
            if assignments:
                sql += f", {assignments}"
            cursor = await conn.execute(
                f"{sql} WHERE id = ?",
                (datetime.utcnow().isoformat(), *values, project_id)
            )
            await conn.commit()
            if cursor.rowcount == 0:
                raise ProjectNotFoundError(project_id)
        finally:
            await conn.close()

        return await self.get(project_id)

    async def delete(self, project_id: str) -> bool:
        """Delete a project. Returns False if it did not exist."""
        conn = await self._ensure_initialized()

        try:
            cursor = await conn.execute(
                "DELETE FROM projects WHERE id = ?",
                (project_id,)
            )
            await conn.commit()
            return cursor.rowcount > 0
        finally:
            await conn.close()

    async def ensure_default(self) -> Optional[Project]:
        """Seed the starter project if the registry is empty.

        Returns:
            The created project, or None if projects already existed
        """
        conn = await self._ensure_initialized()

        try:
            cursor = await conn.execute("SELECT COUNT(*) FROM projects")
            total = (await cursor.fetchone())[0]
        finally:
            await conn.close()

        if total:
            return None

        return await self.create(
            DEFAULT_PROJECT_NAME,
            source_code=DEFAULT_SOURCE_CODE,
            test_code=DEFAULT_TEST_CODE,
        )
